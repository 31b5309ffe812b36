"""Docker CLI runtime backend."""

from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path
from typing import Optional

from ..errors import RuntimeUnavailableError
from .base import ContainerRuntime, ContainerState, RuntimeResult, RuntimeType

logger = logging.getLogger(__name__)


class DockerRuntime(ContainerRuntime):
    """Docker container runtime backend."""

    def __init__(self, binary: str = "docker"):
        self.binary = binary

    @property
    def runtime_type(self) -> RuntimeType:
        return RuntimeType.DOCKER

    def _run(
        self,
        args: list[str],
        timeout: Optional[int] = 60,
        input: Optional[str] = None,
    ) -> RuntimeResult:
        cmd = [self.binary, *args]
        logger.debug("Running: %s", " ".join(cmd[:3]))
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
                input=input,
            )
        except FileNotFoundError as e:
            raise RuntimeUnavailableError(f"{self.binary} executable not found") from e
        except subprocess.TimeoutExpired:
            logger.warning("Command timed out after %ss: %s", timeout, " ".join(cmd[:3]))
            return RuntimeResult(
                success=False,
                command=cmd,
                returncode=-1,
                error=f"{' '.join(cmd[:2])} timed out",
            )

        error = None
        if result.returncode != 0:
            error = (result.stderr or "").strip() or f"exit code {result.returncode}"

        return RuntimeResult(
            success=result.returncode == 0,
            command=cmd,
            returncode=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
            error=error,
        )

    def is_available(self) -> bool:
        """Check if Docker is available."""
        try:
            result = subprocess.run(
                [self.binary, "version", "--format", "{{.Server.Version}}"],
                capture_output=True,
                text=True,
                timeout=5,
            )
            return result.returncode == 0
        except (subprocess.TimeoutExpired, FileNotFoundError):
            return False

    def build_image(
        self,
        dockerfile_path: Path,
        context_path: Path,
        tag: str,
        build_args: Optional[dict[str, str]] = None,
        timeout: int = 1800,
    ) -> RuntimeResult:
        """Build Docker image."""
        args = ["build", "-t", tag, "-f", str(dockerfile_path)]
        for key, value in (build_args or {}).items():
            if value is None:
                continue
            v = str(value).strip()
            if not v:
                continue
            args.extend(["--build-arg", f"{key}={v}"])
        args.append(str(context_path))
        return self._run(args, timeout=timeout)

    def tag_image(self, source: str, target: str) -> RuntimeResult:
        return self._run(["tag", source, target], timeout=30)

    def run_container(self, image: str, ports: Optional[dict[int, int]] = None) -> str:
        """Start a detached container, returning its id."""
        args = ["run", "-d"]
        for host_port, container_port in (ports or {}).items():
            args.extend(["-p", f"{host_port}:{container_port}"])
        args.append(image)

        result = self._run(args, timeout=120)
        if not result.success:
            raise RuntimeUnavailableError(
                f"Failed to start container from {image}: {result.error or result.output}"
            )
        return result.stdout.strip()

    def run_once(self, image: str, command: list[str], timeout: int = 120) -> RuntimeResult:
        return self._run(["run", "--rm", image, *command], timeout=timeout)

    def exec(self, container_id: str, command: list[str], timeout: int = 30) -> RuntimeResult:
        return self._run(["exec", container_id, *command], timeout=timeout)

    def inspect(self, container_id: str) -> ContainerState:
        """Get container state."""
        result = self._run(["inspect", container_id], timeout=30)
        if not result.success:
            return ContainerState(running=False, status="missing", error="Container not found")

        try:
            data = json.loads(result.stdout)[0]
            state = data["State"]
            return ContainerState(
                running=bool(state["Running"]),
                status=state.get("Status", "unknown"),
                health=(state.get("Health") or {}).get("Status", "none"),
                container_id=data["Id"][:12],
            )
        except (json.JSONDecodeError, KeyError, IndexError, TypeError):
            return ContainerState(running=False, status="unknown", error="Failed to parse state")

    def logs(self, container_id: str, tail: Optional[int] = None) -> str:
        """Get container logs."""
        args = ["logs"]
        if tail is not None:
            args.extend(["--tail", str(tail)])
        args.append(container_id)
        result = self._run(args, timeout=30)
        return result.stdout + result.stderr

    def remove_container(self, container_id: str) -> RuntimeResult:
        return self._run(["rm", "-f", container_id], timeout=60)

    def login(self, username: str, token: str, registry: str = "") -> RuntimeResult:
        """Log in with the token on stdin so it never appears in argv."""
        args = ["login", "--username", username, "--password-stdin"]
        if registry:
            args.append(registry)
        return self._run(args, timeout=60, input=token)

    def push_image(self, image: str, timeout: int = 900) -> RuntimeResult:
        return self._run(["push", image], timeout=timeout)
