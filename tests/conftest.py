from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import pytest
from dotenv import load_dotenv
from rich.console import Console

_PROJECT_ROOT = Path(__file__).resolve().parents[1]
_SRC = (_PROJECT_ROOT / "src").resolve()
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

load_dotenv(_PROJECT_ROOT / ".env", override=False)

from wolfi_mediawiki.runtime.base import (  # noqa: E402
    ContainerRuntime,
    ContainerState,
    RuntimeResult,
    RuntimeType,
)
from wolfi_mediawiki.versions import VersionSet  # noqa: E402


class FakeRuntime(ContainerRuntime):
    """In-memory runtime that records every call."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.build_result = RuntimeResult(success=True)
        self.ping_results: list[bool] = []
        self.states: list[ContainerState] = []
        self.login_result = RuntimeResult(success=True)
        self.failing_pushes: set[str] = set()
        self.apk_search_output = ""
        self.container_id = "c0ffee123456"
        self.log_text = "\n".join(f"log line {i}" for i in range(1, 31))

    def called(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    @property
    def runtime_type(self) -> RuntimeType:
        return RuntimeType.DOCKER

    def is_available(self) -> bool:
        return True

    def build_image(self, dockerfile_path, context_path, tag, build_args=None, timeout=1800):
        self.calls.append(("build", tag, dict(build_args or {}), Path(dockerfile_path)))
        return self.build_result

    def tag_image(self, source, target):
        self.calls.append(("tag", source, target))
        return RuntimeResult(success=True)

    def run_container(self, image, ports=None):
        self.calls.append(("run", image, dict(ports or {})))
        return self.container_id

    def run_once(self, image, command, timeout=120):
        self.calls.append(("run_once", image, list(command)))
        if not self.apk_search_output:
            return RuntimeResult(success=False, returncode=1, error="no output")
        return RuntimeResult(success=True, stdout=self.apk_search_output)

    def exec(self, container_id, command, timeout=30):
        self.calls.append(("exec", container_id, list(command)))
        ok = self.ping_results.pop(0) if self.ping_results else True
        return RuntimeResult(success=ok, returncode=0 if ok else 1)

    def inspect(self, container_id):
        self.calls.append(("inspect", container_id))
        if len(self.states) > 1:
            return self.states.pop(0)
        if self.states:
            return self.states[0]
        return ContainerState(running=True, status="running", health="healthy")

    def logs(self, container_id, tail: Optional[int] = None):
        self.calls.append(("logs", container_id, tail))
        lines = self.log_text.splitlines()
        return "\n".join(lines[-tail:] if tail else lines)

    def remove_container(self, container_id):
        self.calls.append(("rm", container_id))
        return RuntimeResult(success=True)

    def login(self, username, token, registry=""):
        self.calls.append(("login", username, registry))
        return self.login_result

    def push_image(self, image, timeout=900):
        self.calls.append(("push", image))
        if image in self.failing_pushes:
            return RuntimeResult(success=False, returncode=1, error="denied")
        return RuntimeResult(success=True)


@pytest.fixture
def fake_runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def version_set() -> VersionSet:
    return VersionSet(php_version="8.4", mediawiki_version="1.43.0", mediawiki_major_version="1.43")


@pytest.fixture
def quiet_console() -> Console:
    return Console(quiet=True)


@pytest.fixture
def sleeps() -> list[float]:
    """Records sleep intervals instead of sleeping."""
    return []


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for key in ("DOCKER_USERNAME", "DOCKER_TOKEN", "WOLFI_MW_REGISTRY", "WOLFI_MW_NAMESPACE",
                "WOLFI_MW_BUILD_DIR", "WOLFI_MW_IMAGE_NAME"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("WOLFI_MW_LOG_DIR", str(tmp_path / "logs"))
