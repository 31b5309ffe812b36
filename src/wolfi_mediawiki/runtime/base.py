"""Base classes for container runtime backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional


class RuntimeType(Enum):
    """Container runtime types."""
    DOCKER = "docker"


@dataclass
class RuntimeResult:
    """Result of a single runtime CLI invocation."""
    success: bool
    command: list[str] = field(default_factory=list)
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    error: Optional[str] = None

    @property
    def output(self) -> str:
        return (self.stdout or "") + (self.stderr or "")


@dataclass
class ContainerState:
    """Subset of the runtime's view of a container."""
    running: bool
    status: str = "unknown"
    health: str = "unknown"
    container_id: Optional[str] = None
    error: Optional[str] = None


class ContainerRuntime(ABC):
    """Abstract base class for the container tool driven by the pipeline."""

    @property
    @abstractmethod
    def runtime_type(self) -> RuntimeType:
        """Return the runtime type."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the runtime is available."""

    @abstractmethod
    def build_image(
        self,
        dockerfile_path: Path,
        context_path: Path,
        tag: str,
        build_args: Optional[dict[str, str]] = None,
        timeout: int = 1800,
    ) -> RuntimeResult:
        """Build an image and tag it."""

    @abstractmethod
    def tag_image(self, source: str, target: str) -> RuntimeResult:
        """Add *target* as an alias of *source*."""

    @abstractmethod
    def run_container(self, image: str, ports: Optional[dict[int, int]] = None) -> str:
        """Start a detached container and return its id."""

    @abstractmethod
    def run_once(self, image: str, command: list[str], timeout: int = 120) -> RuntimeResult:
        """Run a throwaway container to completion."""

    @abstractmethod
    def exec(self, container_id: str, command: list[str], timeout: int = 30) -> RuntimeResult:
        """Execute a command inside a running container."""

    @abstractmethod
    def inspect(self, container_id: str) -> ContainerState:
        """Return the state of a container."""

    @abstractmethod
    def logs(self, container_id: str, tail: Optional[int] = None) -> str:
        """Get logs from a container."""

    @abstractmethod
    def remove_container(self, container_id: str) -> RuntimeResult:
        """Force-remove a container."""

    @abstractmethod
    def login(self, username: str, token: str, registry: str = "") -> RuntimeResult:
        """Authenticate against a registry."""

    @abstractmethod
    def push_image(self, image: str, timeout: int = 900) -> RuntimeResult:
        """Push an image reference to its registry."""
