"""Container runtime backends used to build, test and push the image."""

from .base import ContainerRuntime, ContainerState, RuntimeResult, RuntimeType
from .docker import DockerRuntime

__all__ = [
    "ContainerRuntime",
    "ContainerState",
    "DockerRuntime",
    "RuntimeResult",
    "RuntimeType",
]
