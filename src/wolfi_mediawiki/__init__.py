"""wolfi-mediawiki – build, smoke-test and publish a MediaWiki image on Wolfi."""

__version__ = "0.2.0"

from .builder import ImageBuilder, ImageId, ImageReference
from .config import (
    PipelineConfig,
    RegistryConfig,
    SmokeTestConfig,
    VersionSourceConfig,
    load_config,
)
from .errors import (
    BuildError,
    ConfigError,
    PipelineError,
    PublishError,
    RuntimeUnavailableError,
    SmokeTestError,
)
from .generator import ArtifactGenerator, BuildArtifact, ExtensionPolicy, ImageLayout
from .pipeline import Pipeline, PipelineResult
from .publisher import Credentials, Publisher
from .retry import Abort, RetryResult, retry
from .runtime import ContainerRuntime, ContainerState, DockerRuntime, RuntimeResult
from .smoke import CheckResult, SmokeTester, TestOutcome
from .versions import VersionResolver, VersionSet, read_version_file, write_version_file

__all__ = [
    # Pipeline
    "Pipeline",
    "PipelineResult",
    # Configuration
    "PipelineConfig",
    "RegistryConfig",
    "SmokeTestConfig",
    "VersionSourceConfig",
    "load_config",
    # Versions
    "VersionResolver",
    "VersionSet",
    "read_version_file",
    "write_version_file",
    # Artifacts
    "ArtifactGenerator",
    "BuildArtifact",
    "ExtensionPolicy",
    "ImageLayout",
    # Build and publish
    "ImageBuilder",
    "ImageId",
    "ImageReference",
    "Credentials",
    "Publisher",
    # Smoke tests
    "Abort",
    "CheckResult",
    "RetryResult",
    "SmokeTester",
    "TestOutcome",
    "retry",
    # Runtime
    "ContainerRuntime",
    "ContainerState",
    "DockerRuntime",
    "RuntimeResult",
    # Errors
    "BuildError",
    "ConfigError",
    "PipelineError",
    "PublishError",
    "RuntimeUnavailableError",
    "SmokeTestError",
    "__version__",
]
