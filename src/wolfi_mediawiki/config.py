"""Configuration models for the wolfi-mediawiki build pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from .errors import ConfigError

DEFAULT_BASE_IMAGE = "cgr.dev/chainguard/wolfi-base:latest"
DEFAULT_IMAGE_NAME = "wolfi-mediawiki"
DEFAULT_VERSION_FILE = "version_info.env"

# Smoke test polling budgets
PING_MAX_ATTEMPTS = 10
PING_INTERVAL = 3.0
HEALTH_MAX_ATTEMPTS = 20
HEALTH_INTERVAL = 5.0
SETUP_MAX_ATTEMPTS = 20
SETUP_INTERVAL = 5.0


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    v = str(value).strip()
    return v or None


def _as_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class VersionSourceConfig:
    """Where upstream PHP and MediaWiki versions are looked up."""
    apk_index_url: str = "https://packages.wolfi.dev/os/x86_64/APKINDEX.tar.gz"
    releases_url: str = "https://releases.wikimedia.org/mediawiki/"
    connect_timeout: float = 10.0
    read_timeout: float = 30.0
    probe_image: str = DEFAULT_BASE_IMAGE

    # Pinned versions skip the corresponding network lookup
    php_version: Optional[str] = None
    mediawiki_version: Optional[str] = None
    mediawiki_major_version: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VersionSourceConfig":
        defaults = cls()
        return cls(
            apk_index_url=data.get("apk_index_url", defaults.apk_index_url),
            releases_url=data.get("releases_url", defaults.releases_url),
            connect_timeout=float(data.get("connect_timeout", defaults.connect_timeout)),
            read_timeout=float(data.get("read_timeout", defaults.read_timeout)),
            probe_image=data.get("probe_image", defaults.probe_image),
            php_version=_clean(data.get("php_version")),
            mediawiki_version=_clean(data.get("mediawiki_version")),
            mediawiki_major_version=_clean(data.get("mediawiki_major_version")),
        )


@dataclass
class SmokeTestConfig:
    """Polling budget and probe settings for post-build smoke tests."""
    host_port: int = 8080
    ping_attempts: int = PING_MAX_ATTEMPTS
    ping_interval: float = PING_INTERVAL
    health_attempts: int = HEALTH_MAX_ATTEMPTS
    health_interval: float = HEALTH_INTERVAL
    setup_attempts: int = SETUP_MAX_ATTEMPTS
    setup_interval: float = SETUP_INTERVAL
    http_timeout: float = 5.0
    log_tail: int = 20

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SmokeTestConfig":
        defaults = cls()
        return cls(
            host_port=int(data.get("host_port", defaults.host_port)),
            ping_attempts=int(data.get("ping_attempts", defaults.ping_attempts)),
            ping_interval=float(data.get("ping_interval", defaults.ping_interval)),
            health_attempts=int(data.get("health_attempts", defaults.health_attempts)),
            health_interval=float(data.get("health_interval", defaults.health_interval)),
            setup_attempts=int(data.get("setup_attempts", defaults.setup_attempts)),
            setup_interval=float(data.get("setup_interval", defaults.setup_interval)),
            http_timeout=float(data.get("http_timeout", defaults.http_timeout)),
            log_tail=int(data.get("log_tail", defaults.log_tail)),
        )


@dataclass
class RegistryConfig:
    """Registry target and credentials for publishing."""
    url: str = ""                       # Empty means Docker Hub
    namespace: Optional[str] = None     # Defaults to the username
    username: Optional[str] = None
    token: Optional[str] = None
    auto_push: bool = False

    @property
    def has_credentials(self) -> bool:
        return bool(self.username) and bool(self.token)

    @property
    def push_enabled(self) -> bool:
        """Auto-push is implied whenever both credentials are present."""
        return self.auto_push or self.has_credentials

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        env: Optional[Mapping[str, str]] = None,
    ) -> "RegistryConfig":
        src = env if env is not None else os.environ
        return cls(
            url=_clean(data.get("url")) or _clean(src.get("WOLFI_MW_REGISTRY")) or "",
            namespace=_clean(data.get("namespace")) or _clean(src.get("WOLFI_MW_NAMESPACE")),
            username=_clean(data.get("username")) or _clean(src.get("DOCKER_USERNAME")),
            token=_clean(data.get("token")) or _clean(src.get("DOCKER_TOKEN")),
            auto_push=_as_bool(data.get("auto_push")),
        )


@dataclass
class PipelineConfig:
    """Explicit configuration handed to every pipeline stage."""
    build_dir: Path = Path("build")
    image_name: str = DEFAULT_IMAGE_NAME
    base_image: str = DEFAULT_BASE_IMAGE
    output_versions: bool = False
    version_file: Path = Path(DEFAULT_VERSION_FILE)
    strict_extensions: bool = False
    build_timeout: int = 1800
    runtime_binary: str = "docker"
    sources: VersionSourceConfig = field(default_factory=VersionSourceConfig)
    smoke: SmokeTestConfig = field(default_factory=SmokeTestConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)

    def __post_init__(self) -> None:
        if not self.image_name or "/" in self.image_name or ":" in self.image_name:
            raise ConfigError(f"Invalid image name: {self.image_name!r}")
        if self.smoke.host_port <= 0 or self.smoke.host_port > 65535:
            raise ConfigError(f"Invalid host port: {self.smoke.host_port}")

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        env: Optional[Mapping[str, str]] = None,
        base_path: Optional[Path] = None,
    ) -> "PipelineConfig":
        """Create configuration from a dictionary, falling back to *env*."""
        src = env if env is not None else os.environ
        base = base_path or Path.cwd()

        build_dir = Path(data.get("build_dir") or src.get("WOLFI_MW_BUILD_DIR") or "build")
        version_file = Path(data.get("version_file") or DEFAULT_VERSION_FILE)
        if not build_dir.is_absolute():
            build_dir = base / build_dir
        if not version_file.is_absolute():
            version_file = base / version_file

        return cls(
            build_dir=build_dir,
            image_name=data.get("image_name") or src.get("WOLFI_MW_IMAGE_NAME") or DEFAULT_IMAGE_NAME,
            base_image=data.get("base_image", DEFAULT_BASE_IMAGE),
            output_versions=_as_bool(data.get("output_versions")),
            version_file=version_file,
            strict_extensions=_as_bool(data.get("strict_extensions")),
            build_timeout=int(data.get("build_timeout", 1800)),
            runtime_binary=data.get("runtime_binary", "docker"),
            sources=VersionSourceConfig.from_dict(data.get("sources") or {}),
            smoke=SmokeTestConfig.from_dict(data.get("smoke") or {}),
            registry=RegistryConfig.from_dict(data.get("registry") or {}, env=src),
        )

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "PipelineConfig":
        return cls.from_dict({}, env=env)

    @classmethod
    def from_yaml(cls, path: Path, env: Optional[Mapping[str, str]] = None) -> "PipelineConfig":
        """Load pipeline configuration from a YAML file."""
        with open(path) as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config file must contain a mapping: {path}")
        try:
            return cls.from_dict(data, env=env, base_path=path.parent)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid value in {path}: {e}") from e

    def with_overrides(self, **overrides: Any) -> "PipelineConfig":
        """Return a copy with non-None top-level and registry overrides applied."""
        registry_keys = {"username", "token", "namespace", "url", "auto_push"}
        registry_changes = {
            k: v for k, v in overrides.items() if k in registry_keys and v is not None
        }
        top_changes = {
            k: v for k, v in overrides.items() if k not in registry_keys and v is not None
        }
        registry = replace(self.registry, **registry_changes) if registry_changes else self.registry
        return replace(self, registry=registry, **top_changes)


def load_config(
    path: Optional[str | Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> PipelineConfig:
    """Load pipeline configuration from file, or from the environment alone."""
    if path is None:
        return PipelineConfig.from_env(env)
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    return PipelineConfig.from_yaml(path, env=env)
