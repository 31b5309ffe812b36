"""Generate the Docker build context for the MediaWiki image."""

from __future__ import annotations

import logging
import stat
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from . import templates
from .config import DEFAULT_BASE_IMAGE, PipelineConfig
from .versions import VersionSet

logger = logging.getLogger(__name__)

DOCUMENT_ROOT = "/var/www/html"
HTTP_PORT = 80
FPM_LISTEN = "127.0.0.1:9000"
UPLOAD_PATH = "/images/"
RELEASES_DOWNLOAD_URL = "https://releases.wikimedia.org/mediawiki"

# Pages probed by the in-container health check and the smoke tests
INFO_PATH = "/info.php"
INFO_MARKER = "PHP Version"
SETUP_PATH = "/mw-config/index.php?page=Welcome"
SETUP_MARKERS = ("The environment has been checked", "cdx-message__content")
MAIN_PAGE_PATH = "/index.php/Main_Page"

BASE_PACKAGES = (
    "nginx",
    "wget",
    "git",
    "diffutils",
    "ca-certificates",
    "shadow",
    "busybox",
    "imagemagick",
    "python3",
    "curl",
)

PHP_EXTENSIONS = (
    "fpm", "curl", "gd", "intl", "mbstring", "xml", "zip", "mysqli",
    "opcache", "calendar", "apcu", "mysqlnd", "ctype", "iconv", "fileinfo", "dom",
)

# (load priority, extension); mysqlnd must load before mysqli
EXTENSION_INI = (
    (10, "mysqlnd"),
    (20, "mysqli"),
    (20, "calendar"),
    (20, "apcu"),
    (20, "ctype"),
    (20, "iconv"),
    (20, "fileinfo"),
    (20, "dom"),
)

OPCACHE_SETTINGS = (
    ("opcache.memory_consumption", "128"),
    ("opcache.interned_strings_buffer", "8"),
    ("opcache.max_accelerated_files", "4000"),
    ("opcache.revalidate_freq", "60"),
)

# Checked in order by the entrypoint before falling back to find(1)
FPM_CANDIDATES = (
    "/usr/bin/php-fpm${PHP_VERSION}",
    "/usr/bin/php-fpm",
    "/usr/sbin/php-fpm${PHP_VERSION}",
    "/usr/sbin/php-fpm",
)

# Reduces "php-8.4-curl-8.4.5-r0" from apk search to the package name
STRIP_APK_VERSION = "sed -E 's/-[0-9][^-]*-r[0-9]+$//'"


class ExtensionPolicy(Enum):
    """What the image build does when a PHP extension cannot be installed."""
    BEST_EFFORT = "best_effort"  # warn and continue
    STRICT = "strict"            # fail the build


@dataclass(frozen=True)
class HealthProbe:
    """Runtime health check schedule baked into the image."""
    interval: str = "30s"
    timeout: str = "10s"
    start_period: str = "60s"
    retries: int = 3


@dataclass(frozen=True)
class ImageLayout:
    """Everything about the image that does not depend on versions."""
    base_image: str = DEFAULT_BASE_IMAGE
    base_packages: tuple[str, ...] = BASE_PACKAGES
    extensions: tuple[str, ...] = PHP_EXTENSIONS
    extension_policy: ExtensionPolicy = ExtensionPolicy.BEST_EFFORT
    app_user: str = "mediawiki"
    web_user: str = "nginx"
    document_root: str = DOCUMENT_ROOT
    http_port: int = HTTP_PORT
    fpm_listen: str = FPM_LISTEN
    upload_path: str = UPLOAD_PATH
    release_url: str = RELEASES_DOWNLOAD_URL
    health: HealthProbe = field(default_factory=HealthProbe)

    @classmethod
    def from_config(cls, config: PipelineConfig) -> "ImageLayout":
        policy = ExtensionPolicy.STRICT if config.strict_extensions else ExtensionPolicy.BEST_EFFORT
        return cls(base_image=config.base_image, extension_policy=policy)


@dataclass
class BuildArtifact:
    """Rendered build context files, keyed by file name."""
    files: dict[str, str]
    version_set: VersionSet

    EXECUTABLES = ("healthcheck.sh", "entrypoint.sh")

    @property
    def dockerfile(self) -> str:
        return self.files["Dockerfile"]

    @property
    def healthcheck(self) -> str:
        return self.files["healthcheck.sh"]

    def write(self, directory: Path) -> list[Path]:
        """Write every file into *directory*, overwriting existing ones."""
        directory.mkdir(parents=True, exist_ok=True)
        written = []
        for name, content in self.files.items():
            path = directory / name
            path.write_text(content)
            if name in self.EXECUTABLES:
                path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
            written.append(path)
        return written


class ArtifactGenerator:
    """Renders the Dockerfile and its supporting scripts from a VersionSet."""

    def __init__(self, layout: Optional[ImageLayout] = None):
        self.layout = layout or ImageLayout()

    def _extension_failure(self) -> str:
        if self.layout.extension_policy is ExtensionPolicy.STRICT:
            return '{ echo "Error: Could not install PHP extension $ext"; exit 1; }'
        return 'echo "Warning: Could not install PHP extension $ext"'

    def _php_ini(self) -> str:
        conf_dir = "/etc/php/${PHP_VERSION}/conf.d"
        commands = []
        for i, (key, value) in enumerate(OPCACHE_SETTINGS):
            redirect = ">" if i == 0 else ">>"
            commands.append(f"echo '{key}={value}' {redirect} {conf_dir}/opcache-recommended.ini")
        for priority, ext in EXTENSION_INI:
            commands.append(f"echo 'extension={ext}.so' > {conf_dir}/extensions/{priority}-{ext}.ini")
        return " && \\\n".join(f"    {c}" for c in commands)

    def render_dockerfile(self, version_set: VersionSet) -> str:
        layout = self.layout
        return templates.DOCKERFILE.substitute(
            base_image=layout.base_image,
            php_version=version_set.php_version,
            mediawiki_version=version_set.mediawiki_version,
            mediawiki_major_version=version_set.mediawiki_major_version,
            base_packages="\n".join(f"    {pkg} \\" for pkg in layout.base_packages),
            strip_version=STRIP_APK_VERSION,
            extensions=" ".join(layout.extensions),
            extension_failure=self._extension_failure(),
            app_user=layout.app_user,
            web_user=layout.web_user,
            document_root=layout.document_root,
            release_url=layout.release_url,
            php_ini=self._php_ini(),
            health_interval=layout.health.interval,
            health_timeout=layout.health.timeout,
            health_start_period=layout.health.start_period,
            health_retries=layout.health.retries,
            http_port=layout.http_port,
        )

    def render_healthcheck(self) -> str:
        return templates.HEALTHCHECK.substitute(
            info_path=INFO_PATH,
            info_marker=INFO_MARKER,
            setup_path=SETUP_PATH,
            setup_marker=SETUP_MARKERS[0],
            setup_fallback_marker=SETUP_MARKERS[1],
        )

    def render_entrypoint(self) -> str:
        return templates.ENTRYPOINT.substitute(
            app_user=self.layout.app_user,
            web_user=self.layout.web_user,
            fpm_listen=self.layout.fpm_listen,
            fpm_candidates=" ".join(f'"{c}"' for c in FPM_CANDIDATES),
        )

    def render_nginx_conf(self) -> str:
        return templates.NGINX_CONF.substitute(
            web_user=self.layout.web_user,
            http_port=self.layout.http_port,
            document_root=self.layout.document_root,
            fpm_listen=self.layout.fpm_listen,
            upload_path=self.layout.upload_path,
        )

    def render(self, version_set: VersionSet) -> BuildArtifact:
        """Render all build context files without touching the filesystem."""
        return BuildArtifact(
            files={
                "Dockerfile": self.render_dockerfile(version_set),
                "healthcheck.sh": self.render_healthcheck(),
                "entrypoint.sh": self.render_entrypoint(),
                "nginx.conf": self.render_nginx_conf(),
                "fastcgi_params": templates.FASTCGI_PARAMS.substitute(),
            },
            version_set=version_set,
        )

    def generate(self, version_set: VersionSet, output_dir: Path) -> BuildArtifact:
        """Render and write the build context into *output_dir*."""
        artifact = self.render(version_set)
        for path in artifact.write(output_dir):
            logger.debug("Wrote %s", path)
        logger.info("Generated build context in %s", output_dir)
        return artifact
