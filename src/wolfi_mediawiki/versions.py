"""Detection of the latest PHP and MediaWiki versions.

PHP versions come from the Wolfi package index, MediaWiki versions from the
Wikimedia release listing. Each lookup has one fallback retrieval mechanism
and then a hardcoded default, so :meth:`VersionResolver.resolve` always
returns a usable :class:`VersionSet`.
"""

from __future__ import annotations

import io
import logging
import re
import subprocess
import tarfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

import httpx

from .config import VersionSourceConfig
from .errors import PipelineError
from .runtime.base import ContainerRuntime

logger = logging.getLogger(__name__)

DEFAULT_PHP_VERSION = "8.4"
DEFAULT_MEDIAWIKI_VERSION = "1.43.0"
DEFAULT_MEDIAWIKI_MAJOR_VERSION = "1.43"

_MAJOR_MINOR_RE = re.compile(r"^(\d+\.\d+)(?:\.|$)")
# Values are interpolated into the Dockerfile, so they must match exactly
_X_Y_RE = re.compile(r"\d+\.\d+")
_X_Y_Z_RE = re.compile(r"\d+\.\d+\.\d+")
_APKINDEX_PHP_RE = re.compile(r"^P:php-(\d+\.\d+)$", re.MULTILINE)
# apk search prints name-version, e.g. php-8.4-8.4.5-r0
_APK_SEARCH_PHP_RE = re.compile(r"^php-(\d+\.\d+)-\d+", re.MULTILINE)
_RELEASE_DIR_RE = re.compile(r'href="(\d+\.\d+)/"')
_TARBALL_RE = re.compile(r'href="mediawiki-(\d+\.\d+\.\d+)\.tar\.gz"')


def version_key(version: str) -> tuple[int, ...]:
    """Numeric sort key so that 1.43.10 orders after 1.43.9."""
    key = []
    for part in version.split("."):
        digits = re.match(r"\d+", part)
        key.append(int(digits.group(0)) if digits else 0)
    return tuple(key)


def latest_version(candidates: Iterable[str]) -> Optional[str]:
    """Return the highest version in *candidates*, or None if empty."""
    unique = {c.strip() for c in candidates if c and c.strip()}
    if not unique:
        return None
    return max(unique, key=version_key)


def major_of(version: str) -> str:
    """Return the MAJOR.MINOR prefix of *version*."""
    match = _MAJOR_MINOR_RE.match(version or "")
    if not match:
        raise ValueError(f"Not a MAJOR.MINOR[.PATCH] version: {version!r}")
    return match.group(1)


@dataclass(frozen=True)
class VersionSet:
    """Versions the image is built from."""
    php_version: str
    mediawiki_version: str
    mediawiki_major_version: str

    def __post_init__(self) -> None:
        if not _X_Y_RE.fullmatch(self.php_version or ""):
            raise ValueError(f"PHP version must be MAJOR.MINOR: {self.php_version!r}")
        if not _X_Y_Z_RE.fullmatch(self.mediawiki_version or ""):
            raise ValueError(
                f"MediaWiki version must be MAJOR.MINOR.PATCH: {self.mediawiki_version!r}"
            )
        if not _X_Y_RE.fullmatch(self.mediawiki_major_version or ""):
            raise ValueError(
                f"MediaWiki major version must be MAJOR.MINOR: {self.mediawiki_major_version!r}"
            )
        if major_of(self.mediawiki_version) != self.mediawiki_major_version:
            raise ValueError(
                f"MediaWiki major version {self.mediawiki_major_version!r} "
                f"does not match {self.mediawiki_version!r}"
            )

    @classmethod
    def defaults(cls) -> "VersionSet":
        return cls(
            php_version=DEFAULT_PHP_VERSION,
            mediawiki_version=DEFAULT_MEDIAWIKI_VERSION,
            mediawiki_major_version=DEFAULT_MEDIAWIKI_MAJOR_VERSION,
        )

    @classmethod
    def from_mediawiki(cls, php_version: str, mediawiki_version: str) -> "VersionSet":
        return cls(php_version, mediawiki_version, major_of(mediawiki_version))

    def to_env(self) -> dict[str, str]:
        return {
            "PHP_VERSION": self.php_version,
            "MEDIAWIKI_VERSION": self.mediawiki_version,
            "MEDIAWIKI_MAJOR_VERSION": self.mediawiki_major_version,
        }


def write_version_file(version_set: VersionSet, path: Path) -> Path:
    """Write versions as flat KEY=VALUE lines."""
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [f"{key}={value}" for key, value in version_set.to_env().items()]
    path.write_text("\n".join(lines) + "\n")
    return path


def read_version_file(path: Path) -> VersionSet:
    """Read a file written by :func:`write_version_file`."""
    values: dict[str, str] = {}
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        values[key.strip()] = value.strip().strip('"')

    try:
        return VersionSet(
            php_version=values["PHP_VERSION"],
            mediawiki_version=values["MEDIAWIKI_VERSION"],
            mediawiki_major_version=values.get(
                "MEDIAWIKI_MAJOR_VERSION", major_of(values["MEDIAWIKI_VERSION"])
            ),
        )
    except KeyError as e:
        raise PipelineError(f"Missing {e.args[0]} in {path}") from e


def parse_apkindex(content: bytes) -> list[str]:
    """Extract PHP X.Y versions from an APKINDEX archive (or its plain text)."""
    try:
        with tarfile.open(fileobj=io.BytesIO(content), mode="r:*") as archive:
            member = archive.extractfile("APKINDEX")
            text = member.read().decode("utf-8", errors="replace") if member else ""
    except (tarfile.TarError, KeyError):
        text = content.decode("utf-8", errors="replace")
    return _APKINDEX_PHP_RE.findall(text)


def parse_apk_search(output: str) -> list[str]:
    """Extract PHP X.Y versions from ``apk search php`` output."""
    return _APK_SEARCH_PHP_RE.findall(output or "")


def parse_release_majors(html: str) -> list[str]:
    return _RELEASE_DIR_RE.findall(html or "")


def parse_release_tarballs(html: str, major: Optional[str] = None) -> list[str]:
    versions = _TARBALL_RE.findall(html or "")
    if major:
        versions = [v for v in versions if v.startswith(major + ".")]
    return versions


class VersionResolver:
    """Looks up the newest PHP and MediaWiki versions, never failing."""

    def __init__(
        self,
        sources: Optional[VersionSourceConfig] = None,
        client: Optional[httpx.Client] = None,
        runtime: Optional[ContainerRuntime] = None,
    ):
        self.sources = sources or VersionSourceConfig()
        self.runtime = runtime
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(self.sources.read_timeout, connect=self.sources.connect_timeout),
            follow_redirects=True,
        )
        self._owns_client = client is None

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    # ------------------------------------------------------------------
    # Retrieval mechanisms
    # ------------------------------------------------------------------

    def _get(self, url: str) -> Optional[httpx.Response]:
        try:
            response = self._client.get(url)
            response.raise_for_status()
            return response
        except httpx.HTTPError as e:
            logger.warning("HTTP lookup of %s failed: %s", url, e)
            return None

    def _wget(self, url: str) -> str:
        """Fallback page retrieval through the wget binary."""
        try:
            result = subprocess.run(
                ["wget", "-qO-", url],
                capture_output=True,
                text=True,
                timeout=int(self.sources.read_timeout),
            )
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            logger.warning("wget fallback for %s failed: %s", url, e)
            return ""
        if result.returncode != 0:
            logger.warning("wget fallback for %s exited %d", url, result.returncode)
            return ""
        return result.stdout

    def _fetch_listing(self, url: str, parse) -> list[str]:
        response = self._get(url)
        found = parse(response.text) if response is not None else []
        if not found:
            logger.info("Primary lookup of %s found nothing, trying wget", url)
            found = parse(self._wget(url))
        return found

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def php_versions_from_index(self) -> list[str]:
        response = self._get(self.sources.apk_index_url)
        if response is None:
            return []
        return parse_apkindex(response.content)

    def php_versions_from_apk_search(self) -> list[str]:
        if self.runtime is None:
            return []
        try:
            result = self.runtime.run_once(
                self.sources.probe_image,
                ["sh", "-c", "apk update > /dev/null && apk search php"],
            )
        except PipelineError as e:
            logger.warning("apk search fallback unavailable: %s", e)
            return []
        if not result.success:
            logger.warning("apk search fallback failed: %s", result.error)
            return []
        return parse_apk_search(result.stdout)

    def resolve_php(self) -> str:
        """Return the latest PHP X.Y packaged by Wolfi."""
        logger.info("Detecting latest PHP version in Wolfi...")
        versions = self.php_versions_from_index()
        if not versions:
            logger.info("Package index lookup found nothing, trying apk search")
            versions = self.php_versions_from_apk_search()

        latest = latest_version(versions)
        if latest is None:
            logger.warning("Failed to detect PHP version, using default %s", DEFAULT_PHP_VERSION)
            return DEFAULT_PHP_VERSION
        return latest

    def resolve_mediawiki_major(self) -> str:
        logger.info("Detecting latest MediaWiki version...")
        latest = latest_version(self._fetch_listing(self.sources.releases_url, parse_release_majors))
        if latest is None:
            logger.warning(
                "Failed to detect MediaWiki major version, using default %s",
                DEFAULT_MEDIAWIKI_MAJOR_VERSION,
            )
            return DEFAULT_MEDIAWIKI_MAJOR_VERSION
        return latest

    def resolve_mediawiki(self, major: str) -> str:
        url = f"{self.sources.releases_url.rstrip('/')}/{major}/"
        latest = latest_version(
            self._fetch_listing(url, lambda html: parse_release_tarballs(html, major))
        )
        if latest is None:
            logger.warning("Failed to detect MediaWiki full version, using %s.0", major)
            return f"{major}.0"
        return latest

    def resolve(self) -> VersionSet:
        """Resolve all three versions. Never raises."""
        try:
            return self._resolve()
        except Exception:
            logger.exception("Version resolution failed, using defaults")
            return VersionSet.defaults()

    def _resolve(self) -> VersionSet:
        php = self.sources.php_version or self.resolve_php()

        if self.sources.mediawiki_version:
            full = self.sources.mediawiki_version
            major = self.sources.mediawiki_major_version or major_of(full)
        else:
            major = self.sources.mediawiki_major_version or self.resolve_mediawiki_major()
            full = self.resolve_mediawiki(major)

        try:
            version_set = VersionSet(php, full, major)
        except ValueError as e:
            logger.error("Invalid MediaWiki versions (%s), using defaults", e)
            version_set = VersionSet(
                php, DEFAULT_MEDIAWIKI_VERSION, DEFAULT_MEDIAWIKI_MAJOR_VERSION
            )

        logger.info(
            "Resolved PHP %s, MediaWiki %s (major %s)",
            version_set.php_version,
            version_set.mediawiki_version,
            version_set.mediawiki_major_version,
        )
        return version_set


def resolve_versions(
    sources: Optional[VersionSourceConfig] = None,
    runtime: Optional[ContainerRuntime] = None,
) -> VersionSet:
    """Convenience wrapper that owns and closes its HTTP client."""
    with VersionResolver(sources, runtime=runtime) as resolver:
        return resolver.resolve()
