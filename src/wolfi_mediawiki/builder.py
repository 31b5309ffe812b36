"""Build and tag the MediaWiki image."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path

from .errors import BuildError
from .runtime.base import ContainerRuntime
from .versions import VersionSet

logger = logging.getLogger(__name__)

LATEST_TAG = "latest"


@dataclass(frozen=True)
class ImageReference:
    """A ``repository:tag`` pointing at a built image."""
    repository: str
    tag: str

    def __str__(self) -> str:
        return f"{self.repository}:{self.tag}"

    def retarget(self, repository: str) -> "ImageReference":
        return ImageReference(repository=repository, tag=self.tag)


def image_tags(version_set: VersionSet) -> list[str]:
    """Tags every build receives: exact version, major version, latest."""
    return [version_set.mediawiki_version, version_set.mediawiki_major_version, LATEST_TAG]


def image_references(repository: str, version_set: VersionSet) -> list[ImageReference]:
    return [ImageReference(repository, tag) for tag in image_tags(version_set)]


@dataclass
class ImageId:
    """The built image and every local tag aliasing it."""
    primary: ImageReference
    references: list[ImageReference] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    def __str__(self) -> str:
        return str(self.primary)


class ImageBuilder:
    """Runs the container build tool over a generated build context."""

    def __init__(self, runtime: ContainerRuntime, image_name: str, timeout: int = 1800):
        self.runtime = runtime
        self.image_name = image_name
        self.timeout = timeout

    def build(self, artifact_dir: Path, version_set: VersionSet) -> ImageId:
        """Build the image and apply the version, major and latest tags."""
        references = image_references(self.image_name, version_set)
        primary = references[0]

        logger.info(
            "Building %s with PHP %s and MediaWiki %s",
            primary, version_set.php_version, version_set.mediawiki_version,
        )
        t0 = time.monotonic()
        result = self.runtime.build_image(
            dockerfile_path=artifact_dir / "Dockerfile",
            context_path=artifact_dir,
            tag=str(primary),
            build_args=version_set.to_env(),
            timeout=self.timeout,
        )
        elapsed = time.monotonic() - t0

        if not result.success:
            tail = "\n".join(result.output.splitlines()[-15:])
            logger.error("Image build failed (exit=%d) in %.1fs:\n%s", result.returncode, elapsed, tail)
            raise BuildError(
                f"Image build failed: {result.error or 'exit code ' + str(result.returncode)}",
                output=result.output,
            )
        logger.info("Built %s in %.1fs", primary, elapsed)

        for alias in references[1:]:
            tagged = self.runtime.tag_image(str(primary), str(alias))
            if not tagged.success:
                raise BuildError(f"Failed to tag {primary} as {alias}: {tagged.error}", output=tagged.output)
            logger.info("Tagged %s as %s", primary, alias)

        return ImageId(primary=primary, references=references, elapsed_seconds=elapsed)
