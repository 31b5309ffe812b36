"""Push the tested image to a registry."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .builder import ImageId, ImageReference, image_references
from .config import RegistryConfig
from .errors import PublishError
from .runtime.base import ContainerRuntime
from .versions import VersionSet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credentials:
    username: str
    token: str

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, token='***')"

    @classmethod
    def from_registry(cls, registry: RegistryConfig) -> Optional["Credentials"]:
        """Return credentials only when both username and token are set."""
        if not registry.has_credentials:
            return None
        return cls(username=registry.username, token=registry.token)


class Publisher:
    """Logs in and pushes the version, major and latest tags."""

    def __init__(self, runtime: ContainerRuntime, registry: RegistryConfig, image_name: str):
        self.runtime = runtime
        self.registry = registry
        self.image_name = image_name

    def target_repository(self, credentials: Credentials) -> str:
        """``[registry/]namespace/name``; the namespace defaults to the username."""
        namespace = self.registry.namespace or credentials.username
        parts = [p for p in (self.registry.url.rstrip("/"), namespace, self.image_name) if p]
        return "/".join(parts)

    def publish(
        self,
        image_id: ImageId,
        version_set: VersionSet,
        credentials: Credentials,
    ) -> list[ImageReference]:
        """Push every tag; any failing step raises :class:`PublishError`."""
        logger.info("Logging in to %s as %s", self.registry.url or "Docker Hub", credentials.username)
        login = self.runtime.login(credentials.username, credentials.token, self.registry.url)
        if not login.success:
            raise PublishError(f"Registry login failed: {login.error}", output=login.output)

        targets = image_references(self.target_repository(credentials), version_set)
        for target in targets:
            tagged = self.runtime.tag_image(str(image_id.primary), str(target))
            if not tagged.success:
                raise PublishError(f"Failed to tag {target}: {tagged.error}", output=tagged.output)

        for target in targets:
            logger.info("Pushing %s", target)
            pushed = self.runtime.push_image(str(target))
            if not pushed.success:
                raise PublishError(f"Failed to push {target}: {pushed.error}", output=pushed.output)

        return targets
