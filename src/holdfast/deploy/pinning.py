"""Image digest pinning for resolved definitions.

Pins each service image to the content digest currently published in its
registry, so every host running an artifact pulls exactly the same image.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import docker
from docker.errors import APIError, DockerException, NotFound

from holdfast.config.loader import ResolvedDefinition
from holdfast.lib.errors import DeploymentError, DockerNotAvailableError

logger = logging.getLogger(__name__)


@dataclass
class PinResult:
    """Summary of a pinning pass.

    Attributes:
        pinned: Service name to pinned image reference
        skipped: Services left untouched (no image, or already pinned)
    """

    pinned: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)


def is_pinned(image: str) -> bool:
    """Whether an image reference already carries a content digest."""
    return "@sha256:" in image


def pinned_reference(image: str, digest: str) -> str:
    """Combine an image reference with a digest (``repo:tag@sha256:...``)."""
    return f"{image}@{digest}"


class ImageDigestResolver:
    """Resolves registry digests for image references using the Docker SDK.

    Example:
        >>> resolver = ImageDigestResolver()
        >>> resolver.resolve("nginx:1.27")
        'sha256:...'
    """

    def __init__(self, client: Any | None = None) -> None:
        """Connect to the Docker daemon unless a client is supplied.

        Raises:
            DockerNotAvailableError: If Docker daemon is not available
        """
        if client is not None:
            self.client = client
            return
        try:
            self.client = docker.from_env()  # type: ignore[attr-defined]
        except DockerException as e:
            raise DockerNotAvailableError(operation="pin") from e

    def resolve(self, image: str) -> str:
        """Return the registry digest for ``image``.

        Raises:
            DeploymentError: If the registry does not know the image
        """
        try:
            registry_data = self.client.images.get_registry_data(image)
        except NotFound as e:
            raise DeploymentError(
                operation="pin",
                message=f"Image not found in registry: {image}",
            ) from e
        except (APIError, DockerException) as e:
            raise DeploymentError(
                operation="pin",
                message=f"Failed to resolve digest for {image}: {e}",
            ) from e

        digest = registry_data.id
        if not digest:
            raise DeploymentError(
                operation="pin",
                message=f"Registry returned no digest for {image}",
            )
        return str(digest)

    def pin(self, definition: ResolvedDefinition) -> PinResult:
        """Rewrite every service image of ``definition`` to a pinned reference.

        Services without an ``image`` key (build-only) are skipped with a
        warning; references that already carry a digest are kept.
        """
        result = PinResult()
        digests: dict[str, str] = {}

        for name, service in definition.services.items():
            image = service.get("image") if isinstance(service, dict) else None
            if not image:
                logger.warning("Service %s has no image; not pinning", name)
                result.skipped.append(name)
                continue
            if is_pinned(image):
                result.skipped.append(name)
                continue

            if image not in digests:
                digests[image] = self.resolve(image)
            reference = pinned_reference(image, digests[image])
            service["image"] = reference
            result.pinned[name] = reference
            logger.debug("Pinned %s: %s", name, reference)

        return result
