"""Build artifact.

The Artifact is what a successful build returns: the produced image name
and, when pushed, the registry coordinate it was pushed to.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from meda_builder.templates.schema import BuildConfig
    from meda_builder.transport.base import Transport

logger = logging.getLogger(__name__)

BUILDER_ID = "meda.vm"


class ArtifactError(Exception):
    """Raised when an artifact cannot be destroyed."""

    def __init__(self, message: str, code: str = "artifact_error") -> None:
        super().__init__(message)
        self.code = code


@dataclass
class Artifact:
    """Result of a Meda build.

    Attributes:
        image_name: Produced image reference (name:tag).
        pushed_image: Registry coordinate, empty if the image was not pushed.
        config: Build template, used for destroy-time parameters.
    """

    image_name: str
    config: BuildConfig
    pushed_image: str = ""

    def builder_id(self) -> str:
        return BUILDER_ID

    def id(self) -> str:
        return self.image_name

    def files(self) -> list[str]:
        # Meda keeps image files in its own store
        return []

    def __str__(self) -> str:
        if self.pushed_image:
            return f"Meda image: {self.image_name} (pushed to {self.pushed_image})"
        return f"Meda image: {self.image_name}"

    def state(self, name: str) -> Any:
        """Look up a named artifact field.

        Args:
            name: One of image_name, pushed_image, registry, organization.

        Returns:
            The field value, or None for unknown names.
        """
        fields = {
            "image_name": self.image_name,
            "pushed_image": self.pushed_image,
            "registry": self.config.registry,
            "organization": self.config.organization,
        }
        return fields.get(name)

    def to_dict(self) -> dict[str, Any]:
        """Machine-readable summary."""
        return {
            "builder_id": BUILDER_ID,
            "image_name": self.image_name,
            "pushed_image": self.pushed_image,
            "registry": self.config.registry,
            "organization": self.config.organization,
        }

    def destroy(self, transport: Transport | None = None) -> None:
        """Delete the produced image from the backend.

        Args:
            transport: Transport to use; built from the artifact's config
                when omitted.

        Raises:
            ArtifactError: If the backend refuses or the call fails.
        """
        owns_transport = transport is None
        if transport is None:
            from meda_builder.transport import create_transport

            transport = create_transport(self.config)

        try:
            logger.info("Destroying image '%s'", self.image_name)
            result = transport.delete_image(self.image_name)
        finally:
            if owns_transport:
                transport.close()

        if not result.success:
            raise ArtifactError(
                result.error_message(f"failed to destroy image {self.image_name}"),
                code="destroy_failed",
            )


__all__ = ["BUILDER_ID", "Artifact", "ArtifactError"]
