"""Meda backend transports.

This module handles:
- The Transport contract used by every build step
- Local (meda binary) and remote (HTTP API) implementations
- Picking the implementation once from the build template
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from meda_builder.transport.base import (
    CommandResult,
    Transport,
    TransportError,
    VMSpec,
    contains_denial,
)
from meda_builder.transport.local import LocalTransport
from meda_builder.transport.remote import RemoteTransport
from meda_builder.types import TransportKind

if TYPE_CHECKING:
    from meda_builder.config import Settings
    from meda_builder.templates.schema import BuildConfig


def create_transport(
    config: BuildConfig,
    settings: Settings | None = None,
    check_binary: bool = True,
) -> Transport:
    """Build the transport selected by a build template.

    Args:
        config: Validated build template.
        settings: Application settings for timeouts.
        check_binary: Verify the local meda binary exists.

    Returns:
        LocalTransport or RemoteTransport.

    Raises:
        TransportError: If the local binary cannot be found.
    """
    if settings is None:
        from meda_builder.config import get_settings

        settings = get_settings()

    if config.transport_kind == TransportKind.REMOTE:
        return RemoteTransport(config.api_base_url, timeout=settings.http_timeout)
    return LocalTransport(
        config.meda_binary,
        timeout=settings.command_timeout,
        check_binary=check_binary,
    )


__all__ = [
    "CommandResult",
    "LocalTransport",
    "RemoteTransport",
    "Transport",
    "TransportError",
    "VMSpec",
    "contains_denial",
    "create_transport",
]
