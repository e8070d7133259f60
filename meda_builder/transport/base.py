"""Transport contract for talking to a Meda backend.

Steps only ever call the methods defined here. Whether a call spawns the
meda binary or issues an HTTP request is decided once, when the transport is
constructed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

# Text some meda operations print while still exiting 0
DENIAL_MARKERS = ("unauthorized", "denied", "authentication required")


class TransportError(Exception):
    """Raised when a transport cannot be constructed or used at all."""

    def __init__(self, message: str, code: str = "transport_error") -> None:
        super().__init__(message)
        self.code = code


@dataclass
class CommandResult:
    """Result of a single backend call.

    Attributes:
        command: Human-readable description of what was run or requested.
        success: Whether the backend reported success.
        exit_code: Process exit code, or HTTP status for the remote transport.
        stdout: Captured standard output (response body for HTTP).
        stderr: Captured error text (response body for failed or streamed
            HTTP calls).
        failure: Mechanical failure description, e.g. "exit status 1".
    """

    command: str
    success: bool
    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""
    failure: str | None = None

    def has_denial(self) -> bool:
        """Whether captured error text contains an authorization denial."""
        return contains_denial(self.stderr)

    def error_message(self, prefix: str) -> str:
        """Compose "<prefix>: <failure> - <diagnostics>" for operators."""
        message = prefix
        if self.failure:
            message += f": {self.failure}"
        diagnostics = (self.stderr or self.stdout).strip()
        if diagnostics:
            message += f" - {diagnostics}"
        return message


@dataclass(frozen=True)
class VMSpec:
    """Parameters for creating a VM."""

    name: str
    base_image: str
    memory: str
    cpus: int
    disk_size: str
    user_data_file: str | None = None


def contains_denial(text: str) -> bool:
    """Check text for any authorization-denial marker.

    Args:
        text: Captured diagnostic text.

    Returns:
        True if a marker is present.
    """
    return any(marker in text for marker in DENIAL_MARKERS)


class Transport(ABC):
    """Operations the build needs from a Meda backend."""

    @abstractmethod
    def image_exists(self, name: str) -> bool:
        """Whether an image with this name is known to the backend."""

    @abstractmethod
    def create_image(self, name: str, tag: str | None = None) -> CommandResult:
        """Create a base image locally (streams output)."""

    @abstractmethod
    def pull_image(self, ref: str) -> CommandResult:
        """Pull an image from a registry (streams output)."""

    @abstractmethod
    def create_vm(self, spec: VMSpec) -> CommandResult:
        """Create a VM without starting it."""

    @abstractmethod
    def start_vm(self, name: str) -> CommandResult:
        """Start a created VM."""

    @abstractmethod
    def stop_vm(self, name: str) -> CommandResult:
        """Stop a running VM."""

    @abstractmethod
    def get_address(self, name: str) -> str | None:
        """Return the raw address output for a VM, or None if unavailable."""

    @abstractmethod
    def snapshot(self, vm_name: str, name: str, tag: str) -> CommandResult:
        """Capture a VM's disk into a new image (streams output)."""

    @abstractmethod
    def publish(
        self, image: str, target: str, registry: str, dry_run: bool = False
    ) -> CommandResult:
        """Push an image to a registry coordinate (streams output)."""

    @abstractmethod
    def delete_vm(self, name: str) -> CommandResult:
        """Delete a VM."""

    @abstractmethod
    def delete_image(self, ref: str) -> CommandResult:
        """Delete an image."""

    def close(self) -> None:
        """Release transport resources."""


__all__ = [
    "DENIAL_MARKERS",
    "CommandResult",
    "Transport",
    "TransportError",
    "VMSpec",
    "contains_denial",
]
