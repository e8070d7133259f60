"""Per-build context shared by the build steps.

One BuildState exists per build. Steps run one at a time, so it is read and
written without locking. Fields are only ever set during a build.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field

from meda_builder.templates.schema import BuildConfig
from meda_builder.types import GENERATED_VM_IP, GENERATED_VM_NAME


def generate_vm_name(base_name: str, now: float | None = None) -> str:
    """Timestamp-qualify a VM name so concurrent builds do not collide.

    Args:
        base_name: Configured vm_name.
        now: Unix time to use (defaults to the current time).

    Returns:
        Name of the form packer-<base_name>-<unix seconds>.
    """
    timestamp = int(time.time() if now is None else now)
    return f"packer-{base_name}-{timestamp}"


@dataclass
class BuildState:
    """Typed build context.

    Attributes:
        config: Validated build template.
        vm_name: Resolved, timestamp-qualified VM name.
        vm_ip: VM address once WaitForReady succeeds.
        ssh_host: Host handed to the provisioner.
        image_name: Produced image reference (name:tag).
        pushed_image: Registry coordinate the image was pushed to.
        error: Terminal error of the build.
        cancelled: Set when the build was cancelled.
        halted: Set when a step halted the build.
        warnings: Advisory messages from best-effort steps.
        ssh_private_key_file: Key generated for this build, if any.
        ssh_public_key: Public half of the generated key.
        cancel_event: Build-wide cancellation signal.
    """

    config: BuildConfig
    vm_name: str
    vm_ip: str | None = None
    ssh_host: str | None = None
    image_name: str | None = None
    pushed_image: str | None = None
    error: Exception | None = None
    cancelled: bool = False
    halted: bool = False
    warnings: list[str] = field(default_factory=list)
    ssh_private_key_file: str | None = None
    ssh_public_key: str | None = None
    cancel_event: threading.Event = field(default_factory=threading.Event)

    def warn(self, message: str) -> None:
        """Record an advisory message."""
        self.warnings.append(message)

    def generated_vars(self) -> dict[str, str]:
        """Values exposed to provisioners as template substitutions."""
        return {
            GENERATED_VM_NAME: self.vm_name,
            GENERATED_VM_IP: self.vm_ip or "",
        }


__all__ = ["BuildState", "generate_vm_name"]
