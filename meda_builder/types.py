"""Shared type definitions for meda_builder.

This module contains enums and constants shared across subpackages to
avoid circular imports.
"""

from enum import Enum


class BuildStatus(str, Enum):
    """Status of a build run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    HALTED = "halted"
    CANCELLED = "cancelled"


class StepAction(str, Enum):
    """What the runner should do after a step returns."""

    CONTINUE = "continue"
    HALT = "halt"
    CANCELLED = "cancelled"


class TransportKind(str, Enum):
    """How the Meda backend is reached."""

    LOCAL = "local"
    REMOTE = "remote"


class CommunicatorType(str, Enum):
    """Communicator used by the provisioning step."""

    SSH = "ssh"
    NONE = "none"


# Names of the template variables exposed to provisioners
GENERATED_VM_NAME = "MedaVMName"
GENERATED_VM_IP = "MedaVMIP"
GENERATED_VARS = [GENERATED_VM_NAME, GENERATED_VM_IP]


__all__ = [
    "GENERATED_VARS",
    "GENERATED_VM_IP",
    "GENERATED_VM_NAME",
    "BuildStatus",
    "CommunicatorType",
    "StepAction",
    "TransportKind",
]
