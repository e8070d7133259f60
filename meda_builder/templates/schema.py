"""Pydantic models for build template validation.

This module defines the validated, defaulted build parameters that drive a
single image build. A template is validated once before the build starts and
is immutable afterwards.
"""

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

from meda_builder.types import CommunicatorType, TransportKind

# Memory and disk sizes as accepted by meda (e.g. 512M, 1G, 20G)
SIZE_PATTERN = re.compile(r"^[0-9]+[KMGT]?$")

DEFAULT_REGISTRY = "ghcr.io"
DEFAULT_SSH_USERNAME = "cirun"
DEFAULT_SSH_PASSWORD = "cirun"


class CommunicatorConfig(BaseModel):
    """Connection parameters handed to the provisioning step.

    Attributes:
        type: Communicator type (ssh or none).
        ssh_host: Host to provision instead of the discovered VM address;
            when unset the address reported by meda is used.
        ssh_port: SSH port on the VM.
        ssh_username: Login user.
        ssh_password: Login password; null disables password auth.
        ssh_private_key_file: Pre-supplied private key.
        ssh_timeout: Seconds to wait for the SSH port to accept connections.
        ssh_handshake_attempts: Handshake attempts passed to the provisioner.
        ssh_disable_agent_forwarding: Disable agent forwarding.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    type: CommunicatorType = Field(default=CommunicatorType.SSH)
    ssh_host: str | None = Field(default=None)
    ssh_port: int = Field(default=22, ge=1, le=65535)
    ssh_username: str = Field(default=DEFAULT_SSH_USERNAME, min_length=1)
    ssh_password: str | None = Field(default=DEFAULT_SSH_PASSWORD)
    ssh_private_key_file: str | None = Field(default=None)
    ssh_timeout: float = Field(default=300.0, gt=0)
    ssh_handshake_attempts: int = Field(default=10, ge=1)
    ssh_disable_agent_forwarding: bool = Field(default=True)

    @property
    def requires_key_pair(self) -> bool:
        """Whether a key pair must be generated for this build."""
        return (
            self.type == CommunicatorType.SSH
            and not self.ssh_private_key_file
            and not self.ssh_password
        )


class BuildConfig(BaseModel):
    """Complete build template.

    Attributes:
        meda_binary: Meda CLI binary ("cargo" runs meda from ~/meda sources).
        meda_host: Meda API host (remote transport).
        meda_port: Meda API port (remote transport).
        use_api: Use the Meda HTTP API instead of the local binary.
        vm_name: Base name for the temporary build VM.
        base_image: Image the build VM boots from.
        memory: VM memory size.
        cpus: VM CPU count.
        disk_size: VM disk size.
        user_data_file: Optional cloud-init user data file.
        output_image_name: Name of the produced image.
        output_tag: Tag of the produced image.
        registry: Registry host images are pushed to.
        organization: Optional organization path segment in the registry.
        push_to_registry: Push the produced image after snapshot.
        dry_run: Ask meda to simulate the push.
        communicator: Provisioning connection parameters.
        provision_commands: Local commands run against the booted VM.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    # Meda configuration
    meda_binary: str = Field(default="meda", min_length=1)
    meda_host: str = Field(default="127.0.0.1", min_length=1)
    meda_port: int = Field(default=7777, ge=1, le=65535)
    use_api: bool = Field(default=False)

    # VM configuration
    vm_name: str = Field(min_length=1, description="Base VM name")
    base_image: str = Field(min_length=1, description="Base image reference")
    memory: str = Field(default="1G")
    cpus: int = Field(default=2, ge=1)
    disk_size: str = Field(default="10G")
    user_data_file: str | None = Field(default=None)

    # Image output configuration
    output_image_name: str = Field(min_length=1, description="Output image name")
    output_tag: str = Field(default="latest", min_length=1)
    registry: str = Field(default=DEFAULT_REGISTRY, min_length=1)
    organization: str = Field(default="")

    # Push configuration
    push_to_registry: bool = Field(default=False)
    dry_run: bool = Field(default=False)

    communicator: CommunicatorConfig = Field(default_factory=CommunicatorConfig)
    provision_commands: list[str] = Field(default_factory=list)

    @field_validator("memory", "disk_size")
    @classmethod
    def validate_size(cls, v: str) -> str:
        """Validate size strings like 512M or 10G."""
        if not SIZE_PATTERN.match(v):
            raise ValueError(f"size must look like '1G' or '512M', got '{v}'")
        return v

    @field_validator("vm_name", "base_image", "output_image_name")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Reject whitespace-only required values."""
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()

    @property
    def transport_kind(self) -> TransportKind:
        """The single transport this build uses."""
        return TransportKind.REMOTE if self.use_api else TransportKind.LOCAL

    @property
    def api_base_url(self) -> str:
        """Base URL of the Meda API."""
        return f"http://{self.meda_host}:{self.meda_port}"

    @property
    def base_image_name(self) -> str:
        """Base image name without its tag."""
        return self.base_image.split(":", 1)[0]

    @property
    def output_image_ref(self) -> str:
        """Produced image reference, name:tag."""
        return f"{self.output_image_name}:{self.output_tag}"

    @property
    def publish_target(self) -> str:
        """Fully qualified registry coordinate of the produced image."""
        parts = [self.registry.rstrip("/")]
        if self.organization:
            parts.append(self.organization.strip("/"))
        parts.append(self.output_image_ref)
        return "/".join(parts)


__all__ = [
    "DEFAULT_REGISTRY",
    "BuildConfig",
    "CommunicatorConfig",
]
