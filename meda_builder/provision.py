"""Provisioning collaborator.

The build hands a booted VM to a Provisioner once its address is known. This
module handles:
- The Provisioner contract and the connection context it receives
- CommandProvisioner: runs local commands (ansible, scp, ...) with the VM
  address and credentials substituted in
- Key pair generation when no password or key file is configured
- The build steps wrapping both
"""

from __future__ import annotations

import logging
import shlex
import shutil
import socket
import tempfile
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from string import Template

from meda_builder.builds.retry import PollCancelledError, PollTimeoutError, poll_until
from meda_builder.builds.state import BuildState
from meda_builder.builds.steps import Step, StepError, StepOutcome
from meda_builder.transport.process import LineHandler, run_command, run_streaming
from meda_builder.types import CommunicatorType

logger = logging.getLogger(__name__)

# Seconds between SSH port probes
PORT_POLL_INTERVAL = 5.0

# Seconds for a single TCP connect attempt
CONNECT_TIMEOUT = 5.0

KEY_FILE_NAME = "meda_builder_key"


class ProvisionError(Exception):
    """Raised when provisioning fails."""

    def __init__(self, message: str, code: str = "provision_error") -> None:
        super().__init__(message)
        self.code = code


class ProvisionCancelledError(Exception):
    """Raised by a provisioner that noticed the build was cancelled."""


@dataclass
class ProvisionContext:
    """Everything a provisioner needs to reach the VM.

    Attributes:
        host: Resolved VM address.
        port: SSH port.
        username: Login user.
        password: Login password, if any.
        private_key_file: Private key path, if any.
        handshake_attempts: SSH handshake attempts.
        generated_vars: Build variables (MedaVMName, MedaVMIP).
        cancel_event: Build-wide cancellation signal.
    """

    host: str
    port: int
    username: str
    password: str | None = None
    private_key_file: str | None = None
    handshake_attempts: int = 10
    generated_vars: dict[str, str] = field(default_factory=dict)
    cancel_event: threading.Event = field(default_factory=threading.Event)

    def substitutions(self) -> dict[str, str]:
        """Template variables available to provisioning commands."""
        values = dict(self.generated_vars)
        values.update(
            {
                "SSHHost": self.host,
                "SSHPort": str(self.port),
                "SSHUsername": self.username,
                "SSHPassword": self.password or "",
                "SSHPrivateKeyFile": self.private_key_file or "",
            }
        )
        return values


class Provisioner(ABC):
    """Configures a booted VM."""

    @abstractmethod
    def provision(self, context: ProvisionContext) -> None:
        """Provision the VM.

        Raises:
            ProvisionError: If provisioning fails.
            ProvisionCancelledError: If the build was cancelled meanwhile.
        """


class CommandProvisioner(Provisioner):
    """Runs local command lines against the VM, one after another.

    Commands may reference $MedaVMName, $MedaVMIP, $SSHHost, $SSHPort,
    $SSHUsername, $SSHPassword and $SSHPrivateKeyFile.
    """

    def __init__(
        self,
        commands: list[str],
        on_line: LineHandler | None = None,
    ) -> None:
        self.commands = list(commands)
        self.on_line = on_line

    def render(self, command: str, context: ProvisionContext) -> list[str]:
        """Substitute variables and split a command line into argv."""
        rendered = Template(command).safe_substitute(context.substitutions())
        return shlex.split(rendered)

    def provision(self, context: ProvisionContext) -> None:
        if not self.commands:
            logger.info("No provisioning commands configured")
            return

        for command in self.commands:
            if context.cancel_event.is_set():
                raise ProvisionCancelledError()
            argv = self.render(command, context)
            logger.info("Provisioning with: %s", shlex.join(argv))
            result = run_streaming(argv, on_line=self.on_line)
            if not result.success:
                raise ProvisionError(
                    result.error_message(f"provisioning command failed: {argv[0]}"),
                    code="command_failed",
                )


def port_open(host: str, port: int, timeout: float = CONNECT_TIMEOUT) -> bool:
    """Whether a TCP connection to host:port succeeds."""
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


class StepKeyGen(Step):
    """Generate a throwaway key pair for the build.

    Only included when the communicator is SSH and neither a password nor a
    private key file is configured. The key directory is removed on cleanup.
    """

    name = "ssh-keygen"

    def __init__(self, keygen_binary: str = "ssh-keygen") -> None:
        self.keygen_binary = keygen_binary
        self._key_dir: Path | None = None

    def run(self, state: BuildState) -> StepOutcome:
        self._key_dir = Path(tempfile.mkdtemp(prefix="meda-builder-"))
        key_path = self._key_dir / KEY_FILE_NAME
        logger.info("Creating temporary SSH key for instance...")

        result = run_command(
            [
                self.keygen_binary,
                "-t",
                "ed25519",
                "-N",
                "",
                "-q",
                "-C",
                f"meda-builder-{state.vm_name}",
                "-f",
                str(key_path),
            ]
        )
        if not result.success:
            message = result.error_message("failed to generate SSH key pair")
            logger.error("%s", message)
            return StepOutcome.halt(StepError(message, code="keygen_failed"))

        state.ssh_private_key_file = str(key_path)
        state.ssh_public_key = key_path.with_suffix(".pub").read_text().strip()
        return StepOutcome.proceed()

    def cleanup(self, state: BuildState) -> None:
        if self._key_dir is not None:
            shutil.rmtree(self._key_dir, ignore_errors=True)
            self._key_dir = None


class StepProvision(Step):
    """Wait for the communicator and hand the VM to the provisioner."""

    name = "provision"

    def __init__(
        self,
        provisioner: Provisioner,
        port_check: Callable[[str, int], bool] = port_open,
        poll_interval: float = PORT_POLL_INTERVAL,
    ) -> None:
        self.provisioner = provisioner
        self.port_check = port_check
        self.poll_interval = poll_interval

    def build_context(self, state: BuildState) -> ProvisionContext:
        comm = state.config.communicator
        host = comm.ssh_host or state.ssh_host or state.vm_ip
        if not host:
            raise ProvisionError("no VM address available", code="no_address")
        return ProvisionContext(
            host=host,
            port=comm.ssh_port,
            username=comm.ssh_username,
            password=comm.ssh_password,
            private_key_file=comm.ssh_private_key_file or state.ssh_private_key_file,
            handshake_attempts=comm.ssh_handshake_attempts,
            generated_vars=state.generated_vars(),
            cancel_event=state.cancel_event,
        )

    def run(self, state: BuildState) -> StepOutcome:
        comm = state.config.communicator
        try:
            context = self.build_context(state)
        except ProvisionError as e:
            logger.error("%s", e)
            return StepOutcome.halt(e)

        if comm.type == CommunicatorType.SSH:
            logger.info("Waiting for SSH to become available on %s...", context.host)
            try:
                poll_until(
                    lambda: self.port_check(context.host, context.port) or None,
                    interval=self.poll_interval,
                    timeout=comm.ssh_timeout,
                    cancel_event=state.cancel_event,
                )
            except PollTimeoutError:
                message = f"timeout waiting for SSH on {context.host}:{context.port}"
                logger.error("%s", message)
                return StepOutcome.halt(ProvisionError(message, code="ssh_timeout"))
            except PollCancelledError:
                return StepOutcome.cancel()
            logger.info("Connected to SSH!")

        logger.info("Provisioning VM '%s'", state.vm_name)
        try:
            self.provisioner.provision(context)
        except ProvisionCancelledError:
            logger.info("Provisioning cancelled")
            return StepOutcome.cancel()
        except ProvisionError as e:
            logger.error("Provisioning failed: %s", e)
            return StepOutcome.halt(e)

        return StepOutcome.proceed()


__all__ = [
    "CommandProvisioner",
    "ProvisionCancelledError",
    "ProvisionContext",
    "ProvisionError",
    "Provisioner",
    "StepKeyGen",
    "StepProvision",
    "port_open",
]
