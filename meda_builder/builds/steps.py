"""Build lifecycle steps.

Each step performs one lifecycle action through the Transport and records
its result in the BuildState. Steps return a StepOutcome; they never decide
for themselves whether the build goes on.

Fatal steps: base image, create, start, wait for ready, snapshot, push.
Best-effort steps: stop and cleanup (logged as warnings).
"""

from __future__ import annotations

import logging
import os
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from meda_builder.builds.retry import PollCancelledError, PollTimeoutError, poll_until
from meda_builder.builds.state import BuildState
from meda_builder.transport.base import CommandResult, Transport, VMSpec
from meda_builder.types import StepAction

logger = logging.getLogger(__name__)

# Base images that must exist before they can be created (one level deep)
BASE_IMAGE_PREREQUISITES = {"ubuntu-base": "ubuntu"}

# Registry that needs a token in the environment, and the variable holding it
TOKEN_REGISTRY_HOST = "ghcr.io"
REGISTRY_TOKEN_ENV = "GITHUB_TOKEN"

# Readiness polling defaults (seconds)
READY_POLL_INTERVAL = 10.0
READY_TIMEOUT = 300.0


class StepError(Exception):
    """Raised (or carried in a StepOutcome) when a step fails fatally."""

    def __init__(self, message: str, code: str = "step_error") -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class StepOutcome:
    """Tagged result of running a step."""

    action: StepAction
    error: Exception | None = None

    @classmethod
    def proceed(cls) -> StepOutcome:
        return cls(StepAction.CONTINUE)

    @classmethod
    def halt(cls, error: Exception) -> StepOutcome:
        return cls(StepAction.HALT, error)

    @classmethod
    def cancel(cls) -> StepOutcome:
        return cls(StepAction.CANCELLED)


class Step(ABC):
    """One unit of the build lifecycle."""

    name = "step"

    @abstractmethod
    def run(self, state: BuildState) -> StepOutcome:
        """Execute the step."""

    def cleanup(self, state: BuildState) -> None:
        """Undo anything this step left behind (runs after the build)."""
        return None


def _fail(message: str, code: str) -> StepOutcome:
    logger.error("%s", message)
    return StepOutcome.halt(StepError(message, code=code))


def parse_ipv4_line(line: str) -> str | None:
    """Return the line if it is exactly an IPv4 address.

    The trimmed line must consist of four dot-separated decimal integers and
    nothing else.

    Args:
        line: One line of address output.

    Returns:
        The address, or None if the line is anything else.
    """
    candidate = line.strip()
    if not candidate or " " in candidate:
        return None
    parts = candidate.split(".")
    if len(parts) != 4:
        return None
    for part in parts:
        if not (part.isascii() and part.isdigit()):
            return None
    return candidate


def find_ipv4(output: str | None) -> str | None:
    """Find the first line of output that is a bare IPv4 address."""
    if not output:
        return None
    for line in output.splitlines():
        address = parse_ipv4_line(line)
        if address is not None:
            return address
    return None


def registry_requires_token(registry: str) -> bool:
    """Whether pushing to this registry needs REGISTRY_TOKEN_ENV."""
    return TOKEN_REGISTRY_HOST in registry


class StepPullOrCreateBaseImage(Step):
    """Make sure the configured base image is available on the backend.

    Images referenced with a registry path (containing "/") are pulled;
    others are created by meda. Some base images depend on another one
    which is materialized first.
    """

    name = "base-image"

    def __init__(self, transport: Transport) -> None:
        self.transport = transport

    def run(self, state: BuildState) -> StepOutcome:
        config = state.config
        name = config.base_image_name
        logger.info("Ensuring base image '%s' is available locally", config.base_image)

        if self.transport.image_exists(name):
            logger.info("Base image '%s' already available locally", name)
            return StepOutcome.proceed()

        prerequisite = BASE_IMAGE_PREREQUISITES.get(name)
        if prerequisite is not None:
            logger.info(
                "Base image '%s' not found locally, creating from %s...",
                name,
                prerequisite,
            )
            if not self.transport.image_exists(prerequisite):
                error = self._materialize(prerequisite, prerequisite)
                if error is not None:
                    return _fail(error, "base_image_failed")
        else:
            logger.info("Base image '%s' not found locally, creating it...", name)

        error = self._materialize(name, config.base_image)
        if error is not None:
            return _fail(error, "base_image_failed")

        logger.info("Successfully created base image '%s'", name)
        return StepOutcome.proceed()

    def _materialize(self, name: str, ref: str) -> str | None:
        """Create or pull one image; return an error message on failure."""
        if "/" in ref:
            result = self.transport.pull_image(ref)
            verb = "pull"
        else:
            result = self.transport.create_image(name)
            verb = "create"
        if not result.success or result.has_denial():
            return result.error_message(f"failed to {verb} base image '{name}'")
        return None


class StepCreateVM(Step):
    """Create the build VM without starting it."""

    name = "create-vm"

    def __init__(self, transport: Transport) -> None:
        self.transport = transport

    def run(self, state: BuildState) -> StepOutcome:
        config = state.config
        logger.info(
            "Creating VM '%s' with base image '%s'", state.vm_name, config.base_image
        )
        spec = VMSpec(
            name=state.vm_name,
            base_image=config.base_image,
            memory=config.memory,
            cpus=config.cpus,
            disk_size=config.disk_size,
            user_data_file=config.user_data_file,
        )
        result = self.transport.create_vm(spec)
        if not result.success:
            message = result.error_message("failed to create VM")
            return _fail(message, "vm_create_failed")

        logger.info("VM '%s' created successfully", state.vm_name)
        return StepOutcome.proceed()


class StepStartVM(Step):
    """Boot the build VM."""

    name = "start-vm"

    def __init__(self, transport: Transport) -> None:
        self.transport = transport

    def run(self, state: BuildState) -> StepOutcome:
        logger.info("Starting VM '%s'", state.vm_name)
        result = self.transport.start_vm(state.vm_name)
        if not result.success:
            return _fail(result.error_message("failed to start VM"), "vm_start_failed")

        logger.info("VM '%s' started successfully", state.vm_name)
        return StepOutcome.proceed()


class StepWaitForReady(Step):
    """Poll the VM address until it is a valid IPv4 address."""

    name = "wait-for-ready"

    def __init__(
        self,
        transport: Transport,
        interval: float = READY_POLL_INTERVAL,
        timeout: float = READY_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.transport = transport
        self.interval = interval
        self.timeout = timeout
        self.clock = clock
        self.sleep = sleep

    def run(self, state: BuildState) -> StepOutcome:
        logger.info("Waiting for VM '%s' to be ready...", state.vm_name)

        def probe() -> str | None:
            address = find_ipv4(self.transport.get_address(state.vm_name))
            if address is None:
                logger.info("VM not ready yet, waiting...")
            return address

        try:
            address = poll_until(
                probe,
                interval=self.interval,
                timeout=self.timeout,
                cancel_event=state.cancel_event,
                clock=self.clock,
                sleep=self.sleep,
            )
        except PollTimeoutError:
            return _fail("timeout waiting for VM to be ready", "ready_timeout")
        except PollCancelledError:
            logger.info("Wait for VM '%s' cancelled", state.vm_name)
            return StepOutcome.cancel()

        state.vm_ip = address
        state.ssh_host = address
        logger.info("VM is ready with IP: %s", address)
        return StepOutcome.proceed()


class StepStopVM(Step):
    """Stop the VM before snapshotting; failure is only a warning."""

    name = "stop-vm"

    def __init__(self, transport: Transport) -> None:
        self.transport = transport

    def run(self, state: BuildState) -> StepOutcome:
        logger.info("Stopping VM '%s'", state.vm_name)
        result = self.transport.stop_vm(state.vm_name)
        if not result.success:
            _warn(state, result, "failed to stop VM")
        else:
            logger.info("VM '%s' stopped successfully", state.vm_name)
        return StepOutcome.proceed()


class StepSnapshotImage(Step):
    """Capture the stopped VM into output_image_name:output_tag."""

    name = "snapshot-image"

    def __init__(self, transport: Transport) -> None:
        self.transport = transport

    def run(self, state: BuildState) -> StepOutcome:
        config = state.config
        image_ref = config.output_image_ref
        logger.info("Creating image '%s' from VM '%s'", image_ref, state.vm_name)

        result = self.transport.snapshot(
            state.vm_name, config.output_image_name, config.output_tag
        )
        if not result.success:
            message = result.error_message("failed to create image")
            return _fail(message, "snapshot_failed")

        state.image_name = image_ref
        logger.info("Image '%s' created successfully", image_ref)
        return StepOutcome.proceed()


class StepPublishImage(Step):
    """Push the produced image to its registry coordinate."""

    name = "publish-image"

    def __init__(
        self,
        transport: Transport,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.transport = transport
        self.environ = environ

    def run(self, state: BuildState) -> StepOutcome:
        config = state.config
        if not config.push_to_registry:
            logger.info("Push to registry disabled, skipping push step")
            return StepOutcome.proceed()

        environ = os.environ if self.environ is None else self.environ
        if registry_requires_token(config.registry):
            if not environ.get(REGISTRY_TOKEN_ENV):
                return _fail(
                    f"{REGISTRY_TOKEN_ENV} environment variable is required for "
                    f"pushing to {config.registry}. Please set it with: "
                    f"export {REGISTRY_TOKEN_ENV}=your_token",
                    "missing_credentials",
                )
            logger.info("%s found for registry authentication", REGISTRY_TOKEN_ENV)

        image_ref = state.image_name or config.output_image_ref
        target = config.publish_target
        logger.info("Pushing image '%s' to '%s'", image_ref, target)

        result = self.transport.publish(
            image_ref, target, config.registry, dry_run=config.dry_run
        )
        if not result.success or result.has_denial():
            return _fail(result.error_message("failed to push image"), "push_failed")

        state.pushed_image = target
        logger.info("Image '%s' pushed successfully to '%s'", image_ref, target)
        return StepOutcome.proceed()


class StepCleanupVM(Step):
    """Delete the build VM; always runs, failure is only a warning."""

    name = "cleanup-vm"

    def __init__(self, transport: Transport) -> None:
        self.transport = transport

    def run(self, state: BuildState) -> StepOutcome:
        logger.info("Cleaning up VM '%s'", state.vm_name)
        result = self.transport.delete_vm(state.vm_name)
        if not result.success:
            _warn(state, result, "failed to delete VM")
        else:
            logger.info("VM '%s' cleaned up successfully", state.vm_name)
        return StepOutcome.proceed()


def _warn(state: BuildState, result: CommandResult, prefix: str) -> None:
    message = result.error_message(prefix)
    logger.warning("Warning: %s", message)
    state.warn(message)


__all__ = [
    "BASE_IMAGE_PREREQUISITES",
    "REGISTRY_TOKEN_ENV",
    "TOKEN_REGISTRY_HOST",
    "Step",
    "StepCleanupVM",
    "StepCreateVM",
    "StepError",
    "StepOutcome",
    "StepPublishImage",
    "StepPullOrCreateBaseImage",
    "StepSnapshotImage",
    "StepStartVM",
    "StepStopVM",
    "StepWaitForReady",
    "find_ipv4",
    "parse_ipv4_line",
    "registry_requires_token",
]
