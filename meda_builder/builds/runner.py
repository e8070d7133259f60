"""Build orchestration.

This module handles:
- StepRunner: runs the forward steps in order, stops on halt or
  cancellation, always runs the final steps, then each executed step's
  cleanup in reverse order
- Builder: assembles the step sequence for a build template, runs it and
  turns the final BuildState into an Artifact or an error

Runner states: pending -> running -> succeeded | halted | cancelled.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping, Sequence

from meda_builder.builds.artifact import Artifact
from meda_builder.builds.state import BuildState, generate_vm_name
from meda_builder.builds.steps import (
    READY_POLL_INTERVAL,
    READY_TIMEOUT,
    Step,
    StepCleanupVM,
    StepCreateVM,
    StepPublishImage,
    StepPullOrCreateBaseImage,
    StepSnapshotImage,
    StepStartVM,
    StepStopVM,
    StepWaitForReady,
)
from meda_builder.config import Settings
from meda_builder.provision import (
    CommandProvisioner,
    Provisioner,
    StepKeyGen,
    StepProvision,
)
from meda_builder.templates.schema import BuildConfig
from meda_builder.transport import Transport, create_transport
from meda_builder.types import GENERATED_VARS, BuildStatus, StepAction

logger = logging.getLogger(__name__)


class BuildError(Exception):
    """Raised when a build step failed fatally."""

    def __init__(self, message: str, code: str = "build_error") -> None:
        super().__init__(message)
        self.code = code


class BuildCancelledError(Exception):
    """Raised when a build was cancelled."""

    def __init__(
        self, message: str = "build was cancelled", code: str = "cancelled"
    ) -> None:
        super().__init__(message)
        self.code = code


class BuildHaltedError(Exception):
    """Raised when a build halted without recording an error."""

    def __init__(
        self, message: str = "build was halted", code: str = "halted"
    ) -> None:
        super().__init__(message)
        self.code = code


class StepRunner:
    """Run a fixed sequence of steps against one BuildState."""

    def __init__(
        self,
        steps: Sequence[Step],
        final_steps: Sequence[Step] = (),
    ) -> None:
        self.steps = list(steps)
        self.final_steps = list(final_steps)
        self.status = BuildStatus.PENDING
        self.executed: list[Step] = []

    def run(self, state: BuildState) -> BuildStatus:
        """Run all steps.

        Args:
            state: Build context; receives error/halted/cancelled flags.

        Returns:
            Terminal BuildStatus.
        """
        self.status = BuildStatus.RUNNING
        self.executed = []
        try:
            self._run_forward(state)
        except Exception as e:
            state.halted = True
            if state.error is None:
                state.error = e
            raise
        finally:
            self._run_final(state)
            for step in reversed(self.executed):
                try:
                    step.cleanup(state)
                except Exception as e:
                    _advise(state, f"cleanup of step {step.name} failed: {e}")
            self.status = _terminal_status(state)
        return self.status

    def _run_forward(self, state: BuildState) -> None:
        for step in self.steps:
            if state.cancel_event.is_set():
                logger.info("Build cancelled before step %s", step.name)
                state.cancelled = True
                return

            logger.debug("Running step: %s", step.name)
            outcome = step.run(state)
            self.executed.append(step)

            if outcome.action == StepAction.HALT:
                state.halted = True
                if state.error is None:
                    state.error = outcome.error
                return
            if outcome.action == StepAction.CANCELLED or state.cancel_event.is_set():
                state.cancelled = True
                return

    def _run_final(self, state: BuildState) -> None:
        for step in self.final_steps:
            logger.debug("Running final step: %s", step.name)
            self.executed.append(step)
            # Final steps never replace the build's terminal error
            try:
                outcome = step.run(state)
            except Exception as e:
                _advise(state, f"final step {step.name} failed: {e}")
                continue
            if outcome.action == StepAction.HALT:
                _advise(state, f"final step {step.name} failed: {outcome.error}")


def _advise(state: BuildState, message: str) -> None:
    logger.warning("Warning: %s", message)
    state.warn(message)


def _terminal_status(state: BuildState) -> BuildStatus:
    if state.cancelled:
        return BuildStatus.CANCELLED
    if state.halted:
        return BuildStatus.HALTED
    return BuildStatus.SUCCEEDED


class Builder:
    """Build a Meda image from a validated template."""

    def __init__(
        self,
        config: BuildConfig,
        transport: Transport | None = None,
        provisioner: Provisioner | None = None,
        settings: Settings | None = None,
        environ: Mapping[str, str] | None = None,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        """Initialize Builder.

        Args:
            config: Validated build template.
            transport: Transport to use; created from config when omitted.
            provisioner: Provisioning collaborator; defaults to running the
                template's provision_commands.
            settings: Application settings for timeouts.
            environ: Environment used for registry credentials.
            clock: Clock for readiness polling (tests).
            sleep: Sleep for readiness polling (tests).
        """
        self.config = config
        self.transport = transport
        self.provisioner = provisioner or CommandProvisioner(config.provision_commands)
        self.settings = settings
        self.environ = environ
        self.clock = clock
        self.sleep = sleep
        self.state: BuildState | None = None
        self.runner: StepRunner | None = None

    def generated_vars(self) -> list[str]:
        """Names of the variables this builder exposes to provisioners."""
        return list(GENERATED_VARS)

    def build_steps(self, transport: Transport) -> list[Step]:
        """Assemble the forward step sequence."""
        interval = READY_POLL_INTERVAL
        timeout = READY_TIMEOUT
        if self.settings is not None:
            interval = self.settings.ready_poll_interval
            timeout = self.settings.ready_timeout

        steps: list[Step] = [
            StepPullOrCreateBaseImage(transport),
            StepCreateVM(transport),
            StepStartVM(transport),
            StepWaitForReady(
                transport,
                interval=interval,
                timeout=timeout,
                clock=self.clock or time.monotonic,
                sleep=self.sleep,
            ),
        ]
        if self.config.communicator.requires_key_pair:
            steps.append(StepKeyGen())
        steps.extend(
            [
                StepProvision(self.provisioner),
                StepStopVM(transport),
                StepSnapshotImage(transport),
                StepPublishImage(transport, environ=self.environ),
            ]
        )
        return steps

    def run(self, cancel_event: threading.Event | None = None) -> Artifact:
        """Run the build.

        Args:
            cancel_event: Set from outside to cancel the build.

        Returns:
            Artifact describing the produced image.

        Raises:
            BuildError: If a step failed fatally.
            BuildCancelledError: If the build was cancelled.
            BuildHaltedError: If the build halted without an error.
            TransportError: If the transport cannot be created.
        """
        owns_transport = self.transport is None
        transport = self.transport or create_transport(self.config, self.settings)

        state = BuildState(
            config=self.config,
            vm_name=generate_vm_name(self.config.vm_name),
            cancel_event=cancel_event or threading.Event(),
        )
        runner = StepRunner(self.build_steps(transport), [StepCleanupVM(transport)])
        self.state = state
        self.runner = runner

        logger.info(
            "Starting build of '%s' on VM '%s'",
            self.config.output_image_ref,
            state.vm_name,
        )
        try:
            runner.run(state)
        finally:
            if owns_transport:
                transport.close()

        if state.error is not None:
            code = getattr(state.error, "code", "build_error")
            raise BuildError(str(state.error), code=code) from state.error
        if state.cancelled:
            raise BuildCancelledError()
        if state.halted:
            raise BuildHaltedError()
        if not state.image_name:
            raise BuildError(
                "failed to get image name from state", code="missing_image"
            )

        return Artifact(
            image_name=state.image_name,
            pushed_image=state.pushed_image or "",
            config=self.config,
        )


__all__ = [
    "BuildCancelledError",
    "BuildError",
    "BuildHaltedError",
    "Builder",
    "StepRunner",
]
