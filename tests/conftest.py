"""Shared fixtures: a recording fake transport and template factories."""

from collections.abc import Callable
from typing import Any

import pytest

from meda_builder.builds.state import BuildState
from meda_builder.templates.schema import BuildConfig
from meda_builder.transport.base import CommandResult, Transport, VMSpec


def ok(command: str = "fake", stdout: str = "", stderr: str = "") -> CommandResult:
    """Successful CommandResult."""
    return CommandResult(
        command=command, success=True, exit_code=0, stdout=stdout, stderr=stderr
    )


def failed(
    command: str = "fake", stderr: str = "", exit_code: int = 1
) -> CommandResult:
    """Failed CommandResult."""
    return CommandResult(
        command=command,
        success=False,
        exit_code=exit_code,
        stderr=stderr,
        failure=f"exit status {exit_code}",
    )


class FakeTransport(Transport):
    """Transport double recording every call.

    Attributes:
        calls: (method, args) tuples in call order.
        existing: Image names image_exists() reports as present.
        results: Per-method CommandResult overrides.
        addresses: Outputs returned by successive get_address() calls; the
            last one repeats.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.existing: set[str] = set()
        self.results: dict[str, CommandResult] = {}
        self.addresses: list[str | None] = ["192.168.64.10"]
        self.closed = False

    def _record(self, method: str, *args: Any) -> CommandResult:
        self.calls.append((method, args))
        return self.results.get(method, ok(method))

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    def methods(self) -> list[str]:
        return [name for name, _ in self.calls]

    def image_exists(self, name: str) -> bool:
        self.calls.append(("image_exists", (name,)))
        return name in self.existing

    def create_image(self, name: str, tag: str | None = None) -> CommandResult:
        return self._record("create_image", name, tag)

    def pull_image(self, ref: str) -> CommandResult:
        return self._record("pull_image", ref)

    def create_vm(self, spec: VMSpec) -> CommandResult:
        return self._record("create_vm", spec)

    def start_vm(self, name: str) -> CommandResult:
        return self._record("start_vm", name)

    def stop_vm(self, name: str) -> CommandResult:
        return self._record("stop_vm", name)

    def get_address(self, name: str) -> str | None:
        self.calls.append(("get_address", (name,)))
        if len(self.addresses) > 1:
            return self.addresses.pop(0)
        return self.addresses[0]

    def snapshot(self, vm_name: str, name: str, tag: str) -> CommandResult:
        return self._record("snapshot", vm_name, name, tag)

    def publish(
        self, image: str, target: str, registry: str, dry_run: bool = False
    ) -> CommandResult:
        return self._record("publish", image, target, registry, dry_run)

    def delete_vm(self, name: str) -> CommandResult:
        return self._record("delete_vm", name)

    def delete_image(self, ref: str) -> CommandResult:
        return self._record("delete_image", ref)

    def close(self) -> None:
        self.closed = True


class FakeClock:
    """Monotonic clock advanced only by its own sleep()."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def transport() -> FakeTransport:
    """Fresh recording transport."""
    return FakeTransport()


@pytest.fixture
def clock() -> FakeClock:
    """Fake clock for polling tests."""
    return FakeClock()


@pytest.fixture
def make_config() -> Callable[..., BuildConfig]:
    """Factory for build templates with required fields filled in."""

    def _make(**overrides: Any) -> BuildConfig:
        data: dict[str, Any] = {
            "vm_name": "builder",
            "base_image": "ubuntu",
            "output_image_name": "ubuntu-docker",
            "communicator": {"type": "none"},
        }
        data.update(overrides)
        return BuildConfig.model_validate(data)

    return _make


@pytest.fixture
def make_state(
    make_config: Callable[..., BuildConfig],
) -> Callable[..., BuildState]:
    """Factory for build states."""

    def _make(**overrides: Any) -> BuildState:
        return BuildState(
            config=make_config(**overrides), vm_name="packer-builder-1700000000"
        )

    return _make
