"""Tests for shared types module."""

from meda_builder.types import (
    GENERATED_VARS,
    GENERATED_VM_IP,
    GENERATED_VM_NAME,
    BuildStatus,
    CommunicatorType,
    StepAction,
    TransportKind,
)


class TestEnums:
    """Test enum definitions."""

    def test_build_status_values(self) -> None:
        """BuildStatus should cover the runner state machine."""
        assert BuildStatus.PENDING.value == "pending"
        assert BuildStatus.RUNNING.value == "running"
        assert BuildStatus.SUCCEEDED.value == "succeeded"
        assert BuildStatus.HALTED.value == "halted"
        assert BuildStatus.CANCELLED.value == "cancelled"

    def test_step_action_values(self) -> None:
        """StepAction should have the three step outcomes."""
        assert {a.value for a in StepAction} == {"continue", "halt", "cancelled"}

    def test_transport_kind_values(self) -> None:
        """TransportKind should distinguish local and remote."""
        assert TransportKind.LOCAL.value == "local"
        assert TransportKind.REMOTE.value == "remote"

    def test_communicator_type_from_string(self) -> None:
        """CommunicatorType should parse from its string value."""
        assert CommunicatorType("ssh") is CommunicatorType.SSH
        assert CommunicatorType("none") is CommunicatorType.NONE


class TestGeneratedVars:
    """Test generated variable names."""

    def test_generated_vars(self) -> None:
        """Builder exposes the VM name and address."""
        assert GENERATED_VM_NAME == "MedaVMName"
        assert GENERATED_VM_IP == "MedaVMIP"
        assert GENERATED_VARS == ["MedaVMName", "MedaVMIP"]
