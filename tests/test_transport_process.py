"""Tests for subprocess helpers.

These run the current Python interpreter as a child process so no external
tools are needed.
"""

import subprocess
import sys
from pathlib import Path
from unittest.mock import patch

from meda_builder.transport.base import CommandResult, contains_denial
from meda_builder.transport.process import run_command, run_streaming


def py(code: str) -> list[str]:
    return [sys.executable, "-c", code]


class TestRunCommand:
    """Tests for run_command."""

    def test_success_captures_output(self):
        """Successful command captures stdout."""
        result = run_command(py("print('hello')"))

        assert result.success is True
        assert result.exit_code == 0
        assert result.stdout.strip() == "hello"
        assert result.failure is None

    def test_failure_reports_exit_status(self):
        """Non-zero exit is a failure with its status."""
        result = run_command(
            py("import sys; sys.stderr.write('boom'); sys.exit(3)")
        )

        assert result.success is False
        assert result.exit_code == 3
        assert result.failure == "exit status 3"
        assert result.stderr == "boom"

    def test_invalid_utf8_output(self):
        """Undecodable bytes are replaced instead of raising."""
        code = (
            "import sys\n"
            "sys.stdout.buffer.write(b'\\xff\\n')\n"
            "sys.stderr.buffer.write(b'denied\\n')\n"
        )
        result = run_command(py(code))

        assert result.success is True
        assert "\ufffd" in result.stdout
        assert result.has_denial() is True

    def test_missing_binary(self):
        """A binary that cannot be executed is a failure, not an exception."""
        result = run_command(["definitely-not-a-meda-binary"])

        assert result.success is False
        assert result.failure.startswith("failed to execute")

    def test_timeout(self):
        """Timeouts are reported as failures."""
        with patch(
            "meda_builder.transport.process.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="meda", timeout=1),
        ):
            result = run_command(["meda", "images"], timeout=1)

        assert result.success is False
        assert "timed out" in result.failure

    def test_cwd_passed(self, tmp_path):
        """Working directory is honored."""
        result = run_command(py("import os; print(os.getcwd())"), cwd=tmp_path)
        assert Path(result.stdout.strip()).resolve() == tmp_path.resolve()


class TestRunStreaming:
    """Tests for run_streaming."""

    def test_lines_forwarded_and_buffered(self):
        """Every line reaches the handler and the buffers."""
        seen = []
        code = (
            "import sys\n"
            "print('out1'); print('out2')\n"
            "sys.stderr.write('err1\\n')\n"
        )
        result = run_streaming(py(code), on_line=seen.append)

        assert result.success is True
        assert sorted(seen) == ["err1", "out1", "out2"]
        assert result.stdout == "out1\nout2\n"
        assert result.stderr == "err1\n"

    def test_denial_visible_with_exit_zero(self):
        """Denial text on stderr is captured even when the exit code is 0."""
        code = "import sys; sys.stderr.write('Error: unauthorized\\n')"
        result = run_streaming(py(code), on_line=lambda line: None)

        assert result.success is True
        assert result.has_denial() is True

    def test_invalid_utf8_keeps_reading(self):
        """Undecodable bytes do not stop the readers from seeing later lines."""
        code = (
            "import sys\n"
            "sys.stderr.buffer.write(b'\\xff\\xfe bad\\n')\n"
            "sys.stderr.buffer.write(b'unauthorized\\n')\n"
        )
        seen = []
        result = run_streaming(py(code), on_line=seen.append)

        assert result.success is True
        assert "unauthorized" in seen
        assert result.has_denial() is True

    def test_failure(self):
        """Non-zero exit is reported."""
        result = run_streaming(py("raise SystemExit(2)"), on_line=lambda line: None)

        assert result.success is False
        assert result.exit_code == 2
        assert result.failure == "exit status 2"

    def test_missing_binary(self):
        """A binary that cannot be started is a failure."""
        result = run_streaming(["definitely-not-a-meda-binary"])

        assert result.success is False
        assert result.failure.startswith("failed to start")


class TestCommandResult:
    """Tests for CommandResult helpers."""

    def test_error_message_prefers_stderr(self):
        """Diagnostics come from stderr when present."""
        result = CommandResult(
            command="meda start vm",
            success=False,
            stdout="ignored",
            stderr=" no such vm \n",
            failure="exit status 1",
        )
        assert result.error_message("failed to start VM") == (
            "failed to start VM: exit status 1 - no such vm"
        )

    def test_error_message_falls_back_to_stdout(self):
        """stdout is used when stderr is empty."""
        result = CommandResult(command="x", success=False, stdout="details")
        assert result.error_message("failed") == "failed - details"

    def test_contains_denial(self):
        """All denial markers are detected."""
        assert contains_denial("unauthorized")
        assert contains_denial("access denied")
        assert contains_denial("authentication required")
        assert not contains_denial("pushed successfully")
