"""Subprocess execution helpers for the local transport.

This module handles:
- Running short commands with captured output and a timeout
- Running long commands while streaming stdout/stderr lines live and
  buffering stderr for later inspection
"""

from __future__ import annotations

import logging
import shlex
import subprocess
import threading
from collections.abc import Callable
from pathlib import Path
from typing import IO

from meda_builder.transport.base import CommandResult

logger = logging.getLogger(__name__)

LineHandler = Callable[[str], None]


def _log_line(line: str) -> None:
    logger.info("%s", line)


def run_command(
    cmd: list[str],
    cwd: Path | None = None,
    timeout: float | None = None,
) -> CommandResult:
    """Run a command and capture its output.

    Args:
        cmd: Command as list of strings.
        cwd: Optional working directory.
        timeout: Timeout in seconds (None = no timeout).

    Returns:
        CommandResult; never raises for process failures.
    """
    cmd_str = shlex.join(cmd)
    logger.debug("Executing: %s", cmd_str)

    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired:
        return CommandResult(
            command=cmd_str,
            success=False,
            exit_code=-1,
            failure=f"timed out after {timeout} seconds",
        )
    except OSError as e:
        return CommandResult(
            command=cmd_str,
            success=False,
            failure=f"failed to execute: {e}",
        )

    success = result.returncode == 0
    return CommandResult(
        command=cmd_str,
        success=success,
        exit_code=result.returncode,
        stdout=result.stdout or "",
        stderr=result.stderr or "",
        failure=None if success else f"exit status {result.returncode}",
    )


def _drain(
    stream: IO[str],
    on_line: LineHandler,
    buffer: list[str] | None = None,
) -> None:
    """Read a pipe line by line until EOF."""
    with stream:
        for raw in stream:
            line = raw.rstrip("\n")
            if buffer is not None:
                buffer.append(line)
            on_line(line)


def run_streaming(
    cmd: list[str],
    cwd: Path | None = None,
    on_line: LineHandler | None = None,
) -> CommandResult:
    """Run a long command, forwarding its output as it is produced.

    Two reader threads drain stdout and stderr concurrently. Both are joined
    before the result is built, so the buffered stderr text is complete when
    the caller scans it.

    Args:
        cmd: Command as list of strings.
        cwd: Optional working directory.
        on_line: Called with every output line (defaults to logging).

    Returns:
        CommandResult with captured stdout and stderr text.
    """
    handler = on_line or _log_line
    cmd_str = shlex.join(cmd)
    logger.debug("Executing (streaming): %s", cmd_str)

    try:
        process = subprocess.Popen(
            cmd,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            bufsize=1,
        )
    except OSError as e:
        return CommandResult(
            command=cmd_str,
            success=False,
            failure=f"failed to start: {e}",
        )

    stdout_lines: list[str] = []
    stderr_lines: list[str] = []
    readers = [
        threading.Thread(
            target=_drain,
            args=(process.stdout, handler, stdout_lines),
            name="meda-stdout",
            daemon=True,
        ),
        threading.Thread(
            target=_drain,
            args=(process.stderr, handler, stderr_lines),
            name="meda-stderr",
            daemon=True,
        ),
    ]
    for reader in readers:
        reader.start()

    exit_code = process.wait()
    for reader in readers:
        reader.join()

    success = exit_code == 0
    return CommandResult(
        command=cmd_str,
        success=success,
        exit_code=exit_code,
        stdout="".join(f"{line}\n" for line in stdout_lines),
        stderr="".join(f"{line}\n" for line in stderr_lines),
        failure=None if success else f"exit status {exit_code}",
    )


__all__ = ["LineHandler", "run_command", "run_streaming"]
