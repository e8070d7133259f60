"""Local transport: drive Meda by spawning the meda binary.

Command layout follows the meda CLI:
- images / pull / create-image / images rm
- run --no-start / start / stop / ip / delete
- push
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from meda_builder.templates.schema import DEFAULT_REGISTRY
from meda_builder.transport.base import CommandResult, Transport, TransportError, VMSpec
from meda_builder.transport.process import LineHandler, run_command, run_streaming

logger = logging.getLogger(__name__)

# Development mode: run meda from its source checkout with cargo
CARGO_BINARY = "cargo"


def default_meda_source_dir() -> Path:
    """Return the meda source checkout used in cargo mode."""
    return Path.home() / "meda"


def resolve_binary(binary: str) -> bool:
    """Whether binary is an existing path or found on PATH."""
    return Path(binary).exists() or shutil.which(binary) is not None


class LocalTransport(Transport):
    """Transport that shells out to the meda CLI."""

    def __init__(
        self,
        binary: str = "meda",
        timeout: float | None = 60,
        source_dir: Path | None = None,
        on_line: LineHandler | None = None,
        check_binary: bool = True,
    ) -> None:
        """Initialize LocalTransport.

        Args:
            binary: meda binary name or path, or "cargo" for development.
            timeout: Timeout for short commands in seconds.
            source_dir: meda checkout used when binary is "cargo".
            on_line: Receives streamed output lines of long commands.
            check_binary: Verify that the binary can be found.

        Raises:
            TransportError: If the binary cannot be found.
        """
        if check_binary and not resolve_binary(binary):
            raise TransportError(
                f"meda binary not found: {binary}", code="binary_not_found"
            )
        self.binary = binary
        self.timeout = timeout
        self.on_line = on_line
        self.cwd: Path | None = None
        if binary == CARGO_BINARY:
            self.cwd = source_dir or default_meda_source_dir()

    def command(self, *args: str) -> list[str]:
        """Compose a full meda command line."""
        if self.binary == CARGO_BINARY:
            return [CARGO_BINARY, "run", "--", *args]
        return [self.binary, *args]

    def _run(self, *args: str) -> CommandResult:
        return run_command(self.command(*args), cwd=self.cwd, timeout=self.timeout)

    def _stream(self, *args: str) -> CommandResult:
        return run_streaming(self.command(*args), cwd=self.cwd, on_line=self.on_line)

    def image_exists(self, name: str) -> bool:
        result = self._run("images")
        output = result.stdout + result.stderr
        return result.success and name in output

    def create_image(self, name: str, tag: str | None = None) -> CommandResult:
        args = ["create-image", name]
        if tag:
            args.extend(["--tag", tag])
        return self._stream(*args)

    def pull_image(self, ref: str) -> CommandResult:
        return self._stream("pull", ref)

    def create_vm(self, spec: VMSpec) -> CommandResult:
        args = [
            "run",
            spec.base_image,
            "--name",
            spec.name,
            "--memory",
            spec.memory,
            "--cpus",
            str(spec.cpus),
            "--disk",
            spec.disk_size,
            "--no-start",
        ]
        if spec.user_data_file:
            args.extend(["--user-data", spec.user_data_file])
        return self._run(*args)

    def start_vm(self, name: str) -> CommandResult:
        return self._run("start", name)

    def stop_vm(self, name: str) -> CommandResult:
        return self._run("stop", name)

    def get_address(self, name: str) -> str | None:
        result = self._run("ip", name)
        if not result.success:
            logger.debug("ip lookup failed: %s", result.error_message(result.command))
            return None
        # cargo mode prints build chatter on stderr around the address
        return "\n".join((result.stdout, result.stderr))

    def snapshot(self, vm_name: str, name: str, tag: str) -> CommandResult:
        return self._stream("create-image", name, "--tag", tag, "--from-vm", vm_name)

    def publish(
        self, image: str, target: str, registry: str, dry_run: bool = False
    ) -> CommandResult:
        # meda push takes the image name without its tag
        args = ["push", image.split(":", 1)[0], target]
        if registry and registry != DEFAULT_REGISTRY:
            args.extend(["--registry", registry])
        if dry_run:
            args.append("--dry-run")
        return self._stream(*args)

    def delete_vm(self, name: str) -> CommandResult:
        return self._run("delete", name)

    def delete_image(self, ref: str) -> CommandResult:
        return self._run("images", "rm", ref)


__all__ = ["LocalTransport", "default_meda_source_dir", "resolve_binary"]
