"""Command execution utilities for the qemu-img and virsh adapters."""

from __future__ import annotations

import subprocess
from typing import Sequence

from vdisk_consolidator.logging import LoggerFactory

from .exceptions import CommandError


log = LoggerFactory.for_command()


def run_checked_command(command: Sequence[str]) -> str:
    """Run a command and raise CommandError if it fails.

    The child gets its own session, so a terminal Ctrl+C (SIGINT to the
    foreground process group) reaches only this process and a running
    ``qemu-img commit`` is left to finish.
    """
    command = [str(part) for part in command]
    log.debug(f"Running command: {' '.join(command)}")
    try:
        result = subprocess.run(
            command,
            text=True,
            capture_output=True,
            start_new_session=True,
        )
    except OSError as error:
        # Missing executable or permission problem
        raise CommandError(command, -1, str(error)) from error
    if result.returncode != 0:
        stderr = (result.stderr or "").strip()
        stdout = (result.stdout or "").strip()
        message = stderr or stdout or "Command failed"
        log.debug(f"Command exited with code {result.returncode}: {message}")
        raise CommandError(command, result.returncode, message)
    if result.stdout:
        log.trace(f"Command output: {result.stdout.strip()}")
    return result.stdout


__all__ = ["run_checked_command"]
