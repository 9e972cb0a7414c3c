"""Custom exceptions for disk consolidation.

This module defines a hierarchy of exceptions so each stage of a run can
decide how far a failure reaches: one disk, one merge step, one machine
group, or the whole run.

Exception Hierarchy:
    ConsolidationError (base)
        ├── DiskQueryError           (one disk, non-fatal)
        ├── LineageCycleError        (one group)
        ├── MachineControlError      (one group)
        │   └── MachineStopTimeoutError
        ├── MergeError               (one merge step)
        ├── NoDisksFoundError        (whole run)
        └── CommandError             (adapter subprocess failure)
    MergeCleanupWarning (UserWarning)

Usage:
    from vdisk_consolidator.storage.exceptions import DiskQueryError

    if "format" not in info:
        raise DiskQueryError(path, "missing format field")
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence


class ConsolidationError(Exception):
    """Base exception for all consolidation operations."""


class DiskQueryError(ConsolidationError):
    """Disk file is not a valid or readable virtual disk."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Unable to query disk {path}: {reason}")


class LineageCycleError(ConsolidationError):
    """Parent chain revisits a disk it already walked through."""

    def __init__(self, cycle: Sequence[Path]):
        self.cycle = list(cycle)
        chain = " -> ".join(str(path) for path in self.cycle)
        super().__init__(f"Parent chain contains a cycle: {chain}")


class MachineControlError(ConsolidationError):
    """Hypervisor unreachable or command rejected."""

    def __init__(self, machine_name: str, reason: str):
        self.machine_name = machine_name
        self.reason = reason
        super().__init__(f"Machine control failed for {machine_name}: {reason}")


class MachineStopTimeoutError(MachineControlError):
    """Machine did not report stopped before the timeout expired."""

    def __init__(self, machine_name: str, timeout: float):
        self.timeout = timeout
        super().__init__(
            machine_name, f"did not stop within {timeout:g} seconds"
        )


class MergeError(ConsolidationError):
    """Merge request for one disk failed."""

    def __init__(self, source: Path, destination: Path, cause: str):
        self.source = source
        self.destination = destination
        self.cause = cause
        super().__init__(f"Merge of {source} into {destination} failed: {cause}")


class NoDisksFoundError(ConsolidationError):
    """Initial discovery returned no disk files at all."""

    def __init__(self, root_dir: Path, extensions: Sequence[str] = ()):
        self.root_dir = root_dir
        self.extensions = list(extensions)
        msg = f"No virtual disk files found under {root_dir}"
        if self.extensions:
            msg += f" (extensions: {', '.join(self.extensions)})"
        super().__init__(msg)


class CommandError(ConsolidationError):
    """External command exited with a non-zero status."""

    def __init__(self, command: Sequence[str], returncode: int, message: str):
        self.command = list(command)
        self.returncode = returncode
        self.message = message
        super().__init__(
            f"Command failed ({' '.join(self.command)}): {message}"
        )


class MergeCleanupWarning(UserWarning):
    """Merge reported success but the source file is still present."""

    def __init__(self, source: Path):
        self.source = source
        super().__init__(f"Merged disk {source} was not deleted")
