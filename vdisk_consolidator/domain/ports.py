"""Ports for the external collaborators the consolidation core depends on.

The core never shells out or touches disk metadata itself. It talks to these
protocols, and ``storage``/``hypervisor`` provide the concrete adapters.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from pathlib import Path

    from vdisk_consolidator.domain.models import DiskInfo, MachineState


@runtime_checkable
class DiskQuery(Protocol):
    """Reads parent/type metadata for one disk file.

    Raises ``DiskQueryError`` when the file is not a readable virtual disk.
    """

    def query_disk(self, path: Path) -> DiskInfo:
        ...


@runtime_checkable
class DiskMerger(Protocol):
    """Merges a differencing disk into its immediate parent.

    Blocking. Raises ``MergeError`` with a human-readable cause on failure.
    """

    def merge_disk(self, source: Path, destination: Path) -> None:
        ...


@runtime_checkable
class MachineControl(Protocol):
    """Hypervisor registry and power control.

    Every method raises ``MachineControlError`` when the platform cannot be
    reached or rejects the command.
    """

    def find_machine(self, name: str) -> MachineState | None:
        ...

    def stop_machine(self, name: str) -> None:
        ...

    def start_machine(self, name: str) -> None:
        ...


__all__ = ["DiskMerger", "DiskQuery", "MachineControl"]
