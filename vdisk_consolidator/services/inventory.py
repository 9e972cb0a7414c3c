"""Disk inventory: one DiskRecord per discovered file."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from vdisk_consolidator.domain.models import DiskRecord, DiskType
from vdisk_consolidator.domain.ports import DiskQuery
from vdisk_consolidator.logging import LoggerFactory
from vdisk_consolidator.storage.discovery import get_last_modified
from vdisk_consolidator.storage.exceptions import DiskQueryError

_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


@dataclass
class Inventory:
    records: dict[Path, DiskRecord] = field(default_factory=dict)
    failures: dict[Path, DiskQueryError] = field(default_factory=dict)

    @property
    def queryable(self) -> dict[Path, DiskRecord]:
        """Records with known metadata, the input to lineage resolution."""
        return {
            path: record
            for path, record in self.records.items()
            if record.disk_type != DiskType.UNKNOWN
        }

    def __len__(self) -> int:
        return len(self.records)


def _last_modified(path: Path) -> datetime:
    try:
        return get_last_modified(path)
    except OSError:
        return _EPOCH


def build_inventory(paths: Iterable[Path], disk_query: DiskQuery, log=None) -> Inventory:
    """Query every path and collect the records.

    A failing query never stops the inventory: the disk is kept as an
    UNKNOWN record, its error is stored in ``failures`` and a warning is
    logged.
    """
    log = log or LoggerFactory.for_inventory()
    inventory = Inventory()
    for path in paths:
        path = Path(path)
        try:
            info = disk_query.query_disk(path)
        except DiskQueryError as error:
            log.warning(f"Skipping unreadable disk: {error}")
            inventory.failures[path] = error
            inventory.records[path] = DiskRecord(
                path=path,
                disk_type=DiskType.UNKNOWN,
                last_modified=_last_modified(path),
            )
            continue
        record = DiskRecord(
            path=path,
            disk_type=info.disk_type,
            last_modified=_last_modified(path),
            parent_path=info.parent_path,
        )
        inventory.records[path] = record
        log.debug(f"Found {record.format_label()}")
    log.info(
        f"Inventory: {len(inventory.queryable)} disks readable, "
        f"{len(inventory.failures)} unreadable"
    )
    return inventory
