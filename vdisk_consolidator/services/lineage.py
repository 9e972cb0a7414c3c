"""Parent chain resolution and grouping of disks by root disk."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from vdisk_consolidator.domain.models import DiskRecord, DiskType, LineageGroup
from vdisk_consolidator.logging import LoggerFactory
from vdisk_consolidator.storage.exceptions import LineageCycleError


@dataclass
class Grouping:
    groups: list[LineageGroup] = field(default_factory=list)
    unresolved: dict[Path, LineageCycleError] = field(default_factory=dict)


def _resolvable_parent(
    records: Mapping[Path, DiskRecord], record: DiskRecord
) -> DiskRecord | None:
    if record.parent_path is None:
        return None
    parent = records.get(record.parent_path)
    if parent is None or parent.disk_type == DiskType.UNKNOWN:
        return None
    return parent


def resolve_root(records: Mapping[Path, DiskRecord], start: DiskRecord) -> Path:
    """Follow parent pointers from ``start`` and return the root disk path.

    The walk stops at a disk with no parent, or at the last disk whose parent
    is missing from ``records`` (deleted, moved, or unreadable).

    Raises:
        LineageCycleError: If the chain revisits a disk
    """
    chain = [start.path]
    seen = {start.path}
    current = start
    while True:
        parent = _resolvable_parent(records, current)
        if parent is None:
            return current.path
        if parent.path in seen:
            raise LineageCycleError(chain + [parent.path])
        chain.append(parent.path)
        seen.add(parent.path)
        current = parent


def group_by_root(records: Mapping[Path, DiskRecord], log=None) -> Grouping:
    """Partition records into lineage groups keyed by root disk.

    Groups are sorted by root path. Records caught in a parent cycle are
    returned in ``unresolved`` instead of a group.
    """
    log = log or LoggerFactory.for_lineage()
    members: dict[Path, list[DiskRecord]] = {}
    grouping = Grouping()
    for path in sorted(records):
        record = records[path]
        if record.disk_type == DiskType.UNKNOWN:
            continue
        if record.has_parent and _resolvable_parent(records, record) is None:
            log.warning(
                f"Parent of {record.path} does not resolve ({record.parent_path}); "
                f"treating it as a chain root"
            )
        try:
            root = resolve_root(records, record)
        except LineageCycleError as error:
            log.error(str(error))
            grouping.unresolved[path] = error
            continue
        log.debug(f"{record.path.name} -> root {root.name}")
        members.setdefault(root, []).append(record)

    for root in sorted(members):
        grouping.groups.append(
            LineageGroup(root_path=root, members=tuple(members[root]))
        )
    return grouping
