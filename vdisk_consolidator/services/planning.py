"""Merge ordering for one lineage group."""

from __future__ import annotations

from collections import Counter

from vdisk_consolidator.domain.models import DiskRecord, LineageGroup, MergePlan, MergeStep
from vdisk_consolidator.logging import LoggerFactory
from vdisk_consolidator.storage.exceptions import LineageCycleError


def _newest_first(record: DiskRecord):
    return (-record.last_modified.timestamp(), str(record.path))


def plan_merges(group: LineageGroup, log=None) -> MergePlan:
    """Order the group's differencing disks for merging into their parents.

    A disk becomes eligible only once no other unmerged disk in the plan
    names it as parent, so every child is folded in before its parent is
    merged further up. Among eligible disks the most recently modified goes
    first.

    Raises:
        LineageCycleError: If no disk is eligible while some remain
    """
    log = log or LoggerFactory.for_lineage()
    members = group.member_paths
    pending = {
        record.path: record
        for record in group.differencing_members
        if record.path != group.root_path and record.parent_path in members
    }

    fan_out = Counter(record.parent_path for record in pending.values())
    for parent, children in sorted(fan_out.items()):
        if children > 1:
            log.warning(
                f"{parent.name} has {children} differencing children; "
                f"siblings merged later apply on top of earlier ones"
            )

    steps: list[MergeStep] = []
    while pending:
        referenced = {record.parent_path for record in pending.values()}
        eligible = [record for path, record in pending.items() if path not in referenced]
        if not eligible:
            raise LineageCycleError(sorted(pending))
        record = min(eligible, key=_newest_first)
        steps.append(MergeStep(source=record.path, destination=record.parent_path))
        del pending[record.path]

    plan = MergePlan(root_path=group.root_path, steps=tuple(steps))
    for index, step in enumerate(plan.steps, start=1):
        log.debug(f"Plan {group.machine_name} [{index}/{len(plan)}]: {step.format_label()}")
    return plan
