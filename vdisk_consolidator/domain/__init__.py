"""Domain models and ports for virtual disk consolidation."""

from __future__ import annotations

from .models import (
    DiskInfo,
    DiskRecord,
    DiskType,
    GroupResult,
    GroupStatus,
    LineageGroup,
    MachineState,
    MergeOutcome,
    MergePlan,
    MergeStep,
    OutcomeKind,
    RunReport,
    StopResult,
    machine_name_for,
)
from .ports import DiskMerger, DiskQuery, MachineControl


__all__ = [
    "DiskInfo",
    "DiskMerger",
    "DiskQuery",
    "DiskRecord",
    "DiskType",
    "GroupResult",
    "GroupStatus",
    "LineageGroup",
    "MachineControl",
    "MachineState",
    "MergeOutcome",
    "MergePlan",
    "MergeStep",
    "OutcomeKind",
    "RunReport",
    "StopResult",
    "machine_name_for",
]
