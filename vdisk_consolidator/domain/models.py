"""Domain model for virtual disk consolidation.

Records describe what was discovered on disk, groups describe which records
belong to one machine, and plans/outcomes/results describe what a run did
with each group. All of them are plain frozen dataclasses so every stage can
share them without copying.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path


# ==============================================================================
# Disk Domain
# ==============================================================================


class DiskType(Enum):
    """Kind of virtual disk file."""

    BASE = "base"  # No parent, consolidation target
    DIFFERENCING = "differencing"  # Stores changes relative to a parent
    UNKNOWN = "unknown"  # Metadata query failed


@dataclass(frozen=True)
class DiskInfo:
    """Metadata returned by a disk query for one file."""

    disk_type: DiskType
    parent_path: Path | None = None


@dataclass(frozen=True)
class DiskRecord:
    """A virtual disk file discovered during inventory.

    ``path`` is the identity key; two records with the same path describe
    the same disk.
    """

    path: Path
    disk_type: DiskType
    last_modified: datetime
    parent_path: Path | None = None

    @property
    def is_differencing(self) -> bool:
        return self.disk_type == DiskType.DIFFERENCING

    @property
    def has_parent(self) -> bool:
        return self.parent_path is not None

    def format_label(self) -> str:
        """Format a human-readable label for log lines.

        Returns: e.g., "web-01-snap1.qcow2 -> web-01.qcow2" or "web-01.qcow2 (base)"
        """
        if self.parent_path is None:
            return f"{self.path.name} ({self.disk_type.value})"
        return f"{self.path.name} -> {self.parent_path.name}"


@dataclass(frozen=True)
class LineageGroup:
    """All records whose parent chain terminates at ``root_path``."""

    root_path: Path
    members: tuple[DiskRecord, ...]

    @property
    def machine_name(self) -> str:
        """Machine name inferred from the root disk file name."""
        return machine_name_for(self.root_path)

    @property
    def member_paths(self) -> frozenset[Path]:
        return frozenset(record.path for record in self.members)

    @property
    def differencing_members(self) -> tuple[DiskRecord, ...]:
        return tuple(record for record in self.members if record.is_differencing)


def machine_name_for(root_path: Path) -> str:
    """Return the root disk file name without its extension."""
    return root_path.stem


# ==============================================================================
# Merge Domain
# ==============================================================================


@dataclass(frozen=True)
class MergeStep:
    """Merge ``source`` into its immediate parent ``destination``."""

    source: Path
    destination: Path

    def format_label(self) -> str:
        return f"{self.source.name} -> {self.destination.name}"


@dataclass(frozen=True)
class MergePlan:
    """Ordered merge steps for one lineage group."""

    root_path: Path
    steps: tuple[MergeStep, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.steps

    def __iter__(self):
        return iter(self.steps)

    def __len__(self) -> int:
        return len(self.steps)


class OutcomeKind(Enum):
    """Result of one attempted merge step."""

    SUCCESS = "success"
    SKIPPED_NO_WORK = "skipped"
    WARNING_NOT_DELETED = "warning_not_deleted"
    ERROR = "error"


@dataclass(frozen=True)
class MergeOutcome:
    """What happened to one merge step (or to a group with no steps)."""

    kind: OutcomeKind
    step: MergeStep | None = None
    detail: str = ""

    @property
    def is_error(self) -> bool:
        return self.kind == OutcomeKind.ERROR


# ==============================================================================
# Machine Domain
# ==============================================================================


class MachineState(Enum):
    """Power state reported by the hypervisor."""

    RUNNING = "running"
    OFF = "off"
    OTHER = "other"  # paused, in shutdown, crashed, ...


class StopResult(Enum):
    """What the machine state controller had to do before merging."""

    NOT_FOUND = "not_found"  # No such machine, merge disks only
    ALREADY_STOPPED = "already_stopped"
    STOPPED_NOW = "stopped_now"


# ==============================================================================
# Run Results
# ==============================================================================


class GroupStatus(Enum):
    """Aggregate status of one lineage group in a run."""

    SUCCESS = "success"  # Every step merged and cleaned up
    PARTIAL = "partial"  # Some steps errored or left files behind
    ERROR = "error"  # Group aborted or every step failed
    SKIPPED = "skipped"  # No differencing disks
    CANCELLED = "cancelled"  # Cancel signal seen before the group finished
    PLANNED = "planned"  # Dry run, nothing executed


@dataclass(frozen=True)
class GroupResult:
    """Inspectable result for one lineage group."""

    root_path: Path
    machine_name: str
    status: GroupStatus
    stop_result: StopResult | None = None
    plan: MergePlan | None = None
    outcomes: tuple[MergeOutcome, ...] = ()
    error: str | None = None

    @classmethod
    def from_outcomes(
        cls,
        group: LineageGroup,
        stop_result: StopResult | None,
        plan: MergePlan,
        outcomes: list[MergeOutcome],
        cancelled: bool = False,
    ) -> GroupResult:
        """Derive the group status from its merge outcomes."""
        kinds = [outcome.kind for outcome in outcomes]
        if cancelled:
            status = GroupStatus.CANCELLED
        elif kinds == [OutcomeKind.SKIPPED_NO_WORK]:
            status = GroupStatus.SKIPPED
        elif kinds and all(kind == OutcomeKind.ERROR for kind in kinds):
            status = GroupStatus.ERROR
        elif all(kind == OutcomeKind.SUCCESS for kind in kinds):
            status = GroupStatus.SUCCESS
        else:
            status = GroupStatus.PARTIAL
        return cls(
            root_path=group.root_path,
            machine_name=group.machine_name,
            status=status,
            stop_result=stop_result,
            plan=plan,
            outcomes=tuple(outcomes),
        )

    def count(self, kind: OutcomeKind) -> int:
        return sum(1 for outcome in self.outcomes if outcome.kind == kind)


@dataclass
class RunReport:
    """Everything one consolidation run produced."""

    groups: list[GroupResult] = field(default_factory=list)
    failed_disks: dict[Path, str] = field(default_factory=dict)
    unresolved_disks: dict[Path, str] = field(default_factory=dict)
    cancelled: bool = False

    def count(self, status: GroupStatus) -> int:
        return sum(1 for group in self.groups if group.status == status)

    def format_summary(self) -> str:
        """Format a one-line summary, e.g. "3 groups: 2 success, 1 skipped"."""
        parts = [
            f"{self.count(status)} {status.value}"
            for status in GroupStatus
            if self.count(status)
        ]
        summary = f"{len(self.groups)} groups"
        if parts:
            summary += ": " + ", ".join(parts)
        if self.failed_disks:
            summary += f"; {len(self.failed_disks)} unreadable disks"
        if self.unresolved_disks:
            summary += f"; {len(self.unresolved_disks)} disks in parent cycles"
        return summary
