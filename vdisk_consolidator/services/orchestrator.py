"""Run orchestrator: discover, group, stop, plan and merge, one group at a time."""

from __future__ import annotations

import threading
from dataclasses import replace
from pathlib import Path
from typing import Iterable

from vdisk_consolidator.config.settings import (
    DEFAULT_DISK_EXTENSIONS,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_STOP_TIMEOUT,
)
from vdisk_consolidator.domain.models import (
    GroupResult,
    GroupStatus,
    LineageGroup,
    OutcomeKind,
    RunReport,
    StopResult,
)
from vdisk_consolidator.domain.ports import DiskMerger, DiskQuery, MachineControl
from vdisk_consolidator.logging import LoggerFactory
from vdisk_consolidator.storage.discovery import list_disk_files
from vdisk_consolidator.storage.exceptions import (
    LineageCycleError,
    MachineControlError,
    NoDisksFoundError,
)

from .inventory import build_inventory
from .lineage import group_by_root
from .machines import MachineStateController
from .merging import MergeExecutor
from .planning import plan_merges


class RunOrchestrator:
    """Consolidates every disk chain found under a directory.

    Groups are processed strictly one after another in root path order.
    Nothing that goes wrong inside a group stops the run; only an empty
    initial discovery does.
    """

    def __init__(
        self,
        disk_query: DiskQuery,
        merger: DiskMerger,
        machine_control: MachineControl,
        *,
        extensions: Iterable[str] = DEFAULT_DISK_EXTENSIONS,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        stop_timeout: float | None = DEFAULT_STOP_TIMEOUT,
        dry_run: bool = False,
        restart_machines: bool = False,
        cancel_event: threading.Event | None = None,
        log=None,
    ):
        self.disk_query = disk_query
        self.extensions = tuple(extensions)
        self.dry_run = dry_run
        self.restart_machines = restart_machines
        self.cancel_event = cancel_event or threading.Event()
        self.log = log or LoggerFactory.for_run()
        self.machines = MachineStateController(
            machine_control,
            poll_interval=poll_interval,
            stop_timeout=stop_timeout,
            log=self.log.bind(source="machine"),
        )
        self.executor = MergeExecutor(
            merger,
            cancel_event=self.cancel_event,
            log=self.log.bind(source="merge"),
        )

    def run(self, root_dir: Path) -> RunReport:
        """Consolidate all chains under ``root_dir``.

        Raises:
            NoDisksFoundError: If no disk files were discovered at all
        """
        root_dir = Path(root_dir)
        self.log.info(
            f"Run started on {root_dir}" + (" (dry run)" if self.dry_run else "")
        )
        paths = list_disk_files(root_dir, self.extensions)
        if not paths:
            error = NoDisksFoundError(root_dir, self.extensions)
            self.log.critical(str(error))
            raise error
        self.log.info(f"Discovered {len(paths)} disk files")

        inventory = build_inventory(
            paths, self.disk_query, log=self.log.bind(source="inventory")
        )
        grouping = group_by_root(inventory.queryable, log=self.log.bind(source="lineage"))
        report = RunReport(
            failed_disks={path: str(error) for path, error in inventory.failures.items()},
            unresolved_disks={path: str(error) for path, error in grouping.unresolved.items()},
        )
        self.log.info(f"Found {len(grouping.groups)} disk chains")

        for group in grouping.groups:
            if self.cancel_event.is_set():
                result = GroupResult(
                    root_path=group.root_path,
                    machine_name=group.machine_name,
                    status=GroupStatus.CANCELLED,
                )
            else:
                result = self.consolidate_group(group)
            if result.status == GroupStatus.CANCELLED:
                report.cancelled = True
            report.groups.append(result)
            self._log_result(result)

        self.log.info(f"Run finished: {report.format_summary()}")
        return report

    def consolidate_group(self, group: LineageGroup) -> GroupResult:
        """Stop the group's machine, then merge its chain into the root."""
        name = group.machine_name
        self.log.info(
            f"Group {name}: root {group.root_path}, {len(group.members)} disks"
        )
        if self.dry_run:
            return self._plan_only(group)

        try:
            stop_result = self.machines.ensure_stopped(name)
        except MachineControlError as error:
            self.log.error(f"Group {name} aborted: {error}")
            return GroupResult(
                root_path=group.root_path,
                machine_name=name,
                status=GroupStatus.ERROR,
                error=str(error),
            )

        try:
            plan = plan_merges(group, log=self.log.bind(source="lineage"))
        except LineageCycleError as error:
            self.log.error(f"Group {name} aborted: {error}")
            result = GroupResult(
                root_path=group.root_path,
                machine_name=name,
                status=GroupStatus.ERROR,
                stop_result=stop_result,
                error=str(error),
            )
            return self._maybe_restart(result)

        if plan.is_empty:
            self.log.info(f"Group {name}: no differencing disks, skipping")
        outcomes = self.executor.execute(plan)
        cancelled = not plan.is_empty and len(outcomes) < len(plan)
        result = GroupResult.from_outcomes(
            group, stop_result, plan, outcomes, cancelled=cancelled
        )
        return self._maybe_restart(result)

    def _plan_only(self, group: LineageGroup) -> GroupResult:
        try:
            plan = plan_merges(group, log=self.log.bind(source="lineage"))
        except LineageCycleError as error:
            self.log.error(f"Group {group.machine_name}: {error}")
            return GroupResult(
                root_path=group.root_path,
                machine_name=group.machine_name,
                status=GroupStatus.ERROR,
                error=str(error),
            )
        for index, step in enumerate(plan.steps, start=1):
            self.log.info(f"Would merge [{index}/{len(plan)}] {step.format_label()}")
        return GroupResult(
            root_path=group.root_path,
            machine_name=group.machine_name,
            status=GroupStatus.PLANNED if not plan.is_empty else GroupStatus.SKIPPED,
            plan=plan,
        )

    def _maybe_restart(self, result: GroupResult) -> GroupResult:
        if not self.restart_machines or result.stop_result != StopResult.STOPPED_NOW:
            return result
        if result.status == GroupStatus.CANCELLED:
            return result
        if result.count(OutcomeKind.ERROR):
            self.log.warning(
                f"Leaving {result.machine_name} stopped: some merges failed"
            )
            return result
        try:
            self.machines.restart(result.machine_name)
        except MachineControlError as error:
            self.log.error(f"Restart failed: {error}")
            return replace(result, error=str(error))
        return result

    def _log_result(self, result: GroupResult) -> None:
        message = (
            f"Group {result.machine_name}: {result.status.value} "
            f"({result.count(OutcomeKind.SUCCESS)} merged, "
            f"{result.count(OutcomeKind.WARNING_NOT_DELETED)} not deleted, "
            f"{result.count(OutcomeKind.ERROR)} failed)"
        )
        if result.status in (GroupStatus.ERROR, GroupStatus.PARTIAL):
            self.log.warning(message)
        else:
            self.log.info(message)
