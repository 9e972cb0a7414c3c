"""Merge executor: run a merge plan step by step."""

from __future__ import annotations

import threading

from vdisk_consolidator.domain.models import MergeOutcome, MergePlan, MergeStep, OutcomeKind
from vdisk_consolidator.domain.ports import DiskMerger
from vdisk_consolidator.logging import LoggerFactory
from vdisk_consolidator.storage.exceptions import MergeCleanupWarning, MergeError

DEPENDENT_MERGE_FAILED = "dependent merge failed"


class MergeExecutor:
    """Runs merge steps in order, one at a time.

    A failed step is recorded and later steps are still attempted, except
    those that would merge away the failed step's destination: that disk is
    still the backing file of the unmerged child. The cancel event is only
    checked between steps; a merge that has started is always allowed to
    finish.
    """

    def __init__(
        self,
        merger: DiskMerger,
        *,
        cancel_event: threading.Event | None = None,
        log=None,
    ):
        self.merger = merger
        self.cancel_event = cancel_event
        self.log = log or LoggerFactory.for_merge()

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def execute(self, plan: MergePlan) -> list[MergeOutcome]:
        if plan.is_empty:
            self.log.info(f"Nothing to merge into {plan.root_path.name}")
            return [MergeOutcome(kind=OutcomeKind.SKIPPED_NO_WORK)]

        outcomes = []
        # Disks still named as backing file by an unmerged child
        pinned = set()
        total = len(plan)
        for index, step in enumerate(plan.steps, start=1):
            if self._cancelled():
                self.log.warning(
                    f"Cancelled before step {index}/{total}; "
                    f"{total - index + 1} merges not attempted"
                )
                break
            if step.source in pinned:
                self.log.error(
                    f"Skipping [{index}/{total}] {step.format_label()}: "
                    f"a merge into {step.source.name} failed"
                )
                outcome = MergeOutcome(
                    kind=OutcomeKind.ERROR, step=step, detail=DEPENDENT_MERGE_FAILED
                )
            else:
                self.log.info(f"Merging [{index}/{total}] {step.format_label()}")
                outcome = self.execute_step(step)
            if outcome.is_error:
                pinned.add(step.destination)
            outcomes.append(outcome)
        return outcomes

    def execute_step(self, step: MergeStep) -> MergeOutcome:
        try:
            self.merger.merge_disk(step.source, step.destination)
        except MergeError as error:
            self.log.error(str(error))
            return MergeOutcome(kind=OutcomeKind.ERROR, step=step, detail=error.cause)
        if step.source.exists():
            warning = MergeCleanupWarning(step.source)
            self.log.warning(f"{warning}")
            return MergeOutcome(
                kind=OutcomeKind.WARNING_NOT_DELETED, step=step, detail=str(warning)
            )
        self.log.success(f"Merged {step.format_label()}")
        return MergeOutcome(kind=OutcomeKind.SUCCESS, step=step)
