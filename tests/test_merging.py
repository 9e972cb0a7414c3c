"""Tests for the merge executor."""
import threading

import pytest

from vdisk_consolidator.domain import MergePlan, MergeStep, OutcomeKind
from vdisk_consolidator.services.merging import DEPENDENT_MERGE_FAILED, MergeExecutor


@pytest.fixture
def plan(chain_on_disk):
    c, b, a, root = (chain_on_disk[key] for key in ("c", "b", "a", "root"))
    return MergePlan(
        root_path=root,
        steps=(MergeStep(c, b), MergeStep(b, a), MergeStep(a, root)),
    )


class TestExecute:
    def test_all_steps_succeed(self, plan, merger):
        outcomes = MergeExecutor(merger).execute(plan)

        assert [outcome.kind for outcome in outcomes] == [OutcomeKind.SUCCESS] * 3
        assert merger.calls == [(step.source, step.destination) for step in plan]
        assert all(not step.source.exists() for step in plan)

    def test_empty_plan_is_skipped_without_merge_calls(self, merger, chain_on_disk):
        outcomes = MergeExecutor(merger).execute(MergePlan(root_path=chain_on_disk["root"]))

        assert [outcome.kind for outcome in outcomes] == [OutcomeKind.SKIPPED_NO_WORK]
        assert merger.calls == []

    def test_failed_step_pins_the_disks_above_it(self, plan, merger, chain_on_disk):
        merger.failures[chain_on_disk["b"]] = "Failed to get write lock"

        outcomes = MergeExecutor(merger).execute(plan)

        assert [outcome.kind for outcome in outcomes] == [
            OutcomeKind.SUCCESS,
            OutcomeKind.ERROR,
            OutcomeKind.ERROR,
        ]
        assert outcomes[1].detail == "Failed to get write lock"
        assert outcomes[1].step.source == chain_on_disk["b"]
        assert outcomes[2].detail == DEPENDENT_MERGE_FAILED
        assert len(merger.calls) == 2
        assert chain_on_disk["a"].exists()

    def test_failing_leaf_keeps_whole_chain_intact(self, plan, merger, chain_on_disk):
        """web_c still backs onto web_b, so nothing above it may be merged away."""
        merger.failures[chain_on_disk["c"]] = "Failed to get write lock"

        outcomes = MergeExecutor(merger).execute(plan)

        assert [outcome.kind for outcome in outcomes] == [OutcomeKind.ERROR] * 3
        assert [outcome.detail for outcome in outcomes[1:]] == [DEPENDENT_MERGE_FAILED] * 2
        assert merger.calls == [(chain_on_disk["c"], chain_on_disk["b"])]
        assert all(path.exists() for path in chain_on_disk.values())

    def test_independent_branch_still_merges(self, merger, disk_dir, write_disk):
        root = write_disk(disk_dir / "r.qcow2")
        x = write_disk(disk_dir / "x.qcow2")
        x1 = write_disk(disk_dir / "x1.qcow2")
        y = write_disk(disk_dir / "y.qcow2")
        branching = MergePlan(
            root_path=root,
            steps=(MergeStep(x1, x), MergeStep(y, root), MergeStep(x, root)),
        )
        merger.failures[x1] = "I/O error"

        outcomes = MergeExecutor(merger).execute(branching)

        assert [outcome.kind for outcome in outcomes] == [
            OutcomeKind.ERROR,
            OutcomeKind.SUCCESS,
            OutcomeKind.ERROR,
        ]
        assert merger.calls == [(x1, x), (y, root)]
        assert x.exists()
        assert not y.exists()

    def test_source_left_behind_is_a_warning(self, plan, merger, chain_on_disk, log_records):
        merger.keep_source.add(chain_on_disk["c"])

        outcomes = MergeExecutor(merger).execute(plan)

        assert outcomes[0].kind == OutcomeKind.WARNING_NOT_DELETED
        assert "not deleted" in outcomes[0].detail
        assert [outcome.kind for outcome in outcomes[1:]] == [OutcomeKind.SUCCESS] * 2
        assert any(
            record["level"].name == "WARNING" and "web_c.qcow2" in record["message"]
            for record in log_records
        )

    def test_cancel_between_steps(self, plan, merger):
        cancel = threading.Event()
        original = merger.merge_disk

        def merge_then_cancel(source, destination):
            original(source, destination)
            cancel.set()

        merger.merge_disk = merge_then_cancel

        outcomes = MergeExecutor(merger, cancel_event=cancel).execute(plan)

        assert [outcome.kind for outcome in outcomes] == [OutcomeKind.SUCCESS]
        assert len(merger.calls) == 1

    def test_cancel_before_start_runs_nothing(self, plan, merger):
        cancel = threading.Event()
        cancel.set()

        outcomes = MergeExecutor(merger, cancel_event=cancel).execute(plan)

        assert outcomes == []
        assert merger.calls == []
