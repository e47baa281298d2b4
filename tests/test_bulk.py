"""
Tests for bulk and sequential operations and the cleanup filter.
"""

import sys
import threading
from datetime import timedelta
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

from actions_api import Actor
from actions_tui.utils.bulk import (
    CleanupFilter,
    filter_runs,
    run_bulk,
    run_sequential,
)
from fakes import NOW, make_run


class TestRunBulk:
    """Tests for the concurrency-capped executor."""

    def test_every_id_attempted_once(self):
        """Failures never abort the batch and each ID runs exactly once."""
        seen = []
        lock = threading.Lock()

        def op(target):
            with lock:
                seen.append(target)
            if target % 2:
                raise RuntimeError(f"boom {target}")

        result = run_bulk(range(10), op)
        assert sorted(seen) == list(range(10))
        assert result.succeeded == 5
        assert result.total == 10
        assert result.failed == 5
        assert not result.ok
        assert "boom" in str(result.last_error)

    def test_partial_failure_summary(self):
        """IDs 2 and 4 failing out of five reports 3/5 with the last error."""
        def op(target):
            if target in (2, 4):
                raise RuntimeError(f"cannot delete {target}")

        result = run_bulk([1, 2, 3, 4, 5], op)
        assert (result.succeeded, result.total) == (3, 5)
        assert result.last_error is not None
        assert not result.ok
        assert result.summary().startswith("3/5 completed")

    def test_concurrency_cap(self):
        """No more than max_workers operations run at once."""
        active = 0
        peak = 0
        lock = threading.Lock()
        gate = threading.Event()

        def op(target):
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            gate.wait(0.05)
            with lock:
                active -= 1

        run_bulk(range(12), op, max_workers=3)
        assert peak <= 3

    def test_summary(self):
        """Summary reports succeeded/total and the last error."""
        result = run_bulk([1, 2], lambda t: None)
        assert result.summary() == "2/2 completed"
        assert result.ok

    def test_empty(self):
        """An empty list yields a zero result."""
        result = run_bulk([], lambda t: None)
        assert result.total == 0 and result.succeeded == 0


class TestRunSequential:
    """Tests for the self-pacing sequential variant."""

    def test_pauses_every_batch(self):
        """A pause follows every full batch except the last operation."""
        sleeps = []
        progress = []
        result = run_sequential(
            range(25), lambda t: None,
            on_progress=lambda done, total: progress.append((done, total)),
            sleep=sleeps.append,
        )
        assert result.succeeded == 25
        assert sleeps == [2.0, 2.0]
        assert progress[-1] == (25, 25)

    def test_no_pause_after_exact_batch(self):
        """Exactly one batch finishes without sleeping."""
        sleeps = []
        run_sequential(range(10), lambda t: None, sleep=sleeps.append)
        assert sleeps == []

    def test_records_errors(self):
        """Errors are counted and the last one kept."""
        def op(target):
            if target == 3:
                raise ValueError("bad")

        result = run_sequential(range(5), op, sleep=lambda s: None)
        assert result.succeeded == 4
        assert isinstance(result.last_error, ValueError)


class TestFilterRuns:
    """Tests for client-side cleanup filtering."""

    def test_workflow_name_case_insensitive(self):
        """Workflow names match regardless of case."""
        runs = [make_run(1, name="CI"), make_run(2, name="Deploy")]
        matched = filter_runs(runs, CleanupFilter(workflow_name="ci"), now=NOW)
        assert [r.id for r in matched] == [1]

    def test_all_fields_must_match(self):
        """Every set field narrows the selection."""
        runs = [
            make_run(1, conclusion="failure", head_branch="main"),
            make_run(2, conclusion="failure", head_branch="dev"),
            make_run(3, conclusion="success", head_branch="main"),
            make_run(4, conclusion="failure", head_branch="main", actor=Actor(login="bot")),
        ]
        cleanup = CleanupFilter(conclusion="failure", branch="main", actor="octocat")
        assert [r.id for r in filter_runs(runs, cleanup, now=NOW)] == [1]

    def test_older_than(self):
        """Only runs created before now minus the age are selected."""
        runs = [
            make_run(1, created_at=NOW - timedelta(days=40)),
            make_run(2, created_at=NOW - timedelta(days=2)),
            make_run(3, created_at=None),
        ]
        cleanup = CleanupFilter(older_than=timedelta(days=30))
        assert [r.id for r in filter_runs(runs, cleanup, now=NOW)] == [1]

    def test_is_empty(self):
        """A filter with no fields set reports empty."""
        assert CleanupFilter().is_empty
        assert not CleanupFilter(branch="main").is_empty
