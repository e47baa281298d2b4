"""
Tests for Metrics tab statistics and the formatting helpers.
"""

import sys
from datetime import timedelta
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

from actions_api import Actor
from actions_tui.utils.formatting import (
    format_age,
    format_bytes,
    format_duration,
    format_progress_bar,
    pad_string,
    truncate_string,
)
from actions_tui.utils.metrics import (
    TimeWindow,
    compute_metrics,
    percentile,
    windows_for_retention,
)
from fakes import NOW, make_job, make_run


class TestWindowsForRetention:
    """Tests for retention-limited time windows."""

    def test_long_retention(self):
        """90 days of retention offers every candidate window."""
        assert [w.label for w in windows_for_retention(90)] == ["24h", "7d", "30d", "90d"]

    def test_short_retention_appended(self):
        """A retention between candidates is added as its own window."""
        windows = windows_for_retention(14)
        assert [w.label for w in windows] == ["24h", "7d", "14d"]
        assert windows[-1] == TimeWindow("14d", 14)

    def test_unknown_retention(self):
        """Zero or unknown retention falls back to the defaults."""
        assert [w.days for w in windows_for_retention(0)] == [1, 7, 30]


class TestPercentile:
    """Tests for interpolated percentiles."""

    def test_median(self):
        assert percentile([1.0, 2.0, 3.0, 4.0], 50) == pytest.approx(2.5)

    def test_p95(self):
        assert percentile([float(i) for i in range(101)], 95) == pytest.approx(95.0)

    def test_empty(self):
        assert percentile([], 50) == 0.0


class TestComputeMetrics:
    """Tests for aggregation over runs and jobs."""

    def test_counts_and_rates(self):
        """Outcome counts and percentages are taken over the sample."""
        runs = [
            make_run(1, conclusion="success"),
            make_run(2, conclusion="failure", name="Deploy"),
            make_run(3, conclusion="failure", name="Deploy", run_attempt=2),
            make_run(4, conclusion="cancelled"),
        ]
        jobs = [
            make_job(10, "deploy", conclusion="failure"),
            make_job(11, "deploy", conclusion="failure"),
            make_job(12, "build"),
        ]
        m = compute_metrics(runs, jobs, total_count=10)
        assert m.total_runs == 10
        assert m.sampled_runs == 4
        assert (m.success_count, m.failure_count, m.cancel_count) == (1, 2, 1)
        assert m.success_rate == pytest.approx(25.0)
        assert m.failure_rate == pytest.approx(50.0)
        assert m.retry_rate == pytest.approx(25.0)
        assert m.top_failing_workflows == [("Deploy", 2, 2)]
        assert m.top_failing_jobs == [("deploy", 2)]
        assert m.total_jobs == 3 and m.job_failure_count == 2

    def test_durations_and_queue(self):
        """Durations and queue times come from run timestamps."""
        runs = [
            make_run(1, created_at=NOW, run_started_at=NOW + timedelta(seconds=10),
                     updated_at=NOW + timedelta(seconds=70)),
            make_run(2, created_at=NOW, run_started_at=NOW + timedelta(seconds=30),
                     updated_at=NOW + timedelta(seconds=150)),
        ]
        m = compute_metrics(runs, [], total_count=2)
        assert m.mean_duration == pytest.approx(90.0)
        assert m.median_duration == pytest.approx(90.0)
        assert m.median_queue_time == pytest.approx(20.0)

    def test_breakdowns(self):
        """Runs are ranked by event, actor and branch."""
        runs = [
            make_run(1, event="push", actor=Actor(login="a")),
            make_run(2, event="push", actor=Actor(login="b")),
            make_run(3, event="schedule", actor=Actor(login="a"), head_branch="dev"),
        ]
        m = compute_metrics(runs, [], total_count=3)
        assert m.runs_by_event == [("push", 2), ("schedule", 1)]
        assert m.runs_by_actor[0] == ("a", 2)
        assert m.runs_by_branch[0] == ("main", 2)

    def test_no_runs(self):
        """An empty sample produces zeroed metrics."""
        m = compute_metrics([], [], total_count=0)
        assert m.sampled_runs == 0 and m.success_rate == 0.0


class TestFormatting:
    """Tests for the display formatting helpers."""

    def test_format_duration(self):
        assert format_duration(9) == "9s"
        assert format_duration(253) == "4m13s"
        assert format_duration(timedelta(hours=1, minutes=2)) == "1h02m"
        assert format_duration(0) == "--"

    def test_format_age(self):
        assert format_age(None) == "--"
        assert format_age(NOW - timedelta(seconds=5), NOW) == "just now"
        assert format_age(NOW - timedelta(minutes=5), NOW) == "5m ago"
        assert format_age(NOW - timedelta(hours=3), NOW) == "3h ago"
        assert format_age(NOW - timedelta(days=2), NOW) == "2d ago"

    def test_format_bytes(self):
        assert format_bytes(512) == "512 B"
        assert format_bytes(2048) == "2.0 KB"
        assert format_bytes(3 * 1024 * 1024) == "3.0 MB"

    def test_progress_bar(self):
        assert format_progress_bar(50, width=4) == "██░░"
        assert format_progress_bar(150, width=2) == "██"

    def test_truncate_and_pad(self):
        assert truncate_string("abcdefgh", 6) == "abc..."
        assert truncate_string("abc", 6) == "abc"
        assert pad_string("ab", 4) == "ab  "
        assert pad_string("ab", 4, align="right") == "  ab"
        assert pad_string("abcdef", 3) == "abc"
