"""
Tests for per-attempt log fetching and multi-attempt merging.
"""

import sys
from datetime import timedelta
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

from actions_api import NotFoundError
from actions_tui.utils.logcache import LogCache
from actions_tui.utils.merge import (
    LogsUnavailableError,
    fetch_attempt_logs,
    fetch_merged_logs,
    merge_attempt_logs,
)
from fakes import FakeClient, make_run, make_zip


@pytest.fixture
def cache(tmp_path):
    return LogCache(tmp_path / "logs", max_size=10 * 1024 * 1024, ttl=timedelta(hours=24))


class TestMergeAttemptLogs:
    """Tests for the pure merge rule."""

    def test_longer_later_attempt_wins(self):
        """A strictly longer log from a later attempt replaces the earlier one."""
        merged = merge_attempt_logs([{"build": "short"}, {"build": "much longer"}])
        assert merged == {"build": "much longer"}

    def test_stub_does_not_clobber(self):
        """A short stub in a later attempt keeps the earlier real log."""
        merged = merge_attempt_logs([{"build": "real log output"}, {"build": "stub"}])
        assert merged == {"build": "real log output"}

    def test_equal_length_keeps_earlier(self):
        """Equal lengths keep the earlier attempt."""
        merged = merge_attempt_logs([{"build": "aaaa"}, {"build": "bbbb"}])
        assert merged == {"build": "aaaa"}

    def test_missing_slots_skipped(self):
        """Failed attempts (None) and empty maps contribute nothing."""
        merged = merge_attempt_logs([None, {}, {"test": "ok"}])
        assert merged == {"test": "ok"}

    def test_union_of_jobs(self):
        """Jobs present in any attempt appear in the result."""
        merged = merge_attempt_logs([{"a": "1"}, {"b": "2"}])
        assert merged == {"a": "1", "b": "2"}

    def test_empty_first_content_kept(self):
        """A job whose only content is empty still appears."""
        assert merge_attempt_logs([{"build": ""}]) == {"build": ""}
        assert merge_attempt_logs([{"build": ""}, {"build": "real"}]) == {"build": "real"}
        assert merge_attempt_logs([{"build": "real"}, {"build": ""}]) == {"build": "real"}


class TestFetchAttemptLogs:
    """Tests for cache-first single-attempt fetching."""

    def test_miss_downloads_and_stores(self, cache):
        """A miss downloads the archive once and populates the cache."""
        run = make_run(1)
        client = FakeClient(runs=[run], archives={(1, 1): make_zip({"0_build.txt": "B"})})
        assert fetch_attempt_logs(client, cache, run, 1) == {"build": "B"}
        assert cache.has_run(1, 1)
        assert cache.read_meta(1, 1).workflow_name == "CI"

        # Second call is served from disk
        assert fetch_attempt_logs(client, cache, run, 1) == {"build": "B"}
        assert [c for c in client.calls if c[0] == "download"] == [("download", 1, 1)]

    def test_download_error_propagates(self, cache):
        """Network failures are raised to the caller."""
        run = make_run(2)
        client = FakeClient(runs=[run])
        with pytest.raises(NotFoundError):
            fetch_attempt_logs(client, cache, run, 1)


class TestFetchMergedLogs:
    """Tests for concurrent multi-attempt merging."""

    def test_merges_all_attempts(self, cache):
        """Every attempt is fetched and merged by length."""
        run = make_run(3, run_attempt=2)
        client = FakeClient(runs=[run], archives={
            (3, 1): make_zip({"0_build.txt": "full build log", "1_test.txt": "t1"}),
            (3, 2): make_zip({"0_build.txt": "stub", "1_test.txt": "test rerun log"}),
        })
        merged = fetch_merged_logs(client, cache, run)
        assert merged == {"build": "full build log", "test": "test rerun log"}

    def test_old_attempt_failure_tolerated(self, cache):
        """A missing earlier attempt does not fail the merge."""
        run = make_run(4, run_attempt=2)
        client = FakeClient(runs=[run], archives={(4, 2): make_zip({"0_a.txt": "x"})})
        assert fetch_merged_logs(client, cache, run) == {"a": "x"}

    @pytest.mark.parametrize("attempts", [2, 3, 4])
    def test_stub_never_replaces_real_log(self, cache, attempts):
        """A system-only stub in every later attempt leaves the first attempt's log."""
        real = "step A output\nstep B output\n"
        stub = "system info only\n"
        run = make_run(8, run_attempt=attempts)
        archives = {(8, 1): make_zip({"0_build.txt": real})}
        for attempt in range(2, attempts + 1):
            archives[(8, attempt)] = make_zip({"0_build.txt": stub})
        client = FakeClient(runs=[run], archives=archives)
        assert fetch_merged_logs(client, cache, run) == {"build": real}

    def test_all_empty_logs_returned(self, cache):
        """Jobs with empty logs are returned rather than reported unavailable."""
        run = make_run(9)
        client = FakeClient(runs=[run], archives={(9, 1): make_zip({"0_build.txt": ""})})
        assert fetch_merged_logs(client, cache, run) == {"build": ""}

    def test_final_error_raised_when_empty(self, cache):
        """With nothing merged the final attempt's error surfaces."""
        run = make_run(5, run_attempt=2)
        client = FakeClient(runs=[run])
        with pytest.raises(NotFoundError):
            fetch_merged_logs(client, cache, run)

    def test_empty_archive_unavailable(self, cache):
        """An empty but successful fetch raises LogsUnavailableError."""
        run = make_run(6)
        client = FakeClient(runs=[run], archives={(6, 1): make_zip({})})
        with pytest.raises(LogsUnavailableError):
            fetch_merged_logs(client, cache, run)
