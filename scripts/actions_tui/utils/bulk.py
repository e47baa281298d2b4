"""
Bulk operations over many runs or caches.

run_bulk fans one action out over a list of IDs with a small concurrency cap
(the remote API applies secondary rate limits to bursts of writes).
run_sequential is the slower, self-pacing variant used by filter-driven
cleanup.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

from actions_api import Run

_log = logging.getLogger("gha_tui.tui.bulk")

BULK_CONCURRENCY = 3
SEQUENTIAL_BATCH = 10
SEQUENTIAL_PAUSE = 2.0


@dataclass(frozen=True)
class BulkResult:
    """Aggregated outcome of a bulk operation."""
    succeeded: int
    total: int
    last_error: Exception | None = None

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    @property
    def ok(self) -> bool:
        return self.last_error is None

    def summary(self, noun: str = "completed") -> str:
        text = f"{self.succeeded}/{self.total} {noun}"
        if self.last_error is not None:
            text += f", last error: {self.last_error}"
        return text


def run_bulk(
    ids: Iterable[int],
    operation: Callable[[int], None],
    max_workers: int = BULK_CONCURRENCY,
) -> BulkResult:
    """
    Apply operation to every ID with at most max_workers in flight.

    Every ID is attempted exactly once; a failure never aborts the batch
    and nothing is rolled back.

    Args:
        ids: Target identifiers
        operation: Callable raising on failure
        max_workers: Concurrency cap

    Returns:
        BulkResult with the success count and the most recent error
    """
    ids = list(ids)
    lock = threading.Lock()
    succeeded = 0
    last_error: Exception | None = None

    def apply(target: int) -> None:
        nonlocal succeeded, last_error
        try:
            operation(target)
        except Exception as e:
            _log.debug(f"Bulk operation failed for {target}: {e}")
            with lock:
                last_error = e
            return
        with lock:
            succeeded += 1

    if ids:
        with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
            list(executor.map(apply, ids))

    _log.info(f"Bulk operation: {succeeded}/{len(ids)} succeeded")
    return BulkResult(succeeded=succeeded, total=len(ids), last_error=last_error)


def run_sequential(
    ids: Iterable[int],
    operation: Callable[[int], None],
    on_progress: Callable[[int, int], None] | None = None,
    batch_size: int = SEQUENTIAL_BATCH,
    pause: float = SEQUENTIAL_PAUSE,
    sleep: Callable[[float], None] = time.sleep,
) -> BulkResult:
    """
    Apply operation to each ID in turn, pausing after every batch_size operations.

    Args:
        ids: Target identifiers
        operation: Callable raising on failure
        on_progress: Called with (done, total) after each operation
        batch_size: Operations between pauses
        pause: Seconds to sleep at each batch boundary
        sleep: Sleep function (injectable for tests)
    """
    ids = list(ids)
    total = len(ids)
    succeeded = 0
    last_error: Exception | None = None

    for index, target in enumerate(ids, start=1):
        try:
            operation(target)
            succeeded += 1
        except Exception as e:
            _log.debug(f"Sequential operation failed for {target}: {e}")
            last_error = e
        if on_progress is not None:
            on_progress(index, total)
        if index % batch_size == 0 and index < total:
            sleep(pause)

    return BulkResult(succeeded=succeeded, total=total, last_error=last_error)


@dataclass
class CleanupFilter:
    """Client-side run filter for batch cleanup."""
    workflow_name: str = ""
    conclusion: str = ""
    branch: str = ""
    actor: str = ""
    older_than: timedelta | None = None

    @property
    def is_empty(self) -> bool:
        return not (
            self.workflow_name or self.conclusion or self.branch or self.actor or self.older_than
        )


def filter_runs(runs: Iterable[Run], cleanup: CleanupFilter, now: datetime | None = None) -> list[Run]:
    """Select runs matching every set field of the cleanup filter."""
    now = now or datetime.now(timezone.utc)
    matched = []
    for run in runs:
        if cleanup.workflow_name and run.name.lower() != cleanup.workflow_name.lower():
            continue
        if cleanup.conclusion and run.conclusion != cleanup.conclusion:
            continue
        if cleanup.branch and run.head_branch != cleanup.branch:
            continue
        if cleanup.actor and run.actor.login != cleanup.actor:
            continue
        if cleanup.older_than:
            if run.created_at is None or now - run.created_at < cleanup.older_than:
                continue
        matched.append(run)
    return matched
