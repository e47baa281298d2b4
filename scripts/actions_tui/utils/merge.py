"""
Fetch run logs for one attempt or merged across all attempts.

Every attempt is served from the log cache when a fresh entry exists;
otherwise the archive is downloaded, stored, and read back from disk.
"""

import io
import logging
import zipfile
from concurrent.futures import ThreadPoolExecutor

from actions_api import ActionsClient, Run

from .logcache import CacheError, EntryMeta, LogCache, parse_root_log_name

_log = logging.getLogger("gha_tui.tui.merge")


class LogsUnavailableError(Exception):
    """No log content could be produced for the requested run."""
    pass


def fetch_attempt_logs(client: ActionsClient, cache: LogCache, run: Run, attempt: int) -> dict[str, str]:
    """
    Load the job name -> log map for a single attempt.

    A cache failure of any kind is treated as a miss. Network errors propagate.

    Args:
        client: Actions API client
        cache: Log cache
        run: Run whose logs to load (run.run_attempt is the latest attempt)
        attempt: Attempt number, 1-based

    Returns:
        Job name -> log content (may be empty)
    """
    if cache.has_run(run.id, attempt):
        try:
            logs = cache.get_all_job_logs(run.id, attempt)
            if logs:
                _log.debug(f"Cache hit: run {run.id} attempt {attempt}")
                return logs
        except CacheError as e:
            _log.debug(f"Cache read failed, refetching: {e}")

    _log.debug(f"Cache miss: run {run.id} attempt {attempt}")
    if attempt == run.run_attempt:
        archive = client.download_run_logs(run.id)
    else:
        archive = client.download_run_attempt_logs(run.id, attempt)
    data = archive.read()

    try:
        cache.store_run_logs(run.id, attempt, data)
        cache.write_meta(EntryMeta.for_run(run, attempt))
        return cache.get_all_job_logs(run.id, attempt)
    except CacheError as e:
        # Serve the download even when the disk refuses it
        _log.debug(f"Cache store failed, reading archive in memory: {e}")
        return _read_archive(data)


def _read_archive(data: bytes) -> dict[str, str]:
    flat: dict[str, str] = {}
    nested: dict[str, list[tuple[str, str]]] = {}
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            for info in sorted(zf.infolist(), key=lambda i: i.filename):
                if info.is_dir():
                    continue
                text = zf.read(info).decode("utf-8", errors="replace")
                head, sep, tail = info.filename.partition("/")
                if not sep:
                    if head.endswith(".txt"):
                        flat[parse_root_log_name(head)] = text
                elif "/" not in tail:
                    nested.setdefault(head, []).append((tail, text))
    except zipfile.BadZipFile:
        return {}
    if flat:
        return flat
    return {
        job: "".join(f"=== {name} ===\n{text}\n" for name, text in steps)
        for job, steps in nested.items()
    }


def merge_attempt_logs(slots: list[dict[str, str] | None]) -> dict[str, str]:
    """
    Merge per-attempt maps in ascending attempt order.

    A later attempt replaces a job's content only when strictly longer, so a
    short stub emitted for a job that did not re-run never clobbers the real
    log from an earlier attempt. Equal lengths keep the earlier attempt. The
    first content seen for a job is always taken, even when empty.
    """
    merged: dict[str, str] = {}
    for logs in slots:
        if not logs:
            continue
        for job_name, content in logs.items():
            if job_name not in merged or len(content) > len(merged[job_name]):
                merged[job_name] = content
    return merged


def fetch_merged_logs(client: ActionsClient, cache: LogCache, run: Run) -> dict[str, str]:
    """
    Fetch every attempt 1..run.run_attempt concurrently and merge them.

    Failures on non-final attempts are tolerated (older artifacts may be gone
    upstream). A failure on the final attempt is only raised when the merged
    result is empty.

    Raises:
        Exception: The final attempt's error, when nothing merged
        LogsUnavailableError: When nothing merged and no error was recorded
    """
    attempts = max(run.run_attempt, 1)
    slots: list[dict[str, str] | None] = [None] * attempts
    final_error: Exception | None = None

    def fetch(index: int) -> None:
        slots[index] = fetch_attempt_logs(client, cache, run, index + 1)

    with ThreadPoolExecutor(max_workers=attempts) as executor:
        futures = [executor.submit(fetch, i) for i in range(attempts)]
        for index, future in enumerate(futures):
            try:
                future.result()
            except Exception as e:
                _log.debug(f"Attempt {index + 1} of run {run.id} failed: {e}")
                if index == attempts - 1:
                    final_error = e

    merged = merge_attempt_logs(slots)
    if not merged:
        if final_error is not None:
            raise final_error
        raise LogsUnavailableError("no logs available")
    return merged
