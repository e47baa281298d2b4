"""
Read-only statistics for the Metrics tab.

Pure functions over already-fetched runs and jobs.
"""

import math
from collections import Counter
from dataclasses import dataclass, field

from actions_api.models import (
    CONCLUSION_CANCELLED,
    CONCLUSION_FAILURE,
    CONCLUSION_SUCCESS,
    Job,
    Run,
)


@dataclass(frozen=True)
class TimeWindow:
    label: str
    days: int


DEFAULT_WINDOWS = (TimeWindow("24h", 1), TimeWindow("7d", 7), TimeWindow("30d", 30))
_CANDIDATE_WINDOWS = DEFAULT_WINDOWS + (TimeWindow("90d", 90),)


def windows_for_retention(retention_days: int) -> list[TimeWindow]:
    """
    Time windows that fit inside the repository's log retention.

    Candidates longer than the retention are dropped; the retention itself is
    appended when it is not already one of the candidates.
    """
    if retention_days <= 0:
        return list(DEFAULT_WINDOWS)
    windows = [w for w in _CANDIDATE_WINDOWS if w.days <= retention_days]
    if not windows or windows[-1].days != retention_days:
        windows.append(TimeWindow(f"{retention_days}d", retention_days))
    return windows


def percentile(sorted_values: list[float], p: float) -> float:
    """Linear-interpolated percentile of an already sorted list."""
    if not sorted_values:
        return 0.0
    idx = p / 100 * (len(sorted_values) - 1)
    lower, upper = math.floor(idx), math.ceil(idx)
    if lower == upper:
        return sorted_values[lower]
    frac = idx - lower
    return sorted_values[lower] * (1 - frac) + sorted_values[upper] * frac


@dataclass
class Metrics:
    total_runs: int = 0
    sampled_runs: int = 0
    success_count: int = 0
    failure_count: int = 0
    cancel_count: int = 0
    success_rate: float = 0.0
    failure_rate: float = 0.0
    retry_rate: float = 0.0
    mean_duration: float = 0.0
    median_duration: float = 0.0
    p95_duration: float = 0.0
    median_queue_time: float = 0.0
    p95_queue_time: float = 0.0
    top_failing_workflows: list[tuple[str, int, int]] = field(default_factory=list)
    top_failing_jobs: list[tuple[str, int]] = field(default_factory=list)
    runs_by_event: list[tuple[str, int]] = field(default_factory=list)
    runs_by_actor: list[tuple[str, int]] = field(default_factory=list)
    runs_by_branch: list[tuple[str, int]] = field(default_factory=list)
    total_jobs: int = 0
    job_failure_count: int = 0


def compute_metrics(runs: list[Run], jobs: list[Job], total_count: int, top: int = 5) -> Metrics:
    """
    Aggregate run and job outcomes.

    Args:
        runs: Sampled runs in the window
        jobs: Jobs of (a subset of) the completed runs
        total_count: Total runs reported by the API (may exceed the sample)
        top: Length of every ranked list

    Returns:
        Metrics; rates are percentages of the sampled runs
    """
    m = Metrics(sampled_runs=len(runs), total_runs=max(total_count, len(runs)))
    if not runs:
        return m

    durations = []
    queue_times = []
    retries = 0
    wf_total: Counter = Counter()
    wf_failed: Counter = Counter()
    events: Counter = Counter()
    actors: Counter = Counter()
    branches: Counter = Counter()

    for run in runs:
        if run.conclusion == CONCLUSION_SUCCESS:
            m.success_count += 1
        elif run.conclusion == CONCLUSION_FAILURE:
            m.failure_count += 1
            wf_failed[run.name] += 1
        elif run.conclusion == CONCLUSION_CANCELLED:
            m.cancel_count += 1
        wf_total[run.name] += 1
        if run.run_attempt > 1:
            retries += 1
        seconds = run.duration.total_seconds()
        if seconds > 0:
            durations.append(seconds)
        if run.run_started_at and run.created_at:
            queued = (run.run_started_at - run.created_at).total_seconds()
            if queued >= 0:
                queue_times.append(queued)
        if run.event:
            events[run.event] += 1
        if run.actor.login:
            actors[run.actor.login] += 1
        if run.head_branch:
            branches[run.head_branch] += 1

    n = len(runs)
    m.success_rate = m.success_count / n * 100
    m.failure_rate = m.failure_count / n * 100
    m.retry_rate = retries / n * 100

    durations.sort()
    if durations:
        m.mean_duration = sum(durations) / len(durations)
        m.median_duration = percentile(durations, 50)
        m.p95_duration = percentile(durations, 95)
    queue_times.sort()
    if queue_times:
        m.median_queue_time = percentile(queue_times, 50)
        m.p95_queue_time = percentile(queue_times, 95)

    m.top_failing_workflows = [
        (name, failed, wf_total[name]) for name, failed in wf_failed.most_common(top)
    ]
    job_failures = Counter(job.name for job in jobs if job.failed)
    m.top_failing_jobs = job_failures.most_common(top)
    m.runs_by_event = events.most_common(top)
    m.runs_by_actor = actors.most_common(top)
    m.runs_by_branch = branches.most_common(top)
    m.total_jobs = len(jobs)
    m.job_failure_count = sum(job_failures.values())
    return m
