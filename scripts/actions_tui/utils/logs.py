"""
Pure helpers for locating and presenting job logs.

These functions don't depend on Textual or any UI framework.
"""

from datetime import datetime, timezone

from actions_api.models import CONCLUSION_FAILURE, STATUS_IN_PROGRESS, STATUS_QUEUED, Job

from .status import get_status_symbol

# Runner/system metadata lines that appear in stub logs for jobs that
# did not run in a later attempt.
_SYSTEM_MARKERS = (
    "Evaluating",
    "Expanded:",
    "Result:",
    "Waiting for",
    "Requested labels:",
    "Job defined at:",
    "Job is about to start",
    "runner",
)


def find_job_log(logs: dict[str, str], job_name: str) -> str | None:
    """
    Look up a job's log in a job name -> content map.

    Two phases: an exact key match, then a linear scan accepting a key that
    contains the job name or is contained in it. Archive entry names drift
    from API job names (truncation, matrix suffixes), so the second phase
    tolerates that drift; it is not a general fuzzy matcher.

    Returns:
        The log content, or None when nothing matches
    """
    if job_name in logs:
        return logs[job_name]
    if not job_name:
        return None
    for key, content in logs.items():
        if key and (job_name in key or key in job_name):
            return content
    return None


def is_system_stub(content: str) -> bool:
    """True if the log holds only runner/system metadata and no step output."""
    trimmed = content.strip()
    if not trimmed:
        return True

    header = "=== system.txt ==="
    if trimmed.startswith(header):
        return "=== " not in trimmed[len(header):]

    lines = trimmed.split("\n")
    if len(lines) >= 15:
        return False
    for line in lines:
        line = line.strip()
        if not line or line.startswith("=== "):
            continue
        if not any(marker in line for marker in _SYSTEM_MARKERS):
            return False
    return True


def first_failed_step_name(job: Job | None) -> str:
    if job is None:
        return ""
    for step in job.steps:
        if step.conclusion == CONCLUSION_FAILURE:
            return step.name
    return ""


def find_failed_step_line(content: str, step_name: str) -> int:
    """
    Find the 1-based line where a failed step's output starts.

    Per-job logs mark steps with ``##[group]<step>``; cached run logs use
    ``=== N_<step>.txt ===`` delimiters. Falls back to any line mentioning the
    step. Returns 0 when not found.
    """
    if not step_name:
        return 0
    lines = content.split("\n")
    for i, line in enumerate(lines, start=1):
        if "##[group]" + step_name in line:
            return i
        if "=== " in line and step_name in line:
            return i
    for i, line in enumerate(lines, start=1):
        if step_name in line:
            return i
    return 0


def _seconds(delta) -> str:
    total = int(delta.total_seconds())
    if total < 60:
        return f"{total}s"
    minutes, secs = divmod(total, 60)
    if minutes < 60:
        return f"{minutes}m{secs}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h{minutes}m{secs}s"


def render_step_progress(job: Job, now: datetime | None = None) -> str:
    """Render a live step-by-step snapshot of an in-progress job."""
    now = now or datetime.now(timezone.utc)
    lines = ["", f"  Job: {job.name}"]
    if job.runner_name:
        lines.append(f"  Runner: {job.runner_name}")
    if job.started_at is not None:
        lines.append(f"  Elapsed: {_seconds(now - job.started_at)}")
    lines += ["", "  Steps:", ""]

    for step in job.steps:
        if step.status in (STATUS_IN_PROGRESS, STATUS_QUEUED):
            icon = get_status_symbol(step.status)
        else:
            icon = get_status_symbol(step.conclusion or step.status)
        duration = ""
        if step.started_at is not None and step.completed_at is not None:
            duration = f"  {_seconds(step.completed_at - step.started_at)}"
        elif step.started_at is not None and step.status == STATUS_IN_PROGRESS:
            duration = f"  {_seconds(now - step.started_at)}..."
        lines.append(f"  {icon} {step.name}{duration}")

    lines += ["", "  Logs will load automatically when the job completes.", ""]
    return "\n".join(lines)
