"""
In-memory stand-ins for the Actions API used across the test suite.
"""

import io
import sys
import zipfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

from actions_api import (
    ActionsCache,
    ActionsClient,
    Actor,
    CachesPage,
    Job,
    JobsPage,
    NotFoundError,
    Run,
    RunsPage,
    Step,
    Workflow,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_run(run_id: int, **kwargs) -> Run:
    defaults = dict(
        name="CI",
        display_title=f"Run {run_id}",
        status="completed",
        conclusion="success",
        workflow_id=100,
        run_number=run_id,
        run_attempt=1,
        event="push",
        head_branch="main",
        head_sha="abcdef1234567",
        actor=Actor(login="octocat"),
        created_at=NOW - timedelta(hours=1),
        run_started_at=NOW - timedelta(hours=1),
        updated_at=NOW - timedelta(minutes=50),
    )
    defaults.update(kwargs)
    return Run(id=run_id, **defaults)


def make_job(job_id: int, name: str, run_id: int = 1, **kwargs) -> Job:
    defaults = dict(
        run_id=run_id,
        status="completed",
        conclusion="success",
        started_at=NOW - timedelta(minutes=10),
        completed_at=NOW - timedelta(minutes=5),
        steps=[Step(name="Set up job", number=1, status="completed", conclusion="success")],
        runner_name="ubuntu-1",
    )
    defaults.update(kwargs)
    return Job(id=job_id, name=name, **defaults)


def make_zip(files: dict[str, str]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buf.getvalue()


class FakeClient(ActionsClient):
    """ActionsClient over plain dicts, recording every mutating call."""

    def __init__(self, runs=None, jobs=None, archives=None, workflows=None, caches=None):
        super().__init__("octo", "repo")
        self.runs: list[Run] = list(runs or [])
        self.jobs: dict[int, list[Job]] = dict(jobs or {})
        # (run_id, attempt) -> zip bytes
        self.archives: dict[tuple[int, int], bytes] = dict(archives or {})
        self.job_logs: dict[int, str] = {}
        self.workflows: list[Workflow] = list(workflows or [])
        self.caches: list[ActionsCache] = list(caches or [])
        self.retention_days = 90
        self.calls: list[tuple] = []
        self.fail_on: set[int] = set()

    def _record(self, name: str, target: int) -> None:
        self.calls.append((name, target))
        if target in self.fail_on:
            raise NotFoundError(f"{name} {target} failed", status_code=404)

    def list_runs(self, runs_filter):
        runs = self.runs
        if runs_filter.status:
            runs = [r for r in runs if r.status == runs_filter.status]
        if runs_filter.branch:
            runs = [r for r in runs if r.head_branch == runs_filter.branch]
        start = (runs_filter.page - 1) * runs_filter.per_page
        return RunsPage(runs=runs[start:start + runs_filter.per_page], total_count=len(runs))

    def get_run(self, run_id):
        for run in self.runs:
            if run.id == run_id:
                return run
        raise NotFoundError(f"run {run_id} not found", status_code=404)

    def delete_run(self, run_id):
        self._record("delete_run", run_id)
        self.runs = [r for r in self.runs if r.id != run_id]

    def cancel_run(self, run_id):
        self._record("cancel_run", run_id)

    def force_cancel_run(self, run_id):
        self._record("force_cancel_run", run_id)

    def rerun_workflow(self, run_id):
        self._record("rerun_workflow", run_id)

    def rerun_failed_jobs(self, run_id):
        self._record("rerun_failed_jobs", run_id)

    def list_jobs(self, run_id, jobs_filter=None):
        jobs = self.jobs.get(run_id, [])
        return JobsPage(jobs=list(jobs), total_count=len(jobs))

    def list_jobs_for_attempt(self, run_id, attempt, jobs_filter=None):
        jobs = [j for j in self.jobs.get(run_id, []) if j.run_attempt == attempt]
        return JobsPage(jobs=jobs, total_count=len(jobs))

    def get_job(self, job_id):
        for jobs in self.jobs.values():
            for job in jobs:
                if job.id == job_id:
                    return job
        raise NotFoundError(f"job {job_id} not found", status_code=404)

    def download_run_logs(self, run_id):
        run = self.get_run(run_id)
        return self.download_run_attempt_logs(run_id, run.run_attempt)

    def download_run_attempt_logs(self, run_id, attempt):
        self.calls.append(("download", run_id, attempt))
        try:
            return io.BytesIO(self.archives[(run_id, attempt)])
        except KeyError:
            raise NotFoundError(f"no logs for run {run_id} attempt {attempt}", status_code=404) from None

    def download_job_log(self, job_id):
        return io.BytesIO(self.job_logs.get(job_id, "").encode("utf-8"))

    def list_workflows(self, per_page=100, page=1):
        return list(self.workflows) if page == 1 else []

    def enable_workflow(self, workflow_id):
        self._record("enable_workflow", workflow_id)

    def disable_workflow(self, workflow_id):
        self._record("disable_workflow", workflow_id)

    def list_actions_caches(self, per_page=100, page=1, sort="", direction=""):
        start = (page - 1) * per_page
        return CachesPage(caches=self.caches[start:start + per_page], total_count=len(self.caches))

    def delete_actions_cache(self, cache_id):
        self._record("delete_actions_cache", cache_id)
        self.caches = [c for c in self.caches if c.id != cache_id]

    def list_runners(self, per_page=100, page=1):
        return []

    def list_org_runners(self, per_page=100, page=1):
        return []

    def get_retention_days(self):
        return self.retention_days
