"""
base.py - Abstract interface for the Actions API client.

Defines the operations the console consumes from the remote build system.
The session controller never calls these directly; they run inside
background commands and their results are posted back as events.

All clients must implement:
- Listing: list_runs(), list_jobs(), list_jobs_for_attempt(), list_workflows(),
           list_actions_caches(), list_runners(), list_org_runners()
- Lookups: get_run(), get_job(), get_retention_days()
- Logs: download_run_logs(), download_run_attempt_logs(), download_job_log()
- Control: delete_run(), cancel_run(), force_cancel_run(), rerun_workflow(),
           rerun_failed_jobs(), enable_workflow(), disable_workflow(),
           delete_actions_cache()

List-type operations return an empty page when the remote answers "not found"
(a run's parent workflow may have been deleted).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import BinaryIO

from .models import (
    CachesPage,
    Job,
    JobsPage,
    RateLimit,
    Run,
    Runner,
    RunsPage,
    Workflow,
)


@dataclass
class RunsFilter:
    """Query parameters for listing runs."""
    workflow_id: int = 0
    actor: str = ""
    branch: str = ""
    event: str = ""
    status: str = ""
    created: str = ""  # e.g. ">=2024-05-01"
    per_page: int = 30
    page: int = 1

    def query_params(self) -> dict:
        params = {"per_page": self.per_page or 30, "page": self.page or 1}
        for name in ("actor", "branch", "event", "status", "created"):
            value = getattr(self, name)
            if value:
                params[name] = value
        return params


@dataclass
class JobsFilter:
    """Query parameters for listing jobs (``latest`` or ``all`` attempts)."""
    filter: str = "latest"
    per_page: int = 100

    def query_params(self) -> dict:
        params = {"per_page": self.per_page or 100}
        if self.filter:
            params["filter"] = self.filter
        return params


class ActionsClient(ABC):
    """
    Abstract base class for Actions API clients.

    Usage:
        from actions_api import get_client

        client = get_client(settings)
        page = client.list_runs(RunsFilter(branch="main"))
        archive = client.download_run_logs(page.runs[0].id)
    """

    def __init__(self, owner: str, repo: str):
        self.owner = owner
        self.repo = repo
        self.rate_limit = RateLimit()

    @property
    def repo_nwo(self) -> str:
        return f"{self.owner}/{self.repo}"

    # === Runs ===

    @abstractmethod
    def list_runs(self, runs_filter: RunsFilter) -> RunsPage:
        """List runs for the repository, or for one workflow when workflow_id is set."""
        pass

    @abstractmethod
    def get_run(self, run_id: int) -> Run:
        pass

    @abstractmethod
    def delete_run(self, run_id: int) -> None:
        pass

    @abstractmethod
    def cancel_run(self, run_id: int) -> None:
        pass

    @abstractmethod
    def force_cancel_run(self, run_id: int) -> None:
        pass

    @abstractmethod
    def rerun_workflow(self, run_id: int) -> None:
        pass

    @abstractmethod
    def rerun_failed_jobs(self, run_id: int) -> None:
        pass

    # === Jobs ===

    @abstractmethod
    def list_jobs(self, run_id: int, jobs_filter: JobsFilter | None = None) -> JobsPage:
        pass

    @abstractmethod
    def list_jobs_for_attempt(
        self, run_id: int, attempt: int, jobs_filter: JobsFilter | None = None
    ) -> JobsPage:
        pass

    @abstractmethod
    def get_job(self, job_id: int) -> Job:
        pass

    # === Logs ===

    @abstractmethod
    def download_run_logs(self, run_id: int) -> BinaryIO:
        """Download the zip archive of logs for the latest attempt of a run."""
        pass

    @abstractmethod
    def download_run_attempt_logs(self, run_id: int, attempt: int) -> BinaryIO:
        """Download the zip archive of logs for one specific attempt."""
        pass

    @abstractmethod
    def download_job_log(self, job_id: int) -> BinaryIO:
        """Download the plain-text log for a single job."""
        pass

    # === Workflows ===

    @abstractmethod
    def list_workflows(self, per_page: int = 100, page: int = 1) -> list[Workflow]:
        pass

    @abstractmethod
    def enable_workflow(self, workflow_id: int) -> None:
        pass

    @abstractmethod
    def disable_workflow(self, workflow_id: int) -> None:
        pass

    # === Dependency caches ===

    @abstractmethod
    def list_actions_caches(
        self, per_page: int = 100, page: int = 1, sort: str = "", direction: str = ""
    ) -> CachesPage:
        pass

    @abstractmethod
    def delete_actions_cache(self, cache_id: int) -> None:
        pass

    # === Runners / settings ===

    @abstractmethod
    def list_runners(self, per_page: int = 100, page: int = 1) -> list[Runner]:
        pass

    @abstractmethod
    def list_org_runners(self, per_page: int = 100, page: int = 1) -> list[Runner]:
        pass

    @abstractmethod
    def get_retention_days(self) -> int:
        """Artifact and log retention period configured for the repository."""
        pass


class ApiError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(ApiError):
    """The requested resource does not exist (404)."""
    pass


class RateLimitError(ApiError):
    """Primary or secondary rate limit exhausted."""

    def __init__(self, message: str, status_code: int | None = None,
                 reset_at: datetime | None = None):
        super().__init__(message, status_code)
        self.reset_at = reset_at


class AuthenticationError(ApiError):
    """Authentication/authorization error (401)."""
    pass
