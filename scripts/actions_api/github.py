"""
github.py - GitHub REST implementation of the Actions API client.

Talks to ``/repos/{owner}/{repo}/actions`` with a ``requests.Session``.

Environment variables (resolved by gha_utils.resolve_token):
    GH_TOKEN / GITHUB_TOKEN: Personal access token (optional for public repos)
"""

import io
import logging
from datetime import datetime, timezone
from typing import Any, BinaryIO

import requests

from .base import (
    ActionsClient,
    ApiError,
    AuthenticationError,
    JobsFilter,
    NotFoundError,
    RateLimitError,
    RunsFilter,
)
from .models import (
    ActionsCache,
    CachesPage,
    Job,
    JobsPage,
    RateLimit,
    Run,
    Runner,
    RunsPage,
    Workflow,
)

_log = logging.getLogger("gha_tui.api")

DEFAULT_API_URL = "https://api.github.com"
API_VERSION = "2022-11-28"


class GitHubActionsClient(ActionsClient):
    """
    Actions API client backed by the GitHub REST API.

    Every request carries an explicit timeout; a transport failure or a
    timeout surfaces as ApiError so the caller always gets a result.

    Args:
        owner: Repository owner (user or organization)
        repo: Repository name
        token: Optional access token; requests are unauthenticated without it
        base_url: API root (GitHub Enterprise uses https://HOST/api/v3)
        timeout: Seconds to wait for ordinary API calls
        download_timeout: Seconds to wait for log archive downloads
        session: Optional requests.Session (or compatible object)
    """

    def __init__(
        self,
        owner: str,
        repo: str,
        token: str | None = None,
        base_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        download_timeout: float = 120.0,
        session: requests.Session | None = None,
    ):
        super().__init__(owner, repo)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.download_timeout = download_timeout
        self._token = token
        self._session = session if session is not None else requests.Session()

    # === HTTP plumbing ===

    def _headers(self) -> dict:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
            "User-Agent": "gha-tui",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _repo_url(self, path: str) -> str:
        return f"{self.base_url}/repos/{self.owner}/{self.repo}/actions/{path}"

    def _record_rate_limit(self, resp) -> None:
        remaining = resp.headers.get("X-RateLimit-Remaining")
        limit = resp.headers.get("X-RateLimit-Limit")
        reset = resp.headers.get("X-RateLimit-Reset")
        if remaining is None or limit is None:
            return
        try:
            reset_at = (
                datetime.fromtimestamp(int(reset), tz=timezone.utc) if reset is not None else None
            )
            self.rate_limit = RateLimit(remaining=int(remaining), limit=int(limit), reset_at=reset_at)
        except (ValueError, TypeError):
            pass

    def _request(
        self,
        method: str,
        url: str,
        params: dict | None = None,
        timeout: float | None = None,
        allow_redirects: bool = True,
    ):
        """Issue one request and map error statuses onto the ApiError hierarchy."""
        try:
            resp = self._session.request(
                method,
                url,
                params=params,
                headers=self._headers(),
                timeout=timeout or self.timeout,
                allow_redirects=allow_redirects,
            )
        except requests.exceptions.Timeout as e:
            raise ApiError(f"{method} {url}: request timed out") from e
        except requests.exceptions.RequestException as e:
            raise ApiError(f"{method} {url}: {e}") from e

        self._record_rate_limit(resp)
        _log.debug(f"{method} {url} -> {resp.status_code}")

        status = resp.status_code
        if status < 400:
            return resp

        message = self._error_message(resp)
        if status == 401:
            raise AuthenticationError(f"authentication failed: {message}", status)
        if status == 404:
            raise NotFoundError(f"not found: {url}", status)
        if status in (403, 429) and (
            resp.headers.get("X-RateLimit-Remaining") == "0" or status == 429
        ):
            raise RateLimitError(
                f"rate limit exceeded: {message}", status, reset_at=self.rate_limit.reset_at
            )
        raise ApiError(f"HTTP {status}: {message}", status)

    @staticmethod
    def _error_message(resp) -> str:
        try:
            body = resp.json()
        except ValueError:
            return (resp.text or "").strip()[:200]
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return str(body)[:200]

    def _get_json(self, path: str, params: dict | None = None) -> Any:
        return self._request("GET", self._repo_url(path), params=params).json()

    def _download(self, url: str) -> BinaryIO:
        """GET a log endpoint and follow its redirect to the archive storage URL.

        The redirect target is pre-signed, so it is fetched without our headers.
        """
        resp = self._request("GET", url, timeout=self.download_timeout, allow_redirects=False)
        if resp.status_code in (301, 302, 303, 307, 308):
            location = resp.headers.get("Location")
            if not location:
                raise ApiError(f"redirect without location from {url}", resp.status_code)
            try:
                resp = self._session.get(location, timeout=self.download_timeout)
            except requests.exceptions.RequestException as e:
                raise ApiError(f"download failed: {e}") from e
            if resp.status_code >= 400:
                raise ApiError(f"download failed: HTTP {resp.status_code}", resp.status_code)
        return io.BytesIO(resp.content)

    # === Runs ===

    def list_runs(self, runs_filter: RunsFilter) -> RunsPage:
        if runs_filter.workflow_id:
            path = f"workflows/{runs_filter.workflow_id}/runs"
        else:
            path = "runs"
        try:
            data = self._get_json(path, runs_filter.query_params())
        except NotFoundError:
            return RunsPage()
        return RunsPage(
            runs=[Run.from_dict(r) for r in data.get("workflow_runs") or []],
            total_count=int(data.get("total_count") or 0),
        )

    def get_run(self, run_id: int) -> Run:
        return Run.from_dict(self._get_json(f"runs/{run_id}"))

    def delete_run(self, run_id: int) -> None:
        self._request("DELETE", self._repo_url(f"runs/{run_id}"))

    def cancel_run(self, run_id: int) -> None:
        self._request("POST", self._repo_url(f"runs/{run_id}/cancel"))

    def force_cancel_run(self, run_id: int) -> None:
        self._request("POST", self._repo_url(f"runs/{run_id}/force-cancel"))

    def rerun_workflow(self, run_id: int) -> None:
        self._request("POST", self._repo_url(f"runs/{run_id}/rerun"))

    def rerun_failed_jobs(self, run_id: int) -> None:
        self._request("POST", self._repo_url(f"runs/{run_id}/rerun-failed-jobs"))

    # === Jobs ===

    def _list_jobs(self, path: str, jobs_filter: JobsFilter | None) -> JobsPage:
        jobs_filter = jobs_filter or JobsFilter()
        try:
            data = self._get_json(path, jobs_filter.query_params())
        except NotFoundError:
            return JobsPage()
        return JobsPage(
            jobs=[Job.from_dict(j) for j in data.get("jobs") or []],
            total_count=int(data.get("total_count") or 0),
        )

    def list_jobs(self, run_id: int, jobs_filter: JobsFilter | None = None) -> JobsPage:
        return self._list_jobs(f"runs/{run_id}/jobs", jobs_filter)

    def list_jobs_for_attempt(
        self, run_id: int, attempt: int, jobs_filter: JobsFilter | None = None
    ) -> JobsPage:
        # The attempt endpoint rejects the filter parameter
        jobs_filter = JobsFilter(filter="", per_page=(jobs_filter or JobsFilter()).per_page)
        return self._list_jobs(f"runs/{run_id}/attempts/{attempt}/jobs", jobs_filter)

    def get_job(self, job_id: int) -> Job:
        return Job.from_dict(self._get_json(f"jobs/{job_id}"))

    # === Logs ===

    def download_run_logs(self, run_id: int) -> BinaryIO:
        return self._download(self._repo_url(f"runs/{run_id}/logs"))

    def download_run_attempt_logs(self, run_id: int, attempt: int) -> BinaryIO:
        return self._download(self._repo_url(f"runs/{run_id}/attempts/{attempt}/logs"))

    def download_job_log(self, job_id: int) -> BinaryIO:
        return self._download(self._repo_url(f"jobs/{job_id}/logs"))

    # === Workflows ===

    def list_workflows(self, per_page: int = 100, page: int = 1) -> list[Workflow]:
        try:
            data = self._get_json("workflows", {"per_page": per_page, "page": page})
        except NotFoundError:
            return []
        return [Workflow.from_dict(w) for w in data.get("workflows") or []]

    def enable_workflow(self, workflow_id: int) -> None:
        self._request("PUT", self._repo_url(f"workflows/{workflow_id}/enable"))

    def disable_workflow(self, workflow_id: int) -> None:
        self._request("PUT", self._repo_url(f"workflows/{workflow_id}/disable"))

    # === Dependency caches ===

    def list_actions_caches(
        self, per_page: int = 100, page: int = 1, sort: str = "", direction: str = ""
    ) -> CachesPage:
        params = {"per_page": per_page, "page": page}
        if sort:
            params["sort"] = sort
        if direction:
            params["direction"] = direction
        try:
            data = self._get_json("caches", params)
        except NotFoundError:
            return CachesPage()
        return CachesPage(
            caches=[ActionsCache.from_dict(c) for c in data.get("actions_caches") or []],
            total_count=int(data.get("total_count") or 0),
        )

    def delete_actions_cache(self, cache_id: int) -> None:
        self._request("DELETE", self._repo_url(f"caches/{cache_id}"))

    # === Runners / settings ===

    def list_runners(self, per_page: int = 100, page: int = 1) -> list[Runner]:
        try:
            data = self._get_json("runners", {"per_page": per_page, "page": page})
        except NotFoundError:
            return []
        return [Runner.from_dict(r) for r in data.get("runners") or []]

    def list_org_runners(self, per_page: int = 100, page: int = 1) -> list[Runner]:
        url = f"{self.base_url}/orgs/{self.owner}/actions/runners"
        try:
            data = self._request("GET", url, params={"per_page": per_page, "page": page}).json()
        except NotFoundError:
            return []
        return [Runner.from_dict(r) for r in data.get("runners") or []]

    def get_retention_days(self) -> int:
        data = self._get_json("permissions/artifact-and-log-retention")
        return int(data.get("days") or data.get("artifact_and_log_retention_days") or 0)
