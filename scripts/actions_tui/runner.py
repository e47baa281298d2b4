"""
CommandRunner - executes controller commands against the API and log cache.

execute() blocks and is meant to run on a worker thread. API and cache
failures are reported in the error field of the result event, so each
command yields exactly one event.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

from actions_api import ActionsClient, ApiError, RunsFilter, WorkflowStats
from actions_api.models import CONCLUSION_FAILURE, CONCLUSION_SUCCESS

from .commands import (
    ACTION_CANCEL,
    ACTION_DELETE_CACHE,
    ACTION_DELETE_RUN,
    ACTION_DISABLE_WORKFLOW,
    ACTION_ENABLE_WORKFLOW,
    ACTION_FORCE_CANCEL,
    ACTION_RERUN,
    ACTION_RERUN_FAILED,
    BULK_CLEAR_CACHES,
    BULK_DELETE_CACHES,
    BULK_DELETE_RUNS,
    BULK_DELETE_WORKFLOW_RUNS,
    FETCH_FRESH,
    FETCH_PAGE,
    BulkAction,
    CheckJobStatus,
    Command,
    EvictLogCache,
    FetchActionsCaches,
    FetchDashboard,
    FetchJobLog,
    FetchJobs,
    FetchLogs,
    FetchRetention,
    FetchRun,
    FetchRunners,
    FetchRuns,
    FetchWorkflows,
    FetchWorkflowStats,
    RunAction,
    RunSearch,
)
from .events import (
    ActionDone,
    ActionsCachesLoaded,
    BulkDone,
    CacheEvicted,
    DashboardLoaded,
    Event,
    JobLogLoaded,
    JobsLoaded,
    JobStatusLoaded,
    LogsLoaded,
    RetentionLoaded,
    RunLoaded,
    RunnersLoaded,
    RunsLoaded,
    RunsPageLoaded,
    RunsRefreshed,
    SearchDone,
    WorkflowsLoaded,
    WorkflowStatsLoaded,
)
from .utils.bulk import run_bulk, run_sequential
from .utils.logcache import LogCache
from .utils.merge import fetch_attempt_logs, fetch_merged_logs
from .utils.metrics import compute_metrics
from .utils.search import search_logs

_log = logging.getLogger("gha_tui.tui.runner")

DASHBOARD_PER_PAGE = 100
DASHBOARD_MAX_PAGES = 3
DASHBOARD_JOB_SAMPLE = 30
STATS_RUNS_PER_WORKFLOW = 30
FETCH_WORKERS = 8
LIST_ALL_PER_PAGE = 100
LIST_ALL_MAX_PAGES = 20


class CommandRunner:
    """Turns commands into result events using the client and the log cache."""

    def __init__(self, client: ActionsClient, cache: LogCache):
        self.client = client
        self.cache = cache
        self._handlers = {
            FetchRuns: self._fetch_runs,
            FetchRun: self._fetch_run,
            FetchJobs: self._fetch_jobs,
            FetchLogs: self._fetch_logs,
            FetchJobLog: self._fetch_job_log,
            CheckJobStatus: self._check_job_status,
            FetchWorkflows: self._fetch_workflows,
            FetchWorkflowStats: self._fetch_workflow_stats,
            FetchDashboard: self._fetch_dashboard,
            FetchActionsCaches: self._fetch_caches,
            FetchRunners: self._fetch_runners,
            FetchRetention: self._fetch_retention,
            RunAction: self._run_action,
            BulkAction: self._bulk_action,
            RunSearch: self._run_search,
            EvictLogCache: self._evict,
        }

    def execute(self, command: Command) -> Event:
        """Run one command and return its result event."""
        handler = self._handlers.get(type(command))
        if handler is None:
            raise ValueError(f"Not an executable command: {command!r}")
        _log.debug(f"Executing {type(command).__name__}")
        return handler(command)

    def _evict_after_fetch(self) -> None:
        try:
            removed = self.cache.evict()
            if removed:
                _log.debug(f"Evicted {removed} cached log files")
        except Exception as e:
            _log.warning(f"Log cache eviction failed: {e}")

    # === Runs ===

    def _fetch_runs(self, cmd: FetchRuns) -> Event:
        event_type = {
            FETCH_FRESH: RunsLoaded,
            FETCH_PAGE: RunsPageLoaded,
        }.get(cmd.kind, RunsRefreshed)
        try:
            page = self.client.list_runs(cmd.run_filter.to_runs_filter(cmd.page, cmd.per_page))
        except Exception as e:
            _log.warning(f"List runs failed: {e}")
            return event_type(run_filter=cmd.run_filter, page=cmd.page, error=str(e), seq=cmd.seq)
        return event_type(
            run_filter=cmd.run_filter,
            page=cmd.page,
            runs=page.runs,
            total_count=page.total_count,
            seq=cmd.seq,
        )

    def _fetch_run(self, cmd: FetchRun) -> Event:
        try:
            return RunLoaded(cmd.run_id, run=self.client.get_run(cmd.run_id))
        except Exception as e:
            return RunLoaded(cmd.run_id, error=str(e))

    # === Jobs and logs ===

    def _fetch_jobs(self, cmd: FetchJobs) -> Event:
        try:
            if cmd.attempt:
                page = self.client.list_jobs_for_attempt(cmd.run_id, cmd.attempt)
            else:
                page = self.client.list_jobs(cmd.run_id)
        except Exception as e:
            _log.warning(f"List jobs for run {cmd.run_id} failed: {e}")
            return JobsLoaded(cmd.run_id, cmd.attempt, error=str(e))
        return JobsLoaded(cmd.run_id, cmd.attempt, jobs=page.jobs)

    def _fetch_logs(self, cmd: FetchLogs) -> Event:
        run = cmd.run
        try:
            if cmd.attempt:
                logs = fetch_attempt_logs(self.client, self.cache, run, cmd.attempt)
            else:
                logs = fetch_merged_logs(self.client, self.cache, run)
        except Exception as e:
            _log.debug(f"Logs for run {run.id} attempt {cmd.attempt} failed: {e}")
            return LogsLoaded(run.id, cmd.attempt, error=str(e))
        finally:
            self._evict_after_fetch()
        return LogsLoaded(run.id, cmd.attempt, logs=logs)

    def _fetch_job_log(self, cmd: FetchJobLog) -> Event:
        try:
            data = self.client.download_job_log(cmd.job_id).read()
        except Exception as e:
            _log.warning(f"Job log {cmd.job_id} failed: {e}")
            return JobLogLoaded(cmd.run_id, cmd.job_id, cmd.job_name, error=str(e))
        finally:
            self._evict_after_fetch()
        content = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else str(data)
        return JobLogLoaded(cmd.run_id, cmd.job_id, cmd.job_name, content=content)

    def _check_job_status(self, cmd: CheckJobStatus) -> Event:
        try:
            job = self.client.get_job(cmd.job_id)
        except Exception as e:
            return JobStatusLoaded(cmd.job_id, cmd.job_name, error=str(e))
        return JobStatusLoaded(cmd.job_id, cmd.job_name, job=job)

    # === Workflows ===

    def _fetch_workflows(self, cmd: FetchWorkflows) -> Event:
        try:
            return WorkflowsLoaded(workflows=self.client.list_workflows())
        except Exception as e:
            _log.warning(f"List workflows failed: {e}")
            return WorkflowsLoaded(error=str(e))

    def _fetch_workflow_stats(self, cmd: FetchWorkflowStats) -> Event:
        stats: dict[int, WorkflowStats] = {}
        errors: list[str] = []

        def load(workflow_id: int) -> None:
            page = self.client.list_runs(RunsFilter(
                workflow_id=workflow_id, status="completed", per_page=STATS_RUNS_PER_WORKFLOW,
            ))
            stats[workflow_id] = WorkflowStats(
                total_runs=len(page.runs),
                success_count=sum(1 for r in page.runs if r.conclusion == CONCLUSION_SUCCESS),
                failure_count=sum(1 for r in page.runs if r.conclusion == CONCLUSION_FAILURE),
            )

        with ThreadPoolExecutor(max_workers=FETCH_WORKERS) as executor:
            futures = {executor.submit(load, wf.id): wf for wf in cmd.workflows}
            for future, wf in futures.items():
                try:
                    future.result()
                except Exception as e:
                    errors.append(f"{wf.name}: {e}")
        return WorkflowStatsLoaded(stats=stats, error="; ".join(errors))

    # === Metrics ===

    def _fetch_dashboard(self, cmd: FetchDashboard) -> Event:
        since = datetime.now(timezone.utc) - timedelta(days=cmd.window_days)
        try:
            runs = []
            total_count = 0
            for page_number in range(1, DASHBOARD_MAX_PAGES + 1):
                page = self.client.list_runs(RunsFilter(
                    created=f">={since.strftime('%Y-%m-%dT%H:%M:%SZ')}",
                    per_page=DASHBOARD_PER_PAGE,
                    page=page_number,
                ))
                runs.extend(page.runs)
                total_count = page.total_count
                if len(page.runs) < DASHBOARD_PER_PAGE:
                    break

            completed = [r for r in runs if r.is_complete][:DASHBOARD_JOB_SAMPLE]
            with ThreadPoolExecutor(max_workers=FETCH_WORKERS) as executor:
                pages = list(executor.map(lambda r: self.client.list_jobs(r.id), completed))
            jobs = [job for page in pages for job in page.jobs]
        except Exception as e:
            _log.warning(f"Dashboard fetch failed: {e}")
            return DashboardLoaded(cmd.window_days, error=str(e))
        return DashboardLoaded(cmd.window_days, metrics=compute_metrics(runs, jobs, total_count))

    def _fetch_retention(self, cmd: FetchRetention) -> Event:
        try:
            return RetentionLoaded(days=self.client.get_retention_days())
        except Exception as e:
            return RetentionLoaded(error=str(e))

    # === Caches and runners ===

    def _fetch_caches(self, cmd: FetchActionsCaches) -> Event:
        try:
            page = self.client.list_actions_caches(per_page=LIST_ALL_PER_PAGE)
        except Exception as e:
            _log.warning(f"List caches failed: {e}")
            return ActionsCachesLoaded(error=str(e))
        return ActionsCachesLoaded(caches=page.caches, total_count=page.total_count)

    def _fetch_runners(self, cmd: FetchRunners) -> Event:
        try:
            runners = self.client.list_runners()
        except Exception as e:
            _log.warning(f"List runners failed: {e}")
            return RunnersLoaded(error=str(e))
        org_failed = False
        try:
            org_runners = self.client.list_org_runners()
        except ApiError as e:
            _log.info(f"Organization runners unavailable: {e}")
            org_runners = []
            org_failed = True
        seen = {r.id for r in runners}
        runners += [r for r in org_runners if r.id not in seen]
        return RunnersLoaded(runners=runners, org_failed=org_failed)

    # === Control actions ===

    def _run_action(self, cmd: RunAction) -> Event:
        operations = {
            ACTION_RERUN: self.client.rerun_workflow,
            ACTION_RERUN_FAILED: self.client.rerun_failed_jobs,
            ACTION_CANCEL: self.client.cancel_run,
            ACTION_FORCE_CANCEL: self.client.force_cancel_run,
            ACTION_DELETE_RUN: self.client.delete_run,
            ACTION_ENABLE_WORKFLOW: self.client.enable_workflow,
            ACTION_DISABLE_WORKFLOW: self.client.disable_workflow,
            ACTION_DELETE_CACHE: self.client.delete_actions_cache,
        }
        try:
            operations[cmd.action](cmd.target_id)
        except Exception as e:
            _log.warning(f"{cmd.action} {cmd.target_id} failed: {e}")
            return ActionDone(cmd.action, cmd.target_id, cmd.label, error=str(e))
        _log.info(f"{cmd.action} {cmd.target_id} done")
        return ActionDone(cmd.action, cmd.target_id, cmd.label)

    def _list_workflow_run_ids(self, workflow_id: int) -> list[int]:
        ids: list[int] = []
        for page_number in range(1, LIST_ALL_MAX_PAGES + 1):
            page = self.client.list_runs(RunsFilter(
                workflow_id=workflow_id, per_page=LIST_ALL_PER_PAGE, page=page_number,
            ))
            ids += [r.id for r in page.runs if r.is_complete]
            if len(page.runs) < LIST_ALL_PER_PAGE:
                break
        return ids

    def _list_cache_ids(self) -> list[int]:
        ids: list[int] = []
        for page_number in range(1, LIST_ALL_MAX_PAGES + 1):
            page = self.client.list_actions_caches(per_page=LIST_ALL_PER_PAGE, page=page_number)
            ids += [c.id for c in page.caches]
            if len(page.caches) < LIST_ALL_PER_PAGE:
                break
        return ids

    def _bulk_action(self, cmd: BulkAction) -> Event:
        try:
            if cmd.action == BULK_DELETE_RUNS:
                result = run_bulk(cmd.ids, self.client.delete_run)
            elif cmd.action == BULK_DELETE_CACHES:
                result = run_bulk(cmd.ids, self.client.delete_actions_cache)
            elif cmd.action == BULK_DELETE_WORKFLOW_RUNS:
                result = run_sequential(self._list_workflow_run_ids(cmd.ids[0]), self.client.delete_run)
            elif cmd.action == BULK_CLEAR_CACHES:
                result = run_bulk(self._list_cache_ids(), self.client.delete_actions_cache)
            else:
                raise ValueError(f"unknown bulk action {cmd.action}")
        except Exception as e:
            _log.warning(f"{cmd.action} failed: {e}")
            return BulkDone(cmd.action, cmd.label, error=str(e))
        _log.info(f"{cmd.action}: {result.summary('deleted')}")
        return BulkDone(cmd.action, cmd.label, result=result)

    # === Search and cache upkeep ===

    def _run_search(self, cmd: RunSearch) -> Event:
        results = search_logs(cmd.logs, cmd.query, set(cmd.failed_jobs))
        return SearchDone(cmd.run_id, cmd.query_text, results=results)

    def _evict(self, cmd: EvictLogCache) -> Event:
        try:
            return CacheEvicted(removed=self.cache.evict())
        except Exception as e:
            return CacheEvicted(error=str(e))
