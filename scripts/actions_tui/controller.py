"""
SessionController - the console's state machine.

handle(state, event) returns a new SessionState and the commands to run.
It performs no I/O: fetches, timers and quitting are described as
commands and executed by the app, which feeds results back as events.

Key routing precedence, highest first:
    confirm dialog > filter form > search overlay > in-log search typing
    > list filter typing > help > log/info overlays and tab bindings
"""

import copy
import logging

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
    RUN_ACTIONS,
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
    Quit,
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
    JobsTick,
    KeyPressed,
    LogsLoaded,
    LogTailTick,
    Resized,
    RetentionLoaded,
    RunLoaded,
    RunnersLoaded,
    RunsLoaded,
    RunsPageLoaded,
    RunsRefreshed,
    RunsTick,
    SearchDone,
    Started,
    WorkflowsLoaded,
    WorkflowStatsLoaded,
)
from .polling import JobTailer, RunListRefresher
from .state import (
    TAB_ORDER,
    CacheSort,
    ConfirmState,
    DetailsState,
    FilterFormState,
    InfoState,
    ListState,
    LogViewState,
    Overlay,
    Pane,
    RunFilter,
    SearchState,
    SessionState,
    View,
)
from .utils.logs import (
    find_failed_step_line,
    find_job_log,
    first_failed_step_name,
    is_system_stub,
    render_step_progress,
)
from .utils.metrics import windows_for_retention
from .utils.search import SearchQuery, find_line_matches

_log = logging.getLogger("gha_tui.tui.controller")

SINGLE_ACTIONS = RUN_ACTIONS + (ACTION_ENABLE_WORKFLOW, ACTION_DISABLE_WORKFLOW, ACTION_DELETE_CACHE)

_ACTION_DONE = {
    ACTION_RERUN: "Re-run requested",
    ACTION_RERUN_FAILED: "Re-run of failed jobs requested",
    ACTION_CANCEL: "Cancel requested",
    ACTION_FORCE_CANCEL: "Force cancel requested",
    ACTION_DELETE_RUN: "Deleted",
    ACTION_ENABLE_WORKFLOW: "Enabled",
    ACTION_DISABLE_WORKFLOW: "Disabled",
    ACTION_DELETE_CACHE: "Deleted",
}

_CACHE_SORT_ORDER = (CacheSort.LAST_ACCESSED, CacheSort.CREATED, CacheSort.SIZE)
_TAB_KEYS = {str(i): view for i, view in enumerate(TAB_ORDER, start=1)}
_DOWN = ("j", "down")
_UP = ("k", "up")
_BACK = ("escape", "backspace")


def _find_job(state: SessionState, job_id: int = 0, job_name: str = ""):
    """A job of the details pane by ID, falling back to name (IDs differ across attempts)."""
    for job in state.details.jobs:
        if job_id and job.id == job_id:
            return job
    for job in state.details.jobs:
        if job_name and job.name == job_name:
            return job
    return None


class SessionController:
    """Pure event handler; see module docstring."""

    def __init__(self):
        self.refresher = RunListRefresher()
        self.tailer = JobTailer()
        self._handlers = {
            Started: self._on_started,
            KeyPressed: self._on_key,
            Resized: self._on_resized,
            RunsTick: self._on_runs_tick,
            JobsTick: self._on_jobs_tick,
            LogTailTick: self._on_log_tail_tick,
            RunsLoaded: self._on_runs_loaded,
            RunsPageLoaded: self._on_runs_loaded,
            RunsRefreshed: self._on_runs_refreshed,
            RunLoaded: self._on_run_loaded,
            JobsLoaded: self._on_jobs_loaded,
            LogsLoaded: self._on_logs_loaded,
            JobLogLoaded: self._on_job_log_loaded,
            JobStatusLoaded: self._on_job_status_loaded,
            WorkflowsLoaded: self._on_workflows_loaded,
            WorkflowStatsLoaded: self._on_workflow_stats_loaded,
            DashboardLoaded: self._on_dashboard_loaded,
            ActionsCachesLoaded: self._on_caches_loaded,
            RunnersLoaded: self._on_runners_loaded,
            RetentionLoaded: self._on_retention_loaded,
            ActionDone: self._on_action_done,
            BulkDone: self._on_bulk_done,
            SearchDone: self._on_search_done,
            CacheEvicted: self._on_cache_evicted,
        }

    def handle(self, state: SessionState, event: Event) -> tuple[SessionState, list[Command]]:
        """
        Apply one event.

        Args:
            state: Current state (not modified)
            event: Input, tick or result event

        Returns:
            (new state, commands to execute)
        """
        new_state = copy.deepcopy(state)
        handler = self._handlers.get(type(event))
        if handler is None:
            _log.warning(f"No handler for {type(event).__name__}")
            return new_state, []
        commands = handler(new_state, event) or []
        return new_state, commands

    # =========================================================================
    # Startup, resize and ticks
    # =========================================================================

    def _on_started(self, s: SessionState, event: Started) -> list[Command]:
        s.visited.update((View.RUNS, View.WORKFLOWS))
        s.workflows.loading = True
        s.set_status("Loading runs...")
        commands = self._fetch_runs(s, FETCH_FRESH, 1)
        commands += [FetchWorkflows(), FetchRetention(), EvictLogCache()]
        commands += self.refresher.start()
        return commands

    def _on_resized(self, s: SessionState, event: Resized) -> list[Command]:
        s.width = event.width
        s.height = event.height
        return []

    def _on_runs_tick(self, s: SessionState, event: RunsTick) -> list[Command]:
        return self.refresher.on_tick(s)

    def _on_jobs_tick(self, s: SessionState, event: JobsTick) -> list[Command]:
        return self.tailer.on_jobs_tick(s, event)

    def _on_log_tail_tick(self, s: SessionState, event: LogTailTick) -> list[Command]:
        return self.tailer.on_step_tick(s, event)

    # =========================================================================
    # Fetch helpers
    # =========================================================================

    def _fetch_runs(self, s: SessionState, kind: str, page: int) -> list[Command]:
        """Dispatch a listing; it supersedes any listing still in flight."""
        p = s.pagination
        p.loading = True
        p.request_seq += 1
        return [FetchRuns(kind=kind, run_filter=s.runs_filter, page=page, per_page=p.per_page, seq=p.request_seq)]

    def _fetch_view(self, s: SessionState, view: View) -> list[Command]:
        if view == View.RUNS:
            return self._fetch_runs(s, FETCH_FRESH, 1)
        if view == View.WORKFLOWS:
            s.workflows.loading = True
            return [FetchWorkflows()]
        if view == View.METRICS:
            s.metrics.loading = True
            return [FetchDashboard(s.metrics.window.days)]
        if view == View.CACHE:
            s.caches.loading = True
            return [FetchActionsCaches()]
        s.runners.loading = True
        return [FetchRunners()]

    def _set_log_scope(self, s: SessionState, run_id: int, attempt: int) -> None:
        scope = (run_id, attempt)
        if s.log_scope != scope:
            s.log_map = {}
            s.log_scope = scope
        s.logs_loading = True

    # =========================================================================
    # Key routing
    # =========================================================================

    def _on_key(self, s: SessionState, event: KeyPressed) -> list[Command]:
        key = event.name
        if key == "ctrl+c":
            return [Quit()]
        if s.overlay == Overlay.CONFIRM:
            return self._confirm_key(s, key)
        if s.overlay == Overlay.FILTER_FORM:
            return self._filter_form_key(s, event)
        if s.overlay == Overlay.SEARCH:
            return self._search_key(s, event)
        if s.overlay == Overlay.LOG and s.log_view.searching:
            return self._log_search_key(s, event)
        active = s.active_list()
        if active is not None and active.filtering:
            return self._list_filter_key(active, event)
        if s.overlay == Overlay.HELP:
            return self._help_key(s, key)
        return self._default_key(s, key)

    def _default_key(self, s: SessionState, key: str) -> list[Command]:
        if key == "q":
            return [Quit()]
        if key in _TAB_KEYS:
            return self._switch_tab(s, _TAB_KEYS[key])
        if s.overlay == Overlay.LOG:
            return self._log_key(s, key)
        if s.overlay == Overlay.INFO:
            return self._info_key(s, key)
        if key == "?":
            s.help_offset = 0
            s.open_overlay(Overlay.HELP)
            return []
        if s.view == View.RUNS:
            return self._runs_key(s, key)
        if s.view == View.WORKFLOWS:
            return self._workflows_key(s, key)
        if s.view == View.METRICS:
            return self._metrics_key(s, key)
        if s.view == View.CACHE:
            return self._caches_key(s, key)
        return self._runners_key(s, key)

    def _switch_tab(self, s: SessionState, view: View) -> list[Command]:
        """Close log/info overlays (ending live tailing), then show another tab."""
        commands: list[Command] = []
        s.live.stop_tailing()
        if s.overlay in (Overlay.LOG, Overlay.INFO):
            commands += self._end_info_refresh(s)
            s.overlay = Overlay.NONE
            s.overlay_resume = Overlay.NONE
            s.focused_pane = s.overlay_focus
        if view == s.view:
            return commands
        s.view = view
        if view not in s.visited:
            s.visited.add(view)
            commands += self._fetch_view(s, view)
        return commands

    def _list_filter_key(self, lst: ListState, event: KeyPressed) -> list[Command]:
        key = event.name
        if key == "escape":
            lst.filter_text = ""
            lst.filtering = False
        elif key == "enter":
            lst.filtering = False
        elif key == "backspace":
            lst.filter_text = lst.filter_text[:-1]
        elif event.text:
            lst.filter_text += event.text
        else:
            return []
        lst.cursor = 0
        return []

    def _help_key(self, s: SessionState, key: str) -> list[Command]:
        if key in _BACK or key in ("?", "q"):
            s.close_overlay()
        elif key in _DOWN:
            s.help_offset += 1
        elif key in _UP:
            s.help_offset = max(0, s.help_offset - 1)
        return []

    @staticmethod
    def _move(lst: ListState, key: str, count: int) -> bool:
        """Apply a cursor movement key; False when key is not a movement."""
        if key in _DOWN:
            lst.move(1, count)
        elif key in _UP:
            lst.move(-1, count)
        elif key in ("g", "home"):
            lst.cursor = 0
        elif key in ("G", "end"):
            lst.cursor = max(0, count - 1)
        else:
            return False
        return True

    # =========================================================================
    # Confirm dialog
    # =========================================================================

    def _ask(self, s: SessionState, title: str, message: str, action: str,
             ids: tuple[int, ...] = (), label: str = "") -> list[Command]:
        s.confirm = ConfirmState(title=title, message=message, action=action, ids=ids, label=label)
        s.open_overlay(Overlay.CONFIRM)
        return []

    def _confirm_key(self, s: SessionState, key: str) -> list[Command]:
        if key in ("y", "Y"):
            return self._resolve_confirm(s, True)
        if key in ("n", "N", "escape"):
            return self._resolve_confirm(s, False)
        if key == "enter":
            return self._resolve_confirm(s, s.confirm is not None and s.confirm.confirm_selected)
        if key in ("tab", "shift+tab", "left", "right", "h", "l") and s.confirm is not None:
            s.confirm.confirm_selected = not s.confirm.confirm_selected
        return []

    def _resolve_confirm(self, s: SessionState, confirmed: bool) -> list[Command]:
        pending = s.confirm
        s.confirm = None
        s.close_overlay()
        if pending is None or not confirmed:
            s.set_status("Cancelled")
            return []
        if pending.action in SINGLE_ACTIONS:
            s.set_status(f"{pending.title}: {pending.label}...")
            return [RunAction(pending.action, pending.ids[0], pending.label)]
        s.set_status(f"{pending.title}: {pending.label}...")
        return [BulkAction(pending.action, pending.ids, pending.label)]

    # =========================================================================
    # Runs tab
    # =========================================================================

    def _runs_key(self, s: SessionState, key: str) -> list[Command]:
        if key in ("tab", "shift+tab"):
            s.focused_pane = Pane.MIDDLE if s.focused_pane == Pane.LEFT else Pane.LEFT
            return []
        if key == "/":
            return self._open_search(s)
        if key == "S":
            return self._open_filter_form(s)
        if key == "r":
            s.set_status("Refreshing runs...")
            return self._fetch_runs(s, FETCH_PAGE, s.pagination.page)
        if s.focused_pane == Pane.LEFT:
            return self._runs_left_key(s, key)
        return self._runs_middle_key(s, key)

    def _runs_left_key(self, s: SessionState, key: str) -> list[Command]:
        runs = s.visible_runs()
        lst = s.runs_list
        if key in _DOWN and lst.cursor >= len(runs) - 1:
            return self._next_page(s)
        if self._move(lst, key, len(runs)):
            return []
        run = s.cursor_run()
        if key == "enter":
            return self._select_run(s, run) if run else []
        if key == "space":
            if run:
                s.selected_run_ids ^= {run.id}
            return []
        if key in ("right", "l", "n"):
            return self._next_page(s)
        if key in ("left", "h", "p"):
            return self._prev_page(s)
        if key == "f":
            lst.filtering = True
            return []
        if key in _BACK:
            if lst.filter_text:
                lst.filter_text = ""
                lst.cursor = 0
                return []
            if not s.runs_filter.is_empty:
                s.runs_filter = RunFilter()
                lst.cursor = 0
                s.set_status("Filter cleared")
                return self._fetch_runs(s, FETCH_FRESH, 1)
            return []
        if key == "i":
            return self._open_run_info(s, run) if run else []
        if key == "d" and s.selected_run_ids:
            ids = tuple(sorted(s.selected_run_ids))
            return self._ask(
                s, "Delete runs", f"Delete {len(ids)} selected runs? This cannot be undone.",
                BULK_DELETE_RUNS, ids, f"{len(ids)} runs",
            )
        return self._run_action_key(s, key, run)

    def _runs_middle_key(self, s: SessionState, key: str) -> list[Command]:
        details = s.details
        if self._move_jobs(details, key):
            return []
        if key in _BACK:
            s.focused_pane = Pane.LEFT
            return []
        if key == "enter":
            return self._select_job(s)
        if key == "a":
            return self._cycle_attempt(s)
        if key == "i":
            job = details.current_job()
            if job is not None:
                s.info = InfoState(kind="job", run=details.run, job=job)
                s.open_overlay(Overlay.INFO)
                return []
            return self._open_run_info(s, details.run) if details.run else []
        return self._run_action_key(s, key, details.run)

    def _move_jobs(self, details: DetailsState, key: str) -> bool:
        count = len(details.jobs)
        if key in _DOWN:
            details.cursor = min(max(0, count - 1), details.cursor + 1)
        elif key in _UP:
            details.cursor = max(0, details.cursor - 1)
        elif key in ("g", "home"):
            details.cursor = 0
        elif key in ("G", "end"):
            details.cursor = max(0, count - 1)
        else:
            return False
        return True

    def _run_action_key(self, s: SessionState, key: str, run) -> list[Command]:
        if key not in ("R", "F", "C", "X", "d"):
            return []
        if run is None:
            s.set_status("No run selected", error=True)
            return []
        label = f"run #{run.run_number}"
        title = run.display_title or run.name
        if key == "R":
            return self._ask(s, "Re-run", f"Re-run all jobs of {label} ({title})?",
                             ACTION_RERUN, (run.id,), label)
        if key == "F":
            return self._ask(s, "Re-run failed", f"Re-run failed jobs of {label} ({title})?",
                             ACTION_RERUN_FAILED, (run.id,), label)
        if key in ("C", "X"):
            if run.is_complete:
                s.set_status(f"{label} is not in progress", error=True)
                return []
            if key == "C":
                return self._ask(s, "Cancel", f"Cancel {label} ({title})?",
                                 ACTION_CANCEL, (run.id,), label)
            return self._ask(s, "Force cancel", f"Force cancel {label} ({title})?",
                             ACTION_FORCE_CANCEL, (run.id,), label)
        return self._ask(s, "Delete", f"Delete {label} ({title})? This cannot be undone.",
                         ACTION_DELETE_RUN, (run.id,), label)

    def _next_page(self, s: SessionState) -> list[Command]:
        if not s.pagination.has_more or s.pagination.loading:
            return []
        return self._fetch_runs(s, FETCH_PAGE, s.pagination.page + 1)

    def _prev_page(self, s: SessionState) -> list[Command]:
        if s.pagination.page <= 1 or s.pagination.loading:
            return []
        return self._fetch_runs(s, FETCH_PAGE, s.pagination.page - 1)

    def _select_run(self, s: SessionState, run) -> list[Command]:
        s.details = DetailsState(run=run, loading=True)
        s.live.set_viewing_attempt(0)
        s.live.stop_tailing()
        s.focused_pane = Pane.MIDDLE
        self._set_log_scope(s, run.id, 0)
        if run.is_complete:
            s.live.clear_auto_refresh()
        else:
            s.live.set_auto_refresh(run.id)
        return [FetchJobs(run.id, 0), FetchLogs(run, 0)]

    def _cycle_attempt(self, s: SessionState) -> list[Command]:
        run = s.details.run
        if run is None:
            return []
        if run.run_attempt <= 1:
            s.set_status("Run has a single attempt")
            return []
        attempt = (s.live.viewing_attempt + 1) % (run.run_attempt + 1)
        s.live.set_viewing_attempt(attempt)
        s.details.loading = True
        self._set_log_scope(s, run.id, attempt)
        if attempt == 0:
            s.set_status("Viewing all attempts (merged)")
        else:
            s.set_status(f"Viewing attempt {attempt} of {run.run_attempt}")
        if s.overlay == Overlay.LOG:
            s.live.stop_tailing()
            s.log_view.loading = True
            s.log_view.content = "Loading logs..."
            s.log_view.offset = 0
        return [FetchJobs(run.id, attempt), FetchLogs(run, attempt)]

    # === Run listing results ===

    def _apply_runs(self, s: SessionState, event) -> None:
        per_page = s.pagination.per_page
        s.runs = list(event.runs)
        s.pagination.page = event.page
        s.pagination.total_count = event.total_count
        s.pagination.has_more = len(event.runs) >= per_page
        self._sync_details_run(s)

    def _sync_details_run(self, s: SessionState) -> None:
        if s.details.run is None:
            return
        for run in s.runs:
            if run.id == s.details.run.id:
                s.details.run = run

    def _on_runs_loaded(self, s: SessionState, event) -> list[Command]:
        if event.seq != s.pagination.request_seq:
            _log.debug(f"Dropping superseded runs listing {event.seq} for page {event.page}")
            return []
        if event.run_filter != s.runs_filter:
            _log.debug(f"Dropping runs for stale filter {event.run_filter}")
            return []
        s.pagination.loading = False
        if event.error:
            s.set_status(f"Failed to load runs: {event.error}", error=True)
            return []
        self._apply_runs(s, event)
        s.selected_run_ids.clear()
        s.runs_list.cursor = 0
        if s.status.startswith(("Loading runs", "Refreshing runs")):
            s.set_status("")
        return []

    def _on_runs_refreshed(self, s: SessionState, event: RunsRefreshed) -> list[Command]:
        self.refresher.on_result(s)
        if (event.run_filter != s.runs_filter or event.page != s.pagination.page
                or s.pagination.loading):
            _log.debug("Dropping stale runs refresh")
            return []
        if event.error:
            _log.warning(f"Runs refresh failed: {event.error}")
            s.set_status(f"Refresh failed: {event.error}", error=True)
            return []
        current = s.cursor_run()
        self._apply_runs(s, event)
        s.selected_run_ids &= {run.id for run in s.runs}
        visible = s.visible_runs()
        s.runs_list.clamp(len(visible))
        if current is not None:
            for i, run in enumerate(visible):
                if run.id == current.id:
                    s.runs_list.cursor = i
        return []

    def _on_run_loaded(self, s: SessionState, event: RunLoaded) -> list[Command]:
        if event.error or event.run is None:
            s.set_status(f"Failed to load run: {event.error}", error=True)
            return []
        s.runs = [event.run if run.id == event.run_id else run for run in s.runs]
        if s.details.run and s.details.run.id == event.run_id:
            s.details.run = event.run
        if s.info.run and s.info.run.id == event.run_id:
            s.info.run = event.run
        return []

    # === Jobs and logs results ===

    def _on_jobs_loaded(self, s: SessionState, event: JobsLoaded) -> list[Command]:
        commands: list[Command] = []
        details = s.details
        current = (details.run is not None and details.run.id == event.run_id
                   and event.attempt == s.live.viewing_attempt)
        if current:
            details.loading = False
            if event.error:
                details.error = event.error
                s.set_status(f"Failed to load jobs: {event.error}", error=True)
            else:
                details.jobs = list(event.jobs)
                details.error = ""
                details.cursor = min(details.cursor, max(0, len(details.jobs) - 1))
        else:
            _log.debug(f"Jobs for run {event.run_id} attempt {event.attempt} are not displayed")

        if (not event.error and s.info.kind == "run" and s.info.run is not None
                and s.info.run.id == event.run_id):
            s.info.jobs = list(event.jobs)

        if s.live.is_auto_refresh(event.run_id):
            if not event.error and event.jobs and all(job.is_complete for job in event.jobs):
                _log.info(f"All jobs of run {event.run_id} completed")
                s.live.clear_auto_refresh()
                commands.append(FetchRun(event.run_id))
                if current:
                    self._set_log_scope(s, event.run_id, s.live.viewing_attempt)
                    commands.append(FetchLogs(details.run, s.live.viewing_attempt))
            else:
                commands += self.tailer.schedule_jobs(s, event.run_id)
        return commands

    def _on_logs_loaded(self, s: SessionState, event: LogsLoaded) -> list[Command]:
        if s.log_scope != (event.run_id, event.attempt):
            _log.debug(f"Dropping logs for run {event.run_id} attempt {event.attempt}")
            return []
        s.logs_loading = False
        lv = s.log_view
        showing = s.overlay == Overlay.LOG and lv.job_name and not s.live.tailing
        if event.error:
            run = s.details.run
            if run is not None and run.is_complete:
                s.set_status(f"Logs unavailable: {event.error}", error=True)
            else:
                _log.debug(f"Logs for in-progress run {event.run_id} unavailable: {event.error}")
            if showing and lv.loading:
                lv.loading = False
                lv.content = f"Failed to load logs: {event.error}"
            return []
        s.log_map = dict(event.logs)
        if showing:
            content = find_job_log(s.log_map, lv.job_name)
            if content is not None:
                self._set_log_content(s, _find_job(s, lv.job_id, lv.job_name), content)
            elif lv.loading:
                lv.loading = False
                lv.content = "No log found for this job."
        return []

    def _on_job_log_loaded(self, s: SessionState, event: JobLogLoaded) -> list[Command]:
        lv = s.log_view
        showing = s.overlay == Overlay.LOG and lv.job_id == event.job_id
        if event.error:
            if showing:
                lv.loading = False
                lv.content = f"Failed to load log: {event.error}"
            s.set_status(f"Failed to load log for {event.job_name}: {event.error}", error=True)
            return []
        if s.log_scope == (event.run_id, 0) and event.content:
            s.log_map[event.job_name] = event.content
        if showing and not s.live.is_tailing(event.job_id):
            self._set_log_content(s, _find_job(s, event.job_id, event.job_name), event.content)
        return []

    def _on_job_status_loaded(self, s: SessionState, event: JobStatusLoaded) -> list[Command]:
        lv = s.log_view
        if (not s.live.is_tailing(event.job_id) or s.overlay != Overlay.LOG
                or lv.job_id != event.job_id):
            _log.debug(f"Dropping status of job {event.job_id}")
            return []
        if event.error or event.job is None:
            lv.notice = f"Status check failed: {event.error}"
            return self.tailer.schedule_steps(s, event.job_id, event.job_name)
        job = event.job
        s.details.jobs = [job if j.id == job.id else j for j in s.details.jobs]
        lv.notice = ""
        if job.is_complete:
            _log.info(f"Job {job.name} completed ({job.conclusion})")
            s.live.stop_tailing()
            lv.loading = True
            lv.content = f"Job completed ({job.conclusion or 'done'}). Loading logs..."
            run_id = s.details.run.id if s.details.run else job.run_id
            return [FetchJobLog(run_id, job.id, job.name)]
        lv.content = render_step_progress(job)
        return self.tailer.schedule_steps(s, job.id, job.name)

    # =========================================================================
    # Log overlay
    # =========================================================================

    def _select_job(self, s: SessionState) -> list[Command]:
        job = s.details.current_job()
        if job is None:
            return []
        s.log_view = LogViewState(job_id=job.id, job_name=job.name)
        s.open_overlay(Overlay.LOG)
        if not job.is_complete:
            s.live.start_tailing(job.id, job.name)
            s.log_view.content = render_step_progress(job)
            return [CheckJobStatus(job.id, job.name)]
        s.live.stop_tailing()
        content = find_job_log(s.log_map, job.name)
        if content is None:
            s.log_view.loading = True
            s.log_view.content = "Loading log..."
            run_id = s.details.run.id if s.details.run else job.run_id
            return [FetchJobLog(run_id, job.id, job.name)]
        self._set_log_content(s, job, content)
        return []

    def _set_log_content(self, s: SessionState, job, content: str) -> None:
        """Show content, opening at the first failed step when there is one."""
        lv = s.log_view
        lv.loading = False
        lv.matches = []
        attempt = s.live.viewing_attempt
        if attempt > 0 and is_system_stub(content):
            lv.content = f"This job did not run in attempt {attempt}."
            lv.offset = 0
            return
        lv.content = content
        line = find_failed_step_line(content, first_failed_step_name(job))
        lv.offset = max(0, line - 1)

    def _log_page(self, s: SessionState) -> int:
        return max(1, s.height - 8)

    def _scroll_log(self, s: SessionState, offset: int) -> None:
        lv = s.log_view
        last = max(0, len(lv.lines) - self._log_page(s))
        lv.offset = max(0, min(last, offset))

    def _log_key(self, s: SessionState, key: str) -> list[Command]:
        lv = s.log_view
        page = self._log_page(s)
        if key in _BACK:
            s.live.stop_tailing()
            s.close_overlay()
        elif key in _DOWN:
            self._scroll_log(s, lv.offset + 1)
        elif key in _UP:
            self._scroll_log(s, lv.offset - 1)
        elif key in ("pagedown", "space", "ctrl+f", "ctrl+d"):
            self._scroll_log(s, lv.offset + page)
        elif key in ("pageup", "b", "ctrl+b", "ctrl+u"):
            self._scroll_log(s, lv.offset - page)
        elif key in ("g", "home"):
            lv.offset = 0
        elif key in ("G", "end"):
            self._scroll_log(s, len(lv.lines))
        elif key == "/":
            lv.searching = True
            lv.search_text = ""
        elif key in ("n", "N") and lv.matches:
            step = 1 if key == "n" else -1
            lv.match_index = (lv.match_index + step) % len(lv.matches)
            self._scroll_log(s, lv.matches[lv.match_index])
        elif key == "a":
            return self._cycle_attempt(s)
        return []

    def _log_search_key(self, s: SessionState, event: KeyPressed) -> list[Command]:
        lv = s.log_view
        key = event.name
        if key == "escape":
            lv.searching = False
            lv.search_text = ""
        elif key == "enter":
            lv.searching = False
            lv.matches = find_line_matches(lv.content, lv.search_text)
            lv.match_index = 0
            if lv.matches:
                self._scroll_log(s, lv.matches[0])
                s.set_status(f"{len(lv.matches)} matches for '{lv.search_text}'")
            else:
                s.set_status(f"No matches for '{lv.search_text}'")
        elif key == "backspace":
            lv.search_text = lv.search_text[:-1]
        elif event.text:
            lv.search_text += event.text
        return []

    # =========================================================================
    # Info overlay
    # =========================================================================

    def _open_run_info(self, s: SessionState, run) -> list[Command]:
        jobs = list(s.details.jobs) if s.details.run and s.details.run.id == run.id else []
        s.info = InfoState(kind="run", run=run, jobs=jobs)
        s.open_overlay(Overlay.INFO)
        if not run.is_complete and not s.live.is_auto_refresh(run.id):
            s.live.set_auto_refresh(run.id)
            s.info_started_refresh = True
        return [FetchJobs(run.id, 0)]

    def _end_info_refresh(self, s: SessionState) -> list[Command]:
        """Stop the refresh the info overlay started; resume the details run's own."""
        if not s.info_started_refresh:
            return []
        s.info_started_refresh = False
        s.live.clear_auto_refresh()
        run = s.details.run
        if run is not None and not run.is_complete:
            s.live.set_auto_refresh(run.id)
            return [FetchJobs(run.id, s.live.viewing_attempt)]
        return []

    def _info_key(self, s: SessionState, key: str) -> list[Command]:
        if key in _BACK or key == "i":
            commands = self._end_info_refresh(s)
            s.close_overlay()
            return commands
        if key in _DOWN:
            s.info.offset += 1
        elif key in _UP:
            s.info.offset = max(0, s.info.offset - 1)
        return []

    # =========================================================================
    # Search overlay
    # =========================================================================

    def _open_search(self, s: SessionState) -> list[Command]:
        s.search = SearchState(run_id=s.log_scope[0] if s.log_scope else 0)
        s.open_overlay(Overlay.SEARCH)
        if not s.log_map:
            s.set_status("No logs loaded; select a run first")
        return []

    def _search_key(self, s: SessionState, event: KeyPressed) -> list[Command]:
        sv = s.search
        key = event.name
        if sv.input_mode:
            if key == "escape":
                s.close_overlay()
            elif key == "enter":
                return self._start_search(s)
            elif key == "backspace":
                sv.query_text = sv.query_text[:-1]
            elif event.text:
                sv.query_text += event.text
            return []

        count = sv.results.total_count if sv.results else 0
        if key in _BACK:
            s.close_overlay()
        elif key == "q":
            return [Quit()]
        elif key in _DOWN:
            sv.cursor = min(max(0, count - 1), sv.cursor + 1)
        elif key in _UP:
            sv.cursor = max(0, sv.cursor - 1)
        elif key in ("g", "home"):
            sv.cursor = 0
        elif key in ("G", "end"):
            sv.cursor = max(0, count - 1)
        elif key == "/":
            sv.input_mode = True
        elif key == "S":
            return self._open_filter_form(s)
        elif key == "enter" and count:
            return self._open_search_match(s)
        return []

    def _start_search(self, s: SessionState) -> list[Command]:
        sv = s.search
        text = sv.query_text.strip()
        if not text:
            return []
        if not s.log_map:
            s.set_status("No logs loaded; select a run first", error=True)
            return []
        sv.running = True
        s.set_status(f"Searching for '{text}'...")
        failed = frozenset(job.name for job in s.details.jobs if job.failed)
        return [RunSearch(
            run_id=sv.run_id,
            query_text=text,
            query=SearchQuery.parse(text),
            logs=dict(s.log_map),
            failed_jobs=failed,
        )]

    def _open_search_match(self, s: SessionState) -> list[Command]:
        match = s.search.results.matches[s.search.cursor]
        content = find_job_log(s.log_map, match.job_name) or ""
        job = _find_job(s, job_name=match.job_name)
        s.live.stop_tailing()
        s.log_view = LogViewState(
            job_id=job.id if job else 0,
            job_name=match.job_name,
            content=content,
            offset=max(0, match.line - 1),
        )
        query = s.search.results.query
        if not query.is_regex:
            s.log_view.search_text = query.pattern
            s.log_view.matches = find_line_matches(content, query.pattern)
            if match.line - 1 in s.log_view.matches:
                s.log_view.match_index = s.log_view.matches.index(match.line - 1)
        s.open_overlay(Overlay.LOG, resume=Overlay.SEARCH)
        return []

    def _on_search_done(self, s: SessionState, event: SearchDone) -> list[Command]:
        sv = s.search
        active = Overlay.SEARCH in (s.overlay, s.overlay_resume)
        if not active or event.run_id != sv.run_id:
            _log.debug("Dropping search results for inactive search")
            return []
        sv.running = False
        if event.query_text != sv.query_text.strip() or event.results is None:
            return []
        results = event.results
        if results.error:
            s.set_status(results.error, error=True)
            return []
        sv.results = results
        sv.cursor = 0
        sv.input_mode = False
        s.set_status(
            f"{results.total_count} matches in {len(results.job_counts)} jobs for '{event.query_text}'"
        )
        return []

    # =========================================================================
    # Filter form
    # =========================================================================

    def _open_filter_form(self, s: SessionState) -> list[Command]:
        s.filter_form = FilterFormState.from_filter(s.runs_filter, s.workflows.workflows)
        s.open_overlay(Overlay.FILTER_FORM)
        return []

    def _filter_form_key(self, s: SessionState, event: KeyPressed) -> list[Command]:
        form = s.filter_form
        key = event.name
        if form is None or key == "escape":
            s.filter_form = None
            s.close_overlay()
            return []
        if key == "enter":
            new_filter = form.to_filter()
            s.filter_form = None
            s.close_overlay()
            if new_filter == s.runs_filter:
                return []
            s.runs_filter = new_filter
            s.runs_list.cursor = 0
            s.set_status(f"Filter: {new_filter.summary()}" if not new_filter.is_empty else "Filter cleared")
            return self._fetch_runs(s, FETCH_FRESH, 1)
        if key in ("tab", "down"):
            form.focused = (form.focused + 1) % 5
        elif key in ("shift+tab", "up"):
            form.focused = (form.focused - 1) % 5
        elif form.on_text_field:
            if key == "backspace":
                form.backspace()
            elif event.text:
                form.type_text(event.text)
        elif key in ("right", "l", "space"):
            form.cycle(1)
        elif key in ("left", "h"):
            form.cycle(-1)
        elif key == "c":
            s.filter_form = FilterFormState(workflows=form.workflows, focused=form.focused)
        return []

    # =========================================================================
    # Control action results
    # =========================================================================

    def _on_action_done(self, s: SessionState, event: ActionDone) -> list[Command]:
        if event.error:
            s.set_status(f"{event.label}: {event.error}", error=True)
            return []
        s.set_status(f"{_ACTION_DONE.get(event.action, 'Done')}: {event.label}")
        if event.action in RUN_ACTIONS:
            if event.action == ACTION_DELETE_RUN:
                s.selected_run_ids.discard(event.target_id)
                if s.details.run and s.details.run.id == event.target_id:
                    s.details = DetailsState()
                    s.live.clear_auto_refresh()
            return self._fetch_runs(s, FETCH_PAGE, s.pagination.page)
        if event.action in (ACTION_ENABLE_WORKFLOW, ACTION_DISABLE_WORKFLOW):
            s.workflows.loading = True
            return [FetchWorkflows()]
        s.caches.selected_ids.discard(event.target_id)
        s.caches.loading = True
        return [FetchActionsCaches()]

    def _on_bulk_done(self, s: SessionState, event: BulkDone) -> list[Command]:
        if event.error:
            s.set_status(f"{event.label}: {event.error}", error=True)
        elif event.result is not None:
            s.set_status(f"{event.label}: {event.result.summary('deleted')}",
                         error=not event.result.ok)
        if event.action in (BULK_DELETE_RUNS, BULK_DELETE_WORKFLOW_RUNS):
            s.selected_run_ids.clear()
            if s.view == View.WORKFLOWS:
                s.workflows.loading = True
                return [FetchWorkflows()]
            return self._fetch_runs(s, FETCH_PAGE, s.pagination.page)
        s.caches.selected_ids.clear()
        s.caches.loading = True
        return [FetchActionsCaches()]

    # =========================================================================
    # Workflows tab
    # =========================================================================

    def _workflows_key(self, s: SessionState, key: str) -> list[Command]:
        workflows = s.visible_workflows()
        lst = s.workflows.list
        if self._move(lst, key, len(workflows)):
            return []
        if key == "f":
            lst.filtering = True
            return []
        if key == "r":
            s.workflows.loading = True
            return [FetchWorkflows()]
        if key in _BACK and lst.filter_text:
            lst.filter_text = ""
            lst.cursor = 0
            return []
        if not workflows or lst.cursor >= len(workflows):
            return []
        wf = workflows[lst.cursor]
        if key == "enter":
            s.runs_filter = RunFilter(workflow_id=wf.id, workflow_name=wf.name)
            s.runs_list = ListState()
            s.focused_pane = Pane.LEFT
            commands = self._switch_tab(s, View.RUNS)
            s.set_status(f"Filter: {s.runs_filter.summary()}")
            return commands + self._fetch_runs(s, FETCH_FRESH, 1)
        if key == "e":
            if wf.enabled:
                s.set_status(f"{wf.name} is already enabled")
                return []
            return self._ask(s, "Enable workflow", f"Enable workflow {wf.name}?",
                             ACTION_ENABLE_WORKFLOW, (wf.id,), wf.name)
        if key == "D":
            if not wf.enabled:
                s.set_status(f"{wf.name} is already disabled")
                return []
            return self._ask(s, "Disable workflow", f"Disable workflow {wf.name}?",
                             ACTION_DISABLE_WORKFLOW, (wf.id,), wf.name)
        if key in ("d", "x"):
            return self._ask(
                s, "Delete workflow runs",
                f"Delete ALL runs of {wf.name}? This cannot be undone.",
                BULK_DELETE_WORKFLOW_RUNS, (wf.id,), f"runs of {wf.name}",
            )
        return []

    def _on_workflows_loaded(self, s: SessionState, event: WorkflowsLoaded) -> list[Command]:
        s.workflows.loading = False
        if event.error:
            s.set_status(f"Failed to load workflows: {event.error}", error=True)
            return []
        s.workflows.workflows = list(event.workflows)
        s.workflows.list.clamp(len(s.visible_workflows()))
        if not event.workflows:
            return []
        return [FetchWorkflowStats(tuple(event.workflows))]

    def _on_workflow_stats_loaded(self, s: SessionState, event: WorkflowStatsLoaded) -> list[Command]:
        if event.error:
            _log.warning(f"Workflow stats failed: {event.error}")
        s.workflows.stats = dict(event.stats)
        return []

    # =========================================================================
    # Metrics tab
    # =========================================================================

    def _metrics_key(self, s: SessionState, key: str) -> list[Command]:
        metrics = s.metrics
        if key in ("]", "right", "l", "tab"):
            metrics.window_index = (metrics.window_index + 1) % len(metrics.windows)
        elif key in ("[", "left", "h", "shift+tab"):
            metrics.window_index = (metrics.window_index - 1) % len(metrics.windows)
        elif key in _DOWN:
            metrics.offset += 1
            return []
        elif key in _UP:
            metrics.offset = max(0, metrics.offset - 1)
            return []
        elif key != "r":
            return []
        metrics.loading = True
        metrics.offset = 0
        return [FetchDashboard(metrics.window.days)]

    def _on_dashboard_loaded(self, s: SessionState, event: DashboardLoaded) -> list[Command]:
        if event.window_days != s.metrics.window.days:
            _log.debug(f"Dropping metrics for {event.window_days}d window")
            return []
        s.metrics.loading = False
        if event.error:
            s.set_status(f"Failed to load metrics: {event.error}", error=True)
            return []
        s.metrics.metrics = event.metrics
        return []

    def _on_retention_loaded(self, s: SessionState, event: RetentionLoaded) -> list[Command]:
        if event.error:
            _log.info(f"Log retention unavailable: {event.error}")
            return []
        label = s.metrics.window.label
        s.metrics.windows = windows_for_retention(event.days)
        labels = [w.label for w in s.metrics.windows]
        s.metrics.window_index = labels.index(label) if label in labels else min(1, len(labels) - 1)
        return []

    # =========================================================================
    # Cache tab
    # =========================================================================

    def _caches_key(self, s: SessionState, key: str) -> list[Command]:
        caches = s.visible_caches()
        state = s.caches
        lst = state.list
        if self._move(lst, key, len(caches)):
            return []
        if key == "f":
            lst.filtering = True
        elif key == "r":
            state.loading = True
            return [FetchActionsCaches()]
        elif key == "s":
            state.sort = _CACHE_SORT_ORDER[(_CACHE_SORT_ORDER.index(state.sort) + 1) % len(_CACHE_SORT_ORDER)]
            lst.cursor = 0
            s.set_status(f"Sorted by {state.sort.value}")
        elif key in _BACK and lst.filter_text:
            lst.filter_text = ""
            lst.cursor = 0
        elif key == "x":
            if not state.caches:
                return []
            return self._ask(
                s, "Clear caches",
                f"Delete ALL {state.total_count or len(state.caches)} caches of this repository?",
                BULK_CLEAR_CACHES, (), "all caches",
            )
        elif caches and lst.cursor < len(caches):
            cache = caches[lst.cursor]
            if key == "space":
                state.selected_ids ^= {cache.id}
            elif key == "d":
                if state.selected_ids:
                    ids = tuple(sorted(state.selected_ids))
                    return self._ask(s, "Delete caches", f"Delete {len(ids)} selected caches?",
                                     BULK_DELETE_CACHES, ids, f"{len(ids)} caches")
                return self._ask(s, "Delete cache", f"Delete cache {cache.key}?",
                                 ACTION_DELETE_CACHE, (cache.id,), cache.key)
        return []

    def _on_caches_loaded(self, s: SessionState, event: ActionsCachesLoaded) -> list[Command]:
        s.caches.loading = False
        if event.error:
            s.set_status(f"Failed to load caches: {event.error}", error=True)
            return []
        s.caches.caches = list(event.caches)
        s.caches.total_count = event.total_count
        s.caches.selected_ids.clear()
        s.caches.list.clamp(len(s.visible_caches()))
        return []

    # =========================================================================
    # Runners tab
    # =========================================================================

    def _runners_key(self, s: SessionState, key: str) -> list[Command]:
        lst = s.runners.list
        if self._move(lst, key, len(s.visible_runners())):
            return []
        if key == "f":
            lst.filtering = True
        elif key == "r":
            s.runners.loading = True
            return [FetchRunners()]
        elif key in _BACK and lst.filter_text:
            lst.filter_text = ""
            lst.cursor = 0
        return []

    def _on_runners_loaded(self, s: SessionState, event: RunnersLoaded) -> list[Command]:
        s.runners.loading = False
        if event.error:
            s.set_status(f"Failed to load runners: {event.error}", error=True)
            return []
        s.runners.runners = list(event.runners)
        s.runners.org_failed = event.org_failed
        s.runners.list.clamp(len(s.visible_runners()))
        return []

    # =========================================================================
    # Log cache
    # =========================================================================

    def _on_cache_evicted(self, s: SessionState, event: CacheEvicted) -> list[Command]:
        if event.error:
            _log.warning(f"Log cache eviction failed: {event.error}")
        elif event.removed:
            _log.info(f"Evicted {event.removed} cached log files")
        return []
