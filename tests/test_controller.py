"""
Tests for the SessionController state machine.

The controller is pure, so every test feeds events and inspects the
returned state and commands; nothing touches the network or a terminal.
"""

import copy
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

from actions_api import Step, Workflow
from actions_tui.commands import (
    ACTION_RERUN,
    BULK_DELETE_RUNS,
    FETCH_FRESH,
    FETCH_PAGE,
    BulkAction,
    CheckJobStatus,
    EvictLogCache,
    FetchDashboard,
    FetchJobLog,
    FetchJobs,
    FetchLogs,
    FetchRetention,
    FetchRun,
    FetchRuns,
    FetchWorkflows,
    FetchWorkflowStats,
    Quit,
    RunAction,
    RunSearch,
    ScheduleTick,
)
from actions_tui.controller import SessionController
from actions_tui.events import (
    ActionDone,
    DashboardLoaded,
    JobsLoaded,
    JobStatusLoaded,
    JobsTick,
    KeyPressed,
    LogsLoaded,
    RetentionLoaded,
    RunsLoaded,
    RunsPageLoaded,
    RunsRefreshed,
    RunsTick,
    SearchDone,
    Started,
    WorkflowsLoaded,
)
from actions_tui.state import Overlay, Pane, RunFilter, SessionState, View
from actions_tui.utils.metrics import Metrics
from actions_tui.utils.search import SearchQuery, search_logs
from fakes import make_job, make_run


def key(name: str) -> KeyPressed:
    """Build a key event the way the terminal reports it."""
    if name == "space":
        return KeyPressed("space", " ")
    if len(name) == 1:
        return KeyPressed(name, name)
    return KeyPressed(name)


def feed(ctrl, state, *events):
    """Apply events in order; return the final state and the last event's commands."""
    commands = []
    for event in events:
        state, commands = ctrl.handle(state, event)
    return state, commands


def type_keys(ctrl, state, text):
    return feed(ctrl, state, *[key(c) for c in text])


@pytest.fixture
def ctrl():
    return SessionController()


@pytest.fixture
def runs():
    return [
        make_run(1, name="CI"),
        make_run(2, name="Deploy", status="in_progress", conclusion=""),
        make_run(3, name="CI", run_attempt=2, conclusion="failure"),
    ]


@pytest.fixture
def loaded(ctrl, runs):
    """State after startup with the first runs page applied."""
    state, _ = feed(ctrl, SessionState(), Started(), RunsLoaded(RunFilter(), 1, runs, total_count=3, seq=1))
    return state


class TestStartup:
    """Tests for the initial fetches."""

    def test_started_dispatches_fetches(self, ctrl):
        """Startup fetches runs, workflows and retention, evicts and starts the refresh."""
        state, commands = ctrl.handle(SessionState(), Started())
        assert FetchRuns(FETCH_FRESH, RunFilter(), 1, 30, seq=1) in commands
        assert FetchWorkflows() in commands
        assert FetchRetention() in commands
        assert EvictLogCache() in commands
        assert ScheduleTick(5.0, RunsTick()) in commands
        assert state.pagination.loading
        assert {View.RUNS, View.WORKFLOWS} <= state.visited

    def test_handle_does_not_mutate_input(self, ctrl):
        """The state passed in is left untouched."""
        original = SessionState()
        ctrl.handle(original, Started())
        assert not original.pagination.loading
        assert original.visited == set()

    def test_runs_loaded(self, loaded):
        """The first page populates the runs list and clears loading."""
        assert [r.id for r in loaded.runs] == [1, 2, 3]
        assert not loaded.pagination.loading
        assert loaded.pagination.total_count == 3
        assert not loaded.pagination.has_more


class TestStaleResults:
    """Tests for dropping results that no longer match the current state."""

    def test_runs_for_old_filter_dropped(self, ctrl, runs):
        """A listing for a different filter is ignored."""
        state, _ = feed(ctrl, SessionState(), Started())
        state, _ = feed(ctrl, state, RunsLoaded(RunFilter(branch="dev"), 1, runs, 3, seq=1))
        assert state.runs == []
        assert state.pagination.loading

    def test_refresh_dropped_while_paging(self, ctrl, loaded, runs):
        """A background refresh never overwrites a page load in progress."""
        state = loaded
        state.pagination.loading = True
        state, _ = feed(ctrl, state, RunsRefreshed(RunFilter(), 1, runs[:1], 1))
        assert len(state.runs) == 3

    def test_logs_for_other_scope_dropped(self, ctrl, loaded):
        """Logs are applied only to the (run, attempt) being viewed."""
        state, _ = feed(ctrl, loaded, key("enter"))
        state, _ = feed(ctrl, state, LogsLoaded(1, 1, {"build": "x"}))
        assert state.log_map == {}
        state, _ = feed(ctrl, state, LogsLoaded(1, 0, {"build": "x"}))
        assert state.log_map == {"build": "x"}
        assert not state.logs_loading

    def test_jobs_for_other_attempt_not_displayed(self, ctrl, loaded):
        """Jobs for an attempt other than the viewed one leave the pane alone."""
        state, _ = feed(ctrl, loaded, key("enter"))
        state, _ = feed(ctrl, state, JobsLoaded(1, 2, [make_job(10, "build")]))
        assert state.details.jobs == []
        assert state.details.loading

    def test_dashboard_for_other_window_dropped(self, ctrl, loaded):
        """Metrics for a window no longer selected are ignored."""
        state, _ = feed(ctrl, loaded, DashboardLoaded(30, Metrics(total_runs=9)))
        assert state.metrics.metrics is None
        state, _ = feed(ctrl, state, DashboardLoaded(7, Metrics(total_runs=9)))
        assert state.metrics.metrics.total_runs == 9


class TestPagination:
    """Tests for paging through runs."""

    def test_next_page_guarded_by_loading(self, ctrl, runs):
        """Only one page request is issued while a load is in flight."""
        page = [make_run(i) for i in range(1, 31)]
        state, _ = feed(ctrl, SessionState(), Started(), RunsLoaded(RunFilter(), 1, page, 90, seq=1))
        assert state.pagination.has_more
        state, commands = feed(ctrl, state, key("right"))
        assert commands == [FetchRuns(FETCH_PAGE, RunFilter(), 2, 30, seq=2)]
        state, commands = feed(ctrl, state, key("l"))
        assert commands == []
        state, _ = feed(ctrl, state, RunsPageLoaded(RunFilter(), 2, runs, 90, seq=2))
        assert state.pagination.page == 2
        assert not state.pagination.has_more

    def test_down_at_last_row_requests_next_page(self, ctrl):
        """Moving past the last row pages forward."""
        page = [make_run(i) for i in range(1, 31)]
        state, _ = feed(ctrl, SessionState(), Started(), RunsLoaded(RunFilter(), 1, page, 90, seq=1))
        state.runs_list.cursor = 29
        state, commands = feed(ctrl, state, key("j"))
        assert commands == [FetchRuns(FETCH_PAGE, RunFilter(), 2, 30, seq=2)]

    def test_refresh_supersedes_page_load(self, ctrl, runs):
        """Loading stays set until the latest listing arrives; older ones are dropped."""
        page = [make_run(i) for i in range(1, 31)]
        state, _ = feed(ctrl, SessionState(), Started(), RunsLoaded(RunFilter(), 1, page, 90, seq=1))
        state, _ = feed(ctrl, state, key("right"))
        state, commands = feed(ctrl, state, key("r"))
        assert commands == [FetchRuns(FETCH_PAGE, RunFilter(), 1, 30, seq=3)]

        state, _ = feed(ctrl, state, RunsPageLoaded(RunFilter(), 2, runs, 90, seq=2))
        assert state.pagination.loading
        assert state.pagination.page == 1
        assert len(state.runs) == 30
        _, commands = feed(ctrl, state, RunsTick())
        assert not any(isinstance(c, FetchRuns) for c in commands)

        state, _ = feed(ctrl, state, RunsPageLoaded(RunFilter(), 1, runs, 90, seq=3))
        assert not state.pagination.loading
        assert [r.id for r in state.runs] == [1, 2, 3]

    def test_action_refetch_supersedes_page_load(self, ctrl, runs):
        """A refetch after an action wins over a page request still in flight."""
        page = [make_run(i) for i in range(1, 31)]
        state, _ = feed(ctrl, SessionState(), Started(), RunsLoaded(RunFilter(), 1, page, 90, seq=1))
        state, _ = feed(ctrl, state, key("right"), ActionDone(ACTION_RERUN, 1, "run #1"))
        assert state.pagination.request_seq == 3
        state, _ = feed(ctrl, state, RunsPageLoaded(RunFilter(), 2, runs, 90, seq=2))
        assert state.pagination.loading

    def test_previous_page_on_first_page(self, ctrl, loaded):
        """There is no page before the first."""
        _, commands = feed(ctrl, loaded, key("h"))
        assert commands == []


class TestRefresh:
    """Tests for the periodic run list refresh."""

    def test_tick_fetches_once(self, ctrl, loaded):
        """A tick refreshes the current page; overlapping ticks only reschedule."""
        state, commands = feed(ctrl, loaded, RunsTick())
        assert ScheduleTick(5.0, RunsTick()) in commands
        assert any(isinstance(c, FetchRuns) and c.kind == "refresh" for c in commands)
        state, commands = feed(ctrl, state, RunsTick())
        assert commands == [ScheduleTick(5.0, RunsTick())]

    def test_refresh_keeps_cursor_on_run(self, ctrl, loaded, runs):
        """The cursor follows the run it was on when rows shift."""
        state, _ = feed(ctrl, loaded, key("j"), RunsTick())
        assert state.cursor_run().id == 2
        newer = [make_run(4)] + runs
        state, _ = feed(ctrl, state, RunsRefreshed(RunFilter(), 1, newer, 4))
        assert state.cursor_run().id == 2
        assert not state.runs_refresh_in_flight

    def test_no_refresh_on_other_tabs(self, ctrl, loaded):
        """Only the Runs tab is refreshed."""
        state, _ = feed(ctrl, loaded, key("2"))
        _, commands = feed(ctrl, state, RunsTick())
        assert commands == [ScheduleTick(5.0, RunsTick())]


class TestRunSelection:
    """Tests for selecting runs and polling their jobs."""

    def test_select_in_progress_run(self, ctrl, loaded, runs):
        """Selecting an incomplete run registers it for auto-refresh."""
        state, commands = feed(ctrl, loaded, key("j"), key("enter"))
        assert commands == [FetchJobs(2, 0), FetchLogs(runs[1], 0)]
        assert state.live.auto_refresh_run_id == 2
        assert state.focused_pane == Pane.MIDDLE
        assert state.log_scope == (2, 0)

    def test_select_completed_run_no_refresh(self, ctrl, loaded):
        """A completed run is not auto-refreshed."""
        state, _ = feed(ctrl, loaded, key("enter"))
        assert state.live.auto_refresh_run_id == 0

    def test_jobs_poll_chain(self, ctrl, loaded):
        """Incomplete jobs schedule exactly one poll; superseded ticks are dropped."""
        state, _ = feed(ctrl, loaded, key("j"), key("enter"))
        running = [make_job(20, "build", run_id=2, status="in_progress", conclusion="")]
        state, commands = feed(ctrl, state, JobsLoaded(2, 0, running))
        assert commands == [ScheduleTick(3.0, JobsTick(2, 1))]
        state, commands = feed(ctrl, state, JobsLoaded(2, 0, running))
        assert commands == []
        state, commands = feed(ctrl, state, JobsTick(2, 0))
        assert commands == []
        state, commands = feed(ctrl, state, JobsTick(2, 1))
        assert commands == [FetchJobs(2, 0)]

    def test_all_jobs_complete_ends_refresh(self, ctrl, loaded, runs):
        """Completion stops polling and fetches the final run and logs."""
        state, _ = feed(ctrl, loaded, key("j"), key("enter"))
        done = [make_job(20, "build", run_id=2)]
        state, commands = feed(ctrl, state, JobsLoaded(2, 0, done))
        assert state.live.auto_refresh_run_id == 0
        assert commands == [FetchRun(2), FetchLogs(runs[1], 0)]

    def test_tick_after_target_change_ends_chain(self, ctrl, loaded):
        """A tick for a run that is no longer the target issues nothing."""
        state, _ = feed(ctrl, loaded, key("j"), key("enter"))
        running = [make_job(20, "build", run_id=2, status="in_progress", conclusion="")]
        state, _ = feed(ctrl, state, JobsLoaded(2, 0, running))
        state, _ = feed(ctrl, state, key("tab"), key("k"), key("enter"))
        _, commands = feed(ctrl, state, JobsTick(2, 1))
        assert commands == []


class TestAttempts:
    """Tests for cycling through attempts."""

    def test_cycle(self, ctrl, loaded, runs):
        """Attempts cycle merged -> 1 -> 2 -> merged with matching fetches."""
        state, _ = feed(ctrl, loaded, key("j"), key("j"), key("enter"))
        state, commands = feed(ctrl, state, key("a"))
        assert state.live.viewing_attempt == 1
        assert commands == [FetchJobs(3, 1), FetchLogs(runs[2], 1)]
        state, _ = feed(ctrl, state, key("a"))
        assert state.live.viewing_attempt == 2
        state, _ = feed(ctrl, state, key("a"))
        assert state.live.viewing_attempt == 0
        assert state.log_scope == (3, 0)

    def test_single_attempt(self, ctrl, loaded):
        """A single-attempt run does not cycle."""
        state, commands = feed(ctrl, loaded, key("enter"), key("a"))
        assert commands == []
        assert state.live.viewing_attempt == 0


class TestLogOverlay:
    """Tests for opening job logs and live tailing."""

    def test_open_completed_job_log(self, ctrl, loaded):
        """A completed job shows its log from the loaded map."""
        state, _ = feed(ctrl, loaded, key("enter"),
                        JobsLoaded(1, 0, [make_job(10, "build")]),
                        LogsLoaded(1, 0, {"build": "line1\nline2"}))
        state, commands = feed(ctrl, state, key("enter"))
        assert commands == []
        assert state.overlay == Overlay.LOG
        assert state.log_view.content == "line1\nline2"

    def test_missing_log_fetched(self, ctrl, loaded):
        """A job absent from the map is fetched individually."""
        state, _ = feed(ctrl, loaded, key("enter"), JobsLoaded(1, 0, [make_job(10, "build")]))
        state, commands = feed(ctrl, state, key("enter"))
        assert commands == [FetchJobLog(1, 10, "build")]
        assert state.log_view.loading

    def test_tail_in_progress_job(self, ctrl, loaded):
        """An incomplete job is tailed until it completes."""
        running = make_job(20, "build", run_id=2, status="in_progress", conclusion="")
        state, _ = feed(ctrl, loaded, key("j"), key("enter"), JobsLoaded(2, 0, [running]))
        state, commands = feed(ctrl, state, key("enter"))
        assert commands == [CheckJobStatus(20, "build")]
        assert state.live.is_tailing(20)
        assert "Job: build" in state.log_view.content

        state, commands = feed(ctrl, state, JobStatusLoaded(20, "build", running))
        assert len(commands) == 1 and isinstance(commands[0], ScheduleTick)

        done = make_job(20, "build", run_id=2)
        state, commands = feed(ctrl, state, JobStatusLoaded(20, "build", done))
        assert commands == [FetchJobLog(2, 20, "build")]
        assert not state.live.tailing

    def test_status_for_untailed_job_dropped(self, ctrl, loaded):
        """Status results for a job no longer tailed are ignored."""
        _, commands = feed(ctrl, loaded, JobStatusLoaded(99, "x", make_job(99, "x")))
        assert commands == []

    def test_status_for_other_job_leaves_log_view(self, ctrl, loaded):
        """A late status for a job other than the tailed one changes nothing."""
        running = make_job(20, "build", run_id=2, status="in_progress", conclusion="")
        other = make_job(21, "test", run_id=2, status="in_progress", conclusion="")
        state, _ = feed(ctrl, loaded, key("j"), key("enter"), JobsLoaded(2, 0, [running, other]))
        state, _ = feed(ctrl, state, key("enter"))
        assert state.live.is_tailing(20)
        before = copy.deepcopy(state.log_view)

        done = make_job(21, "test", run_id=2)
        state, commands = feed(ctrl, state, JobStatusLoaded(21, "test", done))
        assert commands == []
        assert state.log_view == before
        assert state.live.is_tailing(20)

    def test_jump_to_failed_step(self, ctrl, loaded):
        """A failed job opens at its first failed step."""
        job = make_job(30, "test", run_id=3, conclusion="failure",
                       steps=[Step(name="Run tests", conclusion="failure")])
        content = "setup\nmore\n##[group]Run tests\nboom"
        state, _ = feed(ctrl, loaded, key("j"), key("j"), key("enter"),
                        JobsLoaded(3, 0, [job]), LogsLoaded(3, 0, {"test": content}))
        state, _ = feed(ctrl, state, key("enter"))
        assert state.log_view.offset == 2

    def test_in_log_search(self, ctrl, loaded):
        """Typed text finds matching lines and n cycles through them."""
        lines = "\n".join(["ok"] * 5 + ["ERROR one"] + ["ok"] * 60 + ["error two"])
        state, _ = feed(ctrl, loaded, key("enter"),
                        JobsLoaded(1, 0, [make_job(10, "build")]),
                        LogsLoaded(1, 0, {"build": lines}), key("enter"))
        state, _ = feed(ctrl, state, key("/"))
        assert state.log_view.searching
        state, _ = type_keys(ctrl, state, "error")
        state, _ = feed(ctrl, state, key("enter"))
        assert state.log_view.matches == [5, 66]
        assert state.log_view.offset == 5
        state, _ = feed(ctrl, state, key("n"))
        assert state.log_view.match_index == 1

    def test_tab_switch_closes_log(self, ctrl, loaded):
        """Switching tabs closes the log overlay and stops tailing."""
        running = make_job(20, "build", run_id=2, status="in_progress", conclusion="")
        state, _ = feed(ctrl, loaded, key("j"), key("enter"), JobsLoaded(2, 0, [running]), key("enter"))
        state, _ = feed(ctrl, state, key("2"))
        assert state.overlay == Overlay.NONE
        assert state.view == View.WORKFLOWS
        assert not state.live.tailing

    def test_stub_in_attempt(self, ctrl, loaded):
        """A job that did not run in the viewed attempt says so."""
        state, _ = feed(ctrl, loaded, key("j"), key("j"), key("enter"), key("a"))
        stub = "Requested labels: ubuntu-latest\nWaiting for a runner"
        job = make_job(31, "lint", run_id=3, run_attempt=1)
        state, _ = feed(ctrl, state, JobsLoaded(3, 1, [job]), LogsLoaded(3, 1, {"lint": stub}), key("enter"))
        assert state.log_view.content == "This job did not run in attempt 1."


class TestConfirm:
    """Tests for the confirmation dialog."""

    def test_enter_defaults_to_no(self, ctrl, loaded):
        """Enter on a fresh dialog cancels."""
        state, _ = feed(ctrl, loaded, key("R"))
        assert state.overlay == Overlay.CONFIRM
        state, commands = feed(ctrl, state, key("enter"))
        assert commands == []
        assert state.overlay == Overlay.NONE
        assert state.status == "Cancelled"

    def test_toggle_then_enter_confirms(self, ctrl, loaded):
        """Toggling the highlighted button lets enter confirm."""
        state, _ = feed(ctrl, loaded, key("R"), key("tab"))
        _, commands = feed(ctrl, state, key("enter"))
        assert commands == [RunAction(ACTION_RERUN, 1, "run #1")]

    def test_y_confirms(self, ctrl, loaded):
        """y confirms immediately."""
        _, commands = feed(ctrl, loaded, key("R"), key("y"))
        assert commands == [RunAction(ACTION_RERUN, 1, "run #1")]

    def test_cancel_needs_incomplete_run(self, ctrl, loaded):
        """Cancelling a completed run is refused without a dialog."""
        state, _ = feed(ctrl, loaded, key("C"))
        assert state.overlay == Overlay.NONE
        assert state.status_error

    def test_bulk_delete_selection(self, ctrl, loaded):
        """d with a selection deletes the selected runs."""
        state, _ = feed(ctrl, loaded, key("space"), key("j"), key("j"), key("space"), key("d"))
        assert state.confirm.action == BULK_DELETE_RUNS
        _, commands = feed(ctrl, state, key("y"))
        assert commands == [BulkAction(BULK_DELETE_RUNS, (1, 3), "2 runs")]

    def test_action_done_refetches_page(self, ctrl, loaded):
        """A successful action refetches the current page."""
        state, commands = feed(ctrl, loaded, ActionDone(ACTION_RERUN, 1, "run #1"))
        assert commands == [FetchRuns(FETCH_PAGE, RunFilter(), 1, 30, seq=2)]
        assert state.status == "Re-run requested: run #1"

    def test_action_error_status(self, ctrl, loaded):
        """A failed action reports its error."""
        state, commands = feed(ctrl, loaded, ActionDone(ACTION_RERUN, 1, "run #1", error="HTTP 403"))
        assert commands == []
        assert state.status_error and "HTTP 403" in state.status


class TestOverlays:
    """Tests for overlay exclusivity and help."""

    def test_help_toggle(self, ctrl, loaded):
        """? opens help and q closes it without quitting."""
        state, _ = feed(ctrl, loaded, key("?"))
        assert state.overlay == Overlay.HELP
        state, commands = feed(ctrl, state, key("q"))
        assert commands == []
        assert state.overlay == Overlay.NONE

    def test_help_not_over_log(self, ctrl, loaded):
        """? inside the log overlay does not stack help on top."""
        state, _ = feed(ctrl, loaded, key("enter"),
                        JobsLoaded(1, 0, [make_job(10, "build")]),
                        LogsLoaded(1, 0, {"build": "x"}), key("enter"), key("?"))
        assert state.overlay == Overlay.LOG

    def test_quit(self, ctrl, loaded):
        """q quits and ctrl+c quits from anywhere."""
        assert feed(ctrl, loaded, key("q"))[1] == [Quit()]
        state, _ = feed(ctrl, loaded, key("R"))
        assert feed(ctrl, state, key("ctrl+c"))[1] == [Quit()]

    def test_info_overlay_starts_and_ends_refresh(self, ctrl, loaded):
        """Run info on an incomplete run polls it only while open."""
        state, commands = feed(ctrl, loaded, key("j"), key("i"))
        assert state.overlay == Overlay.INFO
        assert commands == [FetchJobs(2, 0)]
        assert state.live.auto_refresh_run_id == 2
        state, _ = feed(ctrl, state, key("escape"))
        assert state.overlay == Overlay.NONE
        assert state.live.auto_refresh_run_id == 0

    def test_info_restores_details_refresh(self, ctrl, runs):
        """Closing info resumes the details run's own auto-refresh."""
        other = make_run(4, status="queued", conclusion="")
        state, _ = feed(ctrl, SessionState(), Started(),
                        RunsLoaded(RunFilter(), 1, runs + [other], 4, seq=1))
        state, _ = feed(ctrl, state, key("j"), key("enter"), key("tab"), key("j"), key("j"), key("i"))
        assert state.live.auto_refresh_run_id == 4
        state, commands = feed(ctrl, state, key("escape"))
        assert state.live.auto_refresh_run_id == 2
        assert commands == [FetchJobs(2, 0)]


class TestListFilter:
    """Tests for typed list filtering."""

    def test_filter_runs(self, ctrl, loaded):
        """Typed text narrows the visible runs; escape clears it."""
        state, _ = feed(ctrl, loaded, key("f"))
        state, _ = type_keys(ctrl, state, "dep")
        assert [r.id for r in state.visible_runs()] == [2]
        state, _ = feed(ctrl, state, key("enter"))
        assert not state.runs_list.filtering
        assert state.runs_list.filter_text == "dep"
        state, _ = feed(ctrl, state, key("escape"))
        assert state.runs_list.filter_text == ""
        assert len(state.visible_runs()) == 3

    def test_typing_does_not_trigger_bindings(self, ctrl, loaded):
        """Keys typed into a filter are text, not commands."""
        state, _ = feed(ctrl, loaded, key("f"))
        state, commands = feed(ctrl, state, key("q"))
        assert commands == []
        assert state.runs_list.filter_text == "q"


class TestFilterForm:
    """Tests for the server-side run filter."""

    def test_apply_event_filter(self, ctrl, loaded):
        """Choosing an event refetches page one with the new filter."""
        state, _ = feed(ctrl, loaded, key("S"))
        assert state.overlay == Overlay.FILTER_FORM
        state, _ = feed(ctrl, state, key("tab"), key("right"))
        state, commands = feed(ctrl, state, key("enter"))
        assert state.runs_filter == RunFilter(event="push")
        assert commands == [FetchRuns(FETCH_FRESH, RunFilter(event="push"), 1, 30, seq=2)]
        assert state.overlay == Overlay.NONE

    def test_text_fields(self, ctrl, loaded):
        """Branch is typed, and escape discards the form."""
        state, _ = feed(ctrl, loaded, key("S"), key("tab"), key("tab"), key("tab"))
        state, _ = type_keys(ctrl, state, "dev")
        assert state.filter_form.branch == "dev"
        state, commands = feed(ctrl, state, key("escape"))
        assert commands == []
        assert state.runs_filter == RunFilter()

    def test_escape_in_list_clears_filter(self, ctrl, loaded):
        """Escape in the runs pane clears an active server-side filter."""
        state, _ = feed(ctrl, loaded, key("S"), key("tab"), key("right"), key("enter"))
        state, _ = feed(ctrl, state, RunsLoaded(RunFilter(event="push"), 1, [], 0, seq=2))
        state, commands = feed(ctrl, state, key("escape"))
        assert state.runs_filter.is_empty
        assert commands == [FetchRuns(FETCH_FRESH, RunFilter(), 1, 30, seq=3)]

    def test_workflow_choice(self, ctrl, loaded):
        """Loaded workflows are offered as choices."""
        workflows = [Workflow(id=100, name="CI", state="active")]
        state, commands = feed(ctrl, loaded, WorkflowsLoaded(workflows))
        assert commands == [FetchWorkflowStats(tuple(workflows))]
        state, _ = feed(ctrl, state, key("S"), key("right"), key("enter"))
        assert state.runs_filter == RunFilter(workflow_id=100, workflow_name="CI")


class TestSearch:
    """Tests for the log search overlay."""

    def _with_logs(self, ctrl, loaded):
        logs = {"build": "ok\nerror here", "test": "fine"}
        state, _ = feed(ctrl, loaded, key("enter"),
                        JobsLoaded(1, 0, [make_job(10, "build"), make_job(11, "test")]),
                        LogsLoaded(1, 0, logs))
        return state, logs

    def test_search_flow(self, ctrl, loaded):
        """Search runs in the background, results open the log, escape returns."""
        state, logs = self._with_logs(ctrl, loaded)
        state, _ = feed(ctrl, state, key("/"))
        assert state.overlay == Overlay.SEARCH
        state, _ = type_keys(ctrl, state, "error")
        state, commands = feed(ctrl, state, key("enter"))
        assert commands == [RunSearch(1, "error", SearchQuery.parse("error"), logs, frozenset())]

        results = search_logs(logs, SearchQuery.parse("error"))
        state, _ = feed(ctrl, state, SearchDone(1, "error", results))
        assert state.search.results.total_count == 1
        assert not state.search.input_mode

        state, _ = feed(ctrl, state, key("enter"))
        assert state.overlay == Overlay.LOG
        assert state.log_view.job_name == "build"
        assert state.log_view.offset == 1

        state, _ = feed(ctrl, state, key("escape"))
        assert state.overlay == Overlay.SEARCH
        state, _ = feed(ctrl, state, key("escape"))
        assert state.overlay == Overlay.NONE

    def test_stale_search_dropped(self, ctrl, loaded):
        """Results for a superseded query are not shown."""
        state, logs = self._with_logs(ctrl, loaded)
        state, _ = feed(ctrl, state, key("/"))
        state, _ = type_keys(ctrl, state, "fine")
        results = search_logs(logs, SearchQuery.parse("error"))
        state, _ = feed(ctrl, state, SearchDone(1, "error", results))
        assert state.search.results is None

    def test_search_after_close_dropped(self, ctrl, loaded):
        """Results arriving after the overlay closed are ignored."""
        state, logs = self._with_logs(ctrl, loaded)
        state, _ = feed(ctrl, state, key("/"))
        state, _ = type_keys(ctrl, state, "error")
        state, _ = feed(ctrl, state, key("enter"), key("escape"))
        results = search_logs(logs, SearchQuery.parse("error"))
        state, _ = feed(ctrl, state, SearchDone(1, "error", results))
        assert state.search.results is None

    def test_filter_form_replaces_search_results(self, ctrl, loaded):
        """S from search results leaves only the filter form, and escape returns to the list."""
        state, logs = self._with_logs(ctrl, loaded)
        state, _ = feed(ctrl, state, key("/"))
        state, _ = type_keys(ctrl, state, "error")
        state, _ = feed(ctrl, state, key("enter"))
        results = search_logs(logs, SearchQuery.parse("error"))
        state, _ = feed(ctrl, state, SearchDone(1, "error", results))
        assert not state.search.input_mode

        state, _ = feed(ctrl, state, key("S"))
        assert state.overlay == Overlay.FILTER_FORM
        assert state.overlay_resume == Overlay.NONE
        assert state.filter_form is not None

        state, _ = feed(ctrl, state, key("escape"))
        assert state.overlay == Overlay.NONE
        assert state.filter_form is None


class TestTabs:
    """Tests for tab switching and per-tab keys."""

    def test_first_visit_fetches(self, ctrl, loaded):
        """A tab's data is fetched on first visit only."""
        state, commands = feed(ctrl, loaded, key("3"))
        assert commands == [FetchDashboard(7)]
        state, _ = feed(ctrl, state, key("1"))
        _, commands = feed(ctrl, state, key("3"))
        assert commands == []

    def test_metrics_window_cycle(self, ctrl, loaded):
        """] selects the next window and fetches it."""
        state, _ = feed(ctrl, loaded, key("3"))
        state, commands = feed(ctrl, state, key("]"))
        assert commands == [FetchDashboard(30)]
        assert state.metrics.window.label == "30d"

    def test_retention_limits_windows(self, ctrl, loaded):
        """Retention narrows the available windows and keeps the selection."""
        state, _ = feed(ctrl, loaded, RetentionLoaded(days=14))
        assert [w.label for w in state.metrics.windows] == ["24h", "7d", "14d"]
        assert state.metrics.window.label == "7d"

    def test_workflow_enter_filters_runs(self, ctrl, loaded):
        """Enter on a workflow shows its runs on the Runs tab."""
        workflows = [Workflow(id=100, name="CI", state="active")]
        state, _ = feed(ctrl, loaded, WorkflowsLoaded(workflows), key("2"))
        state, commands = feed(ctrl, state, key("enter"))
        assert state.view == View.RUNS
        assert state.runs_filter.workflow_id == 100
        assert FetchRuns(FETCH_FRESH, RunFilter(workflow_id=100, workflow_name="CI"), 1, 30, seq=2) in commands

    def test_enable_already_enabled(self, ctrl, loaded):
        """Enabling an enabled workflow needs no confirmation."""
        workflows = [Workflow(id=100, name="CI", state="active")]
        state, _ = feed(ctrl, loaded, WorkflowsLoaded(workflows), key("2"), key("e"))
        assert state.overlay == Overlay.NONE
        assert "already enabled" in state.status
