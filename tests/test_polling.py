"""
Tests for the run list refresher and the job/step tailer tick chains.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

from actions_tui.commands import FETCH_REFRESH, CheckJobStatus, FetchJobs, FetchRun, FetchRuns, ScheduleTick
from actions_tui.events import JobsTick, LogTailTick, RunsTick
from actions_tui.polling import (
    JOBS_POLL_INTERVAL,
    RUNS_REFRESH_INTERVAL,
    STEP_TAIL_INTERVAL,
    JobTailer,
    RunListRefresher,
)
from actions_tui.state import Overlay, SessionState, View
from fakes import make_run


class TestRunListRefresher:
    """Tests for the periodic runs refresh."""

    def test_start_schedules_tick(self):
        assert RunListRefresher().start() == [ScheduleTick(RUNS_REFRESH_INTERVAL, RunsTick())]

    def test_tick_fetches_current_page(self):
        """A tick on the Runs tab refreshes the current page and marks it in flight."""
        state = SessionState()
        state.pagination.page = 3
        commands = RunListRefresher().on_tick(state)
        assert isinstance(commands[0], ScheduleTick)
        fetch = commands[1]
        assert isinstance(fetch, FetchRuns)
        assert fetch.kind == FETCH_REFRESH and fetch.page == 3
        assert state.runs_refresh_in_flight

    def test_one_refresh_in_flight(self):
        """A second tick while a refresh is pending only reschedules."""
        refresher = RunListRefresher()
        state = SessionState()
        refresher.on_tick(state)
        assert len(refresher.on_tick(state)) == 1
        refresher.on_result(state)
        assert not state.runs_refresh_in_flight
        assert len(refresher.on_tick(state)) == 2

    def test_skips_while_paging(self):
        state = SessionState()
        state.pagination.loading = True
        assert len(RunListRefresher().on_tick(state)) == 1

    def test_skips_other_tabs(self):
        state = SessionState(view=View.METRICS)
        commands = RunListRefresher().on_tick(state)
        assert commands == [ScheduleTick(RUNS_REFRESH_INTERVAL, RunsTick())]
        assert not state.runs_refresh_in_flight


class TestJobsChain:
    """Tests for the auto-refresh jobs poll."""

    def test_schedule_once(self):
        """Only one jobs tick is pending at a time."""
        tailer = JobTailer()
        state = SessionState()
        assert tailer.schedule_jobs(state, 5) == [ScheduleTick(JOBS_POLL_INTERVAL, JobsTick(5, 1))]
        assert tailer.schedule_jobs(state, 5) == []

    def test_tick_fetches_jobs(self):
        """A current tick for the auto-refresh run fetches its jobs."""
        tailer = JobTailer()
        state = SessionState()
        state.live.set_auto_refresh(5)
        tailer.schedule_jobs(state, 5)
        assert tailer.on_jobs_tick(state, JobsTick(5, 1)) == [FetchJobs(5, 0)]
        assert not state.live.jobs_tick_pending

    def test_viewed_attempt_is_polled(self):
        tailer = JobTailer()
        state = SessionState()
        state.live.set_auto_refresh(5)
        state.live.set_viewing_attempt(2)
        tailer.schedule_jobs(state, 5)
        assert tailer.on_jobs_tick(state, JobsTick(5, 1)) == [FetchJobs(5, 2)]

    def test_superseded_tick_dropped(self):
        """A tick whose sequence number is not the latest does nothing."""
        tailer = JobTailer()
        state = SessionState()
        state.live.set_auto_refresh(5)
        tailer.schedule_jobs(state, 5)
        assert tailer.on_jobs_tick(state, JobsTick(5, 0)) == []
        assert state.live.jobs_tick_pending

    def test_chain_ends_when_target_changes(self):
        """A tick for a run that is no longer auto-refreshed ends the chain."""
        tailer = JobTailer()
        state = SessionState()
        state.live.set_auto_refresh(5)
        tailer.schedule_jobs(state, 5)
        state.live.clear_auto_refresh()
        assert tailer.on_jobs_tick(state, JobsTick(5, 1)) == []

    def test_other_tab_reschedules(self):
        """Away from the Runs tab the chain is kept alive without fetching."""
        tailer = JobTailer()
        state = SessionState(view=View.WORKFLOWS)
        state.live.set_auto_refresh(5)
        tailer.schedule_jobs(state, 5)
        assert tailer.on_jobs_tick(state, JobsTick(5, 1)) == [
            ScheduleTick(JOBS_POLL_INTERVAL, JobsTick(5, 2)),
        ]

    def test_info_overlay_refreshes_run(self):
        """The run itself is refetched while its info overlay is open."""
        tailer = JobTailer()
        state = SessionState()
        state.live.set_auto_refresh(5)
        state.info.run = make_run(5, status="in_progress", conclusion="")
        state.open_overlay(Overlay.INFO)
        tailer.schedule_jobs(state, 5)
        assert tailer.on_jobs_tick(state, JobsTick(5, 1)) == [FetchJobs(5, 0), FetchRun(5)]


class TestStepChain:
    """Tests for the live step tail."""

    def test_schedule_once(self):
        tailer = JobTailer()
        state = SessionState()
        assert tailer.schedule_steps(state, 9, "build") == [
            ScheduleTick(STEP_TAIL_INTERVAL, LogTailTick(9, "build", 1)),
        ]
        assert tailer.schedule_steps(state, 9, "build") == []

    def test_tick_checks_status(self):
        """A current tick with the log overlay open checks the job status."""
        tailer = JobTailer()
        state = SessionState()
        state.live.start_tailing(9, "build")
        state.open_overlay(Overlay.LOG)
        tailer.schedule_steps(state, 9, "build")
        assert tailer.on_step_tick(state, LogTailTick(9, "build", 1)) == [CheckJobStatus(9, "build")]

    def test_closed_overlay_ends_chain(self):
        tailer = JobTailer()
        state = SessionState()
        state.live.start_tailing(9, "build")
        tailer.schedule_steps(state, 9, "build")
        assert tailer.on_step_tick(state, LogTailTick(9, "build", 1)) == []

    def test_stopped_tailing_ends_chain(self):
        tailer = JobTailer()
        state = SessionState()
        state.live.start_tailing(9, "build")
        state.open_overlay(Overlay.LOG)
        tailer.schedule_steps(state, 9, "build")
        state.live.stop_tailing()
        assert tailer.on_step_tick(state, LogTailTick(9, "build", 1)) == []

    def test_superseded_tick_dropped(self):
        tailer = JobTailer()
        state = SessionState()
        state.live.start_tailing(9, "build")
        state.open_overlay(Overlay.LOG)
        tailer.schedule_steps(state, 9, "build")
        assert tailer.on_step_tick(state, LogTailTick(9, "build", 7)) == []
