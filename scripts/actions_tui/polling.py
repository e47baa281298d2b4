"""
Periodic refresh and live tailing.

Both workers are tick chains: each tick either issues a fetch or
reschedules itself, and the result of the fetch decides whether the chain
continues. A chain ends as soon as its target is no longer current.
"""

import logging

from .commands import (
    FETCH_REFRESH,
    CheckJobStatus,
    Command,
    FetchJobs,
    FetchRun,
    FetchRuns,
    ScheduleTick,
)
from .events import JobsTick, LogTailTick, RunsTick
from .state import Overlay, SessionState, View

_log = logging.getLogger("gha_tui.tui.polling")

RUNS_REFRESH_INTERVAL = 5.0
JOBS_POLL_INTERVAL = 3.0
STEP_TAIL_INTERVAL = 1.5


class RunListRefresher:
    """Refreshes the current runs page every few seconds while the Runs tab is shown."""

    interval = RUNS_REFRESH_INTERVAL

    def start(self) -> list[Command]:
        return [ScheduleTick(self.interval, RunsTick())]

    def on_tick(self, state: SessionState) -> list[Command]:
        commands: list[Command] = [ScheduleTick(self.interval, RunsTick())]
        if state.view != View.RUNS:
            return commands
        if state.pagination.loading or state.runs_refresh_in_flight:
            return commands
        state.runs_refresh_in_flight = True
        commands.append(FetchRuns(
            kind=FETCH_REFRESH,
            run_filter=state.runs_filter,
            page=state.pagination.page,
            per_page=state.pagination.per_page,
        ))
        return commands

    def on_result(self, state: SessionState) -> None:
        state.runs_refresh_in_flight = False


class JobTailer:
    """
    Polls the auto-refresh run's jobs and the live-tailed job's steps.

    The jobs poll runs at JOBS_POLL_INTERVAL until every job has completed;
    the step poll runs at STEP_TAIL_INTERVAL until the tailed job completes.
    """

    def schedule_jobs(self, state: SessionState, run_id: int) -> list[Command]:
        """Schedule the next jobs poll unless one is already pending."""
        live = state.live
        if live.jobs_tick_pending:
            return []
        live.jobs_tick_seq += 1
        live.jobs_tick_pending = True
        return [ScheduleTick(JOBS_POLL_INTERVAL, JobsTick(run_id, live.jobs_tick_seq))]

    def schedule_steps(self, state: SessionState, job_id: int, job_name: str) -> list[Command]:
        """Schedule the next step poll unless one is already pending."""
        live = state.live
        if live.tail_tick_pending:
            return []
        live.tail_tick_seq += 1
        live.tail_tick_pending = True
        return [ScheduleTick(STEP_TAIL_INTERVAL, LogTailTick(job_id, job_name, live.tail_tick_seq))]

    def on_jobs_tick(self, state: SessionState, event: JobsTick) -> list[Command]:
        live = state.live
        if event.seq != live.jobs_tick_seq:
            _log.debug(f"Dropping superseded jobs tick for run {event.run_id}")
            return []
        live.jobs_tick_pending = False
        if not live.is_auto_refresh(event.run_id):
            _log.debug(f"Jobs poll for run {event.run_id} ended")
            return []
        if state.view != View.RUNS:
            # Keep the chain alive without fetching while another tab is shown
            return self.schedule_jobs(state, event.run_id)
        commands: list[Command] = [FetchJobs(event.run_id, live.viewing_attempt)]
        if state.overlay == Overlay.INFO and state.info.run and state.info.run.id == event.run_id:
            commands.append(FetchRun(event.run_id))
        return commands

    def on_step_tick(self, state: SessionState, event: LogTailTick) -> list[Command]:
        live = state.live
        if event.seq != live.tail_tick_seq:
            return []
        live.tail_tick_pending = False
        if not live.is_tailing(event.job_id) or state.overlay != Overlay.LOG:
            _log.debug(f"Step tail for job {event.job_id} ended")
            return []
        return [CheckJobStatus(event.job_id, event.job_name)]
