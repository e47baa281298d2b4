"""
Automated TUI tests using Textual's run_test() framework.

The app runs against an in-memory client, so these check that the screen
loads, results flow back from worker threads and keys reach the controller.
"""

import sys
from datetime import timedelta
from pathlib import Path

import pytest

# Add scripts directory to path so the packages are importable
sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

from actions_api import Workflow
from fakes import FakeClient, make_job, make_run


def make_app(tmp_path):
    from actions_tui.app import GhaTuiApp
    from actions_tui.utils.logcache import LogCache

    client = FakeClient(
        runs=[make_run(1, display_title="Fix [brackets]"), make_run(2, conclusion="failure")],
        jobs={1: [make_job(10, "build")]},
        workflows=[Workflow(id=100, name="CI", state="active")],
    )
    cache = LogCache(tmp_path / "logs", max_size=1024 * 1024, ttl=timedelta(hours=1))
    return GhaTuiApp("octo/hello", client, cache)


async def wait_for(pilot, predicate, attempts: int = 50):
    """Let workers and queued callbacks run until predicate holds."""
    for _ in range(attempts):
        if predicate():
            return True
        await pilot.pause(0.05)
    return predicate()


class TestMainScreen:
    """Tests for the MainScreen."""

    @pytest.mark.asyncio
    async def test_main_screen_loads(self, tmp_path):
        """MainScreen is pushed and the first page of runs arrives."""
        from actions_tui.screens import MainScreen

        app = make_app(tmp_path)
        async with app.run_test(size=(120, 40)) as pilot:
            screens = [type(s).__name__ for s in app.screen_stack]
            assert "MainScreen" in screens
            assert isinstance(app.screen, MainScreen)
            assert await wait_for(pilot, lambda: len(app.session_state.runs) == 2)
            assert app.session_state.pagination.total_count == 2
            assert app.session_state.width == 120

    @pytest.mark.asyncio
    async def test_workflows_loaded_at_startup(self, tmp_path):
        """Workflows are fetched eagerly for the filter form."""
        app = make_app(tmp_path)
        async with app.run_test(size=(120, 40)) as pilot:
            assert await wait_for(pilot, lambda: bool(app.session_state.workflows.workflows))
            assert app.session_state.workflows.workflows[0].name == "CI"


class TestKeys:
    """Tests for keys forwarded to the controller."""

    @pytest.mark.asyncio
    async def test_help_toggle(self, tmp_path):
        """? opens the help overlay and escape closes it."""
        from actions_tui.state import Overlay

        app = make_app(tmp_path)
        async with app.run_test(size=(120, 40)) as pilot:
            await wait_for(pilot, lambda: bool(app.session_state.runs))
            await pilot.press("?")
            assert app.session_state.overlay == Overlay.HELP
            await pilot.press("escape")
            assert app.session_state.overlay == Overlay.NONE

    @pytest.mark.asyncio
    async def test_tab_switch(self, tmp_path):
        """Number keys switch tabs."""
        from actions_tui.state import View

        app = make_app(tmp_path)
        async with app.run_test(size=(120, 40)) as pilot:
            await wait_for(pilot, lambda: bool(app.session_state.runs))
            await pilot.press("2")
            assert app.session_state.view == View.WORKFLOWS
            await pilot.press("1")
            assert app.session_state.view == View.RUNS

    @pytest.mark.asyncio
    async def test_select_run_loads_jobs(self, tmp_path):
        """enter on a run loads its jobs into the details pane."""
        app = make_app(tmp_path)
        async with app.run_test(size=(120, 40)) as pilot:
            await wait_for(pilot, lambda: bool(app.session_state.runs))
            await pilot.press("enter")
            assert await wait_for(pilot, lambda: bool(app.session_state.details.jobs))
            assert app.session_state.details.run.id == 1
            assert app.session_state.details.jobs[0].name == "build"

    @pytest.mark.asyncio
    async def test_quit(self, tmp_path):
        """q exits the app."""
        app = make_app(tmp_path)
        async with app.run_test(size=(120, 40)) as pilot:
            await pilot.press("q")
            await pilot.pause()
        assert not app.is_running
