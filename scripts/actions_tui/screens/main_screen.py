"""
MainScreen for gha-tui.

A single screen of Static widgets redrawn from SessionState after every
event. Keys are forwarded to the controller instead of Textual bindings so
routing precedence lives in one place.
"""

from textual import events
from textual.app import ComposeResult
from textual.containers import Horizontal
from textual.css.query import NoMatches
from textual.screen import Screen
from textual.widgets import Static

from actions_api import RateLimit

from ..events import KeyPressed, Resized
from ..state import Pane, SessionState
from ..views import (
    render_body,
    render_details_pane,
    render_header,
    render_hints,
    render_runs_pane,
    render_status,
    render_tabs,
    uses_split_panes,
)
from .common import _log

# Rows used by header, tabs, status, footer and the pane borders
CHROME_ROWS = 6


class MainScreen(Screen):
    """Tabs, split runs/jobs panes and a full-width body for overlays."""

    CSS = """
    MainScreen {
        layout: vertical;
    }

    #header {
        height: 1;
        padding: 0 1;
        background: $primary;
    }

    #tabs {
        height: 1;
        padding: 0 1;
    }

    #panes {
        height: 1fr;
    }

    #runs-pane {
        width: 1fr;
        max-width: 70;
        height: 1fr;
        border: solid $surface-darken-2;
        padding: 0 1;
    }

    #details-pane {
        width: 1fr;
        height: 1fr;
        border: solid $surface-darken-2;
        padding: 0 1;
    }

    #runs-pane.focused, #details-pane.focused {
        border: solid $accent;
    }

    #body {
        height: 1fr;
        border: solid $surface-darken-2;
        padding: 0 1;
        display: none;
    }

    #status {
        height: 1;
        padding: 0 1;
    }

    #footer {
        height: 1;
        dock: bottom;
        background: $surface-darken-1;
        padding: 0 1;
    }
    """

    def compose(self) -> ComposeResult:
        yield Static("", id="header")
        yield Static("", id="tabs")
        with Horizontal(id="panes"):
            yield Static("", id="runs-pane")
            yield Static("", id="details-pane")
        yield Static("", id="body")
        yield Static("", id="status")
        yield Static("", id="footer")

    def on_mount(self) -> None:
        _log.debug("MainScreen.on_mount")
        self.app.apply_event(Resized(self.size.width, self.size.height))

    def on_resize(self, event: events.Resize) -> None:
        self.app.apply_event(Resized(event.size.width, event.size.height))

    def on_key(self, event: events.Key) -> None:
        """Forward every key to the controller."""
        event.prevent_default()
        event.stop()
        self.app.apply_event(KeyPressed(event.key, event.character))

    def update_from_state(self, state: SessionState, repo: str, rate_limit: RateLimit | None = None) -> None:
        """Redraw every widget from state."""
        try:
            panes = self.query_one("#panes", Horizontal)
            runs_pane = self.query_one("#runs-pane", Static)
            details_pane = self.query_one("#details-pane", Static)
            body = self.query_one("#body", Static)
            self.query_one("#header", Static).update(render_header(state, repo, rate_limit))
            self.query_one("#tabs", Static).update(render_tabs(state))
            self.query_one("#status", Static).update(render_status(state))
            self.query_one("#footer", Static).update(render_hints(state))
        except NoMatches:
            return

        height = max(3, state.height - CHROME_ROWS)
        split = uses_split_panes(state)
        panes.display = split
        body.display = not split
        if split:
            runs_pane.set_class(state.focused_pane == Pane.LEFT, "focused")
            details_pane.set_class(state.focused_pane == Pane.MIDDLE, "focused")
            runs_pane.update(render_runs_pane(state, height, min(70, state.width // 2) - 4))
            details_pane.update(render_details_pane(state, height))
        else:
            body.update(render_body(state, height))
