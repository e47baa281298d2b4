"""
Main Textual application for gha-tui.

The app owns the SessionState. Every input, tick and result goes through
apply_event(): the controller returns the next state plus commands, and
the app executes the commands on worker threads, timers or by exiting.
"""

import logging
from functools import partial

from textual import work
from textual.app import App
from textual.binding import Binding

from actions_api import ActionsClient, get_client
from version import __version__

from .commands import Command, Quit, ScheduleTick
from .controller import SessionController
from .events import Event, Started
from .runner import CommandRunner
from .screens import MainScreen
from .state import SessionState
from .utils.logcache import LogCache

# Debug logger for TUI
_log = logging.getLogger("gha_tui.tui.app")

DEBUG_LOG_FILE = "gha_tui_debug.log"
DEBUG_LOGGERS = ["gha_tui.tui", "gha_tui.api"]


class FlushingHandler(logging.FileHandler):
    """File handler that flushes after every record."""

    def emit(self, record):
        super().emit(record)
        self.flush()


class GhaTuiApp(App):
    """gha-tui Application."""

    TITLE = f"gha-tui v{__version__}"

    CSS = """
    Screen {
        background: $surface;
    }
    """

    BINDINGS = [
        Binding("ctrl+c", "quit", "Quit", show=False, priority=True),
    ]

    def __init__(self, repo: str, client: ActionsClient, cache: LogCache,
                 controller: SessionController | None = None, **kwargs):
        super().__init__(**kwargs)
        self.repo = repo
        self.client = client
        self.cache = cache
        self.controller = controller or SessionController()
        self.runner = CommandRunner(client, cache)
        self.session_state = SessionState()

    def on_mount(self) -> None:
        _log.debug("GhaTuiApp.on_mount")
        self.push_screen(MainScreen())
        self.call_later(self._start)

    def _start(self) -> None:
        self.apply_event(Started())

    def apply_event(self, event: Event) -> None:
        """Run one event through the controller, then execute its commands and redraw."""
        self.session_state, commands = self.controller.handle(self.session_state, event)
        for command in commands:
            self._execute(command)
        self._redraw()

    def _execute(self, command: Command) -> None:
        if isinstance(command, Quit):
            self.exit()
        elif isinstance(command, ScheduleTick):
            self.set_timer(command.delay, partial(self.apply_event, command.event))
        else:
            self._run_command(command)

    @work(thread=True, group="commands")
    def _run_command(self, command: Command) -> None:
        """Execute a command off the event loop and post its result back."""
        event = self.runner.execute(command)
        try:
            self.call_from_thread(self.apply_event, event)
        except RuntimeError:
            _log.debug(f"App closed before {type(event).__name__} was delivered")

    def _redraw(self) -> None:
        screen = self.screen
        if isinstance(screen, MainScreen):
            screen.update_from_state(self.session_state, self.repo, self.client.rate_limit)

    def action_quit(self) -> None:
        """Quit the application."""
        _log.debug("GhaTuiApp.action_quit called")
        self.exit()


def run_tui(settings, debug: bool = False) -> None:
    """Run the TUI application.

    Args:
        settings: Resolved gha_utils.Settings
        debug: Enable debug logging to gha_tui_debug.log
    """
    if debug:
        handler = FlushingHandler(DEBUG_LOG_FILE, mode='w')
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
        for logger_name in DEBUG_LOGGERS:
            logger = logging.getLogger(logger_name)
            logger.setLevel(logging.DEBUG)
            logger.addHandler(handler)
        _log.debug(f"Starting TUI for {settings.repo_nwo}")

    client = get_client(settings)
    cache = LogCache(settings.cache_dir, settings.cache_size_bytes, settings.cache_ttl)
    app = GhaTuiApp(settings.repo_nwo, client, cache)
    app.run()
