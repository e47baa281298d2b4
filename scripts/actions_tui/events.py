"""
Events consumed by SessionController.handle().

Input events come from the terminal, tick events from scheduled timers and
result events from command execution. Every asynchronous result carries the
identifiers of the request that produced it so stale results can be dropped.
"""

from dataclasses import dataclass, field

from actions_api import ActionsCache, Job, Run, Runner, Workflow, WorkflowStats

from .state import RunFilter
from .utils.bulk import BulkResult
from .utils.metrics import Metrics
from .utils.search import SearchResults


class Event:
    """Base class of all controller events."""
    __slots__ = ()


# === Input ===

@dataclass(frozen=True)
class Started(Event):
    """The console finished mounting."""


@dataclass(frozen=True)
class KeyPressed(Event):
    """
    A key press.

    key is the terminal key name ("enter", "escape", "up", "ctrl+c", "a",
    "A", "question_mark", ...). character is the printable character, if any.
    """
    key: str
    character: str | None = None

    @property
    def name(self) -> str:
        """Key identity used for bindings: the character when printable, else the key name."""
        if self.character == " " or self.key == "space":
            return "space"
        if self.character and self.character.isprintable() and len(self.character) == 1:
            return self.character
        return self.key

    @property
    def text(self) -> str:
        """Text to insert when typing, empty for non-printable keys."""
        if self.character and self.character.isprintable():
            return self.character
        return ""


@dataclass(frozen=True)
class Resized(Event):
    width: int
    height: int


# === Ticks ===

@dataclass(frozen=True)
class RunsTick(Event):
    """Periodic refresh of the run listing."""


@dataclass(frozen=True)
class JobsTick(Event):
    """Periodic job poll of the auto-refresh run."""
    run_id: int
    seq: int = 0


@dataclass(frozen=True)
class LogTailTick(Event):
    """Periodic status poll of the live-tailed job."""
    job_id: int
    job_name: str
    seq: int = 0


# === Results ===

@dataclass(frozen=True)
class RunsLoaded(Event):
    """A fresh first-page listing."""
    run_filter: RunFilter
    page: int
    runs: list[Run] = field(default_factory=list)
    total_count: int = 0
    error: str = ""
    seq: int = 0


@dataclass(frozen=True)
class RunsPageLoaded(Event):
    """A listing requested by paging."""
    run_filter: RunFilter
    page: int
    runs: list[Run] = field(default_factory=list)
    total_count: int = 0
    error: str = ""
    seq: int = 0


@dataclass(frozen=True)
class RunsRefreshed(Event):
    """A background refresh of the current page."""
    run_filter: RunFilter
    page: int
    runs: list[Run] = field(default_factory=list)
    total_count: int = 0
    error: str = ""
    seq: int = 0


@dataclass(frozen=True)
class RunLoaded(Event):
    run_id: int
    run: Run | None = None
    error: str = ""


@dataclass(frozen=True)
class JobsLoaded(Event):
    """Jobs of a run; attempt 0 means the latest attempt."""
    run_id: int
    attempt: int
    jobs: list[Job] = field(default_factory=list)
    error: str = ""


@dataclass(frozen=True)
class LogsLoaded(Event):
    """Job logs of a run; attempt 0 means merged across attempts."""
    run_id: int
    attempt: int
    logs: dict[str, str] = field(default_factory=dict)
    error: str = ""


@dataclass(frozen=True)
class JobLogLoaded(Event):
    run_id: int
    job_id: int
    job_name: str
    content: str = ""
    error: str = ""


@dataclass(frozen=True)
class JobStatusLoaded(Event):
    job_id: int
    job_name: str
    job: Job | None = None
    error: str = ""


@dataclass(frozen=True)
class WorkflowsLoaded(Event):
    workflows: list[Workflow] = field(default_factory=list)
    error: str = ""


@dataclass(frozen=True)
class WorkflowStatsLoaded(Event):
    stats: dict[int, WorkflowStats] = field(default_factory=dict)
    error: str = ""


@dataclass(frozen=True)
class DashboardLoaded(Event):
    window_days: int
    metrics: Metrics | None = None
    error: str = ""


@dataclass(frozen=True)
class ActionsCachesLoaded(Event):
    caches: list[ActionsCache] = field(default_factory=list)
    total_count: int = 0
    error: str = ""


@dataclass(frozen=True)
class RunnersLoaded(Event):
    runners: list[Runner] = field(default_factory=list)
    org_failed: bool = False
    error: str = ""


@dataclass(frozen=True)
class RetentionLoaded(Event):
    days: int = 0
    error: str = ""


@dataclass(frozen=True)
class ActionDone(Event):
    """A single control action finished."""
    action: str
    target_id: int
    label: str
    error: str = ""


@dataclass(frozen=True)
class BulkDone(Event):
    action: str
    label: str
    result: BulkResult | None = None
    error: str = ""


@dataclass(frozen=True)
class SearchDone(Event):
    run_id: int
    query_text: str
    results: SearchResults | None = None


@dataclass(frozen=True)
class CacheEvicted(Event):
    removed: int = 0
    error: str = ""
