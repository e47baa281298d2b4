"""
Commands returned by SessionController.handle().

The controller never performs I/O. It describes the work as commands; the
app executes them and feeds exactly one result event back per command
(ScheduleTick and Quit are handled by the app itself).
"""

from dataclasses import dataclass, field

from actions_api import Run, Workflow

from .events import Event
from .state import RunFilter
from .utils.search import SearchQuery

# Kinds of run listing fetches
FETCH_FRESH = "fresh"
FETCH_PAGE = "page"
FETCH_REFRESH = "refresh"

# Single control actions
ACTION_RERUN = "rerun"
ACTION_RERUN_FAILED = "rerun-failed"
ACTION_CANCEL = "cancel"
ACTION_FORCE_CANCEL = "force-cancel"
ACTION_DELETE_RUN = "delete-run"
ACTION_ENABLE_WORKFLOW = "enable-workflow"
ACTION_DISABLE_WORKFLOW = "disable-workflow"
ACTION_DELETE_CACHE = "delete-cache"

RUN_ACTIONS = (
    ACTION_RERUN,
    ACTION_RERUN_FAILED,
    ACTION_CANCEL,
    ACTION_FORCE_CANCEL,
    ACTION_DELETE_RUN,
)

# Bulk actions
BULK_DELETE_RUNS = "delete-runs"
BULK_DELETE_CACHES = "delete-caches"
BULK_DELETE_WORKFLOW_RUNS = "delete-workflow-runs"
BULK_CLEAR_CACHES = "clear-caches"


class Command:
    """Base class of all commands."""
    __slots__ = ()


@dataclass(frozen=True)
class Quit(Command):
    pass


@dataclass(frozen=True)
class ScheduleTick(Command):
    """Deliver event back to the controller after delay seconds."""
    delay: float
    event: Event


@dataclass(frozen=True)
class FetchRuns(Command):
    kind: str
    run_filter: RunFilter
    page: int = 1
    per_page: int = 30
    seq: int = 0


@dataclass(frozen=True)
class FetchRun(Command):
    run_id: int


@dataclass(frozen=True)
class FetchJobs(Command):
    """attempt 0 fetches the latest attempt."""
    run_id: int
    attempt: int = 0


@dataclass(frozen=True)
class FetchLogs(Command):
    """attempt 0 fetches and merges every attempt."""
    run: Run
    attempt: int = 0


@dataclass(frozen=True)
class FetchJobLog(Command):
    run_id: int
    job_id: int
    job_name: str


@dataclass(frozen=True)
class CheckJobStatus(Command):
    job_id: int
    job_name: str


@dataclass(frozen=True)
class FetchWorkflows(Command):
    pass


@dataclass(frozen=True)
class FetchWorkflowStats(Command):
    workflows: tuple[Workflow, ...] = ()


@dataclass(frozen=True)
class FetchDashboard(Command):
    window_days: int


@dataclass(frozen=True)
class FetchActionsCaches(Command):
    pass


@dataclass(frozen=True)
class FetchRunners(Command):
    pass


@dataclass(frozen=True)
class FetchRetention(Command):
    pass


@dataclass(frozen=True)
class RunAction(Command):
    action: str
    target_id: int
    label: str = ""


@dataclass(frozen=True)
class BulkAction(Command):
    """Bulk delete of runs or caches, all runs of a workflow, or every cache."""
    action: str
    ids: tuple[int, ...] = ()
    label: str = ""


@dataclass(frozen=True)
class RunSearch(Command):
    run_id: int
    query_text: str
    query: SearchQuery
    logs: dict[str, str] = field(default_factory=dict)
    failed_jobs: frozenset[str] = frozenset()


@dataclass(frozen=True)
class EvictLogCache(Command):
    pass
