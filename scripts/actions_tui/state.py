"""
Session state owned by the controller.

Everything the console shows is derived from a SessionState value. Only
SessionController.handle() produces new states; views read them.
"""

from dataclasses import dataclass, field
from enum import Enum

from actions_api import ActionsCache, Job, Run, Runner, RunsFilter, Workflow, WorkflowStats

from .utils.metrics import DEFAULT_WINDOWS, Metrics, TimeWindow
from .utils.search import SearchResults

RUNS_PER_PAGE = 30

EVENT_OPTIONS = (
    "push",
    "pull_request",
    "schedule",
    "workflow_dispatch",
    "workflow_run",
    "release",
    "deployment",
)
STATUS_OPTIONS = ("completed", "in_progress", "queued", "waiting")


class View(str, Enum):
    RUNS = "runs"
    WORKFLOWS = "workflows"
    METRICS = "metrics"
    CACHE = "cache"
    RUNNERS = "runners"


TAB_ORDER = (View.RUNS, View.WORKFLOWS, View.METRICS, View.CACHE, View.RUNNERS)
TAB_LABELS = {
    View.RUNS: "Runs",
    View.WORKFLOWS: "Workflows",
    View.METRICS: "Metrics",
    View.CACHE: "Cache",
    View.RUNNERS: "Runners",
}


class Pane(str, Enum):
    LEFT = "left"
    MIDDLE = "middle"


class Overlay(str, Enum):
    NONE = "none"
    LOG = "log"
    INFO = "info"
    SEARCH = "search"
    FILTER_FORM = "filter_form"
    CONFIRM = "confirm"
    HELP = "help"


class CacheSort(str, Enum):
    LAST_ACCESSED = "last accessed"
    CREATED = "created"
    SIZE = "size"


@dataclass
class Pagination:
    """Paging of the run listing; loading spans dispatch to matching result."""
    page: int = 1
    total_count: int = 0
    has_more: bool = False
    loading: bool = False
    per_page: int = RUNS_PER_PAGE
    request_seq: int = 0  # token of the latest first-page or paging fetch

    @property
    def total_pages(self) -> int:
        return max(1, (self.total_count + self.per_page - 1) // self.per_page)


@dataclass
class LiveTargets:
    """
    The single run under auto-refresh and the single job under live tailing.

    All changes go through the setters. Replacing a target makes results
    keyed to the previous one stale.
    """
    auto_refresh_run_id: int = 0
    tailing_job_id: int = 0
    tailing_job_name: str = ""
    viewing_attempt: int = 0  # 0 = merged across attempts
    # Only the most recently scheduled tick of each chain is live
    jobs_tick_seq: int = 0
    jobs_tick_pending: bool = False
    tail_tick_seq: int = 0
    tail_tick_pending: bool = False

    def set_auto_refresh(self, run_id: int) -> None:
        if run_id != self.auto_refresh_run_id:
            self.jobs_tick_pending = False
        self.auto_refresh_run_id = run_id

    def clear_auto_refresh(self) -> None:
        self.auto_refresh_run_id = 0
        self.jobs_tick_pending = False

    def is_auto_refresh(self, run_id: int) -> bool:
        return bool(run_id) and self.auto_refresh_run_id == run_id

    def start_tailing(self, job_id: int, job_name: str) -> None:
        self.tailing_job_id = job_id
        self.tailing_job_name = job_name
        self.tail_tick_pending = False

    def stop_tailing(self) -> None:
        self.tailing_job_id = 0
        self.tailing_job_name = ""
        self.tail_tick_pending = False

    def is_tailing(self, job_id: int) -> bool:
        return bool(job_id) and self.tailing_job_id == job_id

    @property
    def tailing(self) -> bool:
        return self.tailing_job_id != 0

    def set_viewing_attempt(self, attempt: int) -> None:
        self.viewing_attempt = max(0, attempt)


@dataclass
class ListState:
    """Cursor and typed filter of one list."""
    cursor: int = 0
    filter_text: str = ""
    filtering: bool = False

    def move(self, delta: int, count: int) -> None:
        if count <= 0:
            self.cursor = 0
            return
        self.cursor = max(0, min(count - 1, self.cursor + delta))

    def clamp(self, count: int) -> None:
        self.move(0, count)

    def matches(self, text: str) -> bool:
        return not self.filter_text or self.filter_text.lower() in text.lower()


@dataclass(frozen=True)
class RunFilter:
    """Server-side run filter built by the filter form."""
    workflow_id: int = 0
    workflow_name: str = ""
    event: str = ""
    status: str = ""
    branch: str = ""
    actor: str = ""

    @property
    def is_empty(self) -> bool:
        return not (self.workflow_id or self.event or self.status or self.branch or self.actor)

    def summary(self) -> str:
        parts = []
        if self.workflow_name:
            parts.append(self.workflow_name)
        if self.event:
            parts.append(f"event:{self.event}")
        if self.status:
            parts.append(f"status:{self.status}")
        if self.branch:
            parts.append(f"branch:{self.branch}")
        if self.actor:
            parts.append(f"actor:{self.actor}")
        return " ".join(parts)

    def to_runs_filter(self, page: int = 1, per_page: int = RUNS_PER_PAGE) -> RunsFilter:
        return RunsFilter(
            workflow_id=self.workflow_id,
            actor=self.actor,
            branch=self.branch,
            event=self.event,
            status=self.status,
            per_page=per_page,
            page=page,
        )


FORM_WORKFLOW, FORM_EVENT, FORM_STATUS, FORM_BRANCH, FORM_ACTOR = range(5)
FORM_FIELDS = ("Workflow", "Event", "Status", "Branch", "Actor")


@dataclass
class FilterFormState:
    """Editable copy of the run filter; index 0 of every choice means "any"."""
    workflows: list[tuple[int, str]] = field(default_factory=list)
    focused: int = FORM_WORKFLOW
    workflow_index: int = 0
    event_index: int = 0
    status_index: int = 0
    branch: str = ""
    actor: str = ""

    @classmethod
    def from_filter(cls, current: RunFilter, workflows: list[Workflow]) -> "FilterFormState":
        options = [(wf.id, wf.name) for wf in workflows]
        form = cls(workflows=options, branch=current.branch, actor=current.actor)
        for i, (wf_id, _) in enumerate(options, start=1):
            if wf_id == current.workflow_id:
                form.workflow_index = i
        if current.event in EVENT_OPTIONS:
            form.event_index = EVENT_OPTIONS.index(current.event) + 1
        if current.status in STATUS_OPTIONS:
            form.status_index = STATUS_OPTIONS.index(current.status) + 1
        return form

    def choice_count(self, field_index: int) -> int:
        if field_index == FORM_WORKFLOW:
            return len(self.workflows) + 1
        if field_index == FORM_EVENT:
            return len(EVENT_OPTIONS) + 1
        if field_index == FORM_STATUS:
            return len(STATUS_OPTIONS) + 1
        return 0

    @property
    def on_text_field(self) -> bool:
        return self.focused in (FORM_BRANCH, FORM_ACTOR)

    def cycle(self, delta: int) -> None:
        count = self.choice_count(self.focused)
        if not count:
            return
        attr = {
            FORM_WORKFLOW: "workflow_index",
            FORM_EVENT: "event_index",
            FORM_STATUS: "status_index",
        }[self.focused]
        setattr(self, attr, (getattr(self, attr) + delta) % count)

    def type_text(self, text: str) -> None:
        if self.focused == FORM_BRANCH:
            self.branch += text
        elif self.focused == FORM_ACTOR:
            self.actor += text

    def backspace(self) -> None:
        if self.focused == FORM_BRANCH:
            self.branch = self.branch[:-1]
        elif self.focused == FORM_ACTOR:
            self.actor = self.actor[:-1]

    def value_label(self, field_index: int) -> str:
        if field_index == FORM_WORKFLOW:
            return self.workflows[self.workflow_index - 1][1] if self.workflow_index else "any"
        if field_index == FORM_EVENT:
            return EVENT_OPTIONS[self.event_index - 1] if self.event_index else "any"
        if field_index == FORM_STATUS:
            return STATUS_OPTIONS[self.status_index - 1] if self.status_index else "any"
        if field_index == FORM_BRANCH:
            return self.branch
        return self.actor

    def to_filter(self) -> RunFilter:
        wf_id, wf_name = (0, "")
        if self.workflow_index:
            wf_id, wf_name = self.workflows[self.workflow_index - 1]
        return RunFilter(
            workflow_id=wf_id,
            workflow_name=wf_name,
            event=EVENT_OPTIONS[self.event_index - 1] if self.event_index else "",
            status=STATUS_OPTIONS[self.status_index - 1] if self.status_index else "",
            branch=self.branch.strip(),
            actor=self.actor.strip(),
        )


@dataclass
class ConfirmState:
    """Pending confirmation; confirm_selected is the highlighted button."""
    title: str
    message: str
    action: str
    ids: tuple[int, ...] = ()
    label: str = ""
    confirm_selected: bool = False


@dataclass
class LogViewState:
    job_id: int = 0
    job_name: str = ""
    content: str = ""
    loading: bool = False
    offset: int = 0  # first visible line, 0-based
    searching: bool = False
    search_text: str = ""
    matches: list[int] = field(default_factory=list)
    match_index: int = 0
    notice: str = ""

    @property
    def lines(self) -> list[str]:
        return self.content.split("\n")


@dataclass
class InfoState:
    kind: str = "run"  # "run" or "job"
    run: Run | None = None
    job: Job | None = None
    jobs: list[Job] = field(default_factory=list)
    offset: int = 0


@dataclass
class SearchState:
    input_mode: bool = True
    query_text: str = ""
    running: bool = False
    run_id: int = 0
    results: SearchResults | None = None
    cursor: int = 0


@dataclass
class DetailsState:
    """Middle pane: the selected run and its jobs."""
    run: Run | None = None
    jobs: list[Job] = field(default_factory=list)
    cursor: int = 0
    loading: bool = False
    error: str = ""

    def current_job(self) -> Job | None:
        if 0 <= self.cursor < len(self.jobs):
            return self.jobs[self.cursor]
        return None


@dataclass
class WorkflowsState:
    workflows: list[Workflow] = field(default_factory=list)
    stats: dict[int, WorkflowStats] = field(default_factory=dict)
    list: ListState = field(default_factory=ListState)
    loading: bool = False


@dataclass
class MetricsState:
    windows: list[TimeWindow] = field(default_factory=lambda: list(DEFAULT_WINDOWS))
    window_index: int = 1  # 7d
    metrics: Metrics | None = None
    loading: bool = False
    offset: int = 0

    @property
    def window(self) -> TimeWindow:
        return self.windows[min(self.window_index, len(self.windows) - 1)]


@dataclass
class CachesState:
    caches: list[ActionsCache] = field(default_factory=list)
    total_count: int = 0
    sort: CacheSort = CacheSort.LAST_ACCESSED
    selected_ids: set[int] = field(default_factory=set)
    list: ListState = field(default_factory=ListState)
    loading: bool = False


@dataclass
class RunnersState:
    runners: list[Runner] = field(default_factory=list)
    org_failed: bool = False
    list: ListState = field(default_factory=ListState)
    loading: bool = False


@dataclass
class SessionState:
    """Process-lifetime state of the console."""
    view: View = View.RUNS
    focused_pane: Pane = Pane.LEFT
    overlay: Overlay = Overlay.NONE
    overlay_focus: Pane = Pane.LEFT
    overlay_resume: Overlay = Overlay.NONE

    pagination: Pagination = field(default_factory=Pagination)
    runs_filter: RunFilter = field(default_factory=RunFilter)
    runs: list[Run] = field(default_factory=list)
    runs_list: ListState = field(default_factory=ListState)
    selected_run_ids: set[int] = field(default_factory=set)
    runs_refresh_in_flight: bool = False

    details: DetailsState = field(default_factory=DetailsState)
    live: LiveTargets = field(default_factory=LiveTargets)
    info_started_refresh: bool = False

    log_map: dict[str, str] = field(default_factory=dict)
    log_scope: tuple[int, int] | None = None  # (run id, attempt)
    logs_loading: bool = False

    log_view: LogViewState = field(default_factory=LogViewState)
    info: InfoState = field(default_factory=InfoState)
    search: SearchState = field(default_factory=SearchState)
    confirm: ConfirmState | None = None
    filter_form: FilterFormState | None = None
    help_offset: int = 0

    workflows: WorkflowsState = field(default_factory=WorkflowsState)
    metrics: MetricsState = field(default_factory=MetricsState)
    caches: CachesState = field(default_factory=CachesState)
    runners: RunnersState = field(default_factory=RunnersState)

    visited: set[View] = field(default_factory=set)
    status: str = ""
    status_error: bool = False
    width: int = 120
    height: int = 40

    # === Overlays ===

    def open_overlay(self, overlay: Overlay, resume: Overlay = Overlay.NONE) -> None:
        """Activate an overlay, replacing any active one."""
        if self.overlay == Overlay.NONE:
            self.overlay_focus = self.focused_pane
        self.overlay = overlay
        self.overlay_resume = resume

    def close_overlay(self) -> None:
        """Pop one overlay level and restore the focus it was opened from."""
        if self.overlay_resume != Overlay.NONE:
            self.overlay = self.overlay_resume
            self.overlay_resume = Overlay.NONE
            return
        self.overlay = Overlay.NONE
        self.focused_pane = self.overlay_focus

    # === Status line ===

    def set_status(self, text: str, error: bool = False) -> None:
        self.status = text
        self.status_error = error

    # === Filtered lists ===

    def visible_runs(self) -> list[Run]:
        return [
            r for r in self.runs
            if self.runs_list.matches(
                f"{r.display_title} {r.name} {r.head_branch} {r.actor.login} {r.event} #{r.run_number}"
            )
        ]

    def cursor_run(self) -> Run | None:
        runs = self.visible_runs()
        if 0 <= self.runs_list.cursor < len(runs):
            return runs[self.runs_list.cursor]
        return None

    def visible_workflows(self) -> list[Workflow]:
        return [
            wf for wf in self.workflows.workflows
            if self.workflows.list.matches(f"{wf.name} {wf.path} {wf.state}")
        ]

    def visible_caches(self) -> list[ActionsCache]:
        caches = [
            c for c in self.caches.caches
            if self.caches.list.matches(f"{c.key} {c.ref}")
        ]
        if self.caches.sort == CacheSort.SIZE:
            return sorted(caches, key=lambda c: c.size_in_bytes, reverse=True)
        attr = "created_at" if self.caches.sort == CacheSort.CREATED else "last_accessed_at"
        return sorted(
            caches,
            key=lambda c: getattr(c, attr).timestamp() if getattr(c, attr) else 0.0,
            reverse=True,
        )

    def visible_runners(self) -> list[Runner]:
        return [
            r for r in self.runners.runners
            if self.runners.list.matches(f"{r.name} {r.os} {r.status} {' '.join(r.label_names)}")
        ]

    def active_list(self) -> ListState | None:
        """The list that receives typed filter text in the current context."""
        if self.overlay != Overlay.NONE:
            return None
        if self.view == View.RUNS:
            return self.runs_list if self.focused_pane == Pane.LEFT else None
        if self.view == View.WORKFLOWS:
            return self.workflows.list
        if self.view == View.CACHE:
            return self.caches.list
        if self.view == View.RUNNERS:
            return self.runners.list
        return None
