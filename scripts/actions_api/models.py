"""
Typed records returned by the Actions API client.

Each model is built from the decoded JSON payload via ``from_dict``; missing
fields fall back to empty values so partially-populated payloads (e.g. a job
that has not started yet) still load.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone


# Run / job statuses
STATUS_QUEUED = "queued"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_WAITING = "waiting"
STATUS_REQUESTED = "requested"
STATUS_PENDING = "pending"

# Conclusions
CONCLUSION_SUCCESS = "success"
CONCLUSION_FAILURE = "failure"
CONCLUSION_CANCELLED = "cancelled"
CONCLUSION_SKIPPED = "skipped"
CONCLUSION_TIMED_OUT = "timed_out"
CONCLUSION_NEUTRAL = "neutral"


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp (``2024-05-01T12:00:00Z``) into an aware datetime."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class Actor:
    """User that triggered a run."""
    login: str = ""
    avatar_url: str = ""

    @classmethod
    def from_dict(cls, data: dict | None) -> "Actor":
        data = data or {}
        return cls(login=data.get("login") or "", avatar_url=data.get("avatar_url") or "")


@dataclass
class Run:
    """One workflow run, as listed by the runs endpoint."""
    id: int
    name: str = ""
    display_title: str = ""
    status: str = ""
    conclusion: str = ""
    workflow_id: int = 0
    run_number: int = 0
    run_attempt: int = 1
    event: str = ""
    head_branch: str = ""
    head_sha: str = ""
    actor: Actor = field(default_factory=Actor)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    run_started_at: datetime | None = None
    html_url: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "Run":
        return cls(
            id=int(data["id"]),
            name=data.get("name") or "",
            display_title=data.get("display_title") or "",
            status=data.get("status") or "",
            conclusion=data.get("conclusion") or "",
            workflow_id=int(data.get("workflow_id") or 0),
            run_number=int(data.get("run_number") or 0),
            run_attempt=int(data.get("run_attempt") or 1),
            event=data.get("event") or "",
            head_branch=data.get("head_branch") or "",
            head_sha=data.get("head_sha") or "",
            actor=Actor.from_dict(data.get("actor")),
            created_at=parse_timestamp(data.get("created_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
            run_started_at=parse_timestamp(data.get("run_started_at")),
            html_url=data.get("html_url") or "",
        )

    @property
    def is_complete(self) -> bool:
        return self.status == STATUS_COMPLETED

    @property
    def duration(self) -> timedelta:
        if self.updated_at is None or self.run_started_at is None:
            return timedelta(0)
        return self.updated_at - self.run_started_at

    @property
    def short_sha(self) -> str:
        return self.head_sha[:7]

    @property
    def state(self) -> str:
        """Conclusion when completed, otherwise the live status."""
        return self.conclusion if self.is_complete else self.status


@dataclass
class Step:
    """One step within a job."""
    name: str
    number: int = 0
    status: str = ""
    conclusion: str = ""
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "Step":
        return cls(
            name=data.get("name") or "",
            number=int(data.get("number") or 0),
            status=data.get("status") or "",
            conclusion=data.get("conclusion") or "",
            started_at=parse_timestamp(data.get("started_at")),
            completed_at=parse_timestamp(data.get("completed_at")),
        )

    @property
    def state(self) -> str:
        if self.status in (STATUS_IN_PROGRESS, STATUS_QUEUED):
            return self.status
        return self.conclusion or self.status


@dataclass
class Job:
    """One job within a run attempt."""
    id: int
    name: str = ""
    run_id: int = 0
    run_attempt: int = 1
    status: str = ""
    conclusion: str = ""
    started_at: datetime | None = None
    completed_at: datetime | None = None
    steps: list[Step] = field(default_factory=list)
    runner_name: str = ""
    html_url: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "Job":
        return cls(
            id=int(data["id"]),
            name=data.get("name") or "",
            run_id=int(data.get("run_id") or 0),
            run_attempt=int(data.get("run_attempt") or 1),
            status=data.get("status") or "",
            conclusion=data.get("conclusion") or "",
            started_at=parse_timestamp(data.get("started_at")),
            completed_at=parse_timestamp(data.get("completed_at")),
            steps=[Step.from_dict(s) for s in data.get("steps") or []],
            runner_name=data.get("runner_name") or "",
            html_url=data.get("html_url") or "",
        )

    @property
    def is_complete(self) -> bool:
        return self.status == STATUS_COMPLETED

    @property
    def failed(self) -> bool:
        return self.conclusion == CONCLUSION_FAILURE

    @property
    def duration(self) -> timedelta:
        if self.started_at is None or self.completed_at is None:
            return timedelta(0)
        return self.completed_at - self.started_at

    @property
    def state(self) -> str:
        return self.conclusion if self.is_complete else self.status


@dataclass
class Workflow:
    """A workflow definition."""
    id: int
    name: str = ""
    path: str = ""
    state: str = ""
    html_url: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "Workflow":
        return cls(
            id=int(data["id"]),
            name=data.get("name") or "",
            path=data.get("path") or "",
            state=data.get("state") or "",
            html_url=data.get("html_url") or "",
        )

    @property
    def enabled(self) -> bool:
        return self.state == "active"


@dataclass
class WorkflowStats:
    """Outcome counts over a workflow's most recent runs."""
    total_runs: int = 0
    success_count: int = 0
    failure_count: int = 0


@dataclass
class ActionsCache:
    """A remote dependency cache entry (not the local log cache)."""
    id: int
    key: str = ""
    ref: str = ""
    version: str = ""
    size_in_bytes: int = 0
    created_at: datetime | None = None
    last_accessed_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "ActionsCache":
        return cls(
            id=int(data["id"]),
            key=data.get("key") or "",
            ref=data.get("ref") or "",
            version=data.get("version") or "",
            size_in_bytes=int(data.get("size_in_bytes") or 0),
            created_at=parse_timestamp(data.get("created_at")),
            last_accessed_at=parse_timestamp(data.get("last_accessed_at")),
        )


@dataclass
class RunnerLabel:
    name: str
    type: str = ""


@dataclass
class Runner:
    """A self-hosted runner registered to the repository or its organization."""
    id: int
    name: str = ""
    os: str = ""
    status: str = ""
    busy: bool = False
    ephemeral: bool = False
    labels: list[RunnerLabel] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "Runner":
        return cls(
            id=int(data["id"]),
            name=data.get("name") or "",
            os=data.get("os") or "",
            status=data.get("status") or "",
            busy=bool(data.get("busy")),
            ephemeral=bool(data.get("ephemeral")),
            labels=[
                RunnerLabel(name=lbl.get("name") or "", type=lbl.get("type") or "")
                for lbl in data.get("labels") or []
            ],
        )

    @property
    def label_names(self) -> list[str]:
        return [lbl.name for lbl in self.labels]


@dataclass
class RunsPage:
    runs: list[Run] = field(default_factory=list)
    total_count: int = 0


@dataclass
class JobsPage:
    jobs: list[Job] = field(default_factory=list)
    total_count: int = 0


@dataclass
class CachesPage:
    caches: list[ActionsCache] = field(default_factory=list)
    total_count: int = 0


@dataclass
class RateLimit:
    """Snapshot of the rate-limit headers from the most recent response."""
    remaining: int = -1
    limit: int = -1
    reset_at: datetime | None = None

    @property
    def known(self) -> bool:
        return self.limit >= 0
