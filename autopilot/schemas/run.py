import enum
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from autopilot.models.automation_run import AgentKind, RunStatus, TriggerKind


class StreamEventKind(str, enum.Enum):
    """Kinds of decoded provider stream events."""

    SESSION_URL = "session_url"
    COMPLETE = "complete"
    ERROR = "error"
    UNRECOGNIZED = "unrecognized"


class StreamEvent(BaseModel):
    """One decoded unit from the provider's event stream."""

    kind: StreamEventKind
    session_url: str | None = None
    status: str | None = None
    result_payload: Any = None
    message: str | None = None
    raw: dict[str, Any] = Field(default_factory=dict)


# Terminal status when the stream ends without a COMPLETE event
STATUS_UNKNOWN = "UNKNOWN"


class DecodeResult(BaseModel):
    """Best known state of a decoded stream."""

    session_reference: str | None = None
    result_payload: Any = None
    terminal_status: str = STATUS_UNKNOWN
    error_message: str | None = None
    timed_out: bool = False
    events_seen: int = 0


class NormalizedResult(BaseModel):
    """Canonical item list extracted from a free-form provider result."""

    items: list[Any] = Field(default_factory=list)
    raw: Any = None
    matched_rule: str = "none"


class DiffResult(BaseModel):
    """Added/removed comparison between a run's items and its predecessor's."""

    added: list[Any] = Field(default_factory=list)
    removed: list[Any] = Field(default_factory=list)
    unchanged_count: int = 0
    first_run: bool = False

    @property
    def added_count(self) -> int:
        return len(self.added)

    @property
    def removed_count(self) -> int:
        return len(self.removed)

    def to_output(self) -> dict[str, Any]:
        """Serializable form stored in a run's output."""
        return {
            "added": self.added,
            "removed": self.removed,
            "unchanged_count": self.unchanged_count,
            "first_run": self.first_run,
        }


class RunRequest(BaseModel):
    """Parameters of one executor invocation."""

    business_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    trigger_kind: TriggerKind = TriggerKind.MANUAL
    trigger_reason: str | None = None
    input: dict[str, Any] = Field(default_factory=dict)


class ProviderTask(BaseModel):
    """What the automation provider is asked to do."""

    url: str
    goal: str
    country_code: str = "US"


class RunSummaries(BaseModel):
    """Human-readable summaries attached to a finalized run."""

    summary: str
    narrative_summary: str


class RunResult(BaseModel):
    """What the caller of the executor receives."""

    model_config = ConfigDict(from_attributes=True)

    run_id: str
    agent_kind: AgentKind
    status: RunStatus
    output: dict[str, Any] | None = None
    summary: str | None = None
    narrative_summary: str | None = None
    error_message: str | None = None
    replay_reference: str | None = None
    requires_approval: bool = False
    duration_ms: int | None = None
    # False only when the finalize write itself failed
    finalized: bool = True


class RunResponse(BaseModel):
    """API representation of a stored run."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    business_id: str
    user_id: str
    agent_kind: AgentKind
    trigger_kind: TriggerKind
    trigger_reason: str
    status: RunStatus
    input: dict[str, Any]
    output: dict[str, Any] | None
    summary: str | None
    narrative_summary: str | None
    error_message: str | None
    replay_reference: str | None
    requires_approval: bool
    duration_ms: int | None
    created_at: datetime
    started_at: datetime
    completed_at: datetime | None
