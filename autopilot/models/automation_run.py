"""Automation run history model."""

import enum
from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, Boolean, Enum, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from autopilot.models.base import Base, TimestampMixin


class AgentKind(str, enum.Enum):
    """Agent flavors that share the run engine."""

    COMPETITOR_RESEARCH = "competitor_research"
    REVIEW_SCAN = "review_scan"
    CREATIVE_GENERATION = "creative_generation"
    PERFORMANCE_SYNC = "performance_sync"


class TriggerKind(str, enum.Enum):
    """What caused a run."""

    SCHEDULED = "scheduled"
    MANUAL = "manual"
    EVENT = "event"


class RunStatus(str, enum.Enum):
    """Run lifecycle status.

    PENDING never reaches the database; it names the in-process state before
    a row has been created.
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    NEEDS_APPROVAL = "needs_approval"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({RunStatus.COMPLETED, RunStatus.NEEDS_APPROVAL, RunStatus.FAILED})


def _enum_column(enum_cls: type[enum.Enum], name: str) -> Enum:
    return Enum(
        enum_cls,
        values_callable=lambda e: [x.value for x in e],
        name=name,
        native_enum=False,
        length=32,
    )


class AutomationRun(Base, TimestampMixin):
    """One execution of one agent kind for one business."""

    __tablename__ = "automation_runs"
    __table_args__ = (
        Index(
            "ix_automation_runs_prior_lookup",
            "business_id",
            "agent_kind",
            "status",
            "completed_at",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    business_id: Mapped[str] = mapped_column(String(64), index=True)
    user_id: Mapped[str] = mapped_column(String(64))

    agent_kind: Mapped[AgentKind] = mapped_column(_enum_column(AgentKind, "agentkind"))
    trigger_kind: Mapped[TriggerKind] = mapped_column(_enum_column(TriggerKind, "triggerkind"))
    trigger_reason: Mapped[str] = mapped_column(Text, default="")

    input: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    output: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    narrative_summary: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[RunStatus] = mapped_column(
        _enum_column(RunStatus, "runstatus"), default=RunStatus.RUNNING
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    replay_reference: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    requires_approval: Mapped[bool] = mapped_column(Boolean, default=False)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    started_at: Mapped[datetime]
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<AutomationRun {self.id} {self.agent_kind.value} status={self.status.value}>"
