"""Paid campaign model with its latest performance snapshot."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Enum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from autopilot.models.base import Base, TimestampMixin


class PerformanceStatus(str, enum.Enum):
    """Derived campaign health classification."""

    PAUSED = "paused"
    LEARNING = "learning"
    UNDERPERFORMING = "underperforming"
    HEALTHY = "healthy"


class Campaign(Base, TimestampMixin):
    """An ad campaign launched on the ads platform for a business."""

    __tablename__ = "campaigns"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    business_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("businesses.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(255), default="Unnamed Campaign")
    external_campaign_id: Mapped[str | None] = mapped_column(String(64))
    # Administrative status as set by the user: active, paused, archived
    status: Mapped[str] = mapped_column(String(32), default="active", index=True)
    launched_at: Mapped[datetime | None]

    # Latest snapshot, overwritten on every sync
    impressions: Mapped[int] = mapped_column(Integer, default=0)
    clicks: Mapped[int] = mapped_column(Integer, default=0)
    spend_minor_units: Mapped[int] = mapped_column(Integer, default=0)
    leads_count: Mapped[int] = mapped_column(Integer, default=0)
    cost_per_lead_minor_units: Mapped[int | None] = mapped_column(Integer)
    performance_status: Mapped[PerformanceStatus | None] = mapped_column(
        Enum(
            PerformanceStatus,
            values_callable=lambda e: [x.value for x in e],
            name="performancestatus",
            native_enum=False,
            length=32,
        )
    )
    last_synced_at: Mapped[datetime | None]

    def __repr__(self) -> str:
        status = self.performance_status.value if self.performance_status else "unsynced"
        return f"<Campaign {self.id} {self.name[:40]} {status}>"
