import uuid

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from autopilot.models.base import Base, TimestampMixin


class Business(Base, TimestampMixin):
    """A customer business that agents run on behalf of."""

    __tablename__ = "businesses"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str] = mapped_column(String(255))
    industry: Mapped[str | None] = mapped_column(String(255))
    location: Mapped[str | None] = mapped_column(String(255))
    country: Mapped[str | None] = mapped_column(String(8))
    website: Mapped[str | None] = mapped_column(String(2048))

    # Long-lived ad platform token, refreshed by the OAuth flow elsewhere
    ads_access_token: Mapped[str | None] = mapped_column(Text)

    def __repr__(self) -> str:
        return f"<Business {self.id}: {self.name[:50]}>"
