from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from autopilot.core.datetime_utils import utc_now


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""


class TimestampMixin:
    """Mixin that adds a created_at timestamp to models.

    The value is set client-side so it is loaded on the instance right after
    the insert; async sessions cannot lazy-load an expired column later.
    """

    created_at: Mapped[datetime] = mapped_column(default=utc_now, server_default=func.now())
