"""Centralized datetime utilities for consistent timezone handling.

All functions return naive UTC datetimes for database compatibility
(SQLAlchemy models use naive UTC).

Usage:
    from autopilot.core.datetime_utils import utc_now, elapsed_ms, hours_since

    started = utc_now()
    ...
    run.duration_ms = elapsed_ms(started, utc_now())
"""

from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    """Get current UTC time as naive datetime.

    Replaces deprecated datetime.utcnow().
    """
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(dt: datetime) -> datetime:
    """Convert a datetime to naive UTC.

    Args:
        dt: Datetime to convert (can be aware or naive)

    Returns:
        Naive UTC datetime for database compatibility
    """
    if dt.tzinfo is None:
        # Already naive, assume it's UTC
        return dt
    return dt.astimezone(UTC).replace(tzinfo=None)


def get_cutoff(hours: int = 0, days: int = 0, minutes: int = 0) -> datetime:
    """Get cutoff datetime for filtering queries.

    Args:
        hours: Hours to subtract from now
        days: Days to subtract from now
        minutes: Minutes to subtract from now

    Returns:
        Naive UTC datetime representing the cutoff point
    """
    delta = timedelta(hours=hours, days=days, minutes=minutes)
    return utc_now() - delta


def elapsed_ms(start: datetime, end: datetime) -> int:
    """Milliseconds between two timestamps, clamped at zero for clock skew."""
    delta = to_naive_utc(end) - to_naive_utc(start)
    return max(0, int(delta.total_seconds() * 1000))


def hours_since(moment: datetime, now: datetime | None = None) -> float:
    """Hours elapsed since `moment` (negative if `moment` is in the future)."""
    now = now or utc_now()
    return (to_naive_utc(now) - to_naive_utc(moment)).total_seconds() / 3600
