"""Clock helpers. Components take a ``clock`` callable so tests can freeze time."""

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return the current timezone-aware UTC time."""
    return datetime.now(UTC)


def elapsed_ms(start: datetime, end: datetime) -> float:
    """Milliseconds between two timestamps (negative if end precedes start)."""
    return (end - start).total_seconds() * 1000
