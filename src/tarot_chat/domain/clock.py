"""Session clock.

Every component that gates on time (message acceptance, time queries, the
expiry sweep) goes through these functions so they all agree on when a
session ends. Client-side timers are advisory only.
"""

from datetime import UTC, datetime

from tarot_chat.domain.sessions import SessionRecord


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(tz=UTC)


def elapsed(now: datetime, session: SessionRecord) -> float:
    """Seconds elapsed since the session started."""
    return (now - session.start_time).total_seconds()


def remaining(now: datetime, session: SessionRecord) -> float:
    """Seconds left before the session's hard cutoff, never negative."""
    return max(0.0, session.duration_seconds - elapsed(now, session))


def is_expired(now: datetime, session: SessionRecord) -> bool:
    """Return true once no time remains."""
    return remaining(now, session) <= 0
