"""Session lifecycle: the single authority on whether a session accepts activity."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol
from uuid import UUID

from tarot_chat.domain import clock
from tarot_chat.domain.errors import (
    AlreadyCompletedError,
    ConflictError,
    NotFoundError,
    SessionInactiveError,
)
from tarot_chat.domain.sessions import (
    DEFAULT_SESSION_DURATION_SECONDS,
    MessageKind,
    MessageRecord,
    SenderRole,
    SessionRecord,
    SessionState,
)

logger = logging.getLogger(__name__)


class SessionRepository(Protocol):
    """Persistence interface for consultation sessions."""

    def create_session(
        self,
        client_id: UUID,
        provider_id: UUID,
        duration_seconds: int,
        start_time: datetime,
    ) -> SessionRecord:
        """Create a new active session and return it.

        Raises ConflictError when the client already has an active session.
        """

    def get_session(self, session_id: UUID) -> SessionRecord | None:
        """Return a session by id, if present."""

    def get_active_session(self, client_id: UUID) -> SessionRecord | None:
        """Return the client's active, not completed session, if any."""

    def list_active_sessions(self) -> list[SessionRecord]:
        """Return every session still flagged active."""

    def mark_expired(self, session_id: UUID, ended_at: datetime) -> bool:
        """Flip an active session to inactive; return true if this call did it."""


class MessageRepository(Protocol):
    """Append-only persistence interface for chat messages."""

    def create_message(  # noqa: PLR0913
        self,
        session_id: UUID,
        sender_id: str,
        sender_role: SenderRole,
        kind: MessageKind,
        text: str | None,
        media_ref: str | None,
        duration_seconds: int | None,
        created_at: datetime,
    ) -> MessageRecord:
        """Persist a message and return the stored row."""

    def list_messages(self, session_id: UUID) -> list[MessageRecord]:
        """Return a session's messages ordered by timestamp, then id."""

    def count_messages(self, session_id: UUID) -> int:
        """Return how many messages a session holds."""


@dataclass
class SessionLifecycleManager:
    """State machine for paid consultation sessions.

    Expiry is lazy: whichever operation first observes that the clock ran out
    performs the ``active -> expired`` transition. A periodic sweep may call
    :meth:`expire_due` for proactive notification.
    """

    session_repository: SessionRepository
    default_duration_seconds: int = DEFAULT_SESSION_DURATION_SECONDS
    now: Callable[[], datetime] = clock.utcnow

    def create_session(
        self,
        client_id: UUID,
        provider_id: UUID,
        duration_seconds: int | None = None,
    ) -> SessionRecord:
        """Open a session right after payment; reject if one is already running."""
        self.ensure_can_open(client_id)
        session = self.session_repository.create_session(
            client_id=client_id,
            provider_id=provider_id,
            duration_seconds=duration_seconds or self.default_duration_seconds,
            start_time=self.now(),
        )
        logger.info(
            "Session created",
            extra={"session_id": str(session.id), "client_id": str(client_id)},
        )
        return session

    def ensure_can_open(self, client_id: UUID) -> None:
        """Expire the client's overdue session, or raise ConflictError if one runs."""
        current = self.session_repository.get_active_session(client_id)
        if current is None:
            return
        if clock.is_expired(self.now(), current):
            self._expire(current)
            return
        raise ConflictError(f"Client already has an active session {current.id}")

    def get_session(self, session_id: UUID) -> SessionRecord:
        """Return a session or raise NotFoundError."""
        session = self.session_repository.get_session(session_id)
        if session is None:
            raise NotFoundError("Session not found")
        return session

    def resolve_state(
        self,
        session: SessionRecord,
        now: datetime | None = None,
        has_messages: bool = True,
    ) -> SessionState:
        """Derive the lifecycle state from flags and the clock."""
        if session.completed:
            return SessionState.COMPLETED
        if not session.active or clock.is_expired(now or self.now(), session):
            return SessionState.EXPIRED
        if not has_messages:
            return SessionState.PENDING
        return SessionState.ACTIVE

    def ensure_accepting(self, session_id: UUID) -> tuple[SessionRecord, datetime]:
        """Return the session and the acceptance time, or raise SessionInactiveError."""
        session = self.get_session(session_id)
        now = self.now()
        if session.completed:
            raise SessionInactiveError("Session already completed")
        if not session.active:
            raise SessionInactiveError("Session expired", expired=True)
        if clock.is_expired(now, session):
            flipped = self._expire(session)
            raise SessionInactiveError(
                "Session expired", expired=True, just_expired=flipped
            )
        return session, now

    def observe(self, session_id: UUID) -> tuple[SessionRecord, float, bool]:
        """Return (session, seconds left, whether this call expired it)."""
        session = self.get_session(session_id)
        now = self.now()
        left = clock.remaining(now, session)
        just_expired = False
        if session.active and not session.completed and left <= 0:
            just_expired = self._expire(session)
        return session, left, just_expired

    def expire_due(self) -> list[SessionRecord]:
        """Expire every active session whose time has run out."""
        now = self.now()
        flipped = []
        for session in self.session_repository.list_active_sessions():
            if session.completed or not clock.is_expired(now, session):
                continue
            if self._expire(session):
                flipped.append(session)
        return flipped

    def ensure_completable(self, session_id: UUID) -> SessionRecord:
        """Return the session if it has not been completed yet."""
        session = self.get_session(session_id)
        if session.completed:
            raise AlreadyCompletedError()
        return session

    def _expire(self, session: SessionRecord) -> bool:
        flipped = self.session_repository.mark_expired(session.id, self.now())
        if flipped:
            logger.info("Session expired", extra={"session_id": str(session.id)})
        return flipped
