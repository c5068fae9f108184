"""Realtime relay: rooms of connected participants per session."""

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol
from uuid import UUID

from tarot_chat.domain.errors import NotFoundError, SessionInactiveError
from tarot_chat.domain.sessions import (
    MessageKind,
    MessageRecord,
    SenderRole,
    SessionRecord,
)
from tarot_chat.services.sessions import MessageRepository, SessionLifecycleManager

logger = logging.getLogger(__name__)

EVENT_HISTORY = "messages-history"
EVENT_NEW_MESSAGE = "new-message"
EVENT_SESSION_EXPIRED = "session-expired"
EVENT_TIME_LEFT = "time-left"
EVENT_ERROR = "error"


class Connection(Protocol):
    """A connected participant that can receive server events."""

    connection_id: str

    async def send(self, event: str, payload: object) -> None:
        """Deliver one event to this participant."""


class Broadcaster(Protocol):
    """Topic-based fan-out."""

    def subscribe(self, topic: str, connection: Connection) -> None:
        """Add a connection to a topic."""

    def unsubscribe(self, topic: str, connection: Connection) -> None:
        """Remove a connection from a topic."""

    def topics_for(self, connection: Connection) -> list[str]:
        """Return the topics a connection is subscribed to."""

    def members(self, topic: str) -> list[Connection]:
        """Return the connections subscribed to a topic."""

    async def publish(self, topic: str, event: str, payload: object) -> None:
        """Send an event to every subscriber of a topic."""


@dataclass
class InMemoryBroadcaster(Broadcaster):
    """Process-local rooms keyed by topic, members kept in join order."""

    rooms: dict[str, dict[str, Connection]] = field(default_factory=dict)

    def subscribe(self, topic: str, connection: Connection) -> None:
        self.rooms.setdefault(topic, {})[connection.connection_id] = connection

    def unsubscribe(self, topic: str, connection: Connection) -> None:
        members = self.rooms.get(topic)
        if members is None:
            return
        members.pop(connection.connection_id, None)
        if not members:
            del self.rooms[topic]

    def topics_for(self, connection: Connection) -> list[str]:
        return [
            topic
            for topic, members in self.rooms.items()
            if connection.connection_id in members
        ]

    def members(self, topic: str) -> list[Connection]:
        return list(self.rooms.get(topic, {}).values())

    async def publish(self, topic: str, event: str, payload: object) -> None:
        for connection in self.members(topic):
            try:
                await connection.send(event, payload)
            except Exception:
                logger.exception(
                    "Dropping connection after failed delivery",
                    extra={"topic": topic, "connection_id": connection.connection_id},
                )
                self.unsubscribe(topic, connection)


def session_topic(session_id: UUID) -> str:
    """Room name for a session."""
    return f"session_{session_id}"


def serialize_message(message: MessageRecord) -> dict[str, object]:
    """Render a message the way clients expect it on the wire."""
    payload: dict[str, object] = {
        "id": message.id,
        "text": message.text,
        "senderId": message.sender_id,
        "senderType": message.sender_role.value,
        "timestamp": message.created_at.isoformat(),
    }
    if message.kind is not MessageKind.TEXT:
        payload["message_type"] = message.kind.value
        payload["file_url"] = message.media_ref
        if message.duration_seconds is not None:
            payload["duration"] = message.duration_seconds
    return payload


@dataclass
class Relay:
    """Routes participant actions to the lifecycle manager and message store."""

    lifecycle: SessionLifecycleManager
    message_repository: MessageRepository
    broadcaster: Broadcaster
    _locks: dict[UUID, asyncio.Lock] = field(default_factory=dict, repr=False)

    async def join(
        self,
        connection: Connection,
        session_id: UUID,
        user_id: str,
        role: SenderRole,
    ) -> bool:
        """Join a session room and push the history to this connection only."""
        try:
            self.lifecycle.get_session(session_id)
            history = self.message_repository.list_messages(session_id)
        except NotFoundError as exc:
            await connection.send(EVENT_ERROR, {"message": exc.detail})
            return False
        except Exception:
            logger.exception(
                "Failed to load session history", extra={"session_id": str(session_id)}
            )
            await connection.send(EVENT_ERROR, {"message": "Failed to join session"})
            return False
        self.broadcaster.subscribe(session_topic(session_id), connection)
        logger.info(
            "Participant joined",
            extra={"session_id": str(session_id), "user_id": user_id, "role": role},
        )
        await connection.send(
            EVENT_HISTORY, {"messages": [serialize_message(m) for m in history]}
        )
        return True

    async def send(  # noqa: PLR0913
        self,
        connection: Connection,
        session_id: UUID,
        sender_id: str,
        role: SenderRole,
        text: str | None = None,
        kind: MessageKind = MessageKind.TEXT,
        media_ref: str | None = None,
        duration_seconds: int | None = None,
    ) -> MessageRecord | None:
        """Accept, persist and fan out a message, or report why it was refused."""
        content_error = _validate_content(kind, text, media_ref)
        if content_error:
            await connection.send(EVENT_ERROR, {"message": content_error})
            return None

        async with self._lock_for(session_id):
            try:
                _, accepted_at = self.lifecycle.ensure_accepting(session_id)
            except NotFoundError as exc:
                self._locks.pop(session_id, None)
                await connection.send(EVENT_ERROR, {"message": exc.detail})
                return None
            except SessionInactiveError as exc:
                await self._reject(connection, session_id, exc)
                return None
            except Exception:
                logger.exception(
                    "Failed to check session", extra={"session_id": str(session_id)}
                )
                await connection.send(
                    EVENT_ERROR, {"message": "Failed to send message"}
                )
                return None

            try:
                message = self.message_repository.create_message(
                    session_id=session_id,
                    sender_id=sender_id,
                    sender_role=role,
                    kind=kind,
                    text=text,
                    media_ref=media_ref,
                    duration_seconds=duration_seconds,
                    created_at=accepted_at,
                )
            except Exception:
                logger.exception(
                    "Failed to persist message", extra={"session_id": str(session_id)}
                )
                await connection.send(
                    EVENT_ERROR, {"message": "Failed to send message"}
                )
                return None

            await self.broadcaster.publish(
                session_topic(session_id),
                EVENT_NEW_MESSAGE,
                serialize_message(message),
            )
        return message

    async def query_time_left(
        self, connection: Connection, session_id: UUID
    ) -> float | None:
        """Answer a time query for the requesting connection only."""
        try:
            session, left, just_expired = self.lifecycle.observe(session_id)
        except NotFoundError as exc:
            await connection.send(EVENT_ERROR, {"message": exc.detail})
            return None
        except Exception:
            logger.exception(
                "Failed to read session time", extra={"session_id": str(session_id)}
            )
            await connection.send(EVENT_ERROR, {"message": "Failed to get time left"})
            return None
        await connection.send(
            EVENT_TIME_LEFT,
            {"timeLeft": left, "expired": left <= 0 or not session.active},
        )
        if just_expired:
            await self.announce_expired([session])
        return left

    def leave(self, connection: Connection) -> None:
        """Drop a connection from every room; session state is untouched."""
        for topic in self.broadcaster.topics_for(connection):
            self.broadcaster.unsubscribe(topic, connection)
        for session_id, lock in list(self._locks.items()):
            if not lock.locked() and not self.broadcaster.members(
                session_topic(session_id)
            ):
                del self._locks[session_id]

    async def sweep_expired(self) -> list[SessionRecord]:
        """Expire overdue sessions and notify their rooms."""
        flipped = self.lifecycle.expire_due()
        await self.announce_expired(flipped)
        return flipped

    async def _reject(
        self, connection: Connection, session_id: UUID, exc: SessionInactiveError
    ) -> None:
        # An inactive session never accepts another message.
        self._locks.pop(session_id, None)
        if not exc.expired:
            await connection.send(EVENT_ERROR, {"message": exc.detail})
            return
        if exc.just_expired:
            await self.broadcaster.publish(
                session_topic(session_id), EVENT_SESSION_EXPIRED, {}
            )
            if session_topic(session_id) in self.broadcaster.topics_for(connection):
                return
        await connection.send(EVENT_SESSION_EXPIRED, {})

    async def announce_expired(self, sessions: Iterable[SessionRecord]) -> None:
        for session in sessions:
            self._locks.pop(session.id, None)
            await self.broadcaster.publish(
                session_topic(session.id), EVENT_SESSION_EXPIRED, {}
            )

    def _lock_for(self, session_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock


@dataclass
class ExpirySweeper:
    """Optional background task that expires sessions proactively."""

    relay: Relay
    interval_seconds: float
    _task: asyncio.Task | None = field(default=None, repr=False)

    def start(self) -> None:
        """Start sweeping; a non-positive interval leaves expiry fully lazy."""
        if self.interval_seconds <= 0 or self._task is not None:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Cancel the sweep task if running."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.relay.sweep_expired()
            except Exception:
                logger.exception("Expiry sweep failed")


def _validate_content(
    kind: MessageKind, text: str | None, media_ref: str | None
) -> str | None:
    if kind is MessageKind.TEXT:
        if not text or not text.strip():
            return "Message text is empty"
        return None
    if not media_ref:
        return f"Missing file for {kind.value} message"
    return None
