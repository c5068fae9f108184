"""WebSocket transport for the realtime relay.

Frames are JSON objects with a ``type`` field naming the event; the rest of
the object is the event payload.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from tarot_chat.domain.errors import AuthError, ConsultationError
from tarot_chat.domain.models import VerifiedIdentity  # noqa: TC001
from tarot_chat.domain.sessions import MessageKind, SenderRole
from tarot_chat.services.relay import EVENT_ERROR

if TYPE_CHECKING:
    from tarot_chat.containers import AppContainer

logger = logging.getLogger(__name__)

router = APIRouter()

AUTH_FAILED_CLOSE_CODE = 4401
CLIENT_EVENTS = {"join-session", "send-message", "get-time-left"}


@dataclass
class WebSocketConnection:
    """Relay connection backed by a Starlette WebSocket."""

    websocket: WebSocket
    connection_id: str = field(default_factory=lambda: uuid4().hex)
    roles: dict[UUID, SenderRole] = field(default_factory=dict)

    async def send(self, event: str, payload: object) -> None:
        """Send one event frame."""
        frame: dict[str, object] = {"type": event}
        if isinstance(payload, dict):
            frame.update(payload)
        await self.websocket.send_json(frame)


@router.websocket("/ws")
async def chat_socket(
    websocket: WebSocket, init_data: str | None = Query(default=None, alias="initData")
) -> None:
    """Realtime chat endpoint for session participants."""
    container: AppContainer = websocket.app.state.container
    await websocket.accept()
    connection = WebSocketConnection(websocket)
    identity = container.identity_verifier.verify(init_data)
    if identity is None:
        await connection.send(EVENT_ERROR, {"message": AuthError.message})
        await websocket.close(code=AUTH_FAILED_CLOSE_CODE)
        return

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except ValueError:
                await connection.send(EVENT_ERROR, {"message": "Malformed frame"})
                continue
            await dispatch(container, connection, identity, frame)
    except WebSocketDisconnect:
        pass
    finally:
        container.relay.leave(connection)


async def dispatch(
    container: AppContainer,
    connection: WebSocketConnection,
    identity: VerifiedIdentity,
    frame: object,
) -> None:
    """Route one client frame to the relay."""
    if not isinstance(frame, dict):
        await connection.send(EVENT_ERROR, {"message": "Malformed frame"})
        return
    event = frame.get("type")
    if event not in CLIENT_EVENTS:
        await connection.send(EVENT_ERROR, {"message": f"Unknown event: {event}"})
        return
    session_id = _parse_session_id(frame.get("sessionId"))
    if session_id is None:
        await connection.send(EVENT_ERROR, {"message": "Session not found"})
        return
    try:
        role = _participant_role(container, connection, identity, session_id)
    except ConsultationError as exc:
        await connection.send(EVENT_ERROR, {"message": exc.detail})
        return
    except Exception:
        logger.exception(
            "Failed to resolve participant", extra={"session_id": str(session_id)}
        )
        await connection.send(EVENT_ERROR, {"message": "Failed to process request"})
        return

    relay = container.relay
    if event == "join-session":
        if not _claims_match(
            identity, role, frame.get("userId"), frame.get("userType")
        ):
            await connection.send(EVENT_ERROR, {"message": AuthError.message})
            return
        await relay.join(connection, session_id, str(identity.user_id), role)
    elif event == "send-message":
        if not _claims_match(
            identity, role, frame.get("senderId"), frame.get("senderType")
        ):
            await connection.send(EVENT_ERROR, {"message": AuthError.message})
            return
        kind = _parse_kind(frame.get("messageType"))
        if kind is None:
            await connection.send(EVENT_ERROR, {"message": "Unknown message type"})
            return
        duration = frame.get("duration")
        await relay.send(
            connection,
            session_id,
            sender_id=str(identity.user_id),
            role=role,
            text=frame.get("text"),
            kind=kind,
            media_ref=frame.get("fileUrl"),
            duration_seconds=duration if isinstance(duration, int) else None,
        )
    else:
        await relay.query_time_left(connection, session_id)


def _participant_role(
    container: AppContainer,
    connection: WebSocketConnection,
    identity: VerifiedIdentity,
    session_id: UUID,
) -> SenderRole:
    role = connection.roles.get(session_id)
    if role is None:
        role = container.participants.resolve(session_id, identity.user_id)
        connection.roles[session_id] = role
    return role


def _claims_match(
    identity: VerifiedIdentity,
    role: SenderRole,
    claimed_id: object,
    claimed_role: object,
) -> bool:
    if claimed_id is None or str(claimed_id) != str(identity.user_id):
        return False
    if claimed_role is None:
        return True
    try:
        return SenderRole.parse(str(claimed_role)) is role
    except ValueError:
        return False


def _parse_session_id(raw: object) -> UUID | None:
    try:
        return UUID(str(raw))
    except ValueError:
        return None


def _parse_kind(raw: object) -> MessageKind | None:
    if raw is None:
        return MessageKind.TEXT
    try:
        return MessageKind(raw)
    except ValueError:
        return None
