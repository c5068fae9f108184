"""Domain models for chat sessions and their messages."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from uuid import UUID

DEFAULT_SESSION_DURATION_SECONDS = 1500


class SessionState(StrEnum):
    """Lifecycle state derived from the persisted flags and the clock."""

    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"
    COMPLETED = "completed"


class SenderRole(StrEnum):
    """Which side of the consultation sent a message."""

    CLIENT = "client"
    PROVIDER = "provider"

    @classmethod
    def parse(cls, raw: str | None) -> "SenderRole":
        """Parse a wire role, accepting the legacy `tarologist` alias."""
        value = (raw or "").strip().lower()
        if value == "tarologist":
            return cls.PROVIDER
        return cls(value)


class MessageKind(StrEnum):
    """Content kind of a chat message."""

    TEXT = "text"
    PHOTO = "photo"
    VOICE = "voice"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"


@dataclass(frozen=True)
class SessionRecord:
    """Represents a persisted consultation session."""

    id: UUID
    client_id: UUID
    provider_id: UUID
    start_time: datetime
    duration_seconds: int = DEFAULT_SESSION_DURATION_SECONDS
    active: bool = True
    completed: bool = False
    end_time: datetime | None = None


@dataclass(frozen=True)
class MessageRecord:
    """Immutable chat message."""

    id: int
    session_id: UUID
    sender_id: str
    sender_role: SenderRole
    kind: MessageKind
    created_at: datetime
    text: str | None = None
    media_ref: str | None = None
    duration_seconds: int | None = None
