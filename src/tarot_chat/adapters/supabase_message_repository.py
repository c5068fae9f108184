"""Supabase repository for chat messages."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from supabase import Client

from tarot_chat.domain.sessions import MessageKind, MessageRecord, SenderRole
from tarot_chat.services.sessions import MessageRepository

_COLUMNS = (
    "id, session_id, sender_id, sender_type, message_type, text, file_url, "
    "duration, created_at"
)


@dataclass
class SupabaseMessageRepository(MessageRepository):
    """Append-only Supabase message log."""

    client: Client

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
        """Insert a message row and return the stored message."""
        response = (
            self.client.table("messages")
            .insert(
                {
                    "session_id": str(session_id),
                    "sender_id": sender_id,
                    "sender_type": sender_role.value,
                    "message_type": kind.value,
                    "text": text,
                    "file_url": media_ref,
                    "duration": duration_seconds,
                    "created_at": created_at.isoformat(),
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create message")
        return _parse_row(response.data[0])

    def list_messages(self, session_id: UUID) -> list[MessageRecord]:
        """Return the session's messages in persisted order."""
        response = (
            self.client.table("messages")
            .select(_COLUMNS)
            .eq("session_id", str(session_id))
            .order("created_at", desc=False)
            .order("id", desc=False)
            .execute()
        )
        return [_parse_row(row) for row in response.data or []]

    def count_messages(self, session_id: UUID) -> int:
        """Return the number of messages in a session."""
        response = (
            self.client.table("messages")
            .select("id", count="exact")
            .eq("session_id", str(session_id))
            .limit(1)
            .execute()
        )
        if response.count is not None:
            return int(response.count)
        return len(response.data or [])


def _parse_row(row: dict[str, object]) -> MessageRecord:
    duration = row.get("duration")
    return MessageRecord(
        id=int(row["id"]),
        session_id=UUID(str(row["session_id"])),
        sender_id=str(row["sender_id"]),
        sender_role=SenderRole.parse(str(row.get("sender_type"))),
        kind=MessageKind(row.get("message_type") or "text"),
        text=row.get("text"),
        media_ref=row.get("file_url"),
        duration_seconds=int(duration) if duration is not None else None,
        created_at=datetime.fromisoformat(str(row["created_at"])),
    )
