"""Supabase-backed session repository."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from postgrest.exceptions import APIError
from supabase import Client

from tarot_chat.domain.errors import ConflictError
from tarot_chat.domain.sessions import SessionRecord
from tarot_chat.services.sessions import SessionRepository

_COLUMNS = (
    "id, client_id, provider_id, start_time, end_time, duration_seconds, "
    "active, completed"
)

UNIQUE_VIOLATION = "23505"


@dataclass
class SupabaseSessionRepository(SessionRepository):
    """Supabase implementation for chat sessions."""

    client: Client

    def create_session(
        self,
        client_id: UUID,
        provider_id: UUID,
        duration_seconds: int,
        start_time: datetime,
    ) -> SessionRecord:
        """Create a session row and return it."""
        try:
            response = (
                self.client.table("chat_sessions")
                .insert(
                    {
                        "client_id": str(client_id),
                        "provider_id": str(provider_id),
                        "duration_seconds": duration_seconds,
                        "start_time": start_time.isoformat(),
                        "active": True,
                        "completed": False,
                    }
                )
                .execute()
            )
        except APIError as exc:
            if exc.code == UNIQUE_VIOLATION:
                raise ConflictError(
                    f"Client {client_id} already has an active session"
                ) from exc
            raise
        if not response.data:
            raise RuntimeError("Failed to create session")
        return _parse_row(response.data[0])

    def get_session(self, session_id: UUID) -> SessionRecord | None:
        """Return a session by id, if present."""
        response = (
            self.client.table("chat_sessions")
            .select(_COLUMNS)
            .eq("id", str(session_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_row(response.data[0])

    def get_active_session(self, client_id: UUID) -> SessionRecord | None:
        """Return the most recent active session for a client."""
        response = (
            self.client.table("chat_sessions")
            .select(_COLUMNS)
            .eq("client_id", str(client_id))
            .eq("active", True)
            .eq("completed", False)
            .order("start_time", desc=True)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_row(response.data[0])

    def list_active_sessions(self) -> list[SessionRecord]:
        """Return all sessions still flagged active."""
        response = (
            self.client.table("chat_sessions")
            .select(_COLUMNS)
            .eq("active", True)
            .eq("completed", False)
            .execute()
        )
        return [_parse_row(row) for row in response.data or []]

    def mark_expired(self, session_id: UUID, ended_at: datetime) -> bool:
        """Flip active to false only if it is still active."""
        response = (
            self.client.table("chat_sessions")
            .update({"active": False, "end_time": ended_at.isoformat()})
            .eq("id", str(session_id))
            .eq("active", True)
            .eq("completed", False)
            .execute()
        )
        return bool(response.data)


def _parse_row(row: dict[str, object]) -> SessionRecord:
    end_time_raw = row.get("end_time")
    return SessionRecord(
        id=UUID(str(row["id"])),
        client_id=UUID(str(row["client_id"])),
        provider_id=UUID(str(row["provider_id"])),
        start_time=datetime.fromisoformat(str(row["start_time"])),
        end_time=(
            datetime.fromisoformat(end_time_raw)
            if isinstance(end_time_raw, str) and end_time_raw
            else None
        ),
        duration_seconds=int(row.get("duration_seconds") or 1500),
        active=bool(row.get("active")),
        completed=bool(row.get("completed")),
    )
