"""Supabase repository for spread submissions."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from supabase import Client

from tarot_chat.domain.models import SpreadRecord
from tarot_chat.services.spreads import SpreadRepository

_COLUMNS = "id, client_id, provider_id, spread_type, cards, is_sent, created_at"


@dataclass
class SupabaseSpreadRepository(SpreadRepository):
    """Supabase implementation for spreads."""

    client: Client

    def create_spread(
        self,
        client_id: UUID,
        provider_id: UUID | None,
        spread_type: str,
        cards: list[str],
    ) -> SpreadRecord:
        """Insert an unsent spread."""
        response = (
            self.client.table("spreads")
            .insert(
                {
                    "client_id": str(client_id),
                    "provider_id": str(provider_id) if provider_id else None,
                    "spread_type": spread_type,
                    "cards": cards,
                    "is_sent": False,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create spread")
        return _parse_row(response.data[0])

    def mark_sent(self, spread_id: UUID) -> SpreadRecord:
        """Set the sent flag."""
        response = (
            self.client.table("spreads")
            .update({"is_sent": True})
            .eq("id", str(spread_id))
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to mark spread as sent")
        return _parse_row(response.data[0])

    def list_by_client(self, client_id: UUID) -> list[SpreadRecord]:
        """Return the client's spreads, newest first."""
        response = (
            self.client.table("spreads")
            .select(_COLUMNS)
            .eq("client_id", str(client_id))
            .order("created_at", desc=True)
            .execute()
        )
        return [_parse_row(row) for row in response.data or []]


def _parse_row(row: dict[str, object]) -> SpreadRecord:
    provider_id = row.get("provider_id")
    created_at = row.get("created_at")
    cards = row.get("cards") or []
    return SpreadRecord(
        id=UUID(str(row["id"])),
        client_id=UUID(str(row["client_id"])),
        provider_id=UUID(str(provider_id)) if provider_id else None,
        spread_type=str(row.get("spread_type", "")),
        cards=tuple(str(card) for card in cards),
        sent=bool(row.get("is_sent")),
        created_at=(
            datetime.fromisoformat(created_at)
            if isinstance(created_at, str) and created_at
            else None
        ),
    )
