"""Supabase repository for providers and their rating statistics."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from supabase import Client

from tarot_chat.domain.models import ProviderRecord
from tarot_chat.services.providers import ProviderRepository
from tarot_chat.services.ratings import RatingRepository

_COLUMNS = (
    "id, name, photo_url, description, rating, total_ratings, "
    "sessions_completed, telegram_id"
)


@dataclass
class SupabaseProviderRepository(ProviderRepository, RatingRepository):
    """Supabase implementation for the provider catalogue."""

    client: Client

    def list_providers(self) -> list[ProviderRecord]:
        """Return providers, best rated first."""
        response = (
            self.client.table("providers")
            .select(_COLUMNS)
            .order("rating", desc=True)
            .order("sessions_completed", desc=True)
            .execute()
        )
        return [_parse_row(row) for row in response.data or []]

    def get_provider(self, provider_id: UUID) -> ProviderRecord | None:
        """Return a provider by id, if present."""
        response = (
            self.client.table("providers")
            .select(_COLUMNS)
            .eq("id", str(provider_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_row(response.data[0])

    def finalize_rating(
        self,
        session_id: UUID,
        provider_id: UUID,
        value: int,
        completed_at: datetime,
    ) -> ProviderRecord | None:
        """Run the single-transaction completion function."""
        response = self.client.rpc(
            "finalize_session_rating",
            {
                "p_session_id": str(session_id),
                "p_provider_id": str(provider_id),
                "p_rating": value,
                "p_completed_at": completed_at.isoformat(),
            },
        ).execute()
        if not response.data:
            return None
        return _parse_row(response.data[0])


def _parse_row(row: dict[str, object]) -> ProviderRecord:
    telegram_id = row.get("telegram_id")
    return ProviderRecord(
        id=UUID(str(row["id"])),
        name=str(row.get("name", "")),
        photo_url=row.get("photo_url"),
        description=row.get("description"),
        rating=float(row.get("rating") or 0.0),
        total_ratings=int(row.get("total_ratings") or 0),
        sessions_completed=int(row.get("sessions_completed") or 0),
        telegram_id=str(telegram_id) if telegram_id is not None else None,
    )
