"""Card spreads shared by clients with providers."""

import logging
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from tarot_chat.domain.errors import InvalidRequestError, NotFoundError
from tarot_chat.domain.models import SpreadRecord
from tarot_chat.services.providers import ProviderRepository

logger = logging.getLogger(__name__)

SPREAD_TYPES = {"daily", "path"}


class SpreadRepository(Protocol):
    """Persistence interface for spread submissions."""

    def create_spread(
        self,
        client_id: UUID,
        provider_id: UUID | None,
        spread_type: str,
        cards: list[str],
    ) -> SpreadRecord:
        """Create an unsent spread snapshot."""

    def mark_sent(self, spread_id: UUID) -> SpreadRecord:
        """Flag a spread as sent and return it."""

    def list_by_client(self, client_id: UUID) -> list[SpreadRecord]:
        """Return a client's spreads, newest first."""


@dataclass
class SpreadService:
    """Creates spread snapshots and marks them delivered."""

    repository: SpreadRepository
    provider_repository: ProviderRepository

    def send_spread(
        self,
        client_id: UUID,
        provider_id: UUID | None,
        spread_type: str,
        cards: list[str],
    ) -> SpreadRecord:
        """Snapshot a spread for a provider and mark it sent."""
        if spread_type not in SPREAD_TYPES:
            raise InvalidRequestError(f"Unknown spread type: {spread_type}")
        if not cards:
            raise InvalidRequestError("A spread needs at least one card")
        if (
            provider_id is not None
            and self.provider_repository.get_provider(provider_id) is None
        ):
            raise NotFoundError("Tarologist not found")
        spread = self.repository.create_spread(
            client_id=client_id,
            provider_id=provider_id,
            spread_type=spread_type,
            cards=list(cards),
        )
        sent = self.repository.mark_sent(spread.id)
        logger.info("Spread sent", extra={"spread_id": str(sent.id)})
        return sent

    def list_spreads(self, client_id: UUID) -> list[SpreadRecord]:
        """Return the client's spreads."""
        return self.repository.list_by_client(client_id)


def serialize_spread(spread: SpreadRecord) -> dict[str, object]:
    return {
        "id": str(spread.id),
        "clientId": str(spread.client_id),
        "providerId": str(spread.provider_id) if spread.provider_id else None,
        "spreadType": spread.spread_type,
        "cards": list(spread.cards),
        "sent": spread.sent,
        "createdAt": spread.created_at.isoformat() if spread.created_at else None,
    }
