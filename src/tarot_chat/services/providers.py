"""Provider catalogue."""

from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from tarot_chat.domain.errors import NotFoundError
from tarot_chat.domain.models import ProviderRecord


class ProviderRepository(Protocol):
    """Persistence interface for providers."""

    def list_providers(self) -> list[ProviderRecord]:
        """Return providers ordered by rating, then completed sessions."""

    def get_provider(self, provider_id: UUID) -> ProviderRecord | None:
        """Return a provider by id, if present."""


@dataclass
class ProviderService:
    """Read access to providers with derived level and price."""

    repository: ProviderRepository

    def list_providers(self) -> list[ProviderRecord]:
        """Return all providers."""
        return self.repository.list_providers()

    def get_provider(self, provider_id: UUID) -> ProviderRecord:
        """Return a provider or raise NotFoundError."""
        provider = self.repository.get_provider(provider_id)
        if provider is None:
            raise NotFoundError("Tarologist not found")
        return provider


def serialize_provider(provider: ProviderRecord) -> dict[str, object]:
    return {
        "id": str(provider.id),
        "name": provider.name,
        "photo_url": provider.photo_url,
        "description": provider.description,
        "rating": provider.rating,
        "total_ratings": provider.total_ratings,
        "sessions_completed": provider.sessions_completed,
        "level": provider.level,
        "price": provider.price,
    }
