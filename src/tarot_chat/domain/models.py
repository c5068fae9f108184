"""Domain models for users, providers, spreads and payments."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

BASE_PRICE_STARS = 33
PRICE_GROWTH = 1.1
MAX_PRICE_STARS = 333
SESSIONS_PER_LEVEL = 10


@dataclass(frozen=True)
class UserRecord:
    """Represents a client stored in the database."""

    id: UUID
    telegram_user_id: int
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None


@dataclass(frozen=True)
class ProviderRecord:
    """A consultant that clients pay for and rate."""

    id: UUID
    name: str
    rating: float = 0.0
    total_ratings: int = 0
    sessions_completed: int = 0
    photo_url: str | None = None
    description: str | None = None
    telegram_id: str | None = None

    @property
    def level(self) -> int:
        return provider_level(self.sessions_completed)

    @property
    def price(self) -> int:
        return calculate_price(self.sessions_completed)


@dataclass(frozen=True)
class SpreadRecord:
    """Snapshot of cards a client shares with a provider."""

    id: UUID
    client_id: UUID
    provider_id: UUID | None
    spread_type: str
    cards: tuple[str, ...]
    sent: bool
    created_at: datetime | None = None


@dataclass(frozen=True)
class PaymentConfirmation:
    """Result of confirming a paid transaction."""

    client_id: UUID
    provider_id: UUID
    amount_confirmed: int


@dataclass(frozen=True)
class VerifiedIdentity:
    """Identity extracted from verified Telegram WebApp init data."""

    user_id: int
    display_name: str
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None


def provider_level(sessions_completed: int) -> int:
    """Return the provider level, one level per ten completed sessions."""
    return sessions_completed // SESSIONS_PER_LEVEL + 1


def calculate_price(sessions_completed: int) -> int:
    """Return the session price in stars for a provider's experience."""
    level = provider_level(sessions_completed)
    price = BASE_PRICE_STARS * PRICE_GROWTH ** (level - 1)
    return min(round(price), MAX_PRICE_STARS)
