"""User-related business logic."""

from dataclasses import dataclass
from typing import Protocol

from tarot_chat.domain.models import UserRecord, VerifiedIdentity


class UserRepository(Protocol):
    """Persistence interface for user data."""

    def get_by_telegram_id(self, telegram_user_id: int) -> UserRecord | None:
        """Return the user for a Telegram user id, if present."""

    def create_user(
        self,
        telegram_user_id: int,
        username: str | None,
        first_name: str | None,
        last_name: str | None,
    ) -> UserRecord:
        """Create and return a new user record."""


@dataclass
class UserService:
    """Application service for user lifecycle actions."""

    repository: UserRepository

    def ensure_user(self, identity: VerifiedIdentity) -> UserRecord:
        """Ensure a user exists for the verified Telegram identity and return it."""
        existing = self.repository.get_by_telegram_id(identity.user_id)
        if existing:
            return existing
        return self.repository.create_user(
            telegram_user_id=identity.user_id,
            username=identity.username,
            first_name=identity.first_name,
            last_name=identity.last_name,
        )


def serialize_user(user: UserRecord) -> dict[str, object]:
    return {
        "id": str(user.id),
        "telegram_id": str(user.telegram_user_id),
        "username": user.username,
        "first_name": user.first_name,
        "last_name": user.last_name,
    }
