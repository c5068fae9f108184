"""Maps a verified Telegram user to their side of a session."""

from dataclasses import dataclass
from uuid import UUID

from tarot_chat.domain.errors import AuthError
from tarot_chat.domain.sessions import SenderRole
from tarot_chat.services.providers import ProviderRepository
from tarot_chat.services.sessions import SessionLifecycleManager
from tarot_chat.services.users import UserRepository


@dataclass
class ParticipantResolver:
    """Derives the sender role from the session instead of client claims."""

    lifecycle: SessionLifecycleManager
    user_repository: UserRepository
    provider_repository: ProviderRepository

    def resolve(self, session_id: UUID, telegram_user_id: int) -> SenderRole:
        """Return the caller's role, or raise AuthError for non-participants."""
        session = self.lifecycle.get_session(session_id)
        user = self.user_repository.get_by_telegram_id(telegram_user_id)
        if user is not None and user.id == session.client_id:
            return SenderRole.CLIENT
        provider = self.provider_repository.get_provider(session.provider_id)
        if provider is not None and provider.telegram_id == str(telegram_user_id):
            return SenderRole.PROVIDER
        raise AuthError("Not a participant of this session")
