"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from tarot_chat.adapters.supabase_message_repository import SupabaseMessageRepository
from tarot_chat.adapters.supabase_payment_gateway import SupabasePaymentGateway
from tarot_chat.adapters.supabase_provider_repository import (
    SupabaseProviderRepository,
)
from tarot_chat.adapters.supabase_session_repository import (
    SupabaseSessionRepository,
)
from tarot_chat.adapters.supabase_spread_repository import SupabaseSpreadRepository
from tarot_chat.adapters.supabase_user_repository import SupabaseUserRepository
from tarot_chat.adapters.telegram_client import HttpxTelegramClient, TelegramClient
from tarot_chat.adapters.telegram_init_data import (
    IdentityVerifier,
    TelegramInitDataVerifier,
)
from tarot_chat.config import Settings
from tarot_chat.services.payments import PaymentService
from tarot_chat.services.participants import ParticipantResolver
from tarot_chat.services.providers import ProviderService
from tarot_chat.services.ratings import RatingFinalizer
from tarot_chat.services.relay import ExpirySweeper, InMemoryBroadcaster, Relay
from tarot_chat.services.sessions import MessageRepository, SessionLifecycleManager
from tarot_chat.services.spreads import SpreadService
from tarot_chat.services.users import UserService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    telegram_client: TelegramClient
    identity_verifier: IdentityVerifier
    user_service: UserService
    provider_service: ProviderService
    lifecycle: SessionLifecycleManager
    message_repository: MessageRepository
    relay: Relay
    participants: ParticipantResolver
    expiry_sweeper: ExpirySweeper
    rating_finalizer: RatingFinalizer
    spread_service: SpreadService
    payment_service: PaymentService
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    user_repository = SupabaseUserRepository(supabase_client)
    provider_repository = SupabaseProviderRepository(supabase_client)
    session_repository = SupabaseSessionRepository(supabase_client)
    message_repository = SupabaseMessageRepository(supabase_client)
    spread_repository = SupabaseSpreadRepository(supabase_client)
    payment_gateway = SupabasePaymentGateway(supabase_client)
    telegram_client = HttpxTelegramClient.create(resolved_settings.telegram_bot_token)
    identity_verifier = TelegramInitDataVerifier(
        bot_token=resolved_settings.telegram_bot_token,
        max_age_seconds=resolved_settings.init_data_max_age_seconds,
    )
    lifecycle = SessionLifecycleManager(
        session_repository=session_repository,
        default_duration_seconds=resolved_settings.session_duration_seconds,
    )
    relay = Relay(
        lifecycle=lifecycle,
        message_repository=message_repository,
        broadcaster=InMemoryBroadcaster(),
    )
    expiry_sweeper = ExpirySweeper(
        relay=relay,
        interval_seconds=resolved_settings.expiry_sweep_interval_seconds,
    )
    rating_finalizer = RatingFinalizer(
        lifecycle=lifecycle, repository=provider_repository
    )
    spread_service = SpreadService(
        repository=spread_repository, provider_repository=provider_repository
    )
    payment_service = PaymentService(
        gateway=payment_gateway,
        lifecycle=lifecycle,
        provider_repository=provider_repository,
        telegram_client=telegram_client,
    )

    async def close_resources() -> None:
        await expiry_sweeper.stop()
        await telegram_client.close()

    return AppContainer(
        settings=resolved_settings,
        telegram_client=telegram_client,
        identity_verifier=identity_verifier,
        user_service=UserService(user_repository),
        provider_service=ProviderService(provider_repository),
        lifecycle=lifecycle,
        message_repository=message_repository,
        relay=relay,
        participants=ParticipantResolver(
            lifecycle=lifecycle,
            user_repository=user_repository,
            provider_repository=provider_repository,
        ),
        expiry_sweeper=expiry_sweeper,
        rating_finalizer=rating_finalizer,
        spread_service=spread_service,
        payment_service=payment_service,
        close_resources=close_resources,
    )
