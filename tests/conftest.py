"""Shared test fixtures."""

import json
import time
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from urllib.parse import urlencode
from uuid import UUID, uuid4

import pytest

from tarot_chat.adapters.telegram_client import TelegramClient
from tarot_chat.adapters.telegram_init_data import (
    TelegramInitDataVerifier,
    compute_hash,
)
from tarot_chat.config import Settings
from tarot_chat.containers import AppContainer
from tarot_chat.domain.errors import ConflictError, NotFoundError
from tarot_chat.domain.models import (
    PaymentConfirmation,
    ProviderRecord,
    SpreadRecord,
    UserRecord,
)
from tarot_chat.domain.sessions import (
    MessageKind,
    MessageRecord,
    SenderRole,
    SessionRecord,
)
from tarot_chat.services.payments import PaymentGateway, PaymentService
from tarot_chat.services.participants import ParticipantResolver
from tarot_chat.services.providers import ProviderRepository, ProviderService
from tarot_chat.services.ratings import RatingFinalizer, RatingRepository, fold_rating
from tarot_chat.services.relay import ExpirySweeper, InMemoryBroadcaster, Relay
from tarot_chat.services.sessions import (
    MessageRepository,
    SessionLifecycleManager,
    SessionRepository,
)
from tarot_chat.services.spreads import SpreadRepository, SpreadService
from tarot_chat.services.users import UserRepository, UserService

BOT_TOKEN = "test-token"
T0 = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


@dataclass
class FakeClock:
    """Controllable clock for lifecycle tests."""

    current: datetime = T0

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current = self.current + timedelta(seconds=seconds)

    def set(self, seconds_after_t0: float) -> None:
        self.current = T0 + timedelta(seconds=seconds_after_t0)


@dataclass
class InMemorySessionRepository(SessionRepository):
    """In-memory session repository for tests."""

    sessions: dict[UUID, SessionRecord] = field(default_factory=dict)

    def create_session(
        self,
        client_id: UUID,
        provider_id: UUID,
        duration_seconds: int,
        start_time: datetime,
    ) -> SessionRecord:
        session = SessionRecord(
            id=uuid4(),
            client_id=client_id,
            provider_id=provider_id,
            start_time=start_time,
            duration_seconds=duration_seconds,
        )
        self.sessions[session.id] = session
        return session

    def get_session(self, session_id: UUID) -> SessionRecord | None:
        return self.sessions.get(session_id)

    def get_active_session(self, client_id: UUID) -> SessionRecord | None:
        for session in self.sessions.values():
            if (
                session.client_id == client_id
                and session.active
                and not session.completed
            ):
                return session
        return None

    def list_active_sessions(self) -> list[SessionRecord]:
        return [
            session
            for session in self.sessions.values()
            if session.active and not session.completed
        ]

    def mark_expired(self, session_id: UUID, ended_at: datetime) -> bool:
        session = self.sessions[session_id]
        if not session.active or session.completed:
            return False
        self.sessions[session_id] = replace(session, active=False, end_time=ended_at)
        return True


@dataclass
class InMemoryMessageRepository(MessageRepository):
    """In-memory append-only message log for tests."""

    messages: list[MessageRecord] = field(default_factory=list)
    fail_next: bool = False

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
        if self.fail_next:
            self.fail_next = False
            raise RuntimeError("database unavailable")
        message = MessageRecord(
            id=len(self.messages) + 1,
            session_id=session_id,
            sender_id=sender_id,
            sender_role=sender_role,
            kind=kind,
            text=text,
            media_ref=media_ref,
            duration_seconds=duration_seconds,
            created_at=created_at,
        )
        self.messages.append(message)
        return message

    def list_messages(self, session_id: UUID) -> list[MessageRecord]:
        return sorted(
            (m for m in self.messages if m.session_id == session_id),
            key=lambda m: (m.created_at, m.id),
        )

    def count_messages(self, session_id: UUID) -> int:
        return len(self.list_messages(session_id))


@dataclass
class InMemoryProviderRepository(ProviderRepository, RatingRepository):
    """In-memory providers with the atomic completion unit."""

    session_repository: InMemorySessionRepository
    providers: dict[UUID, ProviderRecord] = field(default_factory=dict)

    def add(self, **overrides: object) -> ProviderRecord:
        values: dict[str, object] = {"id": uuid4(), "name": "Alexandra"}
        values.update(overrides)
        provider = ProviderRecord(**values)
        self.providers[provider.id] = provider
        return provider

    def list_providers(self) -> list[ProviderRecord]:
        return sorted(
            self.providers.values(),
            key=lambda p: (p.rating, p.sessions_completed),
            reverse=True,
        )

    def get_provider(self, provider_id: UUID) -> ProviderRecord | None:
        return self.providers.get(provider_id)

    def finalize_rating(
        self,
        session_id: UUID,
        provider_id: UUID,
        value: int,
        completed_at: datetime,
    ) -> ProviderRecord | None:
        session = self.session_repository.sessions.get(session_id)
        if session is None or session.completed or session.provider_id != provider_id:
            return None
        self.session_repository.sessions[session_id] = replace(
            session,
            active=False,
            completed=True,
            end_time=session.end_time or completed_at,
        )
        provider = self.providers[provider_id]
        rating, total = fold_rating(provider.rating, provider.total_ratings, value)
        updated = replace(
            provider,
            rating=rating,
            total_ratings=total,
            sessions_completed=provider.sessions_completed + 1,
        )
        self.providers[provider_id] = updated
        return updated


@dataclass
class InMemoryUserRepository(UserRepository):
    """In-memory user repository for tests."""

    users: dict[int, UserRecord] = field(default_factory=dict)

    def get_by_telegram_id(self, telegram_user_id: int) -> UserRecord | None:
        return self.users.get(telegram_user_id)

    def create_user(
        self,
        telegram_user_id: int,
        username: str | None,
        first_name: str | None,
        last_name: str | None,
    ) -> UserRecord:
        user = UserRecord(
            id=uuid4(),
            telegram_user_id=telegram_user_id,
            username=username,
            first_name=first_name,
            last_name=last_name,
        )
        self.users[telegram_user_id] = user
        return user


@dataclass
class InMemorySpreadRepository(SpreadRepository):
    """In-memory spread repository for tests."""

    spreads: dict[UUID, SpreadRecord] = field(default_factory=dict)

    def create_spread(
        self,
        client_id: UUID,
        provider_id: UUID | None,
        spread_type: str,
        cards: list[str],
    ) -> SpreadRecord:
        spread = SpreadRecord(
            id=uuid4(),
            client_id=client_id,
            provider_id=provider_id,
            spread_type=spread_type,
            cards=tuple(cards),
            sent=False,
            created_at=T0,
        )
        self.spreads[spread.id] = spread
        return spread

    def mark_sent(self, spread_id: UUID) -> SpreadRecord:
        spread = replace(self.spreads[spread_id], sent=True)
        self.spreads[spread_id] = spread
        return spread

    def list_by_client(self, client_id: UUID) -> list[SpreadRecord]:
        return [s for s in self.spreads.values() if s.client_id == client_id]


@dataclass
class FakePaymentGateway(PaymentGateway):
    """Payment collaborator with pre-registered pending transactions."""

    transactions: dict[str, PaymentConfirmation] = field(default_factory=dict)
    confirmed: list[tuple[str, str | None]] = field(default_factory=list)
    released: list[str] = field(default_factory=list)

    def get_pending(self, transaction_ref: str) -> PaymentConfirmation:
        confirmation = self.transactions.get(transaction_ref)
        if confirmation is None:
            raise NotFoundError("Transaction not found")
        if self.is_confirmed(transaction_ref):
            raise ConflictError("Transaction already confirmed")
        return confirmation

    def confirm_payment(
        self, transaction_ref: str, charge_id: str | None = None
    ) -> None:
        if self.is_confirmed(transaction_ref):
            raise ConflictError("Transaction already confirmed")
        self.confirmed.append((transaction_ref, charge_id))

    def release_payment(self, transaction_ref: str) -> None:
        self.confirmed = [c for c in self.confirmed if c[0] != transaction_ref]
        self.released.append(transaction_ref)

    def is_confirmed(self, transaction_ref: str) -> bool:
        return any(ref == transaction_ref for ref, _ in self.confirmed)



@dataclass
class FakeTelegramClient(TelegramClient):
    """Fake Telegram client that records messages."""

    messages: list[tuple[int | str, str]] = field(default_factory=list)
    fail: bool = False

    async def send_message(self, chat_id: int | str, text: str) -> None:
        if self.fail:
            raise RuntimeError("telegram down")
        self.messages.append((chat_id, text))


@dataclass
class FakeConnection:
    """Relay connection that records delivered events."""

    connection_id: str = field(default_factory=lambda: uuid4().hex)
    events: list[tuple[str, object]] = field(default_factory=list)

    async def send(self, event: str, payload: object) -> None:
        self.events.append((event, payload))

    def of(self, event: str) -> list[object]:
        return [payload for name, payload in self.events if name == event]


def sign_init_data(
    user: dict[str, object],
    bot_token: str = BOT_TOKEN,
    auth_date: int | None = None,
) -> str:
    """Build init data signed the way Telegram signs it."""
    params = {
        "auth_date": str(auth_date if auth_date is not None else int(time.time())),
        "query_id": "AAHdF6IQAAAAAN0XohDhrOrc",
        "user": json.dumps(user, separators=(",", ":")),
    }
    params["hash"] = compute_hash(bot_token, params)
    return urlencode(params)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        telegram_bot_token=BOT_TOKEN,
        supabase_url="https://example.supabase.co",
        supabase_service_key="header.payload.signature",
    )


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session_repository() -> InMemorySessionRepository:
    return InMemorySessionRepository()


@pytest.fixture
def message_repository() -> InMemoryMessageRepository:
    return InMemoryMessageRepository()


@pytest.fixture
def provider_repository(
    session_repository: InMemorySessionRepository,
) -> InMemoryProviderRepository:
    return InMemoryProviderRepository(session_repository=session_repository)


@pytest.fixture
def user_repository() -> InMemoryUserRepository:
    return InMemoryUserRepository()


@pytest.fixture
def spread_repository() -> InMemorySpreadRepository:
    return InMemorySpreadRepository()


@pytest.fixture
def payment_gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture
def telegram_client() -> FakeTelegramClient:
    return FakeTelegramClient()


@pytest.fixture
def lifecycle(
    session_repository: InMemorySessionRepository, fake_clock: FakeClock
) -> SessionLifecycleManager:
    return SessionLifecycleManager(
        session_repository=session_repository, now=fake_clock
    )


@pytest.fixture
def relay(
    lifecycle: SessionLifecycleManager,
    message_repository: InMemoryMessageRepository,
) -> Relay:
    return Relay(
        lifecycle=lifecycle,
        message_repository=message_repository,
        broadcaster=InMemoryBroadcaster(),
    )


@pytest.fixture
def container(  # noqa: PLR0913
    settings: Settings,
    lifecycle: SessionLifecycleManager,
    relay: Relay,
    message_repository: InMemoryMessageRepository,
    provider_repository: InMemoryProviderRepository,
    user_repository: InMemoryUserRepository,
    spread_repository: InMemorySpreadRepository,
    payment_gateway: FakePaymentGateway,
    telegram_client: FakeTelegramClient,
) -> AppContainer:
    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        telegram_client=telegram_client,
        identity_verifier=TelegramInitDataVerifier(
            bot_token=settings.telegram_bot_token,
            max_age_seconds=settings.init_data_max_age_seconds,
        ),
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
        expiry_sweeper=ExpirySweeper(relay=relay, interval_seconds=0),
        rating_finalizer=RatingFinalizer(
            lifecycle=lifecycle, repository=provider_repository
        ),
        spread_service=SpreadService(
            repository=spread_repository, provider_repository=provider_repository
        ),
        payment_service=PaymentService(
            gateway=payment_gateway,
            lifecycle=lifecycle,
            provider_repository=provider_repository,
            telegram_client=telegram_client,
        ),
        close_resources=close_resources,
    )
