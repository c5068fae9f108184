"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tarot_chat.api.models import RateRequest, SpreadRequest, UserInitRequest
from tarot_chat.api.realtime import router as realtime_router
from tarot_chat.api.telegram_models import TelegramUpdate
from tarot_chat.app_logging import configure_logging
from tarot_chat.config import parse_allowed_origins
from tarot_chat.containers import AppContainer
from tarot_chat.domain.errors import (
    AlreadyCompletedError,
    AuthError,
    ConflictError,
    ConsultationError,
    InvalidRatingError,
    InvalidRequestError,
    NotFoundError,
    SessionInactiveError,
)
from tarot_chat.services.payments import parse_invoice_payload
from tarot_chat.services.providers import serialize_provider
from tarot_chat.services.relay import serialize_message
from tarot_chat.services.spreads import serialize_spread
from tarot_chat.services.users import serialize_user

_ERROR_STATUS: dict[type[ConsultationError], int] = {
    AuthError: status.HTTP_401_UNAUTHORIZED,
    ConflictError: status.HTTP_409_CONFLICT,
    SessionInactiveError: status.HTTP_410_GONE,
    InvalidRatingError: status.HTTP_400_BAD_REQUEST,
    InvalidRequestError: status.HTTP_400_BAD_REQUEST,
    AlreadyCompletedError: status.HTTP_409_CONFLICT,
    NotFoundError: status.HTTP_404_NOT_FOUND,
}


def create_app(container: AppContainer) -> FastAPI:  # noqa: PLR0915
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.container.expiry_sweeper.start()
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container
    app.add_middleware(
        CORSMiddleware,
        allow_origins=parse_allowed_origins(container.settings.cors_allowed_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.include_router(realtime_router)

    @app.exception_handler(ConsultationError)
    async def consultation_error_handler(
        request: Request, exc: ConsultationError
    ) -> JSONResponse:
        status_code = _ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
        return JSONResponse(
            status_code=status_code,
            content={"success": False, "error": exc.detail},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": InvalidRequestError.message},
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.exception(
            "Unhandled error", extra={"path": request.url.path}, exc_info=exc
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": "Internal server error"},
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.get("/api/tarologists")
    async def list_tarologists(request: Request) -> dict[str, object]:
        """Return all providers with level and price."""
        state_container: AppContainer = request.app.state.container
        providers = state_container.provider_service.list_providers()
        return {"success": True, "data": [serialize_provider(p) for p in providers]}

    @app.get("/api/tarologists/{provider_id}")
    async def get_tarologist(provider_id: UUID, request: Request) -> dict[str, object]:
        """Return a single provider."""
        state_container: AppContainer = request.app.state.container
        provider = state_container.provider_service.get_provider(provider_id)
        return {"success": True, "data": serialize_provider(provider)}

    @app.post("/api/user/init")
    async def init_user(body: UserInitRequest, request: Request) -> dict[str, object]:
        """Verify Telegram init data and find or create the user."""
        state_container: AppContainer = request.app.state.container
        identity = state_container.identity_verifier.verify(body.initData)
        if identity is None:
            raise AuthError()
        user = state_container.user_service.ensure_user(identity)
        return {"success": True, "data": serialize_user(user)}

    @app.post("/api/rate")
    async def rate(body: RateRequest, request: Request) -> dict[str, object]:
        """Rate the provider and complete the session."""
        state_container: AppContainer = request.app.state.container
        provider = state_container.rating_finalizer.submit(
            session_id=body.sessionId,
            provider_id=body.tarologistId,
            value=body.rating,
        )
        return {"success": True, "data": serialize_provider(provider)}

    @app.get("/api/session/{session_id}")
    async def session_status(session_id: UUID, request: Request) -> dict[str, object]:
        """Return the session state and the server-side time left."""
        state_container: AppContainer = request.app.state.container
        lifecycle = state_container.lifecycle
        session, left, just_expired = lifecycle.observe(session_id)
        if just_expired:
            await state_container.relay.announce_expired([session])
        has_messages = state_container.message_repository.count_messages(session_id) > 0
        state = lifecycle.resolve_state(session, has_messages=has_messages)
        return {
            "success": True,
            "data": {
                "id": str(session.id),
                "clientId": str(session.client_id),
                "providerId": str(session.provider_id),
                "startTime": session.start_time.isoformat(),
                "durationSeconds": session.duration_seconds,
                "state": state.value,
                "timeLeft": left,
                "expired": left <= 0 or not session.active,
            },
        }

    @app.get("/api/session/{session_id}/messages")
    async def session_messages(session_id: UUID, request: Request) -> dict[str, object]:
        """Return a session's message history."""
        state_container: AppContainer = request.app.state.container
        state_container.lifecycle.get_session(session_id)
        messages = state_container.message_repository.list_messages(session_id)
        return {"success": True, "data": [serialize_message(m) for m in messages]}

    @app.post("/api/spreads")
    async def send_spread(body: SpreadRequest, request: Request) -> dict[str, object]:
        """Share a spread with a provider."""
        state_container: AppContainer = request.app.state.container
        spread = state_container.spread_service.send_spread(
            client_id=body.clientId,
            provider_id=body.providerId,
            spread_type=body.spreadType,
            cards=body.cards,
        )
        return {"success": True, "data": serialize_spread(spread)}

    @app.get("/api/spreads")
    async def list_spreads(
        clientId: UUID, request: Request  # noqa: N803
    ) -> dict[str, object]:
        """Return spreads shared by a client."""
        state_container: AppContainer = request.app.state.container
        spreads = state_container.spread_service.list_spreads(clientId)
        return {"success": True, "data": [serialize_spread(s) for s in spreads]}

    @app.post("/api/payment-webhook")
    async def payment_webhook(
        update: TelegramUpdate, request: Request
    ) -> dict[str, object]:
        """Open a session once Telegram reports a successful payment."""
        state_container: AppContainer = request.app.state.container
        payment = update.message.successful_payment if update.message else None
        if payment is None:
            return {"ok": True}
        transaction_ref = parse_invoice_payload(payment.invoice_payload)
        if transaction_ref is None:
            raise InvalidRequestError("Unknown invoice payload")
        session = await state_container.payment_service.handle_successful_payment(
            transaction_ref, payment.telegram_payment_charge_id
        )
        return {"ok": True, "sessionId": str(session.id)}

    return app
