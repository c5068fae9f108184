"""Turns confirmed payments into consultation sessions."""

import logging
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from tarot_chat.adapters.telegram_client import TelegramClient
from tarot_chat.domain.models import PaymentConfirmation
from tarot_chat.domain.sessions import SessionRecord
from tarot_chat.services.providers import ProviderRepository
from tarot_chat.services.sessions import SessionLifecycleManager

logger = logging.getLogger(__name__)

INVOICE_PAYLOAD_PREFIX = "tarot_session_"


class PaymentGateway(Protocol):
    """Collaborator that tracks paid transactions."""

    def get_pending(self, transaction_ref: str) -> PaymentConfirmation:
        """Return who pays whom for a transaction that is still pending.

        Raises NotFoundError for an unknown reference and ConflictError when the
        transaction was already confirmed.
        """

    def confirm_payment(
        self, transaction_ref: str, charge_id: str | None = None
    ) -> None:
        """Flip the transaction from pending to completed.

        Raises ConflictError when another caller confirmed it first.
        """

    def release_payment(self, transaction_ref: str) -> None:
        """Return a completed transaction to pending."""


@dataclass
class PaymentService:
    """Creates a session once the payment collaborator confirms a transaction."""

    gateway: PaymentGateway
    lifecycle: SessionLifecycleManager
    provider_repository: ProviderRepository
    telegram_client: TelegramClient

    async def handle_successful_payment(
        self, transaction_ref: str, charge_id: str | None = None
    ) -> SessionRecord:
        """Confirm the payment, open the session and tell the provider.

        The transaction stays pending unless a session was opened for it.
        """
        pending = self.gateway.get_pending(transaction_ref)
        self.lifecycle.ensure_can_open(pending.client_id)
        self.gateway.confirm_payment(transaction_ref, charge_id)
        try:
            session = self.lifecycle.create_session(
                client_id=pending.client_id,
                provider_id=pending.provider_id,
            )
        except Exception:
            logger.exception(
                "Failed to open paid session",
                extra={"transaction_ref": transaction_ref},
            )
            self.gateway.release_payment(transaction_ref)
            raise
        logger.info(
            "Payment confirmed",
            extra={
                "transaction_ref": transaction_ref,
                "session_id": str(session.id),
                "amount": pending.amount_confirmed,
            },
        )
        await self._notify_provider(pending.provider_id, session.id)
        return session

    async def _notify_provider(self, provider_id: UUID, session_id: UUID) -> None:
        provider = self.provider_repository.get_provider(provider_id)
        if provider is None or not provider.telegram_id:
            return
        try:
            await self.telegram_client.send_message(
                chat_id=provider.telegram_id,
                text=(
                    "New consultation!\n\n"
                    "The client has paid for a session.\n"
                    f"Session ID: {session_id}\n"
                    "Open the app to start the chat."
                ),
            )
        except Exception:
            logger.exception(
                "Failed to notify provider", extra={"provider_id": str(provider_id)}
            )


def parse_invoice_payload(payload: str) -> str | None:
    """Extract the transaction reference from an invoice payload."""
    if not payload.startswith(INVOICE_PAYLOAD_PREFIX):
        return None
    ref = payload.removeprefix(INVOICE_PAYLOAD_PREFIX).strip()
    return ref or None
