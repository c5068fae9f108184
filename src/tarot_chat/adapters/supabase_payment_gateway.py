"""Payment collaborator backed by the Supabase transactions table."""

from dataclasses import dataclass
from uuid import UUID

from supabase import Client

from tarot_chat.domain.errors import ConflictError, NotFoundError
from tarot_chat.domain.models import PaymentConfirmation
from tarot_chat.services.payments import PaymentGateway

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"


@dataclass
class SupabasePaymentGateway(PaymentGateway):
    """Tracks transaction status with conditional updates."""

    client: Client

    def get_pending(self, transaction_ref: str) -> PaymentConfirmation:
        """Return the pending transaction's parties and amount."""
        response = (
            self.client.table("transactions")
            .select("id, client_id, provider_id, stars_amount, status")
            .eq("id", transaction_ref)
            .limit(1)
            .execute()
        )
        if not response.data:
            raise NotFoundError("Transaction not found")
        row = response.data[0]
        if row.get("status") != STATUS_PENDING:
            raise ConflictError("Transaction already confirmed")
        return PaymentConfirmation(
            client_id=UUID(str(row["client_id"])),
            provider_id=UUID(str(row["provider_id"])),
            amount_confirmed=int(row.get("stars_amount") or 0),
        )

    def confirm_payment(
        self, transaction_ref: str, charge_id: str | None = None
    ) -> None:
        """Complete the transaction only while it is still pending."""
        response = (
            self.client.table("transactions")
            .update({"status": STATUS_COMPLETED, "telegram_payment_id": charge_id})
            .eq("id", transaction_ref)
            .eq("status", STATUS_PENDING)
            .execute()
        )
        if not response.data:
            raise ConflictError("Transaction already confirmed")

    def release_payment(self, transaction_ref: str) -> None:
        """Put a completed transaction back to pending."""
        self.client.table("transactions").update(
            {"status": STATUS_PENDING, "telegram_payment_id": None}
        ).eq("id", transaction_ref).eq("status", STATUS_COMPLETED).execute()
