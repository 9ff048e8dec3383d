import logging
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from src.integrations.gateway.schemas import GatewayFailureEvent, GatewayPaymentEvent
from src.modules.payments.models import Payment, PaymentMethod, PaymentStatus
from src.modules.payments.repository import PaymentRepository
from src.modules.payments.service import PaymentLedger, RecordPaymentResult

logger = logging.getLogger(__name__)


class GatewayWebhookService:
    """Turns verified gateway events into ledger calls."""

    def __init__(self, db: AsyncSession, ledger: PaymentLedger | None = None):
        self.db = db
        self.payments = PaymentRepository(db)
        self.ledger = ledger or PaymentLedger(db, payments=self.payments)

    async def process_successful_payment(
        self, school_id: int, event: GatewayPaymentEvent
    ) -> RecordPaymentResult:
        """
        Record an online payment for the event.

        Redelivery of an event already recorded returns the original payment
        and allocations with replayed=True.
        """
        reference = event.reference.strip()
        payment_date = event.paid_at.date() if event.paid_at else date.today()
        notes = f"Gateway: {event.gateway}"
        if event.customer_email:
            notes = f"{notes} | Email: {event.customer_email}"

        result = await self.ledger.record_payment(
            school_id,
            event.student_id,
            event.amount,
            PaymentMethod.ONLINE,
            payment_date,
            transaction_reference=reference,
            notes=notes,
        )
        if not result.replayed:
            logger.info(
                "Gateway %s payment %s recorded as %s",
                event.gateway,
                reference,
                result.payment.payment_reference,
            )
        return result

    async def process_failed_payment(
        self, school_id: int, event: GatewayFailureEvent
    ) -> Payment | None:
        """
        Mark the payment recorded for this reference as failed.

        Returns None when no payment carries the reference. A payment that is
        no longer pending, or that has been allocated, keeps its status: the
        event is logged and the payment returned unchanged.
        """
        reference = event.reference.strip()
        payment = await self.payments.get_by_transaction_reference(school_id, reference)
        if payment is None:
            logger.info("Gateway %s failure for unknown reference %s", event.gateway, reference)
            return None
        if not payment.is_pending or await self.payments.list_allocations(school_id, payment.id):
            if payment.payment_status != PaymentStatus.FAILED.value:
                logger.warning(
                    "Gateway %s failure for %s ignored: payment %s is %s",
                    event.gateway,
                    reference,
                    payment.payment_reference,
                    payment.payment_status,
                )
            return payment
        return await self.ledger.mark_payment_failed(
            school_id, payment.id, reason=event.reason or f"{event.gateway} reported failure"
        )
