"""Payment Ledger: records payments and allocates them to obligations."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.service import AuditService
from src.core.database.session import atomic
from src.core.documents.number_generator import DocumentNumberGenerator
from src.core.exceptions import DuplicatePaymentReference, PaymentNotFound, ValidationError
from src.modules.obligations.service import ObligationStore
from src.modules.payments.allocation import AllocationEngine, AllocationResult
from src.modules.payments.models import (
    SELF_VERIFYING_METHODS,
    Payment,
    PaymentAllocation,
    PaymentMethod,
    PaymentStatus,
)
from src.modules.payments.repository import PaymentRepository
from src.modules.payments.schemas import CountAmount, PaymentFilters, PaymentStatistics
from src.modules.students.service import StudentDirectory
from src.shared.utils.money import ZERO, parse_amount, round_money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordPaymentResult:
    payment: Payment
    allocations: list[PaymentAllocation]
    unallocated_amount: Decimal
    replayed: bool = False


class PaymentLedger:
    """Service for recording payments and their allocations."""

    def __init__(
        self,
        db: AsyncSession,
        payments: PaymentRepository | None = None,
        obligations: ObligationStore | None = None,
        students: StudentDirectory | None = None,
    ):
        self.db = db
        self.payments = payments or PaymentRepository(db)
        self.students = students or StudentDirectory(db)
        self.obligations = obligations or ObligationStore(db, students=self.students)
        self.engine = AllocationEngine(self.obligations, self.payments)
        self.numbers = DocumentNumberGenerator(db)
        self.audit = AuditService(db)

    async def record_payment(
        self,
        school_id: int,
        student_id: int,
        amount: Decimal,
        method: PaymentMethod | str,
        payment_date: date,
        transaction_reference: str | None = None,
        received_by_id: int | None = None,
        notes: str | None = None,
        allocate: bool = True,
    ) -> RecordPaymentResult:
        """
        Record a payment and allocate it to the student's outstanding obligations.

        With allocate=False the payment is earmarked: nothing is matched to
        obligations and the whole amount stays available for
        apply_installment_payment.

        The payment row, every allocation and every obligation update commit
        together or not at all. When `transaction_reference` was already
        recorded for this school, nothing is written and the original result
        is returned with replayed=True.
        """
        amount = parse_amount(amount)
        try:
            method = PaymentMethod(method)
        except ValueError:
            raise ValidationError(f"Unknown payment method: {method}", field="payment_method") from None
        transaction_reference = (transaction_reference or "").strip() or None

        if transaction_reference:
            existing = await self.payments.get_by_transaction_reference(school_id, transaction_reference)
            if existing is not None:
                return await self._replay(school_id, existing)

        try:
            async with atomic(self.db):
                await self.students.require_student(school_id, student_id)

                payment_reference = await self.numbers.payment_reference(school_id, payment_date)
                receipt_number = await self.numbers.receipt_number(school_id, payment_date)

                verified = method in SELF_VERIFYING_METHODS
                payment = await self.payments.add(
                    Payment(
                        school_id=school_id,
                        student_id=student_id,
                        payment_reference=payment_reference,
                        receipt_number=receipt_number,
                        transaction_reference=transaction_reference,
                        amount=amount,
                        payment_method=method.value,
                        payment_date=payment_date,
                        payment_status=(
                            PaymentStatus.COMPLETED.value if verified else PaymentStatus.PENDING.value
                        ),
                        is_verified=verified,
                        verified_by_id=received_by_id if verified else None,
                        verified_at=datetime.now(timezone.utc) if verified else None,
                        received_by_id=received_by_id,
                        notes=notes,
                    )
                )

                if allocate:
                    result = await self.engine.allocate(school_id, payment)
                else:
                    result = AllocationResult(unallocated_amount=amount)

                await self.audit.log(
                    school_id=school_id,
                    action="payment.record",
                    entity_type="Payment",
                    entity_id=payment.id,
                    entity_identifier=payment_reference,
                    user_id=received_by_id,
                    new_values={
                        "student_id": student_id,
                        "amount": str(amount),
                        "payment_method": method.value,
                        "allocated": str(result.allocated_amount),
                        "unallocated": str(result.unallocated_amount),
                        "earmarked": not allocate,
                    },
                )
        except DuplicatePaymentReference:
            # Lost an insert race against a concurrent delivery of the same webhook.
            existing = await self.payments.get_by_transaction_reference(school_id, transaction_reference)
            if existing is None:
                raise
            return await self._replay(school_id, existing)

        logger.info(
            "Recorded payment %s (%s) for student %s: %d allocations, %s unallocated",
            payment.payment_reference,
            amount,
            student_id,
            len(result.allocations),
            result.unallocated_amount,
        )
        return RecordPaymentResult(
            payment=payment,
            allocations=result.allocations,
            unallocated_amount=result.unallocated_amount,
        )

    async def get_payment(self, school_id: int, payment_id: int) -> Payment:
        payment = await self.payments.get(school_id, payment_id)
        if payment is None:
            raise PaymentNotFound(payment_id)
        return payment

    async def get_payment_detail(self, school_id: int, payment_id: int) -> RecordPaymentResult:
        payment = await self.get_payment(school_id, payment_id)
        allocations = await self.payments.list_allocations(school_id, payment.id)
        return RecordPaymentResult(
            payment=payment,
            allocations=allocations,
            unallocated_amount=self._unallocated(payment, allocations),
        )

    async def list_payments(
        self, school_id: int, filters: PaymentFilters
    ) -> tuple[list[Payment], int]:
        """List payments with filters, newest first."""
        return await self.payments.list_payments(
            school_id,
            student_id=filters.student_id,
            payment_status=filters.payment_status.value if filters.payment_status else None,
            page=filters.page,
            limit=filters.limit,
        )

    async def verify_payment(
        self, school_id: int, payment_id: int, verified_by_id: int, notes: str | None = None
    ) -> Payment:
        """Confirm a pending payment: pending -> completed."""
        async with atomic(self.db):
            payment = await self._get_for_update(school_id, payment_id)
            if not payment.is_pending:
                raise ValidationError("Can only verify pending payments")

            payment.payment_status = PaymentStatus.COMPLETED.value
            payment.is_verified = True
            payment.verified_by_id = verified_by_id
            payment.verified_at = datetime.now(timezone.utc)
            if notes:
                payment.notes = f"{payment.notes}\n{notes}" if payment.notes else notes

            await self.audit.log(
                school_id=school_id,
                action="payment.verify",
                entity_type="Payment",
                entity_id=payment.id,
                entity_identifier=payment.payment_reference,
                user_id=verified_by_id,
                new_values={"payment_status": PaymentStatus.COMPLETED.value},
                comment=notes,
            )
        return payment

    async def mark_payment_failed(
        self, school_id: int, payment_id: int, user_id: int | None = None, reason: str | None = None
    ) -> Payment:
        return await self._close_unallocated(
            school_id, payment_id, PaymentStatus.FAILED, user_id, reason
        )

    async def cancel_payment(
        self, school_id: int, payment_id: int, user_id: int | None = None, reason: str | None = None
    ) -> Payment:
        return await self._close_unallocated(
            school_id, payment_id, PaymentStatus.CANCELLED, user_id, reason
        )

    async def get_payment_statistics(
        self, school_id: int, start_date: date | None = None, end_date: date | None = None
    ) -> PaymentStatistics:
        """Count and sum payments by method and by status, optionally within a payment_date range."""
        if start_date and end_date and end_date < start_date:
            raise ValidationError("end_date must not be before start_date", field="end_date")

        by_method: dict[str, CountAmount] = {}
        by_status: dict[str, CountAmount] = {}
        total_payments = 0
        total_amount = ZERO
        for method, payment_status, count, amount in await self.payments.statistics(
            school_id, start_date, end_date
        ):
            for bucket in (
                by_method.setdefault(method, CountAmount()),
                by_status.setdefault(payment_status, CountAmount()),
            ):
                bucket.count += count
                bucket.amount = round_money(bucket.amount + amount)
            total_payments += count
            total_amount += amount

        return PaymentStatistics(
            start_date=start_date,
            end_date=end_date,
            total_payments=total_payments,
            total_amount=round_money(total_amount),
            by_method=by_method,
            by_status=by_status,
        )

    # --- Helpers ---

    async def _close_unallocated(
        self,
        school_id: int,
        payment_id: int,
        new_status: PaymentStatus,
        user_id: int | None,
        reason: str | None,
    ) -> Payment:
        """
        Move a pending payment to failed/cancelled.

        Allocations are immutable, so a payment that has already been applied
        to obligations cannot be failed or cancelled here.
        """
        async with atomic(self.db):
            payment = await self._get_for_update(school_id, payment_id)
            if not payment.is_pending:
                raise ValidationError(f"Can only mark pending payments as {new_status.value}")
            allocations = await self.payments.list_allocations(school_id, payment.id)
            if allocations:
                raise ValidationError(
                    f"Payment {payment.payment_reference} has been allocated and cannot be marked "
                    f"{new_status.value}"
                )

            payment.payment_status = new_status.value
            await self.audit.log(
                school_id=school_id,
                action=f"payment.{new_status.value}",
                entity_type="Payment",
                entity_id=payment.id,
                entity_identifier=payment.payment_reference,
                user_id=user_id,
                new_values={"payment_status": new_status.value},
                comment=reason,
            )
        return payment

    async def _get_for_update(self, school_id: int, payment_id: int) -> Payment:
        payment = await self.payments.get(school_id, payment_id, for_update=True)
        if payment is None:
            raise PaymentNotFound(payment_id)
        return payment

    async def _replay(self, school_id: int, payment: Payment) -> RecordPaymentResult:
        allocations = await self.payments.list_allocations(school_id, payment.id)
        logger.warning(
            "Replayed payment for transaction reference %s (payment %s)",
            payment.transaction_reference,
            payment.payment_reference,
        )
        return RecordPaymentResult(
            payment=payment,
            allocations=allocations,
            unallocated_amount=self._unallocated(payment, allocations),
            replayed=True,
        )

    @staticmethod
    def _unallocated(payment: Payment, allocations: list[PaymentAllocation]) -> Decimal:
        allocated = sum((a.allocated_amount for a in allocations), ZERO)
        return round_money(payment.amount - allocated)
