"""Persistence for payments and allocations. Every query is school-scoped."""

from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import DuplicatePaymentReference
from src.modules.payments.models import Payment, PaymentAllocation


class PaymentRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, school_id: int, payment_id: int, for_update: bool = False) -> Payment | None:
        query = select(Payment).where(Payment.id == payment_id, Payment.school_id == school_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_by_transaction_reference(
        self, school_id: int, transaction_reference: str
    ) -> Payment | None:
        result = await self.db.execute(
            select(Payment).where(
                Payment.school_id == school_id,
                Payment.transaction_reference == transaction_reference,
            )
        )
        return result.scalar_one_or_none()

    async def list_payments(
        self,
        school_id: int,
        student_id: int | None = None,
        payment_status: str | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[Payment], int]:
        query = select(Payment).where(Payment.school_id == school_id)
        if student_id is not None:
            query = query.where(Payment.student_id == student_id)
        if payment_status is not None:
            query = query.where(Payment.payment_status == payment_status)

        total = (await self.db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0

        query = query.order_by(Payment.payment_date.desc(), Payment.id.desc())
        query = query.offset((page - 1) * limit).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def add(self, payment: Payment) -> Payment:
        """
        Insert a payment.

        Raises DuplicatePaymentReference when another payment in the school
        already carries the same gateway transaction reference.
        """
        self.db.add(payment)
        try:
            await self.db.flush()
        except IntegrityError as exc:
            if payment.transaction_reference and "transaction_reference" in str(exc.orig).lower():
                raise DuplicatePaymentReference(payment.transaction_reference) from exc
            raise
        return payment

    # --- Allocations (append-only) ---

    async def add_allocation(self, allocation: PaymentAllocation) -> PaymentAllocation:
        self.db.add(allocation)
        await self.db.flush()
        return allocation

    async def list_allocations(self, school_id: int, payment_id: int) -> list[PaymentAllocation]:
        result = await self.db.execute(
            select(PaymentAllocation)
            .where(
                PaymentAllocation.school_id == school_id,
                PaymentAllocation.payment_id == payment_id,
            )
            .order_by(PaymentAllocation.id)
        )
        return list(result.scalars().all())

    async def total_allocated(self, school_id: int, payment_id: int) -> Decimal:
        """Sum of everything the payment has been applied to, obligations and installments."""
        result = await self.db.execute(
            select(func.coalesce(func.sum(PaymentAllocation.allocated_amount), 0)).where(
                PaymentAllocation.school_id == school_id,
                PaymentAllocation.payment_id == payment_id,
            )
        )
        return Decimal(str(result.scalar_one()))

    async def statistics(
        self, school_id: int, start_date: date | None = None, end_date: date | None = None
    ) -> list[tuple[str, str, int, Decimal]]:
        """(payment_method, payment_status, count, total amount) over a payment_date range."""
        query = select(
            Payment.payment_method,
            Payment.payment_status,
            func.count(Payment.id),
            func.coalesce(func.sum(Payment.amount), 0),
        ).where(Payment.school_id == school_id)
        if start_date is not None:
            query = query.where(Payment.payment_date >= start_date)
        if end_date is not None:
            query = query.where(Payment.payment_date <= end_date)

        result = await self.db.execute(
            query.group_by(Payment.payment_method, Payment.payment_status).order_by(
                Payment.payment_method, Payment.payment_status
            )
        )
        return [
            (method, status, count, Decimal(str(total)))
            for method, status, count, total in result.all()
        ]
