"""Allocation Engine: applies a payment amount to a student's outstanding obligations."""

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from src.core.exceptions import InvalidAmount
from src.modules.obligations.service import ObligationStore
from src.modules.payments.models import Payment, PaymentAllocation
from src.modules.payments.repository import PaymentRepository
from src.shared.utils.money import ZERO, parse_amount, round_money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllocationResult:
    allocations: list[PaymentAllocation] = field(default_factory=list)
    unallocated_amount: Decimal = ZERO

    @property
    def allocated_amount(self) -> Decimal:
        return round_money(sum((a.allocated_amount for a in self.allocations), ZERO))


class AllocationEngine:
    """
    Greedy allocation in priority order: overdue obligations first, then by
    earliest due date, ties by creation order and id.

    Runs inside the caller's transaction and never commits. Obligations are
    loaded FOR UPDATE so a concurrent payment for the same student waits
    instead of reading a stale balance.
    """

    def __init__(self, obligations: ObligationStore, payments: PaymentRepository):
        self.obligations = obligations
        self.payments = payments

    async def allocate(self, school_id: int, payment: Payment, amount: Decimal | None = None) -> AllocationResult:
        """
        Apply `amount` (defaults to the full payment amount) to the payment's student.

        sum(allocations) + unallocated_amount == amount, exactly.
        With nothing outstanding the whole amount comes back unallocated.
        """
        remaining = parse_amount(payment.amount if amount is None else amount)
        if remaining > payment.amount:
            raise InvalidAmount(amount)

        outstanding = await self.obligations.find_outstanding_for_student(
            school_id, payment.student_id, for_update=True
        )

        allocations: list[PaymentAllocation] = []
        for obligation in outstanding:
            if remaining <= 0:
                break
            take = min(remaining, obligation.balance)
            if take <= 0:
                continue

            allocation = await self.payments.add_allocation(
                PaymentAllocation(
                    school_id=school_id,
                    payment_id=payment.id,
                    obligation_id=obligation.id,
                    allocated_amount=take,
                )
            )
            await self.obligations.apply_payment(
                school_id, obligation.id, take, paid_on=payment.payment_date
            )
            allocations.append(allocation)
            remaining = round_money(remaining - take)

        if remaining > 0:
            logger.info(
                "Payment %s left %s unallocated for student %s",
                payment.payment_reference,
                remaining,
                payment.student_id,
            )

        return AllocationResult(allocations=allocations, unallocated_amount=remaining)
