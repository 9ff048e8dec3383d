"""Installment Plan Engine: plan creation, installment payments and plan status."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.service import AuditService
from src.core.config import settings
from src.core.database.session import atomic
from src.core.exceptions import (
    InstallmentNotFound,
    PaymentNotFound,
    PlanNotFound,
    ValidationError,
)
from src.modules.payment_plans.models import (
    Installment,
    InstallmentStatus,
    PaymentPlan,
    PlanStatus,
)
from src.modules.payment_plans.repository import PaymentPlanRepository
from src.modules.payment_plans.schedule import generate_installments, split_amount
from src.modules.payment_plans.schemas import (
    PaymentPlanCreate,
    PaymentPlanStats,
    PlanStatusStats,
)
from src.modules.payments.models import PaymentAllocation, PaymentStatus
from src.modules.payments.repository import PaymentRepository
from src.modules.students.service import StudentDirectory
from src.shared.utils.money import ZERO, parse_amount, round_money

logger = logging.getLogger(__name__)

# Failed, cancelled and refunded payments carry no money to apply.
APPLICABLE_PAYMENT_STATUSES = frozenset(
    {PaymentStatus.PENDING.value, PaymentStatus.COMPLETED.value}
)


@dataclass(frozen=True)
class PlanWithInstallments:
    plan: PaymentPlan
    installments: list[Installment]


@dataclass(frozen=True)
class InstallmentPaymentOutcome:
    installment: Installment
    plan: PaymentPlan


class PaymentPlanService:
    """Service for payment plans and their installment schedules."""

    def __init__(
        self,
        db: AsyncSession,
        repository: PaymentPlanRepository | None = None,
        students: StudentDirectory | None = None,
        payments: PaymentRepository | None = None,
    ):
        self.db = db
        self.repository = repository or PaymentPlanRepository(db)
        self.students = students or StudentDirectory(db)
        self.payments = payments or PaymentRepository(db)
        self.audit = AuditService(db)

    async def create_payment_plan(
        self, school_id: int, student_id: int, data: PaymentPlanCreate
    ) -> PlanWithInstallments:
        """
        Create a plan and its full installment schedule in one transaction.

        remaining_amount = total_amount - down_payment. Without an explicit
        installment_amount the remaining amount is split evenly and the last
        installment absorbs the rounding difference.
        """
        total = parse_amount(data.total_amount)
        down_payment = round_money(data.down_payment)
        remaining = round_money(total - down_payment)
        if remaining <= 0:
            raise ValidationError("down_payment must be less than total_amount", field="down_payment")

        count = data.number_of_installments
        if data.installment_amount is not None:
            installment_amount = parse_amount(data.installment_amount)
            if round_money(installment_amount * count) != remaining:
                raise ValidationError(
                    f"{count} installments of {installment_amount} do not add up to {remaining}",
                    field="installment_amount",
                )
        else:
            installment_amount = split_amount(remaining, count)
            if installment_amount <= 0:
                raise ValidationError(
                    f"{remaining} cannot be split into {count} installments of at least 0.01",
                    field="number_of_installments",
                )

        grace_days = (
            data.grace_period_days
            if data.grace_period_days is not None
            else settings.default_grace_period_days
        )
        schedule = generate_installments(
            start_date=data.start_date,
            number_of_installments=count,
            installment_amount=installment_amount,
            frequency=data.frequency,
            grace_period_days=grace_days,
            total_amount=remaining,
        )
        last_due = schedule[-1].due_date
        end_date = data.end_date or last_due
        if end_date < last_due:
            raise ValidationError(
                f"end_date {end_date} is before the last installment due date {last_due}",
                field="end_date",
            )

        async with atomic(self.db):
            await self.students.require_student(school_id, student_id)
            plan = await self.repository.add_plan(
                PaymentPlan(
                    school_id=school_id,
                    student_id=student_id,
                    plan_name=data.plan_name,
                    total_amount=total,
                    down_payment=down_payment,
                    remaining_amount=remaining,
                    number_of_installments=count,
                    installment_amount=installment_amount,
                    start_date=data.start_date,
                    end_date=end_date,
                    frequency=data.frequency.value,
                    grace_period_days=grace_days,
                    status=PlanStatus.ACTIVE.value,
                    amount_paid=ZERO,
                    balance=remaining,
                    installments_paid=0,
                    installments_overdue=0,
                    created_by_id=data.created_by_id,
                    terms_and_conditions=data.terms_and_conditions,
                )
            )
            installments = await self.repository.add_installments(
                [
                    Installment(
                        school_id=school_id,
                        payment_plan_id=plan.id,
                        installment_number=item.installment_number,
                        amount=item.amount,
                        amount_paid=ZERO,
                        balance=item.amount,
                        due_date=item.due_date,
                        grace_period_end=item.grace_period_end,
                        status=InstallmentStatus.PENDING.value,
                        days_overdue=0,
                    )
                    for item in schedule
                ]
            )
            await self.audit.log(
                school_id=school_id,
                action="payment_plan.create",
                entity_type="PaymentPlan",
                entity_id=plan.id,
                entity_identifier=plan.plan_name,
                user_id=data.created_by_id,
                new_values={
                    "student_id": student_id,
                    "remaining_amount": str(remaining),
                    "number_of_installments": count,
                    "frequency": data.frequency.value,
                },
            )

        logger.info(
            "Created payment plan %s for student %s: %d x %s",
            plan.id,
            student_id,
            count,
            installment_amount,
        )
        return PlanWithInstallments(plan=plan, installments=installments)

    async def apply_installment_payment(
        self,
        school_id: int,
        installment_id: int,
        payment_id: int,
        amount: Decimal,
    ) -> InstallmentPaymentOutcome:
        """
        Apply part of a recorded payment to one installment and roll it up into the plan.

        The payment must belong to the plan's student and still have `amount`
        left after everything it was already allocated to, obligations
        included. The application is stored as a PaymentAllocation so a
        payment is never credited twice.
        """
        amount = parse_amount(amount)
        async with atomic(self.db):
            installment = await self.repository.get_installment(
                school_id, installment_id, for_update=True
            )
            if installment is None:
                raise InstallmentNotFound(installment_id)
            if installment.is_paid:
                raise ValidationError(
                    f"Installment {installment.installment_number} is already paid"
                )

            plan = await self.repository.get_plan(
                school_id, installment.payment_plan_id, for_update=True
            )
            if plan is None:
                raise PlanNotFound(installment.payment_plan_id)

            payment = await self.payments.get(school_id, payment_id, for_update=True)
            if payment is None:
                raise PaymentNotFound(payment_id)
            if payment.student_id != plan.student_id:
                raise ValidationError(
                    f"Payment {payment.payment_reference} belongs to another student",
                    field="payment_id",
                )
            if payment.payment_status not in APPLICABLE_PAYMENT_STATUSES:
                raise ValidationError(
                    f"Payment {payment.payment_reference} is {payment.payment_status}",
                    field="payment_id",
                )
            available = round_money(
                payment.amount - await self.payments.total_allocated(school_id, payment.id)
            )
            if amount > available:
                raise ValidationError(
                    f"Payment {payment.payment_reference} has only {available} left to apply",
                    field="amount",
                )

            was_overdue = installment.status == InstallmentStatus.OVERDUE.value

            installment.amount_paid = round_money(installment.amount_paid + amount)
            installment.balance = max(ZERO, round_money(installment.amount - installment.amount_paid))
            installment.payment_id = payment.id

            became_paid = installment.balance == 0
            if became_paid:
                installment.status = InstallmentStatus.PAID.value
                installment.paid_at = datetime.now(timezone.utc)
                installment.days_overdue = 0

            plan.amount_paid = round_money(plan.amount_paid + amount)
            plan.balance = max(ZERO, round_money(plan.remaining_amount - plan.amount_paid))
            if became_paid:
                plan.installments_paid += 1
                if was_overdue:
                    plan.installments_overdue = max(0, plan.installments_overdue - 1)
            if plan.balance == 0:
                plan.status = PlanStatus.COMPLETED.value

            await self.payments.add_allocation(
                PaymentAllocation(
                    school_id=school_id,
                    payment_id=payment.id,
                    installment_id=installment.id,
                    allocated_amount=amount,
                )
            )
            await self.audit.log(
                school_id=school_id,
                action="payment_plan.installment_payment",
                entity_type="Installment",
                entity_id=installment.id,
                entity_identifier=f"{plan.id}#{installment.installment_number}",
                new_values={
                    "payment_id": payment.id,
                    "amount": str(amount),
                    "installment_balance": str(installment.balance),
                    "plan_balance": str(plan.balance),
                    "plan_status": plan.status,
                },
            )

        logger.info(
            "Applied %s to installment %s of plan %s (plan balance %s)",
            amount,
            installment.installment_number,
            plan.id,
            plan.balance,
        )
        return InstallmentPaymentOutcome(installment=installment, plan=plan)

    async def sweep_overdue_installments(self, school_id: int, as_of: date | None = None) -> int:
        """Mark installments past their grace period as overdue. Safe to re-run."""
        as_of = as_of or date.today()
        async with atomic(self.db):
            candidates = await self.repository.list_overdue_candidates(school_id, as_of)
            plans: dict[int, PaymentPlan] = {}
            for installment in candidates:
                if installment.status == InstallmentStatus.PENDING.value:
                    plan = plans.get(installment.payment_plan_id)
                    if plan is None:
                        plan = await self.repository.get_plan(
                            school_id, installment.payment_plan_id, for_update=True
                        )
                        plans[installment.payment_plan_id] = plan
                    plan.installments_overdue += 1
                    installment.status = InstallmentStatus.OVERDUE.value
                installment.days_overdue = max(
                    installment.days_overdue, (as_of - installment.due_date).days
                )
            await self.db.flush()

        if candidates:
            logger.info(
                "Marked %d installments overdue in school %s as of %s",
                len(candidates),
                school_id,
                as_of,
            )
        return len(candidates)

    async def mark_defaulted_plans(self, school_id: int, threshold: int | None = None) -> int:
        threshold = settings.plan_default_overdue_threshold if threshold is None else threshold
        async with atomic(self.db):
            plans = await self.repository.list_active_plans_over_threshold(school_id, threshold)
            for plan in plans:
                plan.status = PlanStatus.DEFAULTED.value
                await self.audit.log(
                    school_id=school_id,
                    action="payment_plan.default",
                    entity_type="PaymentPlan",
                    entity_id=plan.id,
                    entity_identifier=plan.plan_name,
                    new_values={"installments_overdue": plan.installments_overdue},
                )
            await self.db.flush()

        for plan in plans:
            logger.warning(
                "Payment plan %s defaulted with %d overdue installments",
                plan.id,
                plan.installments_overdue,
            )
        return len(plans)

    async def get_plan(self, school_id: int, plan_id: int) -> PlanWithInstallments:
        plan = await self.repository.get_plan(school_id, plan_id)
        if plan is None:
            raise PlanNotFound(plan_id)
        installments = await self.repository.list_installments(school_id, plan.id)
        return PlanWithInstallments(plan=plan, installments=installments)

    async def list_plans_for_student(self, school_id: int, student_id: int) -> list[PaymentPlan]:
        await self.students.require_student(school_id, student_id)
        return await self.repository.list_plans_for_student(school_id, student_id)

    async def get_plan_stats(self, school_id: int) -> PaymentPlanStats:
        by_status: dict[str, PlanStatusStats] = {}
        total_plans = 0
        total_amount = amount_paid = balance = ZERO
        for status, count, status_total, status_paid, status_balance in (
            await self.repository.stats_by_status(school_id)
        ):
            by_status[status] = PlanStatusStats(
                count=count,
                total_amount=round_money(status_total),
                amount_paid=round_money(status_paid),
                balance=round_money(status_balance),
            )
            total_plans += count
            total_amount += Decimal(str(status_total))
            amount_paid += Decimal(str(status_paid))
            balance += Decimal(str(status_balance))

        return PaymentPlanStats(
            total_plans=total_plans,
            total_amount=round_money(total_amount),
            amount_paid=round_money(amount_paid),
            balance=round_money(balance),
            by_status=by_status,
        )
