"""Persistence for payment plans and installments. Every query is school-scoped."""

from datetime import date

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.modules.payment_plans.models import (
    Installment,
    InstallmentStatus,
    PaymentPlan,
    PlanStatus,
)


class PaymentPlanRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_plan(self, school_id: int, plan_id: int, for_update: bool = False) -> PaymentPlan | None:
        query = select(PaymentPlan).where(
            PaymentPlan.id == plan_id, PaymentPlan.school_id == school_id
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def list_plans_for_student(self, school_id: int, student_id: int) -> list[PaymentPlan]:
        result = await self.db.execute(
            select(PaymentPlan)
            .where(PaymentPlan.school_id == school_id, PaymentPlan.student_id == student_id)
            .order_by(PaymentPlan.id.desc())
        )
        return list(result.scalars().all())

    async def get_installment(
        self, school_id: int, installment_id: int, for_update: bool = False
    ) -> Installment | None:
        query = select(Installment).where(
            Installment.id == installment_id, Installment.school_id == school_id
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def list_installments(self, school_id: int, plan_id: int) -> list[Installment]:
        result = await self.db.execute(
            select(Installment)
            .where(Installment.school_id == school_id, Installment.payment_plan_id == plan_id)
            .order_by(Installment.installment_number)
        )
        return list(result.scalars().all())

    async def list_overdue_candidates(self, school_id: int, as_of: date) -> list[Installment]:
        """Unpaid installments whose grace period ended before as_of."""
        result = await self.db.execute(
            select(Installment)
            .where(
                Installment.school_id == school_id,
                Installment.balance > 0,
                Installment.grace_period_end < as_of,
                Installment.status.in_(
                    [InstallmentStatus.PENDING.value, InstallmentStatus.OVERDUE.value]
                ),
            )
            .order_by(Installment.due_date, Installment.id)
            .with_for_update()
        )
        return list(result.scalars().all())

    async def list_active_plans_over_threshold(self, school_id: int, threshold: int) -> list[PaymentPlan]:
        result = await self.db.execute(
            select(PaymentPlan)
            .where(
                PaymentPlan.school_id == school_id,
                PaymentPlan.status == PlanStatus.ACTIVE.value,
                PaymentPlan.installments_overdue > threshold,
            )
            .order_by(PaymentPlan.id)
            .with_for_update()
        )
        return list(result.scalars().all())

    async def stats_by_status(self, school_id: int) -> list[tuple]:
        """(status, count, total_amount, amount_paid, balance) per plan status."""
        result = await self.db.execute(
            select(
                PaymentPlan.status,
                func.count(PaymentPlan.id),
                func.coalesce(func.sum(PaymentPlan.total_amount), 0),
                func.coalesce(func.sum(PaymentPlan.amount_paid), 0),
                func.coalesce(func.sum(PaymentPlan.balance), 0),
            )
            .where(PaymentPlan.school_id == school_id)
            .group_by(PaymentPlan.status)
            .order_by(PaymentPlan.status)
        )
        return [tuple(row) for row in result.all()]

    async def add_plan(self, plan: PaymentPlan) -> PaymentPlan:
        self.db.add(plan)
        await self.db.flush()
        return plan

    async def add_installments(self, installments: list[Installment]) -> list[Installment]:
        self.db.add_all(installments)
        await self.db.flush()
        return installments
