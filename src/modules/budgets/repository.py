"""Persistence for budgets and expenses. Every query is school-scoped."""

from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.modules.budgets.models import (
    Budget,
    Expense,
    ExpenseApprovalStatus,
    ExpensePaymentStatus,
)


class BudgetRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_budget(self, school_id: int, budget_id: int, for_update: bool = False) -> Budget | None:
        query = select(Budget).where(Budget.id == budget_id, Budget.school_id == school_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def list_budgets(self, school_id: int, budget_type: str | None = None) -> list[Budget]:
        query = select(Budget).where(Budget.school_id == school_id)
        if budget_type:
            query = query.where(Budget.budget_type == budget_type)
        result = await self.db.execute(query.order_by(Budget.id))
        return list(result.scalars().all())

    async def spending_by_category(self, school_id: int, budget_id: int) -> list[tuple[str, Decimal]]:
        """(category_code, total) of approved and paid expenses for a budget."""
        result = await self.db.execute(
            select(Expense.category_code, func.coalesce(func.sum(Expense.amount), 0))
            .where(
                Expense.school_id == school_id,
                Expense.budget_id == budget_id,
                Expense.approval_status == ExpenseApprovalStatus.APPROVED.value,
                Expense.payment_status == ExpensePaymentStatus.PAID.value,
            )
            .group_by(Expense.category_code)
            .order_by(Expense.category_code)
        )
        return [(code, Decimal(str(total))) for code, total in result.all()]

    async def add_budget(self, budget: Budget) -> Budget:
        self.db.add(budget)
        await self.db.flush()
        return budget

    async def get_expense(self, school_id: int, expense_id: int, for_update: bool = False) -> Expense | None:
        query = select(Expense).where(Expense.id == expense_id, Expense.school_id == school_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def list_expenses(
        self,
        school_id: int,
        budget_id: int | None = None,
        approval_status: str | None = None,
        payment_status: str | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[Expense], int]:
        query = select(Expense).where(Expense.school_id == school_id)
        if budget_id is not None:
            query = query.where(Expense.budget_id == budget_id)
        if approval_status:
            query = query.where(Expense.approval_status == approval_status)
        if payment_status:
            query = query.where(Expense.payment_status == payment_status)

        total = (await self.db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0

        query = query.order_by(Expense.expense_date.desc(), Expense.id.desc())
        query = query.offset((page - 1) * limit).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def expense_statistics(
        self, school_id: int, start_date: date | None = None, end_date: date | None = None
    ) -> list[tuple[str, str, str, int, Decimal, Decimal]]:
        """Expense counts and sums grouped by category, approval and payment status."""
        query = select(
            Expense.category_code,
            Expense.approval_status,
            Expense.payment_status,
            func.count(Expense.id),
            func.coalesce(func.sum(Expense.amount), 0),
            func.coalesce(func.sum(Expense.amount_paid), 0),
        ).where(Expense.school_id == school_id)
        if start_date is not None:
            query = query.where(Expense.expense_date >= start_date)
        if end_date is not None:
            query = query.where(Expense.expense_date <= end_date)

        result = await self.db.execute(
            query.group_by(
                Expense.category_code, Expense.approval_status, Expense.payment_status
            ).order_by(Expense.category_code)
        )
        return [
            (code, approval, payment, count, Decimal(str(amount)), Decimal(str(paid)))
            for code, approval, payment, count, amount, paid in result.all()
        ]

    async def add_expense(self, expense: Expense) -> Expense:
        self.db.add(expense)
        await self.db.flush()
        return expense
