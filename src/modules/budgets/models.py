"""Budget and Expense models."""

from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import BigIntPK, SchoolScopedModel


class BudgetType(StrEnum):
    REVENUE = "revenue"
    EXPENSE = "expense"
    CAPITAL = "capital"
    OPERATIONAL = "operational"


class BudgetStatus(StrEnum):
    DRAFT = "draft"
    APPROVED = "approved"
    CANCELLED = "cancelled"


class ExpenseApprovalStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ExpensePaymentStatus(StrEnum):
    PENDING = "pending"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"


class Budget(SchoolScopedModel):
    """
    A budgeted amount for a period.

    total_actual_amount and the figures derived from it are recomputed in full
    by reconciliation from approved and paid expenses; nothing else writes them.
    Budgets start as drafts, are approved once, and can be cancelled from
    either state. A cancelled budget takes no new expenses.
    """

    __tablename__ = "budgets"

    budget_name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    budget_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BudgetType.EXPENSE.value
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BudgetStatus.DRAFT.value, index=True
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    total_budgeted_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    total_actual_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )
    variance_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )
    variance_percentage: Mapped[Decimal] = mapped_column(
        Numeric(7, 2), nullable=False, default=Decimal("0.00")
    )
    utilization_rate: Mapped[Decimal] = mapped_column(
        Numeric(7, 2), nullable=False, default=Decimal("0.00")
    )

    # [{"category_code": ..., "total_amount": "..."}], written by reconciliation
    actual_spending: Mapped[list | None] = mapped_column(JSON, nullable=True)

    alert_threshold: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("80.00")
    )
    alerts_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_reconciled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_by_id: Mapped[int | None] = mapped_column(BigIntPK, nullable=True)
    approved_by_id: Mapped[int | None] = mapped_column(BigIntPK, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approval_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def is_cancelled(self) -> bool:
        return self.status == BudgetStatus.CANCELLED.value


class Expense(SchoolScopedModel):
    """An expenditure charged against a budget."""

    __tablename__ = "expenses"

    budget_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("budgets.id"), nullable=True, index=True
    )
    category_code: Mapped[str] = mapped_column(String(50), nullable=False)
    expense_reference: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    vendor_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )
    balance: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    expense_date: Mapped[date] = mapped_column(Date, nullable=False)

    approval_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ExpenseApprovalStatus.PENDING.value, index=True
    )
    approved_by_id: Mapped[int | None] = mapped_column(BigIntPK, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approval_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ExpensePaymentStatus.PENDING.value, index=True
    )
    payment_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_by_id: Mapped[int | None] = mapped_column(BigIntPK, nullable=True)

    __table_args__ = (
        UniqueConstraint("school_id", "expense_reference", name="uq_expenses_school_reference"),
    )

    @property
    def is_approved(self) -> bool:
        return self.approval_status == ExpenseApprovalStatus.APPROVED.value

    @property
    def is_paid(self) -> bool:
        return self.payment_status == ExpensePaymentStatus.PAID.value
