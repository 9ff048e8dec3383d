"""PaymentPlan and Installment models."""

from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum

from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import BigIntPK, SchoolScopedModel


class PlanFrequency(StrEnum):
    WEEKLY = "weekly"
    BI_WEEKLY = "bi_weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"


class PlanStatus(StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"
    DEFAULTED = "defaulted"


class InstallmentStatus(StrEnum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


class PaymentPlan(SchoolScopedModel):
    """
    Agreement to pay a student's fees in scheduled installments.

    amount_paid, balance, installments_paid and installments_overdue are
    aggregates of the plan's installments, updated together with them.
    """

    __tablename__ = "payment_plans"

    student_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("students.id"), nullable=False, index=True
    )
    plan_name: Mapped[str] = mapped_column(String(200), nullable=False)

    total_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    down_payment: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )
    remaining_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    number_of_installments: Mapped[int] = mapped_column(Integer, nullable=False)
    installment_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    frequency: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PlanFrequency.MONTHLY.value
    )
    grace_period_days: Mapped[int] = mapped_column(Integer, nullable=False, default=7)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PlanStatus.ACTIVE.value, index=True
    )
    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )
    balance: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    installments_paid: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    installments_overdue: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_by_id: Mapped[int | None] = mapped_column(BigIntPK, nullable=True)
    terms_and_conditions: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_active(self) -> bool:
        return self.status == PlanStatus.ACTIVE.value


class Installment(SchoolScopedModel):
    """One scheduled payment of a plan."""

    __tablename__ = "payment_plan_installments"

    payment_plan_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("payment_plans.id"), nullable=False, index=True
    )
    installment_number: Mapped[int] = mapped_column(Integer, nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )
    balance: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)

    due_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    grace_period_end: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=InstallmentStatus.PENDING.value, index=True
    )
    days_overdue: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Last payment applied to this installment
    payment_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("payments.id"), nullable=True
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        UniqueConstraint("payment_plan_id", "installment_number", name="uq_installments_plan_number"),
    )

    @property
    def is_paid(self) -> bool:
        return self.status == InstallmentStatus.PAID.value
