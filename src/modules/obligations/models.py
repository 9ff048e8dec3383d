"""FeeStructure and Obligation models."""

from datetime import date
from decimal import Decimal
from enum import StrEnum

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import BigIntPK, SchoolScopedModel


class ObligationStatus(StrEnum):
    """Obligation status. Derived from balance and amount paid, never set directly."""

    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


class FeeStructure(SchoolScopedModel):
    """A billable fee line a school charges (e.g. Term 1 tuition)."""

    __tablename__ = "fee_structures"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    category_code: Mapped[str] = mapped_column(String(50), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Obligation(SchoolScopedModel):
    """
    A student's fee obligation.

    final_amount = original_amount - discount_amount + additional_charges
    balance = max(0, final_amount - amount_paid)

    Balance and status are only changed through payment or discount
    application. Obligations are never deleted.
    """

    __tablename__ = "obligations"

    student_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("students.id"), nullable=False, index=True
    )
    fee_structure_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("fee_structures.id"), nullable=True
    )
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    category_code: Mapped[str] = mapped_column(String(50), nullable=False)

    # Amounts
    original_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )
    additional_charges: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )
    final_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )
    balance: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)

    # Payment tracking
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ObligationStatus.PENDING.value, index=True
    )
    last_payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_overdue: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    overdue_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Discount information
    discount_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    discount_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_by_id: Mapped[int | None] = mapped_column(BigIntPK, nullable=True)

    # Optimistic lock counter
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        UniqueConstraint("student_id", "fee_structure_id", name="uq_obligations_student_structure"),
    )

    @property
    def is_paid(self) -> bool:
        return self.status == ObligationStatus.PAID.value

    @property
    def overpaid_amount(self) -> Decimal:
        """Amount paid beyond final_amount (after an over-discount), otherwise 0."""
        excess = self.amount_paid - self.final_amount
        return excess if excess > 0 else Decimal("0.00")
