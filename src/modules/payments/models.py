"""Payment and PaymentAllocation models."""

from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, BigIntPK, SchoolScopedModel


class PaymentMethod(StrEnum):
    """Payment method options."""

    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CARD = "card"
    MOBILE_MONEY = "mobile_money"
    ONLINE = "online"


class PaymentStatus(StrEnum):
    """Payment status options."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


# Methods whose funds are confirmed at the moment of recording.
SELF_VERIFYING_METHODS = frozenset({PaymentMethod.CASH, PaymentMethod.ONLINE})


class Payment(SchoolScopedModel):
    """
    A payment received for a student.

    The amount never changes after creation. Allocations against obligations
    are recorded at the same time in PaymentAllocation, unless the payment is
    earmarked for plan installments; those are allocated when applied.
    """

    __tablename__ = "payments"

    student_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("students.id"), nullable=False, index=True
    )

    payment_reference: Mapped[str] = mapped_column(String(50), nullable=False)
    receipt_number: Mapped[str] = mapped_column(String(50), nullable=False)
    # Gateway transaction reference; the idempotency key for webhook replays.
    transaction_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)

    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True
    )
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    verified_by_id: Mapped[int | None] = mapped_column(BigIntPK, nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    received_by_id: Mapped[int | None] = mapped_column(BigIntPK, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("school_id", "payment_reference", name="uq_payments_school_reference"),
        UniqueConstraint("school_id", "receipt_number", name="uq_payments_school_receipt"),
        UniqueConstraint(
            "school_id", "transaction_reference", name="uq_payments_school_transaction_reference"
        ),
    )

    @property
    def is_pending(self) -> bool:
        return self.payment_status == PaymentStatus.PENDING.value

    @property
    def is_completed(self) -> bool:
        return self.payment_status == PaymentStatus.COMPLETED.value


class PaymentAllocation(Base):
    """
    Part of a payment applied to one obligation or one plan installment.

    Append-only: created in the same transaction as the balance update it
    represents, never updated or deleted. Exactly one target is set.
    """

    __tablename__ = "payment_allocations"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    school_id: Mapped[int] = mapped_column(BigIntPK, nullable=False, index=True)

    payment_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("payments.id"), nullable=False, index=True
    )
    obligation_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("obligations.id"), nullable=True, index=True
    )
    installment_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("payment_plan_installments.id"), nullable=True, index=True
    )
    allocated_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint("allocated_amount > 0", name="ck_payment_allocations_positive"),
        CheckConstraint(
            "(obligation_id IS NULL) <> (installment_id IS NULL)",
            name="ck_payment_allocations_one_target",
        ),
    )
