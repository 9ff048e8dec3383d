"""Pydantic schemas for Payments module."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import Field

from src.shared.schemas.base import BaseSchema
from src.modules.payments.models import PaymentMethod, PaymentStatus


# --- Payment Schemas ---


class PaymentCreate(BaseSchema):
    """Schema for recording a payment. Allocation to obligations is automatic unless earmarked."""

    student_id: int
    amount: Decimal = Field(gt=0, description="Payment amount (must be positive)")
    payment_method: PaymentMethod
    payment_date: date
    transaction_reference: str | None = Field(
        None, max_length=100, description="Gateway transaction reference (idempotency key)"
    )
    received_by_id: int | None = None
    notes: str | None = None
    allocate: bool = Field(
        True, description="False earmarks the payment for installment plans instead of obligations"
    )


class PaymentResponse(BaseSchema):
    id: int
    school_id: int
    student_id: int
    payment_reference: str
    receipt_number: str
    transaction_reference: str | None
    amount: Decimal
    payment_method: str
    payment_date: date
    payment_status: str
    is_verified: bool
    verified_by_id: int | None
    verified_at: datetime | None
    received_by_id: int | None
    notes: str | None


class PaymentFilters(BaseSchema):
    student_id: int | None = None
    payment_status: PaymentStatus | None = None
    page: int = Field(1, ge=1)
    limit: int = Field(50, ge=1, le=100)


class PaymentVerify(BaseSchema):
    verified_by_id: int
    notes: str | None = None


class PaymentStatusChange(BaseSchema):
    user_id: int | None = None
    reason: str | None = None


# --- Allocation Schemas ---


class AllocationResponse(BaseSchema):
    id: int
    payment_id: int
    obligation_id: int | None
    installment_id: int | None
    allocated_amount: Decimal


class RecordPaymentResponse(BaseSchema):
    """A recorded payment, what it was applied to, and what is left over."""

    payment: PaymentResponse
    allocations: list[AllocationResponse]
    unallocated_amount: Decimal
    replayed: bool = False


class PaymentDetailResponse(BaseSchema):
    payment: PaymentResponse
    allocations: list[AllocationResponse]
    unallocated_amount: Decimal


# --- Statistics ---


class CountAmount(BaseSchema):
    count: int = 0
    amount: Decimal = Decimal("0.00")


class PaymentStatistics(BaseSchema):
    """Payment counts and amounts by method and by status over a date range."""

    start_date: date | None
    end_date: date | None
    total_payments: int
    total_amount: Decimal
    by_method: dict[str, CountAmount]
    by_status: dict[str, CountAmount]
