"""Pydantic schemas for the Obligations module."""

from datetime import date
from decimal import Decimal

from pydantic import Field

from src.shared.schemas.base import BaseSchema


class FeeStructureCreate(BaseSchema):
    name: str = Field(..., max_length=200)
    category_code: str = Field(..., max_length=50)
    amount: Decimal = Field(gt=0)
    due_date: date | None = None


class FeeStructureResponse(BaseSchema):
    id: int
    school_id: int
    name: str
    category_code: str
    amount: Decimal
    due_date: date | None
    is_active: bool


class ObligationCreate(BaseSchema):
    """Direct materialisation of a single obligation for a student."""

    student_id: int
    description: str = Field(..., max_length=200)
    category_code: str = Field(..., max_length=50)
    original_amount: Decimal = Field(gt=0)
    additional_charges: Decimal = Field(Decimal("0.00"), ge=0)
    due_date: date | None = None
    fee_structure_id: int | None = None


class GenerateObligationsRequest(BaseSchema):
    student_id: int
    fee_structure_ids: list[int] = Field(..., min_length=1)


class DiscountApply(BaseSchema):
    amount: Decimal = Field(gt=0)
    discount_type: str = Field(..., max_length=50)
    reason: str | None = None
    approver_id: int | None = None


class ObligationResponse(BaseSchema):
    id: int
    school_id: int
    student_id: int
    fee_structure_id: int | None
    description: str
    category_code: str
    original_amount: Decimal
    discount_amount: Decimal
    additional_charges: Decimal
    final_amount: Decimal
    amount_paid: Decimal
    balance: Decimal
    overpaid_amount: Decimal
    due_date: date | None
    status: str
    is_overdue: bool
    overdue_days: int
    last_payment_date: date | None
    discount_type: str | None
    discount_reason: str | None


class CategoryFeeSummary(BaseSchema):
    category_code: str
    amount: Decimal
    paid: Decimal
    balance: Decimal
    status: str


class StudentFeeSummary(BaseSchema):
    """Totals across all of a student's obligations."""

    student_id: int
    total_fees: Decimal
    total_paid: Decimal
    total_balance: Decimal
    total_discount: Decimal
    overdue_amount: Decimal
    payment_status: str  # paid | partial | overdue | pending
    categories: list[CategoryFeeSummary]


class OutstandingFeeResponse(BaseSchema):
    """An unpaid obligation in the school-wide outstanding list."""

    obligation_id: int
    student_id: int
    student_number: str
    student_name: str
    description: str
    category_code: str
    final_amount: Decimal
    amount_paid: Decimal
    balance: Decimal
    due_date: date | None
    status: str
    is_overdue: bool
    overdue_days: int
