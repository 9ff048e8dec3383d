"""Pydantic schemas for the Payment Plans module."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import Field, model_validator

from src.shared.schemas.base import BaseSchema
from src.modules.payment_plans.models import PlanFrequency


class PaymentPlanCreate(BaseSchema):
    """
    Plan parameters. installment_amount defaults to the remaining amount split
    evenly, with the last installment absorbing rounding.
    """

    plan_name: str = Field(..., max_length=200)
    total_amount: Decimal = Field(gt=0)
    down_payment: Decimal = Field(Decimal("0.00"), ge=0)
    number_of_installments: int = Field(..., ge=1, le=120)
    installment_amount: Decimal | None = Field(None, gt=0)
    start_date: date
    end_date: date | None = None
    frequency: PlanFrequency = PlanFrequency.MONTHLY
    grace_period_days: int | None = Field(None, ge=0)
    terms_and_conditions: str | None = None
    created_by_id: int | None = None

    @model_validator(mode="after")
    def down_payment_below_total(self):
        if self.down_payment >= self.total_amount:
            raise ValueError("down_payment must be less than total_amount")
        return self


class InstallmentPaymentApply(BaseSchema):
    """Apply part of a recorded (usually earmarked) payment to one installment."""

    payment_id: int
    amount: Decimal = Field(gt=0)


class InstallmentResponse(BaseSchema):
    id: int
    payment_plan_id: int
    installment_number: int
    amount: Decimal
    amount_paid: Decimal
    balance: Decimal
    due_date: date
    grace_period_end: date
    status: str
    days_overdue: int
    payment_id: int | None
    paid_at: datetime | None


class PaymentPlanResponse(BaseSchema):
    id: int
    school_id: int
    student_id: int
    plan_name: str
    total_amount: Decimal
    down_payment: Decimal
    remaining_amount: Decimal
    number_of_installments: int
    installment_amount: Decimal
    start_date: date
    end_date: date
    frequency: str
    grace_period_days: int
    status: str
    amount_paid: Decimal
    balance: Decimal
    installments_paid: int
    installments_overdue: int


class PaymentPlanWithInstallments(BaseSchema):
    plan: PaymentPlanResponse
    installments: list[InstallmentResponse]


class InstallmentPaymentResult(BaseSchema):
    installment: InstallmentResponse
    plan: PaymentPlanResponse


class PlanStatusStats(BaseSchema):
    count: int
    total_amount: Decimal
    amount_paid: Decimal
    balance: Decimal


class PaymentPlanStats(BaseSchema):
    total_plans: int
    total_amount: Decimal
    amount_paid: Decimal
    balance: Decimal
    by_status: dict[str, PlanStatusStats]
