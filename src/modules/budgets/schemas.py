"""Pydantic schemas for the Budgets module."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import Field, model_validator

from src.shared.schemas.base import BaseSchema
from src.modules.budgets.models import BudgetType


# --- Budget Schemas ---


class BudgetCreate(BaseSchema):
    budget_name: str = Field(..., max_length=200)
    description: str | None = None
    budget_type: BudgetType = BudgetType.EXPENSE
    start_date: date
    end_date: date
    total_budgeted_amount: Decimal = Field(ge=0)
    alert_threshold: Decimal | None = Field(None, gt=0, le=999)
    alerts_enabled: bool = True
    created_by_id: int | None = None

    @model_validator(mode="after")
    def end_after_start(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class BudgetApprove(BaseSchema):
    approved_by_id: int
    notes: str | None = None


class BudgetCancel(BaseSchema):
    user_id: int | None = None
    reason: str | None = None


class CategorySpendResponse(BaseSchema):
    category_code: str
    total_amount: Decimal


class BudgetResponse(BaseSchema):
    id: int
    school_id: int
    budget_name: str
    description: str | None
    budget_type: str
    status: str
    start_date: date
    end_date: date
    total_budgeted_amount: Decimal
    total_actual_amount: Decimal
    variance_amount: Decimal
    variance_percentage: Decimal
    utilization_rate: Decimal
    alert_threshold: Decimal
    alerts_enabled: bool
    last_reconciled_at: datetime | None
    approved_by_id: int | None = None
    approved_at: datetime | None = None
    actual_spending: list[CategorySpendResponse] | None = None


class BudgetAlertResponse(BaseSchema):
    budget_id: int
    budget_name: str
    utilization_rate: Decimal
    threshold: Decimal
    kind: str


class BudgetTypeUtilization(BaseSchema):
    budgeted: Decimal
    spent: Decimal
    utilization: Decimal


class BudgetUtilization(BaseSchema):
    total_budgeted: Decimal
    total_spent: Decimal
    overall_utilization: Decimal
    by_type: dict[str, BudgetTypeUtilization]
    alerts: list[BudgetAlertResponse]


# --- Expense Schemas ---


class ExpenseCreate(BaseSchema):
    budget_id: int | None = None
    category_code: str = Field(..., max_length=50)
    title: str = Field(..., max_length=200)
    description: str | None = None
    vendor_name: str | None = Field(None, max_length=200)
    amount: Decimal = Field(gt=0)
    expense_date: date
    created_by_id: int | None = None


class ExpenseApprove(BaseSchema):
    approved_by_id: int
    notes: str | None = None


class ExpenseReject(BaseSchema):
    rejected_by_id: int
    reason: str = Field(..., min_length=1)


class ExpensePaymentCreate(BaseSchema):
    amount: Decimal = Field(gt=0)
    payment_date: date
    payment_method: str | None = Field(None, max_length=20)


class ExpenseResponse(BaseSchema):
    id: int
    school_id: int
    budget_id: int | None
    category_code: str
    expense_reference: str
    title: str
    description: str | None
    vendor_name: str | None
    amount: Decimal
    amount_paid: Decimal
    balance: Decimal
    expense_date: date
    approval_status: str
    approved_by_id: int | None
    approved_at: datetime | None
    rejection_reason: str | None
    payment_status: str
    payment_method: str | None
    payment_date: date | None


class ExpenseCategoryStatistics(BaseSchema):
    count: int = 0
    amount: Decimal = Decimal("0.00")
    paid: Decimal = Decimal("0.00")


class ExpenseStatusStatistics(BaseSchema):
    count: int = 0
    amount: Decimal = Decimal("0.00")


class ExpenseStatistics(BaseSchema):
    """Expense totals over an expense_date range. by_status keys are "<approval>_<payment>"."""

    start_date: date | None
    end_date: date | None
    total_expenses: int
    total_amount: Decimal
    amount_paid: Decimal
    pending_approval: int
    approved_expenses: int
    by_category: dict[str, ExpenseCategoryStatistics]
    by_status: dict[str, ExpenseStatusStatistics]
