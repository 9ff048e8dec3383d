"""API endpoints for Budgets module."""

from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.session import get_db
from src.modules.budgets.models import ExpenseApprovalStatus, ExpensePaymentStatus
from src.modules.budgets.schemas import (
    BudgetApprove,
    BudgetCancel,
    BudgetCreate,
    BudgetResponse,
    BudgetUtilization,
    ExpenseApprove,
    ExpenseCreate,
    ExpensePaymentCreate,
    ExpenseReject,
    ExpenseResponse,
    ExpenseStatistics,
)
from src.modules.budgets.service import BudgetService, ExpenseService
from src.shared.schemas.base import ApiResponse, PaginatedResponse

router = APIRouter(prefix="/schools/{school_id}", tags=["Budgets"])


# --- Budget Endpoints ---


@router.post(
    "/budgets",
    response_model=ApiResponse[BudgetResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_budget(
    school_id: int,
    data: BudgetCreate,
    db: AsyncSession = Depends(get_db),
):
    service = BudgetService(db)
    budget = await service.create_budget(school_id, data)
    return ApiResponse(
        data=BudgetResponse.model_validate(budget),
        message="Budget created successfully",
    )


@router.get(
    "/budgets",
    response_model=ApiResponse[list[BudgetResponse]],
)
async def list_budgets(
    school_id: int,
    budget_type: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    service = BudgetService(db)
    budgets = await service.list_budgets(school_id, budget_type=budget_type)
    return ApiResponse(data=[BudgetResponse.model_validate(b) for b in budgets])


@router.get(
    "/budgets/utilization",
    response_model=ApiResponse[BudgetUtilization],
)
async def get_budget_utilization(
    school_id: int,
    db: AsyncSession = Depends(get_db),
):
    service = BudgetService(db)
    return ApiResponse(data=await service.get_budget_utilization(school_id))


@router.get(
    "/budgets/{budget_id}",
    response_model=ApiResponse[BudgetResponse],
)
async def get_budget(
    school_id: int,
    budget_id: int,
    db: AsyncSession = Depends(get_db),
):
    service = BudgetService(db)
    budget = await service.get_budget(school_id, budget_id)
    return ApiResponse(data=BudgetResponse.model_validate(budget))


@router.post(
    "/budgets/{budget_id}/approve",
    response_model=ApiResponse[BudgetResponse],
)
async def approve_budget(
    school_id: int,
    budget_id: int,
    data: BudgetApprove,
    db: AsyncSession = Depends(get_db),
):
    service = BudgetService(db)
    budget = await service.approve_budget(
        school_id, budget_id, data.approved_by_id, notes=data.notes
    )
    return ApiResponse(
        data=BudgetResponse.model_validate(budget),
        message="Budget approved",
    )


@router.post(
    "/budgets/{budget_id}/cancel",
    response_model=ApiResponse[BudgetResponse],
)
async def cancel_budget(
    school_id: int,
    budget_id: int,
    data: BudgetCancel,
    db: AsyncSession = Depends(get_db),
):
    service = BudgetService(db)
    budget = await service.cancel_budget(
        school_id, budget_id, user_id=data.user_id, reason=data.reason
    )
    return ApiResponse(
        data=BudgetResponse.model_validate(budget),
        message="Budget cancelled",
    )


@router.post(
    "/budgets/{budget_id}/reconcile",
    response_model=ApiResponse[BudgetResponse],
)
async def reconcile_budget(
    school_id: int,
    budget_id: int,
    db: AsyncSession = Depends(get_db),
):
    service = BudgetService(db)
    budget = await service.reconcile_budget(school_id, budget_id)
    return ApiResponse(
        data=BudgetResponse.model_validate(budget),
        message="Budget reconciled",
    )


# --- Expense Endpoints ---


@router.post(
    "/expenses",
    response_model=ApiResponse[ExpenseResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_expense(
    school_id: int,
    data: ExpenseCreate,
    db: AsyncSession = Depends(get_db),
):
    service = ExpenseService(db)
    expense = await service.create_expense(school_id, data)
    return ApiResponse(
        data=ExpenseResponse.model_validate(expense),
        message="Expense created successfully",
    )


@router.get(
    "/expenses",
    response_model=ApiResponse[PaginatedResponse[ExpenseResponse]],
)
async def list_expenses(
    school_id: int,
    budget_id: int | None = Query(None),
    approval_status: ExpenseApprovalStatus | None = Query(None),
    payment_status: ExpensePaymentStatus | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    service = ExpenseService(db)
    expenses, total = await service.list_expenses(
        school_id,
        budget_id=budget_id,
        approval_status=approval_status.value if approval_status else None,
        payment_status=payment_status.value if payment_status else None,
        page=page,
        limit=limit,
    )
    return ApiResponse(
        data=PaginatedResponse.create(
            items=[ExpenseResponse.model_validate(e) for e in expenses],
            total=total,
            page=page,
            limit=limit,
        )
    )


@router.get(
    "/expenses/statistics",
    response_model=ApiResponse[ExpenseStatistics],
)
async def get_expense_statistics(
    school_id: int,
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Expense counts and amounts by category and by approval/payment status."""
    service = ExpenseService(db)
    stats = await service.get_expense_statistics(school_id, start_date, end_date)
    return ApiResponse(data=stats)


@router.get(
    "/expenses/{expense_id}",
    response_model=ApiResponse[ExpenseResponse],
)
async def get_expense(
    school_id: int,
    expense_id: int,
    db: AsyncSession = Depends(get_db),
):
    service = ExpenseService(db)
    expense = await service.get_expense(school_id, expense_id)
    return ApiResponse(data=ExpenseResponse.model_validate(expense))


@router.post(
    "/expenses/{expense_id}/approve",
    response_model=ApiResponse[ExpenseResponse],
)
async def approve_expense(
    school_id: int,
    expense_id: int,
    data: ExpenseApprove,
    db: AsyncSession = Depends(get_db),
):
    service = ExpenseService(db)
    expense = await service.approve_expense(
        school_id, expense_id, data.approved_by_id, notes=data.notes
    )
    return ApiResponse(
        data=ExpenseResponse.model_validate(expense),
        message="Expense approved",
    )


@router.post(
    "/expenses/{expense_id}/reject",
    response_model=ApiResponse[ExpenseResponse],
)
async def reject_expense(
    school_id: int,
    expense_id: int,
    data: ExpenseReject,
    db: AsyncSession = Depends(get_db),
):
    service = ExpenseService(db)
    expense = await service.reject_expense(
        school_id, expense_id, data.rejected_by_id, data.reason
    )
    return ApiResponse(
        data=ExpenseResponse.model_validate(expense),
        message="Expense rejected",
    )


@router.post(
    "/expenses/{expense_id}/payments",
    response_model=ApiResponse[ExpenseResponse],
)
async def record_expense_payment(
    school_id: int,
    expense_id: int,
    data: ExpensePaymentCreate,
    db: AsyncSession = Depends(get_db),
):
    service = ExpenseService(db)
    expense = await service.record_expense_payment(
        school_id,
        expense_id,
        data.amount,
        data.payment_date,
        payment_method=data.payment_method,
    )
    return ApiResponse(
        data=ExpenseResponse.model_validate(expense),
        message="Expense payment recorded",
    )
