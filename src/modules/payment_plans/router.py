"""API endpoints for Payment Plans module."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.session import get_db
from src.modules.payment_plans.schemas import (
    InstallmentPaymentApply,
    InstallmentPaymentResult,
    PaymentPlanCreate,
    PaymentPlanResponse,
    PaymentPlanStats,
    PaymentPlanWithInstallments,
)
from src.modules.payment_plans.service import PaymentPlanService
from src.shared.schemas.base import ApiResponse

router = APIRouter(prefix="/schools/{school_id}", tags=["Payment Plans"])


@router.post(
    "/students/{student_id}/payment-plans",
    response_model=ApiResponse[PaymentPlanWithInstallments],
    status_code=status.HTTP_201_CREATED,
)
async def create_payment_plan(
    school_id: int,
    student_id: int,
    data: PaymentPlanCreate,
    db: AsyncSession = Depends(get_db),
):
    service = PaymentPlanService(db)
    created = await service.create_payment_plan(school_id, student_id, data)
    return ApiResponse(
        data=PaymentPlanWithInstallments.model_validate(created),
        message="Payment plan created successfully",
    )


@router.get(
    "/students/{student_id}/payment-plans",
    response_model=ApiResponse[list[PaymentPlanResponse]],
)
async def list_student_payment_plans(
    school_id: int,
    student_id: int,
    db: AsyncSession = Depends(get_db),
):
    service = PaymentPlanService(db)
    plans = await service.list_plans_for_student(school_id, student_id)
    return ApiResponse(data=[PaymentPlanResponse.model_validate(p) for p in plans])


@router.get(
    "/payment-plans/stats",
    response_model=ApiResponse[PaymentPlanStats],
)
async def get_payment_plan_stats(
    school_id: int,
    db: AsyncSession = Depends(get_db),
):
    service = PaymentPlanService(db)
    return ApiResponse(data=await service.get_plan_stats(school_id))


@router.get(
    "/payment-plans/{plan_id}",
    response_model=ApiResponse[PaymentPlanWithInstallments],
)
async def get_payment_plan(
    school_id: int,
    plan_id: int,
    db: AsyncSession = Depends(get_db),
):
    service = PaymentPlanService(db)
    plan = await service.get_plan(school_id, plan_id)
    return ApiResponse(data=PaymentPlanWithInstallments.model_validate(plan))


@router.post(
    "/installments/{installment_id}/payments",
    response_model=ApiResponse[InstallmentPaymentResult],
)
async def apply_installment_payment(
    school_id: int,
    installment_id: int,
    data: InstallmentPaymentApply,
    db: AsyncSession = Depends(get_db),
):
    service = PaymentPlanService(db)
    outcome = await service.apply_installment_payment(
        school_id, installment_id, data.payment_id, data.amount
    )
    return ApiResponse(
        data=InstallmentPaymentResult.model_validate(outcome),
        message="Installment payment applied",
    )
