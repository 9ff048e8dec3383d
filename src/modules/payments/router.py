"""API endpoints for Payments module."""

from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.session import get_db
from src.modules.payments.models import PaymentStatus
from src.modules.payments.schemas import (
    PaymentCreate,
    PaymentDetailResponse,
    PaymentFilters,
    PaymentResponse,
    PaymentStatistics,
    PaymentStatusChange,
    PaymentVerify,
    RecordPaymentResponse,
)
from src.modules.payments.service import PaymentLedger
from src.shared.schemas.base import ApiResponse, PaginatedResponse

router = APIRouter(prefix="/schools/{school_id}/payments", tags=["Payments"])


@router.post(
    "",
    response_model=ApiResponse[RecordPaymentResponse],
    status_code=status.HTTP_201_CREATED,
)
async def record_payment(
    school_id: int,
    data: PaymentCreate,
    db: AsyncSession = Depends(get_db),
):
    """Record a payment and allocate it to the student's outstanding obligations."""
    service = PaymentLedger(db)
    result = await service.record_payment(
        school_id,
        data.student_id,
        data.amount,
        data.payment_method,
        data.payment_date,
        transaction_reference=data.transaction_reference,
        received_by_id=data.received_by_id,
        notes=data.notes,
        allocate=data.allocate,
    )
    return ApiResponse(
        data=RecordPaymentResponse.model_validate(result),
        message="Payment already recorded" if result.replayed else "Payment recorded successfully",
    )


@router.get(
    "",
    response_model=ApiResponse[PaginatedResponse[PaymentResponse]],
)
async def list_payments(
    school_id: int,
    student_id: int | None = Query(None),
    payment_status: PaymentStatus | None = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    service = PaymentLedger(db)
    filters = PaymentFilters(
        student_id=student_id,
        payment_status=payment_status,
        page=page,
        limit=limit,
    )
    payments, total = await service.list_payments(school_id, filters)
    return ApiResponse(
        data=PaginatedResponse.create(
            items=[PaymentResponse.model_validate(p) for p in payments],
            total=total,
            page=page,
            limit=limit,
        )
    )


@router.get(
    "/statistics",
    response_model=ApiResponse[PaymentStatistics],
)
async def get_payment_statistics(
    school_id: int,
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Payment counts and amounts by method and by status."""
    service = PaymentLedger(db)
    stats = await service.get_payment_statistics(school_id, start_date, end_date)
    return ApiResponse(data=stats)


@router.get(
    "/{payment_id}",
    response_model=ApiResponse[PaymentDetailResponse],
)
async def get_payment(
    school_id: int,
    payment_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get a payment with its allocations."""
    service = PaymentLedger(db)
    detail = await service.get_payment_detail(school_id, payment_id)
    return ApiResponse(data=PaymentDetailResponse.model_validate(detail))


@router.post(
    "/{payment_id}/verify",
    response_model=ApiResponse[PaymentResponse],
)
async def verify_payment(
    school_id: int,
    payment_id: int,
    data: PaymentVerify,
    db: AsyncSession = Depends(get_db),
):
    service = PaymentLedger(db)
    payment = await service.verify_payment(
        school_id, payment_id, data.verified_by_id, notes=data.notes
    )
    return ApiResponse(
        data=PaymentResponse.model_validate(payment),
        message="Payment verified",
    )


@router.post(
    "/{payment_id}/fail",
    response_model=ApiResponse[PaymentResponse],
)
async def mark_payment_failed(
    school_id: int,
    payment_id: int,
    data: PaymentStatusChange,
    db: AsyncSession = Depends(get_db),
):
    service = PaymentLedger(db)
    payment = await service.mark_payment_failed(
        school_id, payment_id, user_id=data.user_id, reason=data.reason
    )
    return ApiResponse(
        data=PaymentResponse.model_validate(payment),
        message="Payment marked as failed",
    )


@router.post(
    "/{payment_id}/cancel",
    response_model=ApiResponse[PaymentResponse],
)
async def cancel_payment(
    school_id: int,
    payment_id: int,
    data: PaymentStatusChange,
    db: AsyncSession = Depends(get_db),
):
    service = PaymentLedger(db)
    payment = await service.cancel_payment(
        school_id, payment_id, user_id=data.user_id, reason=data.reason
    )
    return ApiResponse(
        data=PaymentResponse.model_validate(payment),
        message="Payment cancelled",
    )
