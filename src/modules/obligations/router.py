"""API endpoints for Obligations module."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.session import get_db
from src.modules.obligations.schemas import (
    DiscountApply,
    FeeStructureCreate,
    FeeStructureResponse,
    GenerateObligationsRequest,
    ObligationCreate,
    ObligationResponse,
    OutstandingFeeResponse,
    StudentFeeSummary,
)
from src.modules.obligations.service import ObligationStore
from src.shared.schemas.base import ApiResponse

router = APIRouter(prefix="/schools/{school_id}", tags=["Obligations"])


# --- Fee Structure Endpoints ---


@router.post(
    "/fee-structures",
    response_model=ApiResponse[FeeStructureResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_fee_structure(
    school_id: int,
    data: FeeStructureCreate,
    db: AsyncSession = Depends(get_db),
):
    service = ObligationStore(db)
    structure = await service.create_fee_structure(school_id, data)
    return ApiResponse(
        data=FeeStructureResponse.model_validate(structure),
        message="Fee structure created successfully",
    )


# --- Obligation Endpoints ---


@router.post(
    "/obligations",
    response_model=ApiResponse[ObligationResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_obligation(
    school_id: int,
    data: ObligationCreate,
    db: AsyncSession = Depends(get_db),
):
    service = ObligationStore(db)
    obligation = await service.create_obligation(school_id, data)
    return ApiResponse(
        data=ObligationResponse.model_validate(obligation),
        message="Obligation created successfully",
    )


@router.post(
    "/obligations/generate",
    response_model=ApiResponse[list[ObligationResponse]],
    status_code=status.HTTP_201_CREATED,
)
async def generate_obligations(
    school_id: int,
    data: GenerateObligationsRequest,
    db: AsyncSession = Depends(get_db),
):
    """Materialise fee structures as obligations for a student."""
    service = ObligationStore(db)
    obligations = await service.generate_for_student(
        school_id, data.student_id, data.fee_structure_ids
    )
    return ApiResponse(
        data=[ObligationResponse.model_validate(o) for o in obligations],
        message=f"Generated {len(obligations)} obligations",
    )


@router.get(
    "/obligations/outstanding",
    response_model=ApiResponse[list[OutstandingFeeResponse]],
)
async def list_outstanding_fees(
    school_id: int,
    overdue_only: bool = Query(False),
    category_code: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Unpaid obligations across the school, ordered by student name."""
    service = ObligationStore(db)
    outstanding = await service.list_outstanding(
        school_id, overdue_only=overdue_only, category_code=category_code
    )
    return ApiResponse(data=outstanding)


@router.get(
    "/obligations/{obligation_id}",
    response_model=ApiResponse[ObligationResponse],
)
async def get_obligation(
    school_id: int,
    obligation_id: int,
    db: AsyncSession = Depends(get_db),
):
    service = ObligationStore(db)
    obligation = await service.get_obligation(school_id, obligation_id)
    return ApiResponse(data=ObligationResponse.model_validate(obligation))


@router.post(
    "/obligations/{obligation_id}/discount",
    response_model=ApiResponse[ObligationResponse],
)
async def apply_discount(
    school_id: int,
    obligation_id: int,
    data: DiscountApply,
    db: AsyncSession = Depends(get_db),
):
    service = ObligationStore(db)
    obligation = await service.apply_discount(
        school_id,
        obligation_id,
        data.amount,
        data.discount_type,
        reason=data.reason,
        approver_id=data.approver_id,
    )
    return ApiResponse(
        data=ObligationResponse.model_validate(obligation),
        message="Discount applied",
    )


@router.get(
    "/students/{student_id}/obligations",
    response_model=ApiResponse[list[ObligationResponse]],
)
async def list_student_obligations(
    school_id: int,
    student_id: int,
    outstanding_only: bool = False,
    db: AsyncSession = Depends(get_db),
):
    """A student's obligations; outstanding_only returns them in allocation order."""
    service = ObligationStore(db)
    if outstanding_only:
        obligations = await service.find_outstanding_for_student(school_id, student_id)
    else:
        obligations = await service.list_for_student(school_id, student_id)
    return ApiResponse(data=[ObligationResponse.model_validate(o) for o in obligations])


@router.get(
    "/students/{student_id}/fee-summary",
    response_model=ApiResponse[StudentFeeSummary],
)
async def get_student_fee_summary(
    school_id: int,
    student_id: int,
    db: AsyncSession = Depends(get_db),
):
    service = ObligationStore(db)
    summary = await service.get_student_summary(school_id, student_id)
    return ApiResponse(data=summary)
