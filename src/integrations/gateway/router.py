from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.session import get_db
from src.integrations.gateway.schemas import (
    GatewayEventResult,
    GatewayFailureEvent,
    GatewayPaymentEvent,
)
from src.integrations.gateway.service import GatewayWebhookService


router = APIRouter(prefix="/schools/{school_id}/gateway", tags=["Payment Gateway"])


# Signature verification happens in front of these endpoints.
@router.post("/payments/success", response_model=GatewayEventResult)
async def gateway_payment_success(
    school_id: int,
    event: GatewayPaymentEvent,
    db: AsyncSession = Depends(get_db),
):
    service = GatewayWebhookService(db)
    result = await service.process_successful_payment(school_id, event)
    return GatewayEventResult(
        status="replayed" if result.replayed else "recorded",
        payment_id=result.payment.id,
        payment_reference=result.payment.payment_reference,
        replayed=result.replayed,
    )


@router.post("/payments/failure", response_model=GatewayEventResult)
async def gateway_payment_failure(
    school_id: int,
    event: GatewayFailureEvent,
    db: AsyncSession = Depends(get_db),
):
    service = GatewayWebhookService(db)
    payment = await service.process_failed_payment(school_id, event)
    if payment is None:
        return GatewayEventResult(status="unmatched")
    return GatewayEventResult(
        status=payment.payment_status,
        payment_id=payment.id,
        payment_reference=payment.payment_reference,
    )
