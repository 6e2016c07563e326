from dataclasses import asdict

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from creatorpay.db.database import get_db
from creatorpay.schemas.access import LivestreamAccessResponse
from creatorpay.schemas.payments import TicketRequest, LivestreamGiftRequest, PaymentResultResponse
from creatorpay.services.livestream_service import LivestreamService
from creatorpay.services.notifier import NotificationDispatcher
from creatorpay.services.stars_bridge import StarsInvoiceBridge
from creatorpay.routes.deps import get_notifier, get_stars_bridge, raise_for_result

router = APIRouter()


def get_livestream_service(
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
    stars: StarsInvoiceBridge = Depends(get_stars_bridge),
) -> LivestreamService:
    return LivestreamService(db, notifier=notifier, stars=stars)


@router.get('/{livestream_id}/access', response_model=LivestreamAccessResponse)
async def get_access(
    livestream_id: int,
    user_id: int = Query(...),
    service: LivestreamService = Depends(get_livestream_service),
):
    """Whether the user may watch, and what they'd need to buy if not."""
    access = await service.get_livestream_access(livestream_id, user_id)
    return LivestreamAccessResponse(**asdict(access))


@router.post('/{livestream_id}/tickets', response_model=PaymentResultResponse)
async def buy_ticket(
    livestream_id: int,
    data: TicketRequest,
    service: LivestreamService = Depends(get_livestream_service),
):
    result = await service.purchase_livestream_ticket(livestream_id, data.user_id, data.method)
    raise_for_result(result)
    return PaymentResultResponse(success=True, transaction_id=result.transaction_id)


@router.post('/{livestream_id}/gifts', response_model=PaymentResultResponse)
async def send_gift(
    livestream_id: int,
    data: LivestreamGiftRequest,
    service: LivestreamService = Depends(get_livestream_service),
):
    result = await service.send_livestream_gift(livestream_id, data.user_id, data.gift_id, data.method)
    raise_for_result(result)
    return PaymentResultResponse(
        success=True, transaction_id=result.transaction_id, message_id=result.message_id,
    )
