from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from creatorpay.db.database import get_db
from creatorpay.models.post import Post
from creatorpay.schemas.payments import (
    SubscriptionPaymentRequest, ContentPurchaseRequest, TipRequest, PaymentResultResponse,
)
from creatorpay.services.notifier import NotificationDispatcher
from creatorpay.services.payment_service import PaymentService
from creatorpay.services.stars_bridge import StarsInvoiceBridge
from creatorpay.routes.deps import get_notifier, get_stars_bridge, raise_for_result

router = APIRouter()


def get_payment_service(
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
    stars: StarsInvoiceBridge = Depends(get_stars_bridge),
) -> PaymentService:
    return PaymentService(db, notifier=notifier, stars=stars)


@router.post('/subscriptions', response_model=PaymentResultResponse)
async def subscribe(
    data: SubscriptionPaymentRequest,
    service: PaymentService = Depends(get_payment_service),
):
    """Pay for (or renew) a subscription to a creator."""
    result = await service.process_subscription_payment(
        data.subscriber_id, data.creator_id, data.price, data.method,
    )
    raise_for_result(result)
    return PaymentResultResponse(success=True, transaction_id=result.transaction_id)


@router.post('/content', response_model=PaymentResultResponse)
async def purchase_content(
    data: ContentPurchaseRequest,
    service: PaymentService = Depends(get_payment_service),
):
    """Unlock a pay-per-view post at its current price."""
    post = await service.db.get(Post, data.post_id)
    if not post:
        raise HTTPException(status_code=404, detail={'kind': 'not_found', 'message': 'Post not found'})

    result = await service.process_content_purchase(
        data.user_id, post.id, post.creator_id, post.unlock_price, data.method,
    )
    raise_for_result(result)
    return PaymentResultResponse(success=True, transaction_id=result.transaction_id)


@router.post('/tips', response_model=PaymentResultResponse)
async def tip(
    data: TipRequest,
    service: PaymentService = Depends(get_payment_service),
):
    result = await service.process_tip(data.sender_id, data.recipient_id, data.amount, data.method)
    raise_for_result(result)
    return PaymentResultResponse(success=True, transaction_id=result.transaction_id)
