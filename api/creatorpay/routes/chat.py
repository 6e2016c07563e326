from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from creatorpay.db.database import get_db
from creatorpay.models.chat import Message
from creatorpay.schemas.chat import (
    ConversationCreate, ConversationResponse, GiftSendRequest, ChatTipRequest,
    PPVMessageCreate, PPVUnlockRequest, MessageResponse,
)
from creatorpay.schemas.payments import PaymentResultResponse
from creatorpay.services.chat_service import ChatService
from creatorpay.services.notifier import NotificationDispatcher
from creatorpay.routes.deps import get_notifier, raise_for_result

router = APIRouter()


def get_chat_service(
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> ChatService:
    return ChatService(db, notifier=notifier)


@router.post('/conversations', response_model=ConversationResponse)
async def open_conversation(
    data: ConversationCreate,
    service: ChatService = Depends(get_chat_service),
):
    """Get or create the 1:1 conversation between two users."""
    if data.user_id == data.other_user_id:
        raise HTTPException(status_code=400, detail='Cannot message yourself')
    return await service.get_or_create_conversation(data.user_id, data.other_user_id)


@router.post(
    '/conversations/{conversation_id}/gifts',
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_gift(
    conversation_id: int,
    data: GiftSendRequest,
    service: ChatService = Depends(get_chat_service),
):
    result = await service.send_gift(conversation_id, data.sender_id, data.gift_id)
    raise_for_result(result)
    return await service.db.get(Message, result.message_id)


@router.post(
    '/conversations/{conversation_id}/tips',
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_tip(
    conversation_id: int,
    data: ChatTipRequest,
    service: ChatService = Depends(get_chat_service),
):
    result = await service.send_tip(conversation_id, data.sender_id, data.amount)
    raise_for_result(result)
    return await service.db.get(Message, result.message_id)


@router.post(
    '/conversations/{conversation_id}/ppv',
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_ppv(
    conversation_id: int,
    data: PPVMessageCreate,
    service: ChatService = Depends(get_chat_service),
):
    """Post a locked media message."""
    result = await service.send_ppv_message(
        conversation_id, data.sender_id, data.media_url, data.price, data.thumbnail_url,
    )
    raise_for_result(result)
    return await service.db.get(Message, result.message_id)


@router.post('/messages/{message_id}/unlock', response_model=PaymentResultResponse)
async def unlock_ppv(
    message_id: int,
    data: PPVUnlockRequest,
    service: ChatService = Depends(get_chat_service),
):
    result = await service.unlock_ppv(message_id, data.user_id)
    raise_for_result(result)
    return PaymentResultResponse(
        success=True, transaction_id=result.transaction_id, message_id=result.message_id,
    )
