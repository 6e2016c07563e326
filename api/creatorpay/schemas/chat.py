from datetime import datetime
from pydantic import BaseModel, Field


class GiftSendRequest(BaseModel):
    sender_id: int
    gift_id: int


class ChatTipRequest(BaseModel):
    sender_id: int
    amount: int = Field(..., ge=1)


class PPVMessageCreate(BaseModel):
    sender_id: int
    media_url: str = Field(..., max_length=500)
    price: int = Field(..., ge=1)
    thumbnail_url: str | None = Field(None, max_length=500)


class PPVUnlockRequest(BaseModel):
    user_id: int


class MessageResponse(BaseModel):
    id: int
    conversation_id: int
    sender_id: int
    message_type: str
    content: str | None = None
    media_url: str | None = None
    media_thumbnail: str | None = None
    gift_id: int | None = None
    tip_amount: int | None = None
    is_ppv: bool = False
    ppv_price: int = 0
    created_at: datetime

    class Config:
        from_attributes = True


class ConversationCreate(BaseModel):
    user_id: int
    other_user_id: int


class ConversationResponse(BaseModel):
    id: int
    participant_1: int
    participant_2: int
    last_message_preview: str | None = None
    last_message_at: datetime | None = None
    participant_1_unread: int = 0
    participant_2_unread: int = 0

    class Config:
        from_attributes = True
