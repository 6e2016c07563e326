from datetime import datetime
from pydantic import BaseModel


class NotificationResponse(BaseModel):
    id: int
    user_id: int
    from_user_id: int | None
    type: str
    content: str | None
    reference_type: str | None
    reference_id: str | None
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True


class UnreadCountResponse(BaseModel):
    user_id: int
    unread: int
