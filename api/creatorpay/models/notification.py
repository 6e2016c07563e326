from datetime import datetime
from enum import Enum
from sqlalchemy import String, BigInteger, Boolean, ForeignKey, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column

from creatorpay.db.database import Base


class NotificationType(str, Enum):
    SUBSCRIPTION = 'subscription'
    PURCHASE = 'purchase'
    TIP = 'tip'
    GIFT = 'gift'
    MESSAGE = 'message'
    LIVESTREAM = 'livestream'
    SYSTEM = 'system'


class Notification(Base):
    __tablename__ = 'notifications'

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'))
    from_user_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey('users.id', ondelete='SET NULL'), default=None
    )
    type: Mapped[str] = mapped_column(String(20))
    content: Mapped[str | None] = mapped_column(String(300), default=None)
    reference_type: Mapped[str | None] = mapped_column(String(20), default=None)
    reference_id: Mapped[str | None] = mapped_column(String(64), default=None)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_notifications_user_created', 'user_id', 'created_at'),
    )
