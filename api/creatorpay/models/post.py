from datetime import datetime
from enum import Enum
from sqlalchemy import String, Integer, BigInteger, Boolean, ForeignKey, DateTime, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from creatorpay.db.database import Base


class Visibility(str, Enum):
    PUBLIC = 'public'
    FOLLOWERS = 'followers'
    SUBSCRIBERS = 'subscribers'


class Post(Base):
    """Feed post. unlock_price > 0 makes it pay-per-view."""

    __tablename__ = 'posts'

    id: Mapped[int] = mapped_column(primary_key=True)
    creator_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey('users.id', ondelete='CASCADE'), index=True
    )
    content: Mapped[str | None] = mapped_column(Text, default=None)
    media_url: Mapped[str | None] = mapped_column(String(500), default=None)

    visibility: Mapped[str] = mapped_column(String(20), default=Visibility.PUBLIC.value)
    is_nsfw: Mapped[bool] = mapped_column(Boolean, default=False)
    unlock_price: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    creator: Mapped['User'] = relationship('User')


class ContentPurchase(Base):
    """Permanent view access to one post for one user."""

    __tablename__ = 'content_purchases'

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey('users.id', ondelete='CASCADE'), index=True
    )
    post_id: Mapped[int] = mapped_column(
        ForeignKey('posts.id', ondelete='CASCADE'), index=True
    )
    amount: Mapped[int] = mapped_column(BigInteger)
    purchased_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('user_id', 'post_id', name='unique_content_purchase'),
    )
