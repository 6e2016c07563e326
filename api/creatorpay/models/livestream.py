from datetime import datetime
from enum import Enum
from sqlalchemy import String, Integer, BigInteger, Boolean, ForeignKey, DateTime, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from creatorpay.db.database import Base


class LivestreamStatus(str, Enum):
    SCHEDULED = 'scheduled'
    LIVE = 'live'
    ENDED = 'ended'


class Livestream(Base):
    """A creator's stream. Private streams need a subscription, priced ones a ticket."""

    __tablename__ = 'livestreams'

    id: Mapped[int] = mapped_column(primary_key=True)
    creator_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey('users.id', ondelete='CASCADE'), index=True
    )
    title: Mapped[str] = mapped_column(String(200))
    status: Mapped[str] = mapped_column(String(20), default=LivestreamStatus.LIVE.value)
    is_private: Mapped[bool] = mapped_column(Boolean, default=False)
    entry_price: Mapped[int] = mapped_column(Integer, default=0)

    # Video channel handed to the conferencing SDK
    channel_name: Mapped[str | None] = mapped_column(String(100), default=None)

    viewer_count: Mapped[int] = mapped_column(Integer, default=0)
    total_gifts_received: Mapped[int] = mapped_column(BigInteger, default=0)

    started_at: Mapped[datetime | None] = mapped_column(DateTime, default=datetime.utcnow)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class LivestreamTicket(Base):
    """Proof of purchase for a priced livestream."""

    __tablename__ = 'livestream_tickets'

    id: Mapped[int] = mapped_column(primary_key=True)
    livestream_id: Mapped[int] = mapped_column(
        ForeignKey('livestreams.id', ondelete='CASCADE'), index=True
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey('users.id', ondelete='CASCADE'), index=True
    )
    amount: Mapped[int] = mapped_column(Integer)
    paid_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('livestream_id', 'user_id', name='unique_livestream_ticket'),
    )


class LivestreamMessage(Base):
    """Chat line in a livestream ('chat' | 'gift' | 'tip' | 'system')."""

    __tablename__ = 'livestream_messages'

    id: Mapped[int] = mapped_column(primary_key=True)
    livestream_id: Mapped[int] = mapped_column(
        ForeignKey('livestreams.id', ondelete='CASCADE'), index=True
    )
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'))
    content: Mapped[str | None] = mapped_column(Text, default=None)
    message_type: Mapped[str] = mapped_column(String(20), default='chat')
    gift_id: Mapped[int | None] = mapped_column(
        ForeignKey('gifts.id', ondelete='SET NULL'), default=None
    )
    tip_amount: Mapped[int | None] = mapped_column(Integer, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
