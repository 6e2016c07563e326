from datetime import datetime
from enum import Enum
from sqlalchemy import String, Integer, BigInteger, Boolean, ForeignKey, DateTime, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from creatorpay.db.database import Base


class MessageType(str, Enum):
    TEXT = 'text'
    IMAGE = 'image'
    VIDEO = 'video'
    VOICE = 'voice'
    GIFT = 'gift'
    TIP = 'tip'
    PPV = 'ppv'


class Conversation(Base):
    """1:1 conversation. participant_1 is always the lower user id."""

    __tablename__ = 'conversations'

    id: Mapped[int] = mapped_column(primary_key=True)
    participant_1: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'))
    participant_2: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'))

    last_message_preview: Mapped[str | None] = mapped_column(String(200), default=None)
    last_message_at: Mapped[datetime | None] = mapped_column(DateTime, default=None)
    participant_1_unread: Mapped[int] = mapped_column(Integer, default=0)
    participant_2_unread: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    messages: Mapped[list['Message']] = relationship(
        'Message', back_populates='conversation', cascade='all, delete-orphan'
    )

    __table_args__ = (
        UniqueConstraint('participant_1', 'participant_2', name='unique_conversation'),
    )

    def other_participant(self, user_id: int) -> int:
        return self.participant_2 if self.participant_1 == user_id else self.participant_1


class Gift(Base):
    """Catalogue of sendable gifts."""

    __tablename__ = 'gifts'

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100))
    price: Mapped[int] = mapped_column(Integer)
    category: Mapped[str] = mapped_column(String(50), default='general')
    is_animated: Mapped[bool] = mapped_column(Boolean, default=False)


class Message(Base):
    """Direct message, including paid gift/tip/PPV messages."""

    __tablename__ = 'messages'

    id: Mapped[int] = mapped_column(primary_key=True)
    conversation_id: Mapped[int] = mapped_column(
        ForeignKey('conversations.id', ondelete='CASCADE'), index=True
    )
    sender_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'))

    message_type: Mapped[str] = mapped_column(String(20), default=MessageType.TEXT.value)
    content: Mapped[str | None] = mapped_column(Text, default=None)
    media_url: Mapped[str | None] = mapped_column(String(500), default=None)
    media_thumbnail: Mapped[str | None] = mapped_column(String(500), default=None)

    gift_id: Mapped[int | None] = mapped_column(
        ForeignKey('gifts.id', ondelete='SET NULL'), default=None
    )
    tip_amount: Mapped[int | None] = mapped_column(Integer, default=None)

    is_ppv: Mapped[bool] = mapped_column(Boolean, default=False)
    ppv_price: Mapped[int] = mapped_column(Integer, default=0)

    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    conversation: Mapped['Conversation'] = relationship('Conversation', back_populates='messages')


class PPVUnlock(Base):
    """One row per user who paid to unlock a PPV message."""

    __tablename__ = 'ppv_unlocks'

    id: Mapped[int] = mapped_column(primary_key=True)
    message_id: Mapped[int] = mapped_column(
        ForeignKey('messages.id', ondelete='CASCADE'), index=True
    )
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'))
    amount: Mapped[int] = mapped_column(Integer)
    unlocked_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('message_id', 'user_id', name='unique_ppv_unlock'),
    )
