from datetime import datetime
from enum import Enum
from sqlalchemy import String, Integer, BigInteger, Boolean, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from creatorpay.db.database import Base


class MessagePreference(str, Enum):
    """Who may start paid or free messages with a user."""
    EVERYONE = 'everyone'
    FOLLOWERS = 'followers'
    SUBSCRIBERS = 'subscribers'
    NOBODY = 'nobody'


class User(Base):
    """Mini App user, keyed by Telegram id."""

    __tablename__ = 'users'

    # Telegram user id, assigned by Telegram rather than the database
    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    username: Mapped[str | None] = mapped_column(String(64), default=None)
    first_name: Mapped[str | None] = mapped_column(String(100), default=None)

    # Spendable tokens; only LedgerService mutates this
    balance: Mapped[int] = mapped_column(BigInteger, default=0)

    is_creator: Mapped[bool] = mapped_column(Boolean, default=False)
    subscription_price: Mapped[int] = mapped_column(Integer, default=0)
    allow_messages_from: Mapped[str] = mapped_column(
        String(20), default=MessagePreference.EVERYONE.value
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    followers: Mapped[list['Follow']] = relationship(
        'Follow',
        foreign_keys='Follow.following_id',
        back_populates='following',
    )
    following: Mapped[list['Follow']] = relationship(
        'Follow',
        foreign_keys='Follow.follower_id',
        back_populates='follower',
    )

    @property
    def display_name(self) -> str:
        return self.first_name or self.username or 'Creator'


class Follow(Base):
    """Follow relationship between users."""

    __tablename__ = 'follows'

    id: Mapped[int] = mapped_column(primary_key=True)
    follower_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'))
    following_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    follower: Mapped['User'] = relationship(
        'User', foreign_keys=[follower_id], back_populates='following'
    )
    following: Mapped['User'] = relationship(
        'User', foreign_keys=[following_id], back_populates='followers'
    )

    __table_args__ = (
        UniqueConstraint('follower_id', 'following_id', name='unique_follow'),
    )
