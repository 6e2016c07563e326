from datetime import datetime, date
from enum import Enum
from sqlalchemy import String, BigInteger, ForeignKey, DateTime, Date, Index
from sqlalchemy.orm import Mapped, mapped_column

from creatorpay.db.database import Base


class RevenueSource(str, Enum):
    SUBSCRIPTION = 'subscription'
    CONTENT = 'content'
    TIP = 'tip'
    TICKET = 'ticket'
    GIFT = 'gift'
    PPV = 'ppv'


class PlatformRevenue(Base):
    """Daily platform revenue: the fee side of every split lands here."""

    __tablename__ = 'platform_revenue'

    id: Mapped[int] = mapped_column(primary_key=True)
    revenue_date: Mapped[date] = mapped_column(Date, unique=True, index=True)

    # Revenue by source
    subscription_revenue: Mapped[int] = mapped_column(BigInteger, default=0)
    content_revenue: Mapped[int] = mapped_column(BigInteger, default=0)
    tip_revenue: Mapped[int] = mapped_column(BigInteger, default=0)
    ticket_revenue: Mapped[int] = mapped_column(BigInteger, default=0)
    gift_revenue: Mapped[int] = mapped_column(BigInteger, default=0)
    ppv_revenue: Mapped[int] = mapped_column(BigInteger, default=0)

    # Total = sum of all sources
    total: Mapped[int] = mapped_column(BigInteger, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class CreatorEarnings(Base):
    """Creator-side revenue ledger, separate from the live balance."""

    __tablename__ = 'creator_earnings'

    id: Mapped[int] = mapped_column(primary_key=True)
    creator_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey('users.id', ondelete='CASCADE'), index=True
    )
    from_user_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey('users.id', ondelete='SET NULL'), default=None
    )

    # Gross paid by the fan; platform_fee + net_amount == amount
    amount: Mapped[int] = mapped_column(BigInteger)
    platform_fee: Mapped[int] = mapped_column(BigInteger, default=0)
    net_amount: Mapped[int] = mapped_column(BigInteger)

    source_type: Mapped[str] = mapped_column(String(20))
    source_id: Mapped[str | None] = mapped_column(String(64), default=None)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_creator_earnings_creator_created', 'creator_id', 'created_at'),
    )
