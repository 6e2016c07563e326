from datetime import datetime
from enum import Enum
from sqlalchemy import String, BigInteger, ForeignKey, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column

from creatorpay.db.database import Base


class TransactionType(str, Enum):
    """All possible ledger transaction types."""
    # Spending
    PAYMENT = 'payment'
    GIFT = 'gift'
    TIP = 'tip'
    PPV_UNLOCK = 'ppv_unlock'

    # Income
    PURCHASE = 'purchase'
    BONUS = 'bonus'
    REFUND = 'refund'
    PAYOUT = 'payout'


class TransactionStatus(str, Enum):
    PENDING = 'pending'
    COMPLETED = 'completed'
    FAILED = 'failed'
    REFUNDED = 'refunded'


class PaymentMethod(str, Enum):
    """Payment rail: in-app tokens or Telegram Stars invoices."""
    TOKENS = 'tokens'
    STARS = 'stars'


class RefType(str, Enum):
    """What entity a transaction references."""
    NONE = 'none'
    SUBSCRIPTION = 'subscription'
    POST = 'post'
    LIVESTREAM = 'livestream'
    MESSAGE = 'message'
    USER = 'user'


class Transaction(Base):
    """Append-only token ledger. Every balance movement is recorded here."""

    __tablename__ = 'transactions'

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey('users.id', ondelete='CASCADE'), index=True
    )

    # +amount = credit, -amount = debit
    amount: Mapped[int] = mapped_column(BigInteger)
    # None for Stars payments, which do not touch the token balance
    balance_after: Mapped[int | None] = mapped_column(BigInteger, default=None)

    type: Mapped[str] = mapped_column(String(30))
    status: Mapped[str] = mapped_column(String(20), default=TransactionStatus.COMPLETED.value)
    payment_method: Mapped[str] = mapped_column(String(10), default=PaymentMethod.TOKENS.value)
    description: Mapped[str | None] = mapped_column(String(200), default=None)

    reference_type: Mapped[str] = mapped_column(String(20), default=RefType.NONE.value)
    reference_id: Mapped[str | None] = mapped_column(String(64), default=None)

    # Provider-side id for Stars payments
    provider_transaction_id: Mapped[str | None] = mapped_column(String(64), default=None)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_transactions_user_created', 'user_id', 'created_at'),
    )
