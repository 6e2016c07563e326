import logging
from datetime import date
from sqlalchemy import select, update, desc
from sqlalchemy.ext.asyncio import AsyncSession

from creatorpay.models.user import User
from creatorpay.models.ledger import (
    Transaction, TransactionType, TransactionStatus, PaymentMethod, RefType,
)
from creatorpay.models.revenue import PlatformRevenue, RevenueSource

logger = logging.getLogger(__name__)

# Revenue splits, in whole percent. Shares round down, fees round up;
# whatever the share leaves behind is platform revenue.
CREATOR_SHARE_PCT = 90      # subscriptions, content purchases
TIP_SHARE_PCT = 95          # tips paid through the payments rail
CHAT_CREATOR_PCT = 90       # chat gifts, chat tips, PPV unlocks
LIVESTREAM_FEE_PCT = 10     # taken from the ticket price


def share_of(amount: int, pct: int) -> int:
    """floor(amount * pct / 100)"""
    return amount * pct // 100


def fee_of(amount: int, pct: int) -> int:
    """ceil(amount * pct / 100)"""
    return -(-amount * pct // 100)


class InsufficientBalance(Exception):
    """Raised when user doesn't have enough tokens."""
    pass


class UserNotFound(Exception):
    pass


class LedgerService:
    """Handles all token balance operations. Every movement goes through here.

    Methods take ``commit=False`` when they are one step of a larger atomic
    operation; the caller then commits or rolls back the whole unit.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_balance(self, user_id: int) -> int:
        """Get current balance for a user, read from the database."""
        balance = await self.db.scalar(select(User.balance).where(User.id == user_id))
        if balance is None:
            raise UserNotFound(f'User {user_id} not found')
        return balance

    async def debit(
        self,
        user_id: int,
        amount: int,
        description: str,
        tx_type: TransactionType = TransactionType.PAYMENT,
        ref_type: RefType = RefType.NONE,
        ref_id: str | int | None = None,
        commit: bool = True,
    ) -> Transaction:
        """Deduct tokens. Raises InsufficientBalance if not enough.

        The balance check and the decrement are one guarded UPDATE, so two
        concurrent debits can never take the balance below zero.
        """
        if amount <= 0:
            raise ValueError('Debit amount must be positive')

        result = await self.db.execute(
            update(User)
            .where(User.id == user_id, User.balance >= amount)
            .values(balance=User.balance - amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            balance = await self.db.scalar(select(User.balance).where(User.id == user_id))
            if balance is None:
                raise UserNotFound(f'User {user_id} not found')
            raise InsufficientBalance(f'Need {amount} tokens but only have {balance}')

        entry = await self._record(
            user_id, -amount, tx_type, description, ref_type, ref_id,
            balance_after=await self.get_balance(user_id),
        )
        if commit:
            await self.db.commit()
        return entry

    async def credit(
        self,
        user_id: int,
        amount: int,
        description: str | None = None,
        tx_type: TransactionType = TransactionType.PAYOUT,
        ref_type: RefType = RefType.NONE,
        ref_id: str | int | None = None,
        commit: bool = True,
    ) -> Transaction:
        """Add tokens (add_to_balance). Not idempotent: calling twice pays twice."""
        if amount <= 0:
            raise ValueError('Credit amount must be positive')

        result = await self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(balance=User.balance + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise UserNotFound(f'User {user_id} not found')

        entry = await self._record(
            user_id, amount, tx_type, description, ref_type, ref_id,
            balance_after=await self.get_balance(user_id),
        )
        if commit:
            await self.db.commit()
        return entry

    async def record_external_payment(
        self,
        user_id: int,
        amount: int,
        description: str,
        provider_transaction_id: str | None,
        ref_type: RefType = RefType.NONE,
        ref_id: str | int | None = None,
        commit: bool = True,
    ) -> Transaction:
        """Log a Stars payment. The token balance is not touched."""
        entry = await self._record(
            user_id, -amount, TransactionType.PAYMENT, description, ref_type, ref_id,
            balance_after=None,
            payment_method=PaymentMethod.STARS,
            provider_transaction_id=provider_transaction_id,
        )
        if commit:
            await self.db.commit()
        return entry

    async def transfer_with_split(
        self,
        sender_id: int,
        receiver_id: int,
        amount: int,
        creator_pct: int,
        tx_type: TransactionType,
        source: RevenueSource,
        ref_type: RefType = RefType.NONE,
        ref_id: str | int | None = None,
    ) -> tuple[Transaction, int]:
        """Debit sender, credit receiver their share, pool the rest.

        Never commits: this is the body of an atomic operation and the
        caller commits it together with its own rows.
        Returns (sender's debit entry, amount credited).
        """
        debit_entry = await self.debit(
            sender_id, amount, f'{source.value} to user {receiver_id}',
            tx_type=tx_type, ref_type=ref_type, ref_id=ref_id, commit=False,
        )
        credited = share_of(amount, creator_pct)
        if credited > 0:
            await self.credit(
                receiver_id, credited, f'{source.value} from user {sender_id}',
                ref_type=ref_type, ref_id=ref_id, commit=False,
            )
        await self.add_platform_revenue(amount - credited, source, commit=False)
        return debit_entry, credited

    async def get_history(
        self,
        user_id: int,
        limit: int = 50,
        offset: int = 0,
        tx_type: str | None = None,
    ) -> list[Transaction]:
        """Get transactions for a user, newest first."""
        query = (
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(desc(Transaction.created_at), desc(Transaction.id))
        )
        if tx_type:
            query = query.where(Transaction.type == tx_type)
        query = query.limit(limit).offset(offset)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def add_platform_revenue(
        self,
        amount: int,
        source: RevenueSource,
        commit: bool = True,
    ) -> None:
        """Add revenue to today's platform pool."""
        if amount <= 0:
            return

        today = date.today()
        result = await self.db.execute(
            select(PlatformRevenue).where(PlatformRevenue.revenue_date == today)
        )
        revenue = result.scalar_one_or_none()

        if not revenue:
            revenue = PlatformRevenue(
                revenue_date=today,
                subscription_revenue=0, content_revenue=0, tip_revenue=0,
                ticket_revenue=0, gift_revenue=0, ppv_revenue=0, total=0,
            )
            self.db.add(revenue)
            await self.db.flush()

        column = f'{source.value}_revenue'
        setattr(revenue, column, getattr(revenue, column) + amount)
        revenue.total += amount
        await self.db.flush()
        if commit:
            await self.db.commit()

    async def _record(
        self,
        user_id: int,
        amount: int,
        tx_type: TransactionType,
        description: str | None,
        ref_type: RefType,
        ref_id: str | int | None,
        balance_after: int | None,
        payment_method: PaymentMethod = PaymentMethod.TOKENS,
        provider_transaction_id: str | None = None,
    ) -> Transaction:
        entry = Transaction(
            user_id=user_id,
            amount=amount,
            balance_after=balance_after,
            type=tx_type.value,
            status=TransactionStatus.COMPLETED.value,
            payment_method=payment_method.value,
            description=description,
            reference_type=ref_type.value,
            reference_id=str(ref_id) if ref_id is not None else None,
            provider_transaction_id=provider_transaction_id,
        )
        self.db.add(entry)
        await self.db.flush()
        await self.db.refresh(entry)
        return entry
