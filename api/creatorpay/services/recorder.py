"""Writes the domain rows and audit records that follow a money movement."""
import logging
from datetime import datetime, timedelta
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from creatorpay.models.subscription import Subscription
from creatorpay.models.post import ContentPurchase
from creatorpay.models.livestream import Livestream, LivestreamMessage, LivestreamTicket
from creatorpay.models.revenue import CreatorEarnings, RevenueSource

logger = logging.getLogger(__name__)


class RecordWriteFailed(Exception):
    """A domain row could not be written after the payment went through."""
    pass


class TransactionRecorder:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def upsert_subscription(
        self,
        subscriber_id: int,
        creator_id: int,
        price_paid: int,
        days: int,
    ) -> Subscription:
        """Create or renew the (subscriber, creator) subscription."""
        expires_at = datetime.utcnow() + timedelta(days=days)
        try:
            result = await self.db.execute(
                select(Subscription).where(
                    Subscription.subscriber_id == subscriber_id,
                    Subscription.creator_id == creator_id,
                )
            )
            subscription = result.scalar_one_or_none()
            if subscription:
                subscription.price_paid = price_paid
                subscription.is_active = True
                subscription.expires_at = expires_at
            else:
                subscription = Subscription(
                    subscriber_id=subscriber_id,
                    creator_id=creator_id,
                    price_paid=price_paid,
                    is_active=True,
                    expires_at=expires_at,
                )
                self.db.add(subscription)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise RecordWriteFailed(f'Could not save subscription: {e}') from e
        return subscription

    async def record_content_purchase(self, user_id: int, post_id: int, amount: int) -> ContentPurchase:
        purchase = ContentPurchase(user_id=user_id, post_id=post_id, amount=amount)
        await self._insert(purchase, 'content purchase')
        return purchase

    async def record_ticket(self, livestream_id: int, user_id: int, amount: int) -> LivestreamTicket:
        ticket = LivestreamTicket(livestream_id=livestream_id, user_id=user_id, amount=amount)
        await self._insert(ticket, 'livestream ticket')
        return ticket

    async def record_livestream_gift(
        self,
        livestream_id: int,
        user_id: int,
        gift_id: int,
        gift_name: str,
        price: int,
    ) -> LivestreamMessage:
        """Post the gift line in the stream chat and add it to the stream total."""
        message = LivestreamMessage(
            livestream_id=livestream_id,
            user_id=user_id,
            content=f'sent {gift_name}',
            message_type='gift',
            gift_id=gift_id,
        )
        try:
            self.db.add(message)
            await self.db.execute(
                update(Livestream)
                .where(Livestream.id == livestream_id)
                .values(total_gifts_received=Livestream.total_gifts_received + price)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning(f'Failed to write gift message for stream {livestream_id}: {e}')
            raise RecordWriteFailed('Could not post gift message') from e
        return message

    async def record_earnings(
        self,
        creator_id: int,
        amount: int,
        net_amount: int,
        source_type: RevenueSource,
        source_id: str | int | None = None,
        from_user_id: int | None = None,
        commit: bool = True,
    ) -> CreatorEarnings:
        """Append to the creator's earnings ledger. platform_fee is the remainder."""
        earnings = CreatorEarnings(
            creator_id=creator_id,
            from_user_id=from_user_id,
            amount=amount,
            platform_fee=amount - net_amount,
            net_amount=net_amount,
            source_type=source_type.value,
            source_id=str(source_id) if source_id is not None else None,
        )
        self.db.add(earnings)
        await self.db.flush()
        if commit:
            await self.db.commit()
        return earnings

    async def _insert(self, row, label: str) -> None:
        try:
            self.db.add(row)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning(f'Failed to write {label}: {e}')
            raise RecordWriteFailed(f'Could not save {label}') from e
