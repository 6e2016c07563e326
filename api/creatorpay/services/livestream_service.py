"""Livestream entry and gifting, on top of the payment orchestrators."""
import logging
from sqlalchemy.ext.asyncio import AsyncSession

from creatorpay.models.chat import Gift
from creatorpay.models.ledger import PaymentMethod
from creatorpay.models.livestream import Livestream
from creatorpay.services.access_service import AccessService, LivestreamAccess
from creatorpay.services.notifier import NotificationDispatcher
from creatorpay.services.payment_service import PaymentService
from creatorpay.services.results import ChatResult, PaymentResult, PaymentErrorKind
from creatorpay.services.stars_bridge import StarsInvoiceBridge

logger = logging.getLogger(__name__)


class LivestreamService:
    def __init__(
        self,
        db: AsyncSession,
        notifier: NotificationDispatcher | None = None,
        stars: StarsInvoiceBridge | None = None,
    ):
        self.db = db
        self.payments = PaymentService(db, notifier=notifier, stars=stars)
        self.access = AccessService(db)

    async def get_livestream_access(self, stream_or_id: Livestream | int | None, user_id: int) -> LivestreamAccess:
        return await self.access.get_livestream_access(stream_or_id, user_id)

    async def purchase_livestream_ticket(
        self,
        livestream_id: int,
        user_id: int,
        method: PaymentMethod = PaymentMethod.TOKENS,
    ) -> PaymentResult:
        stream = await self.db.get(Livestream, livestream_id)
        if not stream:
            return PaymentResult.fail(PaymentErrorKind.NOT_FOUND, 'Livestream not found.')

        return await self.payments.process_livestream_ticket(
            user_id, stream.creator_id, stream.id, stream.entry_price or 0, method,
        )

    async def send_livestream_gift(
        self,
        livestream_id: int,
        user_id: int,
        gift_id: int,
        method: PaymentMethod = PaymentMethod.STARS,
    ) -> ChatResult:
        """Pay for a gift as a tip to the creator, posting it in the stream chat.

        The chat line is the tip's record step: if it cannot be written, a
        token payment is refunded and the creator is not paid.
        """
        stream = await self.db.get(Livestream, livestream_id)
        if not stream:
            return ChatResult.fail(PaymentErrorKind.NOT_FOUND, 'Stream not found')
        gift = await self.db.get(Gift, gift_id)
        if not gift:
            return ChatResult.fail(PaymentErrorKind.NOT_FOUND, 'Gift not found')
        creator_id, price, name = stream.creator_id, gift.price, gift.name

        posted: list[int] = []

        async def post_gift_message() -> None:
            message = await self.payments.recorder.record_livestream_gift(
                livestream_id, user_id, gift_id, name, price,
            )
            posted.append(message.id)

        paid = await self.payments.process_tip(user_id, creator_id, price, method, record=post_gift_message)
        if not paid.success:
            return ChatResult.fail(paid.error_kind, paid.message or 'Gift payment failed')

        logger.info(f'User {user_id} sent gift {gift_id} on stream {livestream_id}')
        return ChatResult.sent(posted[0], paid.transaction_id)
