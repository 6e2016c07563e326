"""Payment orchestrators: subscriptions, content unlocks, livestream tickets, tips.

Every orchestrator runs the same steps:

1. pre-check (free, already owned, bad input) and short-circuit;
2. pay on the chosen rail: token debit or a Stars invoice;
3. write the domain row;
4. if that write fails after a token debit, refund the payer;
5. pay the creator their share, pooling the rest as platform revenue; a
   payout that fails twice is logged as owed and does not fail the result;
6. dispatch a notification without waiting for it.

Failures come back as ``PaymentResult.fail``; nothing here raises for a
business error. Stars payments are never refunded by this service: a record
failure after a paid invoice is logged for manual reconciliation.
"""
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from creatorpay.config import settings
from creatorpay.models.user import User
from creatorpay.models.ledger import TransactionType, PaymentMethod, RefType
from creatorpay.models.revenue import RevenueSource
from creatorpay.models.post import ContentPurchase
from creatorpay.models.livestream import LivestreamTicket
from creatorpay.models.notification import NotificationType
from creatorpay.schemas.payments import StarsInvoiceRequest
from creatorpay.services.ledger_service import (
    LedgerService, InsufficientBalance, UserNotFound,
    CREATOR_SHARE_PCT, TIP_SHARE_PCT, LIVESTREAM_FEE_PCT, share_of, fee_of,
)
from creatorpay.services.recorder import TransactionRecorder, RecordWriteFailed
from creatorpay.services.notifier import NotificationDispatcher
from creatorpay.services.access_service import has_current_subscription
from creatorpay.services.results import PaymentResult, PaymentErrorKind
from creatorpay.services.stars_bridge import (
    StarsInvoiceBridge, InvoiceCreationFailed, PaymentCancelled,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Payment:
    """What the pay step took. Plain values, safe to read after a rollback."""
    transaction_id: int
    method: PaymentMethod
    provider_transaction_id: str | None = None


class PaymentService:
    def __init__(
        self,
        db: AsyncSession,
        notifier: NotificationDispatcher | None = None,
        stars: StarsInvoiceBridge | None = None,
    ):
        self.db = db
        self.ledger = LedgerService(db)
        self.recorder = TransactionRecorder(db)
        self.notifier = notifier
        self.stars = stars

    # ── Subscriptions ────────────────────────────────────────────────────────

    async def process_subscription_payment(
        self,
        subscriber_id: int,
        creator_id: int,
        price: int,
        method: PaymentMethod = PaymentMethod.TOKENS,
    ) -> PaymentResult:
        if price < 0:
            return PaymentResult.fail(PaymentErrorKind.INVALID_REQUEST, 'Price cannot be negative')
        if subscriber_id == creator_id:
            return PaymentResult.fail(PaymentErrorKind.INVALID_REQUEST, 'Cannot subscribe to yourself')
        if not await self._user_exists(creator_id):
            return PaymentResult.fail(PaymentErrorKind.NOT_FOUND, 'Creator not found')

        if await has_current_subscription(self.db, subscriber_id, creator_id):
            return PaymentResult.ok()

        # Free tier: no money moves at all
        if price == 0:
            try:
                await self.recorder.upsert_subscription(
                    subscriber_id, creator_id, 0, settings.subscription_days,
                )
            except RecordWriteFailed as e:
                return PaymentResult.fail(PaymentErrorKind.RECORD_WRITE_FAILED, str(e))
            self._notify(creator_id, NotificationType.SUBSCRIPTION, subscriber_id,
                         'subscribed to you!', RefType.USER, subscriber_id)
            return PaymentResult.ok()

        failure, payment = await self._pay(
            method, subscriber_id, creator_id, price,
            f'Subscription to creator {creator_id}', RefType.SUBSCRIPTION, creator_id,
        )
        if failure:
            return failure

        try:
            await self.recorder.upsert_subscription(
                subscriber_id, creator_id, price, settings.subscription_days,
            )
        except RecordWriteFailed as e:
            return await self._compensate(subscriber_id, price, payment, e,
                                          RefType.SUBSCRIPTION, creator_id)

        await self._payout(creator_id, subscriber_id, price, share_of(price, CREATOR_SHARE_PCT),
                           RevenueSource.SUBSCRIPTION, RefType.SUBSCRIPTION, creator_id)
        self._notify(creator_id, NotificationType.SUBSCRIPTION, subscriber_id,
                     'subscribed to you!', RefType.USER, subscriber_id)
        logger.info(f'User {subscriber_id} subscribed to {creator_id} for {price} ({method.value})')
        return PaymentResult.ok(payment.transaction_id)

    # ── Content purchases ────────────────────────────────────────────────────

    async def process_content_purchase(
        self,
        user_id: int,
        post_id: int,
        creator_id: int,
        price: int,
        method: PaymentMethod = PaymentMethod.TOKENS,
    ) -> PaymentResult:
        if price <= 0:
            return PaymentResult.fail(PaymentErrorKind.INVALID_REQUEST, 'Post is not locked')
        if user_id == creator_id:
            return PaymentResult.fail(PaymentErrorKind.INVALID_REQUEST, 'Cannot buy your own post')
        if not await self._user_exists(creator_id):
            return PaymentResult.fail(PaymentErrorKind.NOT_FOUND, 'Creator not found')

        existing = await self.db.scalar(
            select(ContentPurchase.id).where(
                ContentPurchase.user_id == user_id,
                ContentPurchase.post_id == post_id,
            )
        )
        if existing:
            return PaymentResult.fail(PaymentErrorKind.ALREADY_PURCHASED, 'Already purchased')

        failure, payment = await self._pay(
            method, user_id, creator_id, price,
            f'Content unlock for post {post_id}', RefType.POST, post_id,
        )
        if failure:
            return failure

        try:
            await self.recorder.record_content_purchase(user_id, post_id, price)
        except RecordWriteFailed as e:
            return await self._compensate(user_id, price, payment, e, RefType.POST, post_id)

        await self._payout(creator_id, user_id, price, share_of(price, CREATOR_SHARE_PCT),
                           RevenueSource.CONTENT, RefType.POST, post_id)
        self._notify(creator_id, NotificationType.PURCHASE, user_id,
                     'unlocked your post', RefType.POST, post_id)
        logger.info(f'User {user_id} unlocked post {post_id} for {price} ({method.value})')
        return PaymentResult.ok(payment.transaction_id)

    # ── Livestream tickets ───────────────────────────────────────────────────

    async def process_livestream_ticket(
        self,
        user_id: int,
        creator_id: int,
        livestream_id: int,
        price: int,
        method: PaymentMethod = PaymentMethod.TOKENS,
    ) -> PaymentResult:
        # Creators watch their own streams, and free streams need no ticket
        if user_id == creator_id or price <= 0:
            return PaymentResult.ok()
        if not await self._user_exists(creator_id):
            return PaymentResult.fail(PaymentErrorKind.NOT_FOUND, 'Creator not found')

        existing = await self.db.scalar(
            select(LivestreamTicket.id).where(
                LivestreamTicket.livestream_id == livestream_id,
                LivestreamTicket.user_id == user_id,
            )
        )
        if existing:
            return PaymentResult.ok()

        failure, payment = await self._pay(
            method, user_id, creator_id, price,
            f'Livestream ticket {livestream_id}', RefType.LIVESTREAM, livestream_id,
        )
        if failure:
            return failure

        try:
            await self.recorder.record_ticket(livestream_id, user_id, price)
        except RecordWriteFailed as e:
            return await self._compensate(user_id, price, payment, e,
                                          RefType.LIVESTREAM, livestream_id)

        platform_fee = fee_of(price, LIVESTREAM_FEE_PCT)
        await self._payout(creator_id, user_id, price, price - platform_fee,
                           RevenueSource.TICKET, RefType.LIVESTREAM, livestream_id)
        self._notify(creator_id, NotificationType.LIVESTREAM, user_id,
                     f'bought a ticket to your stream for {price} tokens',
                     RefType.LIVESTREAM, livestream_id)
        logger.info(f'User {user_id} bought ticket for stream {livestream_id} ({method.value})')
        return PaymentResult.ok(payment.transaction_id)

    # ── Tips ─────────────────────────────────────────────────────────────────

    async def process_tip(
        self,
        sender_id: int,
        recipient_id: int,
        amount: int,
        method: PaymentMethod = PaymentMethod.TOKENS,
        record: Callable[[], Awaitable[None]] | None = None,
    ) -> PaymentResult:
        """Tip a user. ``record`` writes the row the tip pays for, if any.

        It runs between the pay and payout steps and signals failure with
        RecordWriteFailed, which refunds a token payment like any other
        orchestrator.
        """
        if amount < 1:
            return PaymentResult.fail(PaymentErrorKind.INVALID_REQUEST, 'Tip amount must be at least 1')
        if sender_id == recipient_id:
            return PaymentResult.fail(PaymentErrorKind.INVALID_REQUEST, 'Cannot tip yourself')
        if not await self._user_exists(recipient_id):
            return PaymentResult.fail(PaymentErrorKind.NOT_FOUND, 'Recipient not found')

        failure, payment = await self._pay(
            method, sender_id, recipient_id, amount,
            f'Tip to user {recipient_id}', RefType.USER, recipient_id,
            tx_type=TransactionType.TIP,
        )
        if failure:
            return failure

        if record is not None:
            try:
                await record()
            except RecordWriteFailed as e:
                return await self._compensate(sender_id, amount, payment, e, RefType.USER, recipient_id)

        await self._payout(recipient_id, sender_id, amount, share_of(amount, TIP_SHARE_PCT),
                           RevenueSource.TIP, RefType.USER, sender_id)
        self._notify(recipient_id, NotificationType.TIP, sender_id,
                     f'sent you a {amount} token tip!', RefType.USER, sender_id)
        logger.info(f'User {sender_id} tipped {recipient_id} {amount} ({method.value})')
        return PaymentResult.ok(payment.transaction_id)

    # ── Top-up ───────────────────────────────────────────────────────────────

    async def add_tokens_to_balance(
        self,
        user_id: int,
        amount: int,
        source: TransactionType = TransactionType.PURCHASE,
    ) -> PaymentResult:
        """Credit purchased, bonus or refunded tokens."""
        if source not in (TransactionType.PURCHASE, TransactionType.BONUS, TransactionType.REFUND):
            return PaymentResult.fail(PaymentErrorKind.INVALID_REQUEST, f'Invalid top-up source: {source.value}')
        if amount < 1:
            return PaymentResult.fail(PaymentErrorKind.INVALID_REQUEST, 'Amount must be at least 1')
        try:
            entry = await self.ledger.credit(
                user_id, amount, f'Added {amount} tokens', tx_type=source,
            )
        except UserNotFound as e:
            return PaymentResult.fail(PaymentErrorKind.NOT_FOUND, str(e))
        return PaymentResult.ok(entry.id)

    async def get_user_balance(self, user_id: int) -> int:
        try:
            return await self.ledger.get_balance(user_id)
        except UserNotFound:
            return 0

    # ── Steps ────────────────────────────────────────────────────────────────

    async def _pay(
        self,
        method: PaymentMethod,
        payer_id: int,
        payee_id: int,
        amount: int,
        description: str,
        ref_type: RefType,
        ref_id: int,
        tx_type: TransactionType = TransactionType.PAYMENT,
    ) -> tuple[PaymentResult | None, Payment | None]:
        """Take the money. Returns (failure, None) or (None, payer's transaction)."""
        if method == PaymentMethod.STARS:
            return await self._pay_with_stars(
                payer_id, payee_id, amount, description, ref_type, ref_id,
            )

        try:
            entry = await self.ledger.debit(
                payer_id, amount, description,
                tx_type=tx_type, ref_type=ref_type, ref_id=ref_id,
            )
        except InsufficientBalance as e:
            logger.warning(f'Payment by {payer_id} declined: {e}')
            return PaymentResult.fail(PaymentErrorKind.INSUFFICIENT_BALANCE, 'Insufficient token balance'), None
        except UserNotFound as e:
            return PaymentResult.fail(PaymentErrorKind.NOT_FOUND, str(e)), None
        return None, Payment(entry.id, PaymentMethod.TOKENS)

    async def _pay_with_stars(
        self,
        payer_id: int,
        payee_id: int,
        amount: int,
        description: str,
        ref_type: RefType,
        ref_id: int,
    ) -> tuple[PaymentResult | None, Payment | None]:
        if self.stars is None:
            return PaymentResult.fail(
                PaymentErrorKind.INVOICE_CREATION_FAILED, 'Stars payments are not configured',
            ), None

        request = StarsInvoiceRequest(
            amount=amount,
            user_id=payer_id,
            to_user_id=payee_id,
            reference_type=ref_type.value,
            reference_id=str(ref_id),
            description=description,
        )
        try:
            invoice = await self.stars.pay(request)
        except InvoiceCreationFailed as e:
            logger.warning(f'Stars invoice for {payer_id} not created: {e}')
            return PaymentResult.fail(PaymentErrorKind.INVOICE_CREATION_FAILED, str(e)), None
        except PaymentCancelled as e:
            return PaymentResult.fail(PaymentErrorKind.PAYMENT_CANCELLED, str(e)), None

        try:
            entry = await self.ledger.record_external_payment(
                payer_id, amount, description, invoice.transaction_id,
                ref_type=ref_type, ref_id=ref_id,
            )
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                f'Stars payment {invoice.transaction_id} by {payer_id} paid but not logged: {e}',
                exc_info=True,
            )
            return PaymentResult.fail(PaymentErrorKind.RECORD_WRITE_FAILED, 'Could not record payment'), None
        return None, Payment(entry.id, PaymentMethod.STARS, invoice.transaction_id)

    async def _compensate(
        self,
        payer_id: int,
        amount: int,
        payment: Payment,
        error: RecordWriteFailed,
        ref_type: RefType,
        ref_id: int,
    ) -> PaymentResult:
        """Undo the payment after the domain row failed to save (tokens only)."""
        failed = PaymentResult.fail(PaymentErrorKind.RECORD_WRITE_FAILED, str(error))

        if payment.method == PaymentMethod.STARS:
            logger.error(
                f'Stars payment {payment.provider_transaction_id} by {payer_id} '
                f'not recorded ({ref_type.value} {ref_id}); no automatic refund'
            )
            return failed

        logger.warning(f'Refunding {amount} to {payer_id} after failed {ref_type.value} write')
        try:
            await self.ledger.credit(
                payer_id, amount, f'Refund: {error}',
                tx_type=TransactionType.REFUND, ref_type=ref_type, ref_id=ref_id,
            )
        except (SQLAlchemyError, UserNotFound) as e:
            await self.db.rollback()
            logger.error(f'Refund of {amount} to {payer_id} failed: {e}', exc_info=True)
        return failed

    async def _payout(
        self,
        recipient_id: int,
        payer_id: int,
        gross: int,
        net: int,
        source: RevenueSource,
        ref_type: RefType,
        ref_id: int,
    ) -> bool:
        """Credit the recipient's share and pool the remainder, in one commit.

        The payer's side is already committed when this runs, so a failure
        never reaches the payer. The unit is retried once (a lost race on
        today's platform_revenue row resolves on the second pass); after
        that the share is logged as owed and False is returned.
        """
        error: Exception | None = None
        for attempt in (1, 2):
            try:
                await self._write_payout(recipient_id, payer_id, gross, net, source, ref_type, ref_id)
                return True
            except (SQLAlchemyError, UserNotFound) as e:
                await self.db.rollback()
                logger.warning(f'Payout to {recipient_id} failed (attempt {attempt}): {e}')
                error = e

        logger.error(
            f'Payout owed: {net} of {gross} to {recipient_id} from {payer_id} '
            f'({source.value}, {ref_type.value} {ref_id})',
            exc_info=error,
        )
        return False

    async def _write_payout(
        self,
        recipient_id: int,
        payer_id: int,
        gross: int,
        net: int,
        source: RevenueSource,
        ref_type: RefType,
        ref_id: int,
    ) -> None:
        if net > 0:
            await self.ledger.credit(
                recipient_id, net, f'{source.value} from user {payer_id}',
                ref_type=ref_type, ref_id=ref_id, commit=False,
            )
        await self.recorder.record_earnings(
            recipient_id, gross, net, source,
            source_id=ref_id, from_user_id=payer_id, commit=False,
        )
        await self.ledger.add_platform_revenue(gross - net, source, commit=False)
        await self.db.commit()

    def _notify(
        self,
        user_id: int,
        type: NotificationType,
        from_user_id: int,
        content: str,
        ref_type: RefType,
        ref_id: int,
    ) -> None:
        if self.notifier is not None:
            self.notifier.dispatch(
                user_id, type, from_user_id=from_user_id, content=content,
                reference_type=ref_type.value, reference_id=ref_id,
            )

    async def _user_exists(self, user_id: int) -> bool:
        return await self.db.scalar(select(User.id).where(User.id == user_id)) is not None

