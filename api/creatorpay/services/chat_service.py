"""Paid chat: gifts, tips and pay-per-view messages.

Each money path runs as one unit of work. The message row, the debit, the
receiver's credit, the earnings row and the platform share are flushed on
one session and committed together, or rolled back together.
"""
import logging
from datetime import datetime
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from creatorpay.models.user import User, MessagePreference
from creatorpay.models.chat import Conversation, Gift, Message, MessageType, PPVUnlock
from creatorpay.models.ledger import TransactionType, RefType
from creatorpay.models.revenue import RevenueSource
from creatorpay.models.notification import NotificationType
from creatorpay.services.access_service import is_following, has_current_subscription
from creatorpay.services.ledger_service import (
    LedgerService, InsufficientBalance, UserNotFound, CHAT_CREATOR_PCT,
)
from creatorpay.services.recorder import TransactionRecorder
from creatorpay.services.notifier import NotificationDispatcher
from creatorpay.services.results import ChatResult, PaymentErrorKind

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 100


class MessagingNotAllowed(Exception):
    """Receiver's message settings reject this sender."""
    pass


class ChatService:
    def __init__(self, db: AsyncSession, notifier: NotificationDispatcher | None = None):
        self.db = db
        self.ledger = LedgerService(db)
        self.recorder = TransactionRecorder(db)
        self.notifier = notifier

    async def get_or_create_conversation(self, user1_id: int, user2_id: int) -> Conversation:
        """Find the 1:1 conversation, creating it if needed. Lower id goes first."""
        p1, p2 = (user1_id, user2_id) if user1_id < user2_id else (user2_id, user1_id)
        result = await self.db.execute(
            select(Conversation).where(
                Conversation.participant_1 == p1,
                Conversation.participant_2 == p2,
            )
        )
        conversation = result.scalar_one_or_none()
        if conversation:
            return conversation

        conversation = Conversation(participant_1=p1, participant_2=p2)
        self.db.add(conversation)
        await self.db.commit()
        await self.db.refresh(conversation)
        return conversation

    async def ensure_messaging_allowed(self, conversation_id: int, sender_id: int) -> None:
        """Raise MessagingNotAllowed if the other participant doesn't accept the sender."""
        conversation = await self.db.get(Conversation, conversation_id)
        if not conversation:
            return
        receiver_id = conversation.other_participant(sender_id)
        if receiver_id == sender_id:
            return

        preference = await self.db.scalar(
            select(User.allow_messages_from).where(User.id == receiver_id)
        ) or MessagePreference.EVERYONE.value

        if preference == MessagePreference.NOBODY.value:
            raise MessagingNotAllowed('This user is not accepting new messages.')
        if preference == MessagePreference.FOLLOWERS.value:
            if not await is_following(self.db, sender_id, receiver_id):
                raise MessagingNotAllowed('This user only allows messages from followers.')
        elif preference == MessagePreference.SUBSCRIBERS.value:
            if not await has_current_subscription(self.db, sender_id, receiver_id):
                raise MessagingNotAllowed('This user only allows messages from subscribers.')

    # ── Paid messages ────────────────────────────────────────────────────────

    async def send_gift(self, conversation_id: int, sender_id: int, gift_id: int) -> ChatResult:
        receiver_id, failure = await self._check_sender(conversation_id, sender_id)
        if failure:
            return failure

        gift = await self.db.get(Gift, gift_id)
        if not gift:
            return ChatResult.fail(PaymentErrorKind.NOT_FOUND, 'Gift not found')
        price, name = gift.price, gift.name

        message = Message(
            conversation_id=conversation_id,
            sender_id=sender_id,
            message_type=MessageType.GIFT.value,
            gift_id=gift_id,
        )
        result = await self._send_paid_message(
            conversation_id, sender_id, receiver_id, price, message,
            TransactionType.GIFT, RevenueSource.GIFT, f'🎁 {name}',
        )
        if result.success:
            self._notify(receiver_id, NotificationType.GIFT, sender_id,
                         f'sent you a {name}', result.message_id)
            logger.info(f'User {sender_id} sent gift {gift_id} ({price}) to {receiver_id}')
        return result

    async def send_tip(self, conversation_id: int, sender_id: int, amount: int) -> ChatResult:
        if amount < 1:
            return ChatResult.fail(PaymentErrorKind.INVALID_REQUEST, 'Tip amount must be at least 1')
        receiver_id, failure = await self._check_sender(conversation_id, sender_id)
        if failure:
            return failure

        message = Message(
            conversation_id=conversation_id,
            sender_id=sender_id,
            message_type=MessageType.TIP.value,
            tip_amount=amount,
        )
        result = await self._send_paid_message(
            conversation_id, sender_id, receiver_id, amount, message,
            TransactionType.TIP, RevenueSource.TIP, f'💰 Tip - {amount} tokens',
        )
        if result.success:
            self._notify(receiver_id, NotificationType.TIP, sender_id,
                         f'sent you a {amount} token tip!', result.message_id)
            logger.info(f'User {sender_id} tipped {amount} in conversation {conversation_id}')
        return result

    async def send_ppv_message(
        self,
        conversation_id: int,
        sender_id: int,
        media_url: str,
        price: int,
        thumbnail_url: str | None = None,
    ) -> ChatResult:
        """Post a locked media message. No money moves until someone unlocks it."""
        if price < 1:
            return ChatResult.fail(PaymentErrorKind.INVALID_REQUEST, 'PPV price must be at least 1')
        receiver_id, failure = await self._check_sender(conversation_id, sender_id)
        if failure:
            return failure

        message = Message(
            conversation_id=conversation_id,
            sender_id=sender_id,
            message_type=MessageType.PPV.value,
            media_url=media_url,
            media_thumbnail=thumbnail_url,
            is_ppv=True,
            ppv_price=price,
        )
        try:
            self.db.add(message)
            await self.db.flush()
            message_id = message.id
            await self._touch_conversation(conversation_id, sender_id, f'🔒 PPV - {price} tokens')
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning(f'PPV message in conversation {conversation_id} not saved: {e}')
            return ChatResult.fail(PaymentErrorKind.RECORD_WRITE_FAILED, 'Could not save message')

        self._notify(receiver_id, NotificationType.MESSAGE, sender_id,
                     'sent you a locked message', message_id)
        return ChatResult.sent(message_id)

    async def unlock_ppv(self, message_id: int, user_id: int) -> ChatResult:
        """Pay for a PPV message. A user pays for a given message at most once."""
        message = await self.db.get(Message, message_id)
        if not message or not message.is_ppv or message.is_deleted:
            return ChatResult.fail(PaymentErrorKind.NOT_FOUND, 'Message not found')

        creator_id, price = message.sender_id, message.ppv_price
        if creator_id == user_id:
            return ChatResult.sent(message_id)

        existing = await self.db.scalar(
            select(PPVUnlock.id).where(
                PPVUnlock.message_id == message_id,
                PPVUnlock.user_id == user_id,
            )
        )
        if existing:
            return ChatResult.fail(PaymentErrorKind.ALREADY_UNLOCKED, 'Already unlocked')

        try:
            debit_entry, credited = await self.ledger.transfer_with_split(
                user_id, creator_id, price, CHAT_CREATOR_PCT,
                TransactionType.PPV_UNLOCK, RevenueSource.PPV,
                ref_type=RefType.MESSAGE, ref_id=message_id,
            )
            transaction_id = debit_entry.id
            self.db.add(PPVUnlock(message_id=message_id, user_id=user_id, amount=price))
            await self.db.flush()
            await self.recorder.record_earnings(
                creator_id, price, credited, RevenueSource.PPV,
                source_id=message_id, from_user_id=user_id, commit=False,
            )
            await self.db.commit()
        except InsufficientBalance as e:
            await self.db.rollback()
            logger.warning(f'PPV unlock of {message_id} by {user_id} declined: {e}')
            return ChatResult.fail(PaymentErrorKind.INSUFFICIENT_BALANCE, 'Insufficient balance')
        except UserNotFound as e:
            await self.db.rollback()
            return ChatResult.fail(PaymentErrorKind.NOT_FOUND, str(e))
        except IntegrityError:
            # Lost the race to a concurrent unlock of the same message
            await self.db.rollback()
            return ChatResult.fail(PaymentErrorKind.ALREADY_UNLOCKED, 'Already unlocked')
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f'PPV unlock of {message_id} by {user_id} failed: {e}', exc_info=True)
            return ChatResult.fail(PaymentErrorKind.RECORD_WRITE_FAILED, 'Could not unlock message')

        self._notify(creator_id, NotificationType.PURCHASE, user_id,
                     f'unlocked your message for {price} tokens', message_id)
        logger.info(f'User {user_id} unlocked PPV message {message_id} for {price}')
        return ChatResult.sent(message_id, transaction_id)

    # ── Helpers ──────────────────────────────────────────────────────────────

    async def _check_sender(
        self, conversation_id: int, sender_id: int,
    ) -> tuple[int | None, ChatResult | None]:
        """Returns (receiver_id, None), or (None, failure)."""
        conversation = await self.db.get(Conversation, conversation_id)
        if not conversation:
            return None, ChatResult.fail(PaymentErrorKind.NOT_FOUND, 'Conversation not found')
        if sender_id not in (conversation.participant_1, conversation.participant_2):
            return None, ChatResult.fail(PaymentErrorKind.UNAUTHORIZED, 'Not a participant')
        receiver_id = conversation.other_participant(sender_id)

        try:
            await self.ensure_messaging_allowed(conversation_id, sender_id)
        except MessagingNotAllowed as e:
            return None, ChatResult.fail(PaymentErrorKind.UNAUTHORIZED, str(e))
        return receiver_id, None

    async def _send_paid_message(
        self,
        conversation_id: int,
        sender_id: int,
        receiver_id: int,
        amount: int,
        message: Message,
        tx_type: TransactionType,
        source: RevenueSource,
        preview: str,
    ) -> ChatResult:
        try:
            self.db.add(message)
            await self.db.flush()
            message_id = message.id
            debit_entry, credited = await self.ledger.transfer_with_split(
                sender_id, receiver_id, amount, CHAT_CREATOR_PCT, tx_type, source,
                ref_type=RefType.MESSAGE, ref_id=message_id,
            )
            transaction_id = debit_entry.id
            await self.recorder.record_earnings(
                receiver_id, amount, credited, source,
                source_id=message_id, from_user_id=sender_id, commit=False,
            )
            await self._touch_conversation(conversation_id, sender_id, preview)
            await self.db.commit()
        except InsufficientBalance as e:
            await self.db.rollback()
            logger.warning(f'{source.value} from {sender_id} declined: {e}')
            return ChatResult.fail(PaymentErrorKind.INSUFFICIENT_BALANCE, 'Insufficient balance')
        except UserNotFound as e:
            await self.db.rollback()
            return ChatResult.fail(PaymentErrorKind.NOT_FOUND, str(e))
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f'{source.value} from {sender_id} to {receiver_id} failed: {e}', exc_info=True)
            return ChatResult.fail(PaymentErrorKind.RECORD_WRITE_FAILED, 'Could not send message')
        return ChatResult.sent(message_id, transaction_id)

    async def _touch_conversation(self, conversation_id: int, sender_id: int, preview: str) -> None:
        """Update the preview, bump the receiver's unread count, clear the sender's."""
        conversation = await self.db.get(Conversation, conversation_id)
        conversation.last_message_preview = preview[:PREVIEW_LENGTH]
        conversation.last_message_at = datetime.utcnow()
        if conversation.participant_1 == sender_id:
            conversation.participant_2_unread = (conversation.participant_2_unread or 0) + 1
            conversation.participant_1_unread = 0
        else:
            conversation.participant_1_unread = (conversation.participant_1_unread or 0) + 1
            conversation.participant_2_unread = 0
        await self.db.flush()

    def _notify(
        self,
        user_id: int,
        type: NotificationType,
        from_user_id: int,
        content: str,
        message_id: int | None,
    ) -> None:
        if self.notifier is not None:
            self.notifier.dispatch(
                user_id, type, from_user_id=from_user_id, content=content,
                reference_type=RefType.MESSAGE.value, reference_id=message_id,
            )
