import asyncio
import logging

from sqlalchemy import select, func
from sqlalchemy.exc import OperationalError

from creatorpay.models.ledger import Transaction, TransactionType, PaymentMethod
from creatorpay.models.livestream import Livestream
from creatorpay.models.notification import Notification
from creatorpay.models.post import Post, ContentPurchase
from creatorpay.models.revenue import CreatorEarnings, PlatformRevenue
from creatorpay.models.subscription import Subscription
from creatorpay.services.ledger_service import LedgerService
from creatorpay.services.payment_service import PaymentService
from creatorpay.services.recorder import RecordWriteFailed
from creatorpay.services.results import PaymentErrorKind


async def _balance(db, user_id):
    return await LedgerService(db).get_balance(user_id)


async def _count(db, model, *where):
    return await db.scalar(select(func.count()).select_from(model).where(*where))


async def _platform_total(db):
    return await db.scalar(select(func.coalesce(func.sum(PlatformRevenue.total), 0)))


async def _make_post(db, creator_id, price):
    post = Post(creator_id=creator_id, content='locked', unlock_price=price)
    db.add(post)
    await db.commit()
    return post.id


async def _make_stream(db, creator_id, price):
    stream = Livestream(creator_id=creator_id, title='Live', entry_price=price, channel_name='ch-1')
    db.add(stream)
    await db.commit()
    return stream.id


async def _fail_write(*args, **kwargs):
    raise RecordWriteFailed('Could not save row')


async def _db_down(*args, **kwargs):
    raise OperationalError('UPDATE', {}, Exception('database is locked'))


# ── Tips ─────────────────────────────────────────────────────────────────────

async def test_tip_scenario(db_session, make_user, notifier):
    await make_user(1, balance=100)
    await make_user(2, balance=0)
    service = PaymentService(db_session, notifier=notifier)

    result = await service.process_tip(1, 2, 30)
    await notifier.drain()

    assert result.success
    assert result.transaction_id is not None
    assert await _balance(db_session, 1) == 70
    assert await _balance(db_session, 2) == 28

    entry = await db_session.get(Transaction, result.transaction_id)
    assert entry.amount == -30
    assert entry.type == TransactionType.TIP.value

    notification = (await db_session.execute(
        select(Notification).where(Notification.user_id == 2)
    )).scalar_one()
    assert notification.type == 'tip'
    assert notification.from_user_id == 1
    assert '30' in notification.content


async def test_tip_conserves_tokens(db_session, make_user):
    await make_user(1, balance=100)
    await make_user(2, balance=0)

    await PaymentService(db_session).process_tip(1, 2, 37)

    moved = (await _balance(db_session, 1) - 100) + await _balance(db_session, 2)
    assert moved + await _platform_total(db_session) == 0


async def test_tip_validation(db_session, make_user):
    await make_user(1, balance=100)
    service = PaymentService(db_session)

    assert (await service.process_tip(1, 1, 10)).error_kind == PaymentErrorKind.INVALID_REQUEST
    assert (await service.process_tip(1, 2, 0)).error_kind == PaymentErrorKind.INVALID_REQUEST
    assert (await service.process_tip(1, 404, 10)).error_kind == PaymentErrorKind.NOT_FOUND
    assert await _balance(db_session, 1) == 100


async def test_insufficient_balance_moves_nothing(db_session, make_user, notifier):
    await make_user(1, balance=5)
    await make_user(2, balance=0)

    result = await PaymentService(db_session, notifier=notifier).process_tip(1, 2, 30)
    await notifier.drain()

    assert not result.success
    assert result.error_kind == PaymentErrorKind.INSUFFICIENT_BALANCE
    assert result.error == 'Insufficient token balance'
    assert await _balance(db_session, 1) == 5
    assert await _balance(db_session, 2) == 0
    assert await _count(db_session, Transaction) == 0
    assert await _count(db_session, Notification) == 0


# ── Subscriptions ────────────────────────────────────────────────────────────

async def test_subscription_pays_creator_ninety_percent(db_session, make_user):
    await make_user(1, balance=100)
    await make_user(2, is_creator=True)

    result = await PaymentService(db_session).process_subscription_payment(1, 2, 50)

    assert result.success
    assert await _balance(db_session, 1) == 50
    assert await _balance(db_session, 2) == 45
    assert await _platform_total(db_session) == 5

    subscription = (await db_session.execute(select(Subscription))).scalar_one()
    assert subscription.price_paid == 50
    assert subscription.is_current()

    earnings = (await db_session.execute(select(CreatorEarnings))).scalar_one()
    assert (earnings.amount, earnings.platform_fee, earnings.net_amount) == (50, 5, 45)
    assert earnings.source_type == 'subscription'


async def test_current_subscription_short_circuits(db_session, make_user):
    await make_user(1, balance=100)
    await make_user(2, is_creator=True)
    service = PaymentService(db_session)

    await service.process_subscription_payment(1, 2, 50)
    again = await service.process_subscription_payment(1, 2, 50)

    assert again.success
    assert await _balance(db_session, 1) == 50
    assert await _count(db_session, Transaction, Transaction.user_id == 1) == 1


async def test_free_subscription_moves_no_money(db_session, make_user):
    await make_user(1, balance=10)
    await make_user(2, is_creator=True)

    result = await PaymentService(db_session).process_subscription_payment(1, 2, 0)

    assert result.success
    assert await _balance(db_session, 1) == 10
    assert await _count(db_session, Transaction) == 0
    assert await _count(db_session, Subscription) == 1


async def test_subscription_refunded_when_record_fails(db_session, make_user, monkeypatch):
    await make_user(1, balance=100)
    await make_user(2, is_creator=True)
    service = PaymentService(db_session)
    monkeypatch.setattr(service.recorder, 'upsert_subscription', _fail_write)

    result = await service.process_subscription_payment(1, 2, 50)

    assert not result.success
    assert result.error_kind == PaymentErrorKind.RECORD_WRITE_FAILED
    assert await _balance(db_session, 1) == 100
    assert await _balance(db_session, 2) == 0
    refund = (await db_session.execute(
        select(Transaction).where(Transaction.type == TransactionType.REFUND.value)
    )).scalar_one()
    assert refund.amount == 50


# ── Content ──────────────────────────────────────────────────────────────────

async def test_content_purchase_double_submit(db_session, make_user):
    await make_user(1, balance=100)
    await make_user(2, is_creator=True)
    post_id = await _make_post(db_session, 2, 40)
    service = PaymentService(db_session)

    first = await service.process_content_purchase(1, post_id, 2, 40)
    second = await service.process_content_purchase(1, post_id, 2, 40)

    assert first.success
    assert second.error_kind == PaymentErrorKind.ALREADY_PURCHASED
    assert await _balance(db_session, 1) == 60
    assert await _balance(db_session, 2) == 36
    assert await _count(db_session, ContentPurchase) == 1


async def test_second_purchase_cannot_overspend(db_session, make_user):
    await make_user(1, balance=40)
    await make_user(2, is_creator=True)
    first_post = await _make_post(db_session, 2, 40)
    second_post = await _make_post(db_session, 2, 40)
    service = PaymentService(db_session)

    assert (await service.process_content_purchase(1, first_post, 2, 40)).success
    second = await service.process_content_purchase(1, second_post, 2, 40)

    assert second.error_kind == PaymentErrorKind.INSUFFICIENT_BALANCE
    assert await _balance(db_session, 1) == 0
    assert await _count(db_session, ContentPurchase) == 1


async def test_content_refunded_when_record_fails(db_session, make_user, monkeypatch):
    await make_user(1, balance=100)
    await make_user(2, is_creator=True)
    post_id = await _make_post(db_session, 2, 40)
    service = PaymentService(db_session)
    monkeypatch.setattr(service.recorder, 'record_content_purchase', _fail_write)

    result = await service.process_content_purchase(1, post_id, 2, 40)

    assert result.error_kind == PaymentErrorKind.RECORD_WRITE_FAILED
    assert await _balance(db_session, 1) == 100
    assert await _balance(db_session, 2) == 0
    assert await _count(db_session, CreatorEarnings) == 0


async def test_free_post_is_not_for_sale(db_session, make_user):
    await make_user(1, balance=100)
    await make_user(2, is_creator=True)

    result = await PaymentService(db_session).process_content_purchase(1, 1, 2, 0)

    assert result.error_kind == PaymentErrorKind.INVALID_REQUEST


# ── Livestream tickets ───────────────────────────────────────────────────────

async def test_ticket_fee_split(db_session, make_user, notifier):
    await make_user(1, balance=200)
    await make_user(2, is_creator=True)
    stream_id = await _make_stream(db_session, 2, 99)

    result = await PaymentService(db_session, notifier=notifier).process_livestream_ticket(1, 2, stream_id, 99)
    await notifier.drain()

    assert result.success
    assert await _balance(db_session, 1) == 101
    assert await _balance(db_session, 2) == 89
    earnings = (await db_session.execute(select(CreatorEarnings))).scalar_one()
    assert (earnings.amount, earnings.platform_fee, earnings.net_amount) == (99, 10, 89)
    assert earnings.source_type == 'ticket'
    assert await _count(db_session, Notification, Notification.user_id == 2) == 1


async def test_ticket_short_circuits(db_session, make_user):
    await make_user(1, balance=200)
    await make_user(2, is_creator=True)
    paid_stream = await _make_stream(db_session, 2, 50)
    free_stream = await _make_stream(db_session, 2, 0)
    service = PaymentService(db_session)

    assert (await service.process_livestream_ticket(2, 2, paid_stream, 50)).success
    assert (await service.process_livestream_ticket(1, 2, free_stream, 0)).success
    assert (await service.process_livestream_ticket(1, 2, paid_stream, 50)).success
    assert (await service.process_livestream_ticket(1, 2, paid_stream, 50)).success

    assert await _balance(db_session, 1) == 150


# ── Stars rail ───────────────────────────────────────────────────────────────

async def test_stars_subscription(db_session, make_user, stars_factory):
    await make_user(1, balance=0)
    await make_user(2, is_creator=True)
    stars, host, api = stars_factory()

    result = await PaymentService(db_session, stars=stars).process_subscription_payment(
        1, 2, 50, PaymentMethod.STARS,
    )

    assert result.success
    assert [call[0] for call in api.calls] == ['create-stars-invoice', 'confirm-stars-payment']
    assert api.calls[0][1]['reference_type'] == 'subscription'
    assert host.opened == ['https://t.me/invoice/abc']
    assert await _balance(db_session, 1) == 0
    assert await _balance(db_session, 2) == 45

    entry = await db_session.get(Transaction, result.transaction_id)
    assert entry.payment_method == 'stars'
    assert entry.provider_transaction_id == 'stars-tx-1'
    assert entry.balance_after is None


async def test_stars_record_failure_is_not_refunded(db_session, make_user, stars_factory, monkeypatch):
    await make_user(1, balance=0)
    await make_user(2, is_creator=True)
    post_id = await _make_post(db_session, 2, 40)
    stars, _, _ = stars_factory()
    service = PaymentService(db_session, stars=stars)
    monkeypatch.setattr(service.recorder, 'record_content_purchase', _fail_write)

    result = await service.process_content_purchase(1, post_id, 2, 40, PaymentMethod.STARS)

    assert result.error_kind == PaymentErrorKind.RECORD_WRITE_FAILED
    assert await _count(db_session, Transaction, Transaction.type == TransactionType.REFUND.value) == 0
    assert await _balance(db_session, 1) == 0
    assert await _balance(db_session, 2) == 0


async def test_stars_cancelled_invoice(db_session, make_user, stars_factory):
    await make_user(1, balance=0)
    await make_user(2, balance=0)
    stars, _, api = stars_factory(invoice_status='cancelled')

    result = await PaymentService(db_session, stars=stars).process_tip(1, 2, 10, PaymentMethod.STARS)

    assert result.error_kind == PaymentErrorKind.PAYMENT_CANCELLED
    assert [call[0] for call in api.calls] == ['create-stars-invoice']
    assert await _count(db_session, Transaction) == 0


async def test_stars_invoice_creation_failed(db_session, make_user, stars_factory):
    await make_user(1, balance=0)
    await make_user(2, balance=0)
    stars, host, _ = stars_factory(create_status=500, create_body={'error': 'Bot token missing'})

    result = await PaymentService(db_session, stars=stars).process_tip(1, 2, 10, PaymentMethod.STARS)

    assert result.error_kind == PaymentErrorKind.INVOICE_CREATION_FAILED
    assert result.message == 'Bot token missing'
    assert host.opened == []


async def test_stars_without_bridge(db_session, make_user):
    await make_user(1, balance=0)
    await make_user(2, balance=0)

    result = await PaymentService(db_session).process_tip(1, 2, 10, PaymentMethod.STARS)

    assert result.error_kind == PaymentErrorKind.INVOICE_CREATION_FAILED


# ── Top-up ───────────────────────────────────────────────────────────────────

async def test_add_tokens(db_session, make_user):
    await make_user(1, balance=0)
    service = PaymentService(db_session)

    result = await service.add_tokens_to_balance(1, 250)
    assert result.success
    assert await service.get_user_balance(1) == 250

    bad = await service.add_tokens_to_balance(1, 10, TransactionType.TIP)
    assert bad.error_kind == PaymentErrorKind.INVALID_REQUEST
    assert await service.get_user_balance(404) == 0


# ── Failure paths ────────────────────────────────────────────────────────────

async def test_concurrent_content_purchase_spends_once(session_factory, db_session, make_user):
    await make_user(1, balance=40)
    await make_user(2, is_creator=True)
    post_id = await _make_post(db_session, 2, 40)

    async def buy():
        async with session_factory() as session:
            return await PaymentService(session).process_content_purchase(1, post_id, 2, 40)

    results = await asyncio.gather(buy(), buy())

    assert sorted(r.success for r in results) == [False, True]
    declined = next(r for r in results if not r.success)
    assert declined.error_kind in (PaymentErrorKind.INSUFFICIENT_BALANCE, PaymentErrorKind.ALREADY_PURCHASED)
    assert await _balance(db_session, 1) == 0
    assert await _balance(db_session, 2) == 36
    assert await _count(db_session, ContentPurchase) == 1


async def test_ticket_refunded_when_record_fails(db_session, make_user, monkeypatch):
    await make_user(1, balance=200)
    await make_user(2, is_creator=True)
    stream_id = await _make_stream(db_session, 2, 99)
    service = PaymentService(db_session)
    monkeypatch.setattr(service.recorder, 'record_ticket', _fail_write)

    result = await service.process_livestream_ticket(1, 2, stream_id, 99)

    assert result.error_kind == PaymentErrorKind.RECORD_WRITE_FAILED
    assert await _balance(db_session, 1) == 200
    assert await _balance(db_session, 2) == 0
    refund = (await db_session.execute(
        select(Transaction).where(Transaction.type == TransactionType.REFUND.value)
    )).scalar_one()
    assert refund.amount == 99
    assert refund.reference_type == 'livestream'
    assert refund.reference_id == str(stream_id)


async def test_failed_refund_is_logged_not_raised(db_session, make_user, monkeypatch, caplog):
    await make_user(1, balance=100)
    await make_user(2, is_creator=True)
    post_id = await _make_post(db_session, 2, 40)
    service = PaymentService(db_session)
    monkeypatch.setattr(service.recorder, 'record_content_purchase', _fail_write)
    monkeypatch.setattr(service.ledger, 'credit', _db_down)

    with caplog.at_level(logging.ERROR):
        result = await service.process_content_purchase(1, post_id, 2, 40)

    assert result.error_kind == PaymentErrorKind.RECORD_WRITE_FAILED
    assert await _balance(db_session, 1) == 60
    assert await _count(db_session, Transaction, Transaction.type == TransactionType.REFUND.value) == 0
    assert 'Refund of 40 to 1 failed' in caplog.text


async def test_payout_failure_keeps_payer_result(db_session, make_user, monkeypatch, caplog):
    await make_user(1, balance=100)
    await make_user(2, balance=0)
    service = PaymentService(db_session)
    monkeypatch.setattr(service.ledger, 'add_platform_revenue', _db_down)

    with caplog.at_level(logging.ERROR):
        result = await service.process_tip(1, 2, 30)

    assert result.success
    assert await _balance(db_session, 1) == 70
    assert await _balance(db_session, 2) == 0
    assert await _count(db_session, CreatorEarnings) == 0
    assert 'Payout owed: 28 of 30 to 2 from 1' in caplog.text


async def test_payout_is_retried_once(db_session, make_user, monkeypatch):
    await make_user(1, balance=100)
    await make_user(2, balance=0)
    service = PaymentService(db_session)
    add_platform_revenue = service.ledger.add_platform_revenue
    calls = []

    async def flaky(*args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            await _db_down()
        return await add_platform_revenue(*args, **kwargs)

    monkeypatch.setattr(service.ledger, 'add_platform_revenue', flaky)

    result = await service.process_tip(1, 2, 30)

    assert result.success
    assert len(calls) == 2
    assert await _balance(db_session, 1) == 70
    assert await _balance(db_session, 2) == 28
    assert await _count(db_session, CreatorEarnings) == 1
    assert await _platform_total(db_session) == 2
