import pytest
from sqlalchemy import select

from creatorpay.models.ledger import Transaction, TransactionType, RefType
from creatorpay.models.revenue import PlatformRevenue, RevenueSource
from creatorpay.services.ledger_service import (
    LedgerService, InsufficientBalance, UserNotFound, share_of, fee_of,
)


def test_split_rounding():
    assert share_of(30, 95) == 28
    assert share_of(99, 90) == 89
    assert fee_of(99, 10) == 10
    assert fee_of(100, 10) == 10
    assert fee_of(1, 10) == 1


async def test_debit_records_negative_entry(db_session, make_user):
    await make_user(1, balance=100)
    ledger = LedgerService(db_session)

    entry = await ledger.debit(1, 40, 'Test debit', ref_type=RefType.POST, ref_id=7)

    assert await ledger.get_balance(1) == 60
    assert entry.amount == -40
    assert entry.balance_after == 60
    assert entry.type == TransactionType.PAYMENT.value
    assert entry.reference_type == 'post'
    assert entry.reference_id == '7'


async def test_debit_never_overspends(db_session, make_user):
    await make_user(1, balance=50)
    ledger = LedgerService(db_session)

    await ledger.debit(1, 50, 'First')
    with pytest.raises(InsufficientBalance):
        await ledger.debit(1, 50, 'Second')

    assert await ledger.get_balance(1) == 0
    count = len((await db_session.execute(select(Transaction))).scalars().all())
    assert count == 1


async def test_debit_unknown_user(db_session):
    with pytest.raises(UserNotFound):
        await LedgerService(db_session).debit(999, 10, 'Nobody')


async def test_non_positive_amounts_rejected(db_session, make_user):
    await make_user(1, balance=10)
    ledger = LedgerService(db_session)

    with pytest.raises(ValueError):
        await ledger.debit(1, 0, 'Zero')
    with pytest.raises(ValueError):
        await ledger.credit(1, -5, 'Negative')


async def test_credit_is_not_idempotent(db_session, make_user):
    await make_user(2, balance=0)
    ledger = LedgerService(db_session)

    await ledger.credit(2, 25, 'Payout')
    await ledger.credit(2, 25, 'Payout')

    assert await ledger.get_balance(2) == 50


async def test_transfer_with_split_pools_remainder(db_session, make_user):
    await make_user(1, balance=100)
    await make_user(2, balance=0)
    ledger = LedgerService(db_session)

    debit_entry, credited = await ledger.transfer_with_split(
        1, 2, 55, 90, TransactionType.GIFT, RevenueSource.GIFT,
    )
    await db_session.commit()

    assert credited == 49
    assert debit_entry.amount == -55
    assert await ledger.get_balance(1) == 45
    assert await ledger.get_balance(2) == 49
    revenue = (await db_session.execute(select(PlatformRevenue))).scalar_one()
    assert revenue.gift_revenue == 6
    assert revenue.total == 6


async def test_transfer_rolls_back_as_a_unit(db_session, make_user):
    await make_user(1, balance=10)
    await make_user(2, balance=0)
    ledger = LedgerService(db_session)

    with pytest.raises(InsufficientBalance):
        await ledger.transfer_with_split(1, 2, 20, 90, TransactionType.TIP, RevenueSource.TIP)
    await db_session.rollback()

    assert await ledger.get_balance(1) == 10
    assert await ledger.get_balance(2) == 0


async def test_history_newest_first_and_filtered(db_session, make_user):
    await make_user(1, balance=100)
    ledger = LedgerService(db_session)
    await ledger.debit(1, 10, 'One')
    await ledger.credit(1, 5, 'Two', tx_type=TransactionType.BONUS)
    await ledger.debit(1, 1, 'Three')

    history = await ledger.get_history(1)
    assert [e.description for e in history] == ['Three', 'Two', 'One']

    bonuses = await ledger.get_history(1, tx_type='bonus')
    assert [e.description for e in bonuses] == ['Two']

    page = await ledger.get_history(1, limit=1, offset=1)
    assert [e.description for e in page] == ['Two']


async def test_external_payment_leaves_balance(db_session, make_user):
    await make_user(1, balance=10)
    ledger = LedgerService(db_session)

    entry = await ledger.record_external_payment(1, 500, 'Stars', 'prov-1')

    assert await ledger.get_balance(1) == 10
    assert entry.payment_method == 'stars'
    assert entry.balance_after is None
    assert entry.provider_transaction_id == 'prov-1'
