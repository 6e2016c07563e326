from datetime import datetime, timedelta

from creatorpay.models.livestream import Livestream, LivestreamTicket
from creatorpay.models.post import Post, ContentPurchase
from creatorpay.models.subscription import Subscription
from creatorpay.models.user import Follow
from creatorpay.services.access_service import AccessService, Gate, can_view_post


def _post(**kwargs):
    defaults = dict(creator_id=10, visibility='public', is_nsfw=False, unlock_price=0)
    defaults.update(kwargs)
    return Post(**defaults)


def test_own_post_always_visible():
    post = _post(visibility='subscribers', is_nsfw=True, unlock_price=100)
    assert can_view_post(post, 10, False, False, False).can_view


def test_public_free_post():
    decision = can_view_post(_post(), 1, False, False, False)
    assert decision.can_view
    assert decision.gate == Gate.CONTENT


def test_locked_post_needs_purchase():
    post = _post(unlock_price=25)
    locked = can_view_post(post, 1, True, True, False)
    assert not locked.can_view
    assert locked.gate == Gate.PAYWALL
    assert locked.reason == 'Unlock this post for 25 tokens.'
    assert can_view_post(post, 1, False, False, True).can_view


def test_nsfw_needs_subscription_even_when_purchased():
    post = _post(is_nsfw=True, unlock_price=25)
    decision = can_view_post(post, 1, True, False, True)
    assert decision.gate == Gate.SUBSCRIBE
    assert can_view_post(post, 1, False, True, True).can_view


def test_subscribers_only():
    post = _post(visibility='subscribers')
    assert can_view_post(post, 1, True, False, False).gate == Gate.SUBSCRIBE
    assert can_view_post(post, 1, False, True, False).can_view


def test_followers_only_accepts_subscribers():
    post = _post(visibility='followers')
    assert can_view_post(post, 1, False, False, False).gate == Gate.FOLLOW
    assert can_view_post(post, 1, True, False, False).can_view
    assert can_view_post(post, 1, False, True, False).can_view


async def test_get_post_access_reads_relationships(db_session, make_user):
    await make_user(1)
    await make_user(10, is_creator=True)
    followers_post = Post(creator_id=10, visibility='followers')
    paid_post = Post(creator_id=10, unlock_price=5)
    db_session.add_all([followers_post, paid_post])
    await db_session.commit()
    service = AccessService(db_session)

    assert (await service.get_post_access(followers_post.id, 1)).gate == Gate.FOLLOW
    assert (await service.get_post_access(paid_post.id, 1)).gate == Gate.PAYWALL
    assert await service.get_post_access(9999, 1) is None

    db_session.add(Follow(follower_id=1, following_id=10))
    db_session.add(ContentPurchase(user_id=1, post_id=paid_post.id, amount=5))
    await db_session.commit()

    assert (await service.get_post_access(followers_post.id, 1)).can_view
    assert (await service.get_post_access(paid_post.id, 1)).can_view


async def test_livestream_access_missing_stream(db_session):
    access = await AccessService(db_session).get_livestream_access(None, 1)
    assert not access.can_watch
    assert access.reason == 'This stream is no longer available.'


async def test_livestream_access_ticket_and_subscription(db_session, make_user):
    await make_user(1)
    await make_user(10, is_creator=True)
    stream = Livestream(creator_id=10, title='Late show', is_private=True, entry_price=20, channel_name='late')
    db_session.add(stream)
    await db_session.commit()
    service = AccessService(db_session)

    access = await service.get_livestream_access(stream.id, 1)
    assert not access.can_watch
    assert access.requires_subscription and access.requires_ticket
    assert access.reason == 'Subscribe to watch this stream.'
    assert access.channel_name is None

    db_session.add(Subscription(
        subscriber_id=1, creator_id=10, is_active=True,
        expires_at=datetime.utcnow() + timedelta(days=30),
    ))
    await db_session.commit()
    access = await service.get_livestream_access(stream.id, 1)
    assert access.has_subscription
    assert access.reason == 'Unlock this stream for 20 tokens.'

    db_session.add(LivestreamTicket(livestream_id=stream.id, user_id=1, amount=20))
    await db_session.commit()
    access = await service.get_livestream_access(stream.id, 1)
    assert access.can_watch
    assert access.has_ticket
    assert access.reason is None
    assert access.channel_name == 'late'

    owner = await service.get_livestream_access(stream, 10)
    assert owner.can_watch and owner.is_creator
    assert not owner.requires_ticket
    assert owner.has_subscription


async def test_livestream_not_live(db_session, make_user):
    await make_user(1)
    await make_user(10, is_creator=True)
    stream = Livestream(creator_id=10, title='Done', status='ended')
    db_session.add(stream)
    await db_session.commit()

    service = AccessService(db_session)
    access = await service.get_livestream_access(stream.id, 1)
    assert not access.can_watch
    assert access.reason == 'This stream is not live right now.'
    assert (await service.get_livestream_access(stream.id, 10)).can_watch


async def test_expired_subscription_does_not_count(db_session, make_user):
    await make_user(1)
    await make_user(10, is_creator=True)
    post = Post(creator_id=10, visibility='subscribers')
    db_session.add(post)
    db_session.add(Subscription(
        subscriber_id=1, creator_id=10, is_active=True,
        expires_at=datetime.utcnow() - timedelta(days=1),
    ))
    await db_session.commit()

    decision = await AccessService(db_session).get_post_access(post.id, 1)
    assert decision.gate == Gate.SUBSCRIBE
