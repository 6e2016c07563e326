"""Read-only access gates for posts and livestreams."""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from creatorpay.models.user import Follow
from creatorpay.models.subscription import Subscription
from creatorpay.models.post import Post, ContentPurchase, Visibility
from creatorpay.models.livestream import Livestream, LivestreamTicket, LivestreamStatus


class Gate(str, Enum):
    CONTENT = 'content'      # show it
    PAYWALL = 'paywall'      # offer the unlock purchase
    SUBSCRIBE = 'subscribe'  # offer a subscription
    FOLLOW = 'follow'        # ask to follow


@dataclass(frozen=True)
class AccessDecision:
    can_view: bool
    gate: Gate
    reason: str | None = None


@dataclass(frozen=True)
class LivestreamAccess:
    can_watch: bool
    requires_ticket: bool
    has_ticket: bool
    requires_subscription: bool
    has_subscription: bool
    entry_price: int
    is_creator: bool
    channel_name: str | None = None
    reason: str | None = None


def can_view_post(
    post: Post,
    user_id: int,
    is_following: bool,
    is_subscribed: bool,
    is_purchased: bool,
) -> AccessDecision:
    """Decide what a viewer sees for a post. Rules apply in order."""
    if post.creator_id == user_id:
        return AccessDecision(True, Gate.CONTENT)

    unlock_price = post.unlock_price or 0
    if post.visibility == Visibility.PUBLIC.value and not post.is_nsfw and unlock_price == 0:
        return AccessDecision(True, Gate.CONTENT)

    if unlock_price > 0 and not is_purchased:
        return AccessDecision(False, Gate.PAYWALL, f'Unlock this post for {unlock_price} tokens.')

    if post.is_nsfw and not is_subscribed:
        return AccessDecision(False, Gate.SUBSCRIBE, 'Subscribe to view this post.')

    if post.visibility == Visibility.SUBSCRIBERS.value and not is_subscribed:
        return AccessDecision(False, Gate.SUBSCRIBE, 'This post is for subscribers only.')

    # Subscribers count as followers here
    if post.visibility == Visibility.FOLLOWERS.value and not (is_following or is_subscribed):
        return AccessDecision(False, Gate.FOLLOW, 'Follow this creator to view this post.')

    return AccessDecision(True, Gate.CONTENT)


async def is_following(db: AsyncSession, follower_id: int, following_id: int) -> bool:
    result = await db.execute(
        select(Follow.id).where(
            and_(Follow.follower_id == follower_id, Follow.following_id == following_id)
        )
    )
    return result.scalar_one_or_none() is not None


async def has_current_subscription(db: AsyncSession, subscriber_id: int, creator_id: int) -> bool:
    result = await db.execute(
        select(Subscription).where(
            Subscription.subscriber_id == subscriber_id,
            Subscription.creator_id == creator_id,
        )
    )
    subscription = result.scalar_one_or_none()
    return subscription is not None and subscription.is_current(datetime.utcnow())


class AccessService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_post_access(self, post_id: int, user_id: int) -> AccessDecision | None:
        """None when the post doesn't exist."""
        post = await self.db.get(Post, post_id)
        if not post:
            return None
        if post.creator_id == user_id:
            return can_view_post(post, user_id, False, False, False)

        following = await is_following(self.db, user_id, post.creator_id)
        subscribed = await has_current_subscription(self.db, user_id, post.creator_id)
        purchased = await self.db.scalar(
            select(ContentPurchase.id).where(
                ContentPurchase.user_id == user_id,
                ContentPurchase.post_id == post_id,
            )
        ) is not None
        return can_view_post(post, user_id, following, subscribed, purchased)

    async def get_livestream_access(
        self,
        stream_or_id: Livestream | int | None,
        user_id: int,
    ) -> LivestreamAccess:
        if isinstance(stream_or_id, int):
            stream = await self.db.get(Livestream, stream_or_id)
        else:
            stream = stream_or_id

        if stream is None:
            return LivestreamAccess(
                can_watch=False,
                requires_ticket=False,
                has_ticket=False,
                requires_subscription=False,
                has_subscription=False,
                entry_price=0,
                is_creator=False,
                reason='This stream is no longer available.',
            )

        is_creator = stream.creator_id == user_id
        is_live = stream.status == LivestreamStatus.LIVE.value
        entry_price = stream.entry_price or 0
        requires_subscription = bool(stream.is_private) and not is_creator
        requires_ticket = entry_price > 0 and not is_creator

        has_subscription = False
        if requires_subscription:
            has_subscription = await has_current_subscription(self.db, user_id, stream.creator_id)

        has_ticket = False
        if requires_ticket:
            has_ticket = await self.db.scalar(
                select(LivestreamTicket.id).where(
                    LivestreamTicket.livestream_id == stream.id,
                    LivestreamTicket.user_id == user_id,
                )
            ) is not None

        reason = None
        if not is_live and not is_creator:
            reason = 'This stream is not live right now.'
        elif requires_subscription and not has_subscription:
            reason = 'Subscribe to watch this stream.'
        elif requires_ticket and not has_ticket:
            reason = f'Unlock this stream for {entry_price} tokens.'

        if is_creator:
            can_watch = True
        else:
            can_watch = (
                is_live
                and (not requires_subscription or has_subscription)
                and (not requires_ticket or has_ticket)
            )

        return LivestreamAccess(
            can_watch=can_watch,
            requires_ticket=requires_ticket,
            has_ticket=has_ticket,
            requires_subscription=requires_subscription,
            has_subscription=has_subscription or is_creator,
            entry_price=entry_price,
            is_creator=is_creator,
            channel_name=stream.channel_name if can_watch else None,
            reason=reason,
        )
