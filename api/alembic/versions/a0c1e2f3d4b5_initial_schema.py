"""initial schema: users, ledger, payments, chat, livestreams, notifications

Revision ID: a0c1e2f3d4b5
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a0c1e2f3d4b5'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column('username', sa.String(64), nullable=True),
        sa.Column('first_name', sa.String(100), nullable=True),
        sa.Column('balance', sa.BigInteger(), server_default='0', nullable=False),
        sa.Column('is_creator', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('subscription_price', sa.Integer(), server_default='0', nullable=False),
        sa.Column('allow_messages_from', sa.String(20), server_default='everyone', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('balance >= 0', name='ck_users_balance_non_negative'),
    )

    op.create_table(
        'follows',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('follower_id', sa.BigInteger(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('following_id', sa.BigInteger(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('follower_id', 'following_id', name='unique_follow'),
    )

    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.BigInteger(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('balance_after', sa.BigInteger(), nullable=True),
        sa.Column('type', sa.String(30), nullable=False),
        sa.Column('status', sa.String(20), server_default='completed', nullable=False),
        sa.Column('payment_method', sa.String(10), server_default='tokens', nullable=False),
        sa.Column('description', sa.String(200), nullable=True),
        sa.Column('reference_type', sa.String(20), server_default='none', nullable=False),
        sa.Column('reference_id', sa.String(64), nullable=True),
        sa.Column('provider_transaction_id', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_transactions_user_id', 'transactions', ['user_id'])
    op.create_index('ix_transactions_user_created', 'transactions', ['user_id', 'created_at'])

    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('subscriber_id', sa.BigInteger(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('creator_id', sa.BigInteger(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('price_paid', sa.BigInteger(), server_default='0', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('subscriber_id', 'creator_id', name='unique_subscription'),
    )
    op.create_index('ix_subscriptions_subscriber_id', 'subscriptions', ['subscriber_id'])
    op.create_index('ix_subscriptions_creator_id', 'subscriptions', ['creator_id'])

    op.create_table(
        'posts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('creator_id', sa.BigInteger(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('media_url', sa.String(500), nullable=True),
        sa.Column('visibility', sa.String(20), server_default='public', nullable=False),
        sa.Column('is_nsfw', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('unlock_price', sa.Integer(), server_default='0', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_posts_creator_id', 'posts', ['creator_id'])

    op.create_table(
        'content_purchases',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.BigInteger(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('post_id', sa.Integer(), sa.ForeignKey('posts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('purchased_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('user_id', 'post_id', name='unique_content_purchase'),
    )
    op.create_index('ix_content_purchases_user_id', 'content_purchases', ['user_id'])
    op.create_index('ix_content_purchases_post_id', 'content_purchases', ['post_id'])

    op.create_table(
        'gifts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('price', sa.Integer(), nullable=False),
        sa.Column('category', sa.String(50), server_default='general', nullable=False),
        sa.Column('is_animated', sa.Boolean(), server_default='false', nullable=False),
    )

    op.create_table(
        'livestreams',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('creator_id', sa.BigInteger(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('status', sa.String(20), server_default='live', nullable=False),
        sa.Column('is_private', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('entry_price', sa.Integer(), server_default='0', nullable=False),
        sa.Column('channel_name', sa.String(100), nullable=True),
        sa.Column('viewer_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('total_gifts_received', sa.BigInteger(), server_default='0', nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_livestreams_creator_id', 'livestreams', ['creator_id'])

    op.create_table(
        'livestream_tickets',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('livestream_id', sa.Integer(), sa.ForeignKey('livestreams.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.BigInteger(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('paid_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('livestream_id', 'user_id', name='unique_livestream_ticket'),
    )
    op.create_index('ix_livestream_tickets_livestream_id', 'livestream_tickets', ['livestream_id'])
    op.create_index('ix_livestream_tickets_user_id', 'livestream_tickets', ['user_id'])

    op.create_table(
        'livestream_messages',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('livestream_id', sa.Integer(), sa.ForeignKey('livestreams.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.BigInteger(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('message_type', sa.String(20), server_default='chat', nullable=False),
        sa.Column('gift_id', sa.Integer(), sa.ForeignKey('gifts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('tip_amount', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_livestream_messages_livestream_id', 'livestream_messages', ['livestream_id'])

    op.create_table(
        'conversations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('participant_1', sa.BigInteger(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('participant_2', sa.BigInteger(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('last_message_preview', sa.String(200), nullable=True),
        sa.Column('last_message_at', sa.DateTime(), nullable=True),
        sa.Column('participant_1_unread', sa.Integer(), server_default='0', nullable=False),
        sa.Column('participant_2_unread', sa.Integer(), server_default='0', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('participant_1', 'participant_2', name='unique_conversation'),
    )

    op.create_table(
        'messages',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('conversation_id', sa.Integer(), sa.ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sender_id', sa.BigInteger(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('message_type', sa.String(20), server_default='text', nullable=False),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('media_url', sa.String(500), nullable=True),
        sa.Column('media_thumbnail', sa.String(500), nullable=True),
        sa.Column('gift_id', sa.Integer(), sa.ForeignKey('gifts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('tip_amount', sa.Integer(), nullable=True),
        sa.Column('is_ppv', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('ppv_price', sa.Integer(), server_default='0', nullable=False),
        sa.Column('is_read', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('is_deleted', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_messages_conversation_id', 'messages', ['conversation_id'])

    op.create_table(
        'ppv_unlocks',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('message_id', sa.Integer(), sa.ForeignKey('messages.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.BigInteger(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('unlocked_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('message_id', 'user_id', name='unique_ppv_unlock'),
    )
    op.create_index('ix_ppv_unlocks_message_id', 'ppv_unlocks', ['message_id'])

    op.create_table(
        'creator_earnings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('creator_id', sa.BigInteger(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('from_user_id', sa.BigInteger(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('platform_fee', sa.BigInteger(), server_default='0', nullable=False),
        sa.Column('net_amount', sa.BigInteger(), nullable=False),
        sa.Column('source_type', sa.String(20), nullable=False),
        sa.Column('source_id', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_creator_earnings_creator_id', 'creator_earnings', ['creator_id'])
    op.create_index('ix_creator_earnings_creator_created', 'creator_earnings', ['creator_id', 'created_at'])

    op.create_table(
        'platform_revenue',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('revenue_date', sa.Date(), nullable=False),
        sa.Column('subscription_revenue', sa.BigInteger(), server_default='0', nullable=False),
        sa.Column('content_revenue', sa.BigInteger(), server_default='0', nullable=False),
        sa.Column('tip_revenue', sa.BigInteger(), server_default='0', nullable=False),
        sa.Column('ticket_revenue', sa.BigInteger(), server_default='0', nullable=False),
        sa.Column('gift_revenue', sa.BigInteger(), server_default='0', nullable=False),
        sa.Column('ppv_revenue', sa.BigInteger(), server_default='0', nullable=False),
        sa.Column('total', sa.BigInteger(), server_default='0', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_platform_revenue_revenue_date', 'platform_revenue', ['revenue_date'], unique=True)

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.BigInteger(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('from_user_id', sa.BigInteger(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('content', sa.String(300), nullable=True),
        sa.Column('reference_type', sa.String(20), nullable=True),
        sa.Column('reference_id', sa.String(64), nullable=True),
        sa.Column('is_read', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_notifications_user_created', 'notifications', ['user_id', 'created_at'])


def downgrade() -> None:
    op.drop_index('ix_notifications_user_created', 'notifications')
    op.drop_table('notifications')
    op.drop_index('ix_platform_revenue_revenue_date', 'platform_revenue')
    op.drop_table('platform_revenue')
    op.drop_index('ix_creator_earnings_creator_created', 'creator_earnings')
    op.drop_index('ix_creator_earnings_creator_id', 'creator_earnings')
    op.drop_table('creator_earnings')
    op.drop_index('ix_ppv_unlocks_message_id', 'ppv_unlocks')
    op.drop_table('ppv_unlocks')
    op.drop_index('ix_messages_conversation_id', 'messages')
    op.drop_table('messages')
    op.drop_table('conversations')
    op.drop_index('ix_livestream_messages_livestream_id', 'livestream_messages')
    op.drop_table('livestream_messages')
    op.drop_index('ix_livestream_tickets_user_id', 'livestream_tickets')
    op.drop_index('ix_livestream_tickets_livestream_id', 'livestream_tickets')
    op.drop_table('livestream_tickets')
    op.drop_index('ix_livestreams_creator_id', 'livestreams')
    op.drop_table('livestreams')
    op.drop_table('gifts')
    op.drop_index('ix_content_purchases_post_id', 'content_purchases')
    op.drop_index('ix_content_purchases_user_id', 'content_purchases')
    op.drop_table('content_purchases')
    op.drop_index('ix_posts_creator_id', 'posts')
    op.drop_table('posts')
    op.drop_index('ix_subscriptions_creator_id', 'subscriptions')
    op.drop_index('ix_subscriptions_subscriber_id', 'subscriptions')
    op.drop_table('subscriptions')
    op.drop_index('ix_transactions_user_created', 'transactions')
    op.drop_index('ix_transactions_user_id', 'transactions')
    op.drop_table('transactions')
    op.drop_table('follows')
    op.drop_table('users')
