from creatorpay.models.user import User, Follow
from creatorpay.models.ledger import Transaction
from creatorpay.models.revenue import PlatformRevenue, CreatorEarnings
from creatorpay.models.subscription import Subscription
from creatorpay.models.post import Post, ContentPurchase
from creatorpay.models.chat import Conversation, Message, Gift, PPVUnlock
from creatorpay.models.livestream import Livestream, LivestreamTicket, LivestreamMessage
from creatorpay.models.notification import Notification

__all__ = [
    'User',
    'Follow',
    'Transaction',
    'PlatformRevenue',
    'CreatorEarnings',
    'Subscription',
    'Post',
    'ContentPurchase',
    'Conversation',
    'Message',
    'Gift',
    'PPVUnlock',
    'Livestream',
    'LivestreamTicket',
    'LivestreamMessage',
    'Notification',
]
