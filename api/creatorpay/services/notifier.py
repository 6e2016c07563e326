"""Best-effort notification inserts, dispatched after a payment commits."""
import asyncio
import logging
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from creatorpay.models.notification import Notification, NotificationType
from creatorpay.services.realtime import ChannelHub, notifications_topic

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Fire-and-forget notifications.

    Each dispatch runs as its own task on its own session, so a failed insert
    never touches the payment that triggered it. Failures are logged and
    dropped.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], hub: ChannelHub | None = None):
        self.session_factory = session_factory
        self.hub = hub
        self._pending: set[asyncio.Task] = set()

    def dispatch(
        self,
        user_id: int,
        type: NotificationType,
        from_user_id: int | None = None,
        content: str | None = None,
        reference_type: str | None = None,
        reference_id: str | int | None = None,
    ) -> asyncio.Task:
        task = asyncio.create_task(
            self._deliver(
                user_id, type, from_user_id, content, reference_type,
                str(reference_id) if reference_id is not None else None,
            )
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for in-flight notifications (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _deliver(
        self,
        user_id: int,
        type: NotificationType,
        from_user_id: int | None,
        content: str | None,
        reference_type: str | None,
        reference_id: str | None,
    ) -> Notification | None:
        try:
            async with self.session_factory() as session:
                notification = Notification(
                    user_id=user_id,
                    from_user_id=from_user_id,
                    type=type.value,
                    content=content,
                    reference_type=reference_type,
                    reference_id=reference_id,
                )
                session.add(notification)
                await session.commit()
                await session.refresh(notification)
        except Exception as e:
            logger.warning(f'Notification for user {user_id} not saved: {e}', exc_info=True)
            return None

        if self.hub is not None:
            await self.hub.publish(notifications_topic(user_id), {
                'id': notification.id,
                'type': notification.type,
                'from_user_id': notification.from_user_id,
                'content': notification.content,
                'reference_type': notification.reference_type,
                'reference_id': notification.reference_id,
            })
        return notification
