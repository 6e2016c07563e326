import logging

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from sqlalchemy import select, func, desc
from sqlalchemy.ext.asyncio import AsyncSession

from creatorpay.db.database import get_db
from creatorpay.models.notification import Notification
from creatorpay.schemas.notification import NotificationResponse, UnreadCountResponse
from creatorpay.services.realtime import manager, notifications_topic

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get('', response_model=list[NotificationResponse])
async def list_notifications(
    user_id: int = Query(...),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(desc(Notification.created_at), desc(Notification.id))
        .limit(limit)
        .offset(offset)
    )
    return result.scalars().all()


@router.get('/unread-count', response_model=UnreadCountResponse)
async def unread_count(user_id: int = Query(...), db: AsyncSession = Depends(get_db)):
    count = await db.scalar(
        select(func.count()).select_from(Notification).where(
            Notification.user_id == user_id,
            Notification.is_read == False,  # noqa: E712
        )
    )
    return UnreadCountResponse(user_id=user_id, unread=count or 0)


@router.websocket('/ws/{user_id}')
async def websocket_endpoint(websocket: WebSocket, user_id: int):
    """Push each new notification for user_id as it is saved."""
    await manager.connect(websocket, [notifications_topic(user_id)])
    try:
        while True:
            # Keep the connection open; clients may send pings
            message = await websocket.receive()
            if message.get('type') == 'websocket.disconnect':
                break
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning(f'[WS] Error for user {user_id}: {e}')
    finally:
        manager.disconnect(websocket)
