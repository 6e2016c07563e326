"""In-process change feed and WebSocket fan-out for realtime updates."""
import inspect
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable

from fastapi import WebSocket

logger = logging.getLogger(__name__)

Handler = Callable[[dict], Awaitable[None] | None]


class ChannelHub:
    """Topic-based pub/sub. Every subscribe returns its own unsubscribe closure."""

    def __init__(self):
        # topic -> handlers, in subscription order
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        """Register handler on topic. Call the returned closure on teardown."""
        self._handlers[topic].append(handler)
        logger.debug(f'Subscribed to {topic}. Handlers: {len(self._handlers[topic])}')
        removed = False

        def unsubscribe() -> None:
            nonlocal removed
            if removed:
                return
            removed = True
            handlers = self._handlers.get(topic, [])
            if handler in handlers:
                handlers.remove(handler)
            if not handlers:
                self._handlers.pop(topic, None)
            logger.debug(f'Unsubscribed from {topic}')

        return unsubscribe

    def subscriber_count(self, topic: str) -> int:
        return len(self._handlers.get(topic, []))

    async def publish(self, topic: str, payload: dict) -> int:
        """Deliver payload to every handler on topic. Returns deliveries made."""
        delivered = 0
        for handler in list(self._handlers.get(topic, [])):
            try:
                outcome = handler(payload)
                if inspect.isawaitable(outcome):
                    await outcome
                delivered += 1
            except Exception as e:
                logger.error(f'Realtime handler on {topic} failed: {e}', exc_info=True)
        return delivered


class ConnectionManager:
    """Binds WebSocket connections to hub topics for their lifetime."""

    def __init__(self, hub: ChannelHub):
        self.hub = hub
        # websocket -> unsubscribe closures
        self.active_connections: dict[WebSocket, list[Callable[[], None]]] = {}

    async def connect(self, websocket: WebSocket, topics: list[str]):
        """Accept and subscribe the connection to each topic."""
        await websocket.accept()

        async def forward(payload: dict[str, Any]) -> None:
            await websocket.send_json(payload)

        self.active_connections[websocket] = [
            self.hub.subscribe(topic, forward) for topic in topics
        ]
        logger.info(f'[WS] Connected to {topics}. Total connections: {len(self.active_connections)}')

    def disconnect(self, websocket: WebSocket):
        """Drop the connection and all its subscriptions."""
        for unsubscribe in self.active_connections.pop(websocket, []):
            unsubscribe()
        logger.info(f'[WS] Disconnected. Remaining: {len(self.active_connections)}')


def notifications_topic(user_id: int) -> str:
    return f'notifications:{user_id}'


# Singleton instances
hub = ChannelHub()
manager = ConnectionManager(hub)
