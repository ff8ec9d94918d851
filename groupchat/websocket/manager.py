from typing import Dict, Iterable, Protocol
from fastapi import WebSocket
import json
import logging
import asyncio

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Anything that can push an event to a user's channel."""

    async def emit(self, user_id: int, event: str, data) -> bool: ...


class ConnectionManager:
    """WebSocket connection manager, one channel per user id"""

    def __init__(self):
        # active connections: {user_id: WebSocket}
        self.active_connections: Dict[int, WebSocket] = {}

    async def connect(self, user_id: int, websocket: WebSocket):
        # a user keeps a single channel, the newest connection wins
        if user_id in self.active_connections:
            await self.close_connection(user_id)

        await websocket.accept()
        self.active_connections[user_id] = websocket
        logger.info(f"User {user_id} connected, online: {len(self.active_connections)}")

    async def close_connection(self, user_id: int):
        if user_id in self.active_connections:
            try:
                websocket = self.active_connections[user_id]
                await websocket.close()
            except Exception as e:
                logger.warning(f"Error closing connection of user {user_id}: {e}")
            finally:
                del self.active_connections[user_id]

    def disconnect(self, user_id: int, websocket: WebSocket | None = None):
        # a replaced socket must not drop its successor
        if websocket is not None and self.active_connections.get(user_id) is not websocket:
            return
        if user_id in self.active_connections:
            del self.active_connections[user_id]
            logger.info(f"User {user_id} disconnected, online: {len(self.active_connections)}")

    async def send_personal_message(self, user_id: int, message: dict) -> bool:
        """Send to one user; offline users are skipped, failures drop the connection"""
        if user_id in self.active_connections:
            try:
                await self.active_connections[user_id].send_text(json.dumps(message, ensure_ascii=False))
                return True
            except Exception as e:
                logger.error(f"Sending to user {user_id} failed: {e}")
                self.disconnect(user_id)
                return False
        return False

    async def emit(self, user_id: int, event: str, data) -> bool:
        """Best effort: no queueing and no acknowledgement"""
        return await self.send_personal_message(user_id, {"type": event, "data": data})

    def is_online(self, user_id: int) -> bool:
        return user_id in self.active_connections

    async def cleanup_stale_connections(self):
        stale_users = []
        for user_id, websocket in list(self.active_connections.items()):
            try:
                await asyncio.wait_for(
                    websocket.send_text(json.dumps({"type": "ping"})),
                    timeout=1.0
                )
            except Exception:
                stale_users.append(user_id)

        for user_id in stale_users:
            self.disconnect(user_id)
            logger.info(f"Dropped stale connection of user {user_id}")


async def emit_to_members(notifier: Notifier, user_ids: Iterable[int], event: str, data) -> None:
    for user_id in user_ids:
        await notifier.emit(user_id, event, data)


# global singleton
manager = ConnectionManager()
