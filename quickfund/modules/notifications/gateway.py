"""
WebSocket fan-out.

Each API process keeps its sockets in a ``ConnectionManager`` grouped into
rooms: ``user:{id}`` for a user's own devices and ``admins`` for the admin
feed. Workers cannot reach those sockets, so they publish to a Redis channel
through ``RedisBroadcaster`` and every API process relays what it hears into
its local rooms with ``relay_broadcasts``.
"""
import asyncio
import json
import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, Set

from fastapi import WebSocket
from redis import asyncio as aioredis

logger = logging.getLogger(__name__)

BROADCAST_CHANNEL = "notifications:broadcast"
ADMIN_ROOM = "admins"


def user_room(user_id: int) -> str:
    return f"user:{user_id}"


class ConnectionManager:
    def __init__(self):
        self.rooms: Dict[str, Set[WebSocket]] = defaultdict(set)

    async def connect(self, websocket: WebSocket, user_id: int, is_admin: bool = False) -> None:
        await websocket.accept()
        self.rooms[user_room(user_id)].add(websocket)
        if is_admin:
            self.rooms[ADMIN_ROOM].add(websocket)
        logger.info(f"WebSocket connected for user {user_id} (admin={is_admin})")

    def disconnect(self, websocket: WebSocket) -> None:
        for room in list(self.rooms):
            self.rooms[room].discard(websocket)
            if not self.rooms[room]:
                del self.rooms[room]

    def connection_count(self, room: str) -> int:
        return len(self.rooms.get(room, ()))

    async def send_to_room(self, room: str, message: Dict[str, Any]) -> int:
        """Send to every socket in the room; dead sockets are dropped"""
        delivered = 0
        for websocket in list(self.rooms.get(room, ())):
            try:
                await websocket.send_json(message)
                delivered += 1
            except Exception:
                logger.warning(f"Dropping dead WebSocket in room {room}")
                self.disconnect(websocket)
        return delivered


class RedisBroadcaster:
    """Publishes room messages for API processes to relay"""

    def __init__(self, redis: aioredis.Redis):
        self.redis = redis

    async def send_to_room(self, room: str, message: Dict[str, Any]) -> int:
        payload = json.dumps({"room": room, "message": message}, default=str)
        return await self.redis.publish(BROADCAST_CHANNEL, payload)


async def relay_broadcasts(redis: aioredis.Redis, manager: ConnectionManager) -> None:
    """Forward published room messages to local sockets until cancelled"""
    pubsub = redis.pubsub()
    await pubsub.subscribe(BROADCAST_CHANNEL)
    try:
        while True:
            try:
                item = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if item is None:
                    continue
                envelope = json.loads(item["data"])
                await manager.send_to_room(envelope["room"], envelope["message"])
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Error relaying WebSocket broadcast")
                await asyncio.sleep(1)
    finally:
        await pubsub.unsubscribe(BROADCAST_CHANNEL)
        await pubsub.aclose()


def admin_message(title: str, message: str, metadata: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "event": "admin-notification",
        "title": title,
        "message": message,
        "metadata": metadata,
        "timestamp": datetime.utcnow().isoformat(),
    }
