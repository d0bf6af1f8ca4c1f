"""Realtime events published to per-user Redis channels."""

import json
import uuid
from typing import Any

from app.config.redis import get_redis
from app.utils.logging_config import logger


def user_channel(user_id: uuid.UUID | str) -> str:
    return f"user:{user_id}"


def encode_event(event: str, payload: dict[str, Any]) -> str:
    return json.dumps({"event": event, "data": payload}, default=str)


class RealtimeBroadcaster:
    """
    Publishes events for the WebSocket gateway, which subscribes to the
    `user:<id>` channels and forwards messages to connected clients.
    """

    async def broadcast_to_user(
        self, user_id: uuid.UUID, event: str, payload: dict[str, Any]
    ) -> None:
        client = await get_redis()
        receivers = await client.publish(user_channel(user_id), encode_event(event, payload))
        logger.debug(f"Published '{event}' to user {user_id} ({receivers} receivers)")


realtime_broadcaster = RealtimeBroadcaster()
