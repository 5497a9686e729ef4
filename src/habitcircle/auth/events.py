"""Session-change notifications over Redis pub/sub.

Every sign-in, token refresh and sign-out publishes a small JSON event on
the user's channel; clients follow it through the server-sent events
endpoint to react to sessions ending elsewhere.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import structlog
from redis.exceptions import RedisError

from habitcircle.redis_client import decode_message, publish_json, subscription

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = structlog.get_logger()

SIGNED_IN = "signed_in"
SIGNED_OUT = "signed_out"
REFRESHED = "refreshed"


def session_channel(user_id: int) -> str:
    return f"auth:session:{user_id}"


async def publish_session_event(redis: Redis, user_id: int, event: str, session_id: str) -> None:
    """Publish a session event. Delivery failures are logged, never raised."""
    payload = {
        "event": event,
        "user_id": user_id,
        "session_id": session_id,
        "at": datetime.now(timezone.utc).isoformat(),
    }
    try:
        await publish_json(redis, session_channel(user_id), payload)
    except RedisError:
        logger.warning(
            "session_event_publish_failed",
            user_id=user_id,
            session_event=event,
            session_id=session_id,
            exc_info=True,
        )


async def session_event_stream(redis: Redis, user_id: int) -> AsyncIterator[dict[str, Any]]:
    """Yield session events for one user until the consumer stops iterating."""
    async with subscription(redis, session_channel(user_id)) as pubsub:
        while True:
            message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            if message is None:
                continue
            event = decode_message(message)
            if event is None:
                logger.warning("session_event_invalid", user_id=user_id)
                continue
            yield event
