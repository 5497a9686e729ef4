"""Shared Redis client and the pub/sub helpers built on it.

Redis backs two things here: the failed-login counters used for account
lockout, and the per-user channels that carry session-change events.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import redis.asyncio as redis
from redis.asyncio.client import PubSub

_client: redis.Redis | None = None


async def init_redis(url: str, max_connections: int = 20) -> None:
    global _client  # noqa: PLW0603
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=max_connections,
    )


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None


def get_redis() -> redis.Redis:
    """FastAPI dependency. Fails loudly if the app lifespan never ran."""
    if _client is None:
        msg = "Redis is not initialised; init_redis() runs in the app lifespan"
        raise RuntimeError(msg)
    return _client


async def publish_json(client: redis.Redis, channel: str, payload: dict[str, Any]) -> int:
    """Publish ``payload`` as JSON. Returns the number of subscribers reached."""
    return await client.publish(channel, json.dumps(payload))


@asynccontextmanager
async def subscription(client: redis.Redis, channel: str) -> AsyncIterator[PubSub]:
    """Subscribe to ``channel`` for the duration of the block."""
    pubsub = client.pubsub()
    await pubsub.subscribe(channel)
    try:
        yield pubsub
    finally:
        await pubsub.unsubscribe(channel)
        await pubsub.aclose()


def decode_message(message: dict[str, Any] | None) -> dict[str, Any] | None:
    """The JSON body of a pub/sub message, or None if absent or not JSON."""
    if message is None:
        return None
    data = message.get("data", "")
    if isinstance(data, bytes):
        data = data.decode()
    try:
        decoded = json.loads(data)
    except (TypeError, json.JSONDecodeError):
        return None
    return decoded if isinstance(decoded, dict) else None
