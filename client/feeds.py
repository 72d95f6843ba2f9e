import json
from typing import Any, AsyncGenerator, Dict

import redis.asyncio as aioredis

from constants import REDIS_URL
from redis_keys import REDIS_ROOM_CHANNEL, REDIS_USER_CHANNEL
from logging_config import get_logger

logger = get_logger(__name__)


def connect(url: str = REDIS_URL) -> aioredis.Redis:
    """Async client for the push feeds. Connects lazily on first command."""
    return aioredis.from_url(url, decode_responses=True)


def room_channel(room_id: str) -> str:
    return REDIS_ROOM_CHANNEL.format(slug=room_id)


def user_channel(user_id: str) -> str:
    return REDIS_USER_CHANNEL.format(user_id=user_id)


async def subscribe_channel(redis_client: aioredis.Redis, channel: str) -> AsyncGenerator[Dict[str, Any], None]:
    """Yield decoded match payloads published on ``channel``.

    Long lived: runs until the consumer stops iterating or the connection
    fails, and always unsubscribes on the way out.
    """
    pubsub = redis_client.pubsub()
    try:
        await pubsub.subscribe(channel)
        logger.debug(f"Subscribed to {channel}")
        while True:
            message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            if not message or message.get("type") != "message":
                continue
            try:
                yield json.loads(message["data"])
            except json.JSONDecodeError as e:
                logger.warning(f"Dropping malformed payload on {channel}: {e}")
    finally:
        try:
            await pubsub.unsubscribe(channel)
        finally:
            await pubsub.aclose()
