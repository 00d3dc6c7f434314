"""
Intent channel - JSON notification intents queued on Redis lists.

Producers RPUSH, the dispatcher worker BLPOPs from both queues.  A popped
intent is gone: if the worker dies mid-cycle the intent is lost, and a
re-published intent may reach some endpoints twice.
"""

import logging

from pydantic import TypeAdapter
from redis.exceptions import RedisError

from herald.core.exceptions import ChannelUnavailable
from herald.redis.client import get_redis
from herald.redis.keys import announcements_queue_key, intent_queue_keys, notify_queue_key
from herald.schemas.push import BroadcastIntent, NotificationIntent, TargetedIntent

logger = logging.getLogger(__name__)

_intent_adapter: TypeAdapter = TypeAdapter(NotificationIntent)


def encode_intent(intent: TargetedIntent | BroadcastIntent) -> str:
    return intent.model_dump_json(exclude_none=True)


def decode_intent(raw: str | bytes) -> TargetedIntent | BroadcastIntent:
    """Parse one queued message.  Raises pydantic.ValidationError if malformed."""
    return _intent_adapter.validate_json(raw)


async def publish_intent(intent: TargetedIntent | BroadcastIntent) -> None:
    """Queue an intent for the dispatcher.  Does not wait for delivery."""
    r = get_redis()
    if r is None:
        raise ChannelUnavailable("Intent channel unavailable")
    key = notify_queue_key() if intent.type == "targeted" else announcements_queue_key()
    try:
        await r.rpush(key, encode_intent(intent))
    except RedisError as exc:
        raise ChannelUnavailable(f"Failed to queue intent: {exc}") from exc


async def pop_intent(timeout: int) -> str | None:
    """Block up to *timeout* seconds for the next raw intent.  None on timeout."""
    r = get_redis()
    if r is None:
        raise ChannelUnavailable("Intent channel unavailable")
    try:
        item = await r.blpop(intent_queue_keys(), timeout=timeout)
    except RedisError as exc:
        raise ChannelUnavailable(f"Failed to read intent queue: {exc}") from exc
    if item is None:
        return None
    _key, raw = item
    return raw
