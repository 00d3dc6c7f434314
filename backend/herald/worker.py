"""
herald dispatcher worker - consumes notification intents from Redis.

One intent is dispatched at a time; run more worker processes to dispatch
intents in parallel.  A malformed or failing intent is logged and dropped,
and the worker carries on with the next one.
"""

import asyncio
import logging
import signal

from pydantic import ValidationError as IntentFormatError

from herald.config import settings
from herald.core.exceptions import ChannelUnavailable, ConfigurationError, StoreUnavailable
from herald.database import SessionLocal
from herald.redis.channel import decode_intent, pop_intent
from herald.redis.client import close_redis, connect_redis, get_redis, mark_redis_down
from herald.services.delivery import WebPushDeliveryClient
from herald.services.dispatcher import Dispatcher, DispatchSummary
from herald.services.registry import SubscriptionRegistry

logger = logging.getLogger(__name__)

CHANNEL_RETRY_DELAY = 5  # seconds


async def process_message(dispatcher: Dispatcher, raw: str) -> DispatchSummary | None:
    """Decode and dispatch one queued intent.  Returns None if it was dropped."""
    try:
        intent = decode_intent(raw)
    except IntentFormatError as exc:
        logger.error("Discarding malformed intent: %s", exc)
        return None

    logger.info("Processing %s notification", intent.type)
    try:
        return await dispatcher.dispatch(intent)
    except ConfigurationError as exc:
        logger.error("Cannot dispatch %s intent: %s", intent.type, exc)
    except Exception:
        logger.exception("Failed to process %s intent", intent.type)
    return None


async def purge_expired(registry: SubscriptionRegistry) -> None:
    try:
        await asyncio.to_thread(registry.purge_expired)
    except StoreUnavailable as exc:
        logger.warning("Expired subscription purge skipped: %s", exc)


async def run_worker(stop: asyncio.Event | None = None) -> None:
    stop = stop or asyncio.Event()
    registry = SubscriptionRegistry(SessionLocal)
    client = WebPushDeliveryClient()
    dispatcher = Dispatcher(registry, client)
    loop = asyncio.get_running_loop()
    next_purge = loop.time()

    await connect_redis()
    try:
        while not stop.is_set():
            if loop.time() >= next_purge:
                await purge_expired(registry)
                next_purge = loop.time() + settings.WORKER_PURGE_INTERVAL

            if get_redis() is None and not await connect_redis():
                await _wait(stop, CHANNEL_RETRY_DELAY)
                continue
            try:
                raw = await pop_intent(settings.WORKER_POLL_TIMEOUT)
            except ChannelUnavailable as exc:
                logger.warning("%s - retrying in %ds", exc, CHANNEL_RETRY_DELAY)
                mark_redis_down()
                await _wait(stop, CHANNEL_RETRY_DELAY)
                continue
            if raw is not None:
                await process_message(dispatcher, raw)
    finally:
        client.close()
        await close_redis()


async def _wait(stop: asyncio.Event, delay: float) -> None:
    """Sleep for *delay* seconds, waking early on shutdown."""
    try:
        await asyncio.wait_for(stop.wait(), timeout=delay)
    except asyncio.TimeoutError:
        pass


def main() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    async def _run() -> None:
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)
        logger.info("herald dispatcher started")
        await run_worker(stop)
        logger.info("herald dispatcher stopped")

    asyncio.run(_run())


if __name__ == "__main__":
    main()
