"""
Web Push delivery client.

Uses pywebpush to send one encrypted message to one subscribed browser and
classifies the result.  pywebpush is blocking, so each send runs on the
client's own thread pool with its own timeout.  A timeout is always a plain
failure: only an explicit 404/410 from the push service marks an endpoint as dead.
"""

import asyncio
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum

import requests
from pywebpush import WebPushException, webpush

from herald.config import settings
from herald.schemas.push import SubscriptionKeys
from herald.services.vapid import VapidKeyProvider, vapid_keys

logger = logging.getLogger(__name__)

INVALIDATED_STATUSES = frozenset({404, 410})
THROTTLED_STATUS = 429


class DeliveryOutcome(str, Enum):
    DELIVERED = "delivered"
    INVALIDATED = "invalidated"  # endpoint is gone for good, delete it
    THROTTLED = "throttled"  # push service is rate-limiting us
    FAILED = "failed"  # anything else, including timeouts


def classify_status(status_code: int | None) -> DeliveryOutcome:
    """Map a push-service HTTP status from a failed send to an outcome."""
    if status_code in INVALIDATED_STATUSES:
        return DeliveryOutcome.INVALIDATED
    if status_code == THROTTLED_STATUS:
        return DeliveryOutcome.THROTTLED
    return DeliveryOutcome.FAILED


@dataclass
class DeliveryResult:
    outcome: DeliveryOutcome
    status_code: int | None = None
    error: str | None = None


class WebPushDeliveryClient:
    """
    Sends pushes on a thread pool owned by the client, sized to one batch.

    The per-attempt timeout starts when a thread picks the send up, so time
    spent waiting for a free thread never counts against it.  Call close()
    once the client is no longer needed.
    """

    def __init__(
        self,
        keys: VapidKeyProvider = vapid_keys,
        timeout: float | None = None,
        max_workers: int | None = None,
    ) -> None:
        self._keys = keys
        self.timeout = timeout or settings.PUSH_DELIVERY_TIMEOUT
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or settings.PUSH_BATCH_SIZE,
            thread_name_prefix="webpush",
        )

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    async def deliver(self, endpoint: str, keys: SubscriptionKeys, payload: str, ttl: int) -> DeliveryResult:
        """Attempt a single push.  Raises ConfigurationError if VAPID keys are missing."""
        vapid = self._keys.get()
        loop = asyncio.get_running_loop()
        started = asyncio.Event()
        send = loop.run_in_executor(
            self._executor,
            functools.partial(
                _send,
                lambda: loop.call_soon_threadsafe(started.set),
                subscription_info={
                    "endpoint": endpoint,
                    "keys": {"p256dh": keys.p256dh, "auth": keys.auth},
                },
                data=payload,
                vapid_private_key=vapid.private_key,
                # pywebpush writes aud/exp into the claims dict, so never share it
                vapid_claims={"sub": vapid.subject},
                ttl=ttl,
                timeout=self.timeout,
            ),
        )
        try:
            await _wait_started(send, started)
            await asyncio.wait_for(asyncio.shield(send), timeout=self.timeout)
        except WebPushException as exc:
            status = exc.response.status_code if exc.response is not None else None
            return DeliveryResult(outcome=classify_status(status), status_code=status, error=str(exc))
        except (asyncio.TimeoutError, requests.Timeout):
            # the thread may still finish; its result is discarded
            send.add_done_callback(_discard)
            return DeliveryResult(outcome=DeliveryOutcome.FAILED, error=f"timed out after {self.timeout}s")
        except asyncio.CancelledError:
            send.cancel()
            raise
        except Exception as exc:
            return DeliveryResult(outcome=DeliveryOutcome.FAILED, error=str(exc) or exc.__class__.__name__)
        return DeliveryResult(outcome=DeliveryOutcome.DELIVERED)


def _send(on_start, **kwargs) -> None:
    on_start()
    webpush(**kwargs)


async def _wait_started(send: asyncio.Future, started: asyncio.Event) -> None:
    """Block until the send is running in a thread (or has already finished)."""
    waiter = asyncio.ensure_future(started.wait())
    try:
        await asyncio.wait({send, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()


def _discard(future: asyncio.Future) -> None:
    if not future.cancelled():
        future.exception()
