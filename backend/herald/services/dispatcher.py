"""
Fan-out dispatcher - turns one notification intent into many push deliveries.

A cycle resolves recipients, delivers in sequential fixed-size batches
(concurrent within a batch), then deletes the subscriptions the push service
reported as gone.  Individual delivery results never fail the cycle; only
configuration errors and recipient-resolution failures do.

Broadcast recipients are streamed page by page from the registry, so at most
one page plus one batch of subscriptions is held in memory.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable
from dataclasses import dataclass
from typing import Protocol

from herald.config import settings
from herald.core.exceptions import ConfigurationError
from herald.schemas.push import BroadcastIntent, Payload, Subscription, SubscriptionKeys, TargetedIntent
from herald.services.delivery import DeliveryOutcome, DeliveryResult
from herald.services.registry import SubscriptionRegistry
from herald.services.vapid import VapidKeyProvider, vapid_keys

logger = logging.getLogger(__name__)


class DeliveryClient(Protocol):
    def deliver(self, endpoint: str, keys: SubscriptionKeys, payload: str, ttl: int) -> Awaitable[DeliveryResult]: ...


@dataclass
class DispatchSummary:
    mode: str
    resolved: int = 0
    batches: int = 0
    delivered: int = 0
    throttled: int = 0
    failed: int = 0
    invalidated: int = 0
    removed: int = 0

    def record(self, outcome: DeliveryOutcome) -> None:
        setattr(self, outcome.value, getattr(self, outcome.value) + 1)


def serialize_payload(payload: Payload) -> str:
    """JSON body the service worker receives, with icon/badge/data defaults filled in."""
    doc = {
        "title": payload.title,
        "body": payload.body,
        "icon": payload.icon or settings.PUSH_DEFAULT_ICON,
        "badge": payload.badge or settings.PUSH_DEFAULT_BADGE,
        "data": payload.data or {},
    }
    if payload.tag is not None:
        doc["tag"] = payload.tag
    return json.dumps(doc)


class Dispatcher:
    def __init__(
        self,
        registry: SubscriptionRegistry,
        client: DeliveryClient,
        *,
        batch_size: int | None = None,
        ttl_seconds: int | None = None,
        keys: VapidKeyProvider = vapid_keys,
    ) -> None:
        self.registry = registry
        self.client = client
        self.batch_size = batch_size or settings.PUSH_BATCH_SIZE
        self.ttl_seconds = ttl_seconds or settings.PUSH_TTL_SECONDS
        self._keys = keys

    async def dispatch(self, intent: TargetedIntent | BroadcastIntent) -> DispatchSummary:
        """Run one full cycle for *intent* and return the aggregate counts."""
        # ConfigurationError here, before any recipient is resolved
        self._keys.get()

        summary = DispatchSummary(mode=intent.type)
        payload = serialize_payload(intent.notification)

        async for batch in self._batches(self._resolve(intent)):
            summary.resolved += len(batch)
            summary.batches += 1
            await self._deliver_batch(batch, payload, summary)

        if summary.resolved == 0:
            logger.info("No subscriptions to notify for %s intent", intent.type)

        logger.info(
            "PUSH_DISPATCHED | mode=%s resolved=%d delivered=%d throttled=%d failed=%d invalidated=%d removed=%d",
            summary.mode,
            summary.resolved,
            summary.delivered,
            summary.throttled,
            summary.failed,
            summary.invalidated,
            summary.removed,
        )
        return summary

    # ── Resolving ───────────────────────────────────────────────────────────

    async def _resolve(self, intent: TargetedIntent | BroadcastIntent) -> AsyncIterator[list[Subscription]]:
        if isinstance(intent, TargetedIntent):
            owners = list(dict.fromkeys(intent.userIds))
            results = await asyncio.gather(
                *(asyncio.to_thread(self.registry.list_by_owner, owner_id) for owner_id in owners)
            )
            subscriptions = [sub for subs in results for sub in subs]
            logger.info("Found %d subscriptions for %d users", len(subscriptions), len(owners))
            yield subscriptions
            return

        cursor: int | None = 0
        while cursor is not None:
            page = await asyncio.to_thread(self.registry.list_page, cursor)
            logger.debug("Broadcast page after id %s: %d subscriptions", cursor, len(page.items))
            yield page.items
            cursor = page.cursor

    async def _batches(self, pages: AsyncIterator[list[Subscription]]) -> AsyncIterator[list[Subscription]]:
        pending: list[Subscription] = []
        async for page in pages:
            pending.extend(page)
            while len(pending) >= self.batch_size:
                yield pending[: self.batch_size]
                pending = pending[self.batch_size :]
        if pending:
            yield pending

    # ── Delivering ──────────────────────────────────────────────────────────

    async def _deliver_batch(self, batch: list[Subscription], payload: str, summary: DispatchSummary) -> None:
        results = await asyncio.gather(
            *(self._deliver_one(sub, payload) for sub in batch),
            return_exceptions=True,
        )

        config_error: ConfigurationError | None = None
        dead: list[Subscription] = []
        for sub, result in zip(batch, results):
            if isinstance(result, ConfigurationError):
                config_error = config_error or result
                continue
            if isinstance(result, BaseException):
                raise result
            summary.record(result.outcome)
            if result.outcome is DeliveryOutcome.INVALIDATED:
                dead.append(sub)

        # Reconciling
        for sub in dead:
            if await self._remove(sub):
                summary.removed += 1

        if config_error is not None:
            raise config_error

    async def _deliver_one(self, sub: Subscription, payload: str) -> DeliveryResult:
        keys = SubscriptionKeys(p256dh=sub.p256dh, auth=sub.auth)
        try:
            result = await self.client.deliver(sub.endpoint, keys, payload, self.ttl_seconds)
        except ConfigurationError:
            raise
        except Exception as exc:
            result = DeliveryResult(outcome=DeliveryOutcome.FAILED, error=str(exc) or exc.__class__.__name__)

        if result.outcome is DeliveryOutcome.INVALIDATED:
            logger.info(
                "Subscription %s for owner %s is gone (%s), removing",
                sub.id,
                sub.owner_id,
                result.status_code,
            )
        elif result.outcome is DeliveryOutcome.THROTTLED:
            logger.warning("Rate limited for endpoint %s", sub.endpoint[:60])
        elif result.outcome is DeliveryOutcome.FAILED:
            logger.error(
                "Push delivery failed for subscription %s (owner %s, status %s): %s",
                sub.id,
                sub.owner_id,
                result.status_code,
                result.error,
            )
        return result

    async def _remove(self, sub: Subscription) -> bool:
        """Delete a dead subscription.  Failures are logged, never raised."""
        try:
            return await asyncio.to_thread(self.registry.delete, sub.owner_id, sub.endpoint)
        except Exception as exc:
            logger.warning(
                "PUSH_RECONCILE_FAILED | owner=%s endpoint=%s error=%s",
                sub.owner_id,
                sub.endpoint[:60],
                exc,
            )
            return False
