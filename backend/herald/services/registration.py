"""
Registration service - the public operations behind the HTTP surface.

Subscribe/unsubscribe write through the registry.  Publish/broadcast only
validate and enqueue; delivery happens later in the dispatcher.
"""

import logging
from collections.abc import Awaitable, Callable

from herald.core.exceptions import ValidationError
from herald.redis.channel import publish_intent
from herald.schemas.push import BroadcastIntent, Payload, SubscriptionKeys, TargetedIntent
from herald.services.registry import SubscriptionRegistry
from herald.services.vapid import VapidKeyProvider, vapid_keys

logger = logging.getLogger(__name__)


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


def _check_payload(payload: Payload, message: str) -> None:
    if _blank(payload.title) or _blank(payload.body):
        raise ValidationError(message)


class RegistrationService:
    def __init__(
        self,
        registry: SubscriptionRegistry,
        keys: VapidKeyProvider = vapid_keys,
        publisher: Callable[[TargetedIntent | BroadcastIntent], Awaitable[None]] = publish_intent,
    ) -> None:
        self.registry = registry
        self._keys = keys
        self._publish = publisher

    def subscribe(
        self,
        owner_id: str,
        endpoint: str,
        keys: SubscriptionKeys,
        device_id: str | None = None,
    ) -> None:
        """Register (or refresh) a subscription.  Re-registering is not an error."""
        if _blank(owner_id) or _blank(endpoint) or _blank(keys.p256dh) or _blank(keys.auth):
            raise ValidationError("userId and subscription with endpoint and keys are required")
        self.registry.put(owner_id, device_id, endpoint, keys)
        logger.debug("Subscription registered for owner %s (device %s)", owner_id, device_id or "default")

    def unsubscribe(self, owner_id: str, endpoint: str) -> None:
        """Remove a subscription.  Removing one that does not exist is not an error."""
        if _blank(owner_id) or _blank(endpoint):
            raise ValidationError("userId and endpoint are required")
        self.registry.delete(owner_id, endpoint)

    def get_sender_public_key(self) -> str:
        """Public VAPID key clients need to create a subscription."""
        return self._keys.get().public_key

    async def publish(self, intent: TargetedIntent) -> None:
        if not intent.userIds or any(_blank(uid) for uid in intent.userIds):
            raise ValidationError("userIds, title, and body are required")
        _check_payload(intent.notification, "userIds, title, and body are required")
        await self._publish(intent)
        logger.info("Queued targeted notification for %d users", len(intent.userIds))

    async def broadcast(self, intent: BroadcastIntent) -> None:
        _check_payload(intent.notification, "title and body are required")
        await self._publish(intent)
        logger.info("Queued broadcast notification")
