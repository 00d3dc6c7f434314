"""
Web Push subscription management and notification publishing.

GET    /vapid-public-key  - return the VAPID public key for frontend subscription
POST   /subscribe         - upsert a push subscription for a user
DELETE /subscribe         - remove a push subscription
POST   /notify            - queue a notification for specific users
POST   /broadcast         - queue a notification for every subscriber

/notify and /broadcast only enqueue; the dispatcher worker delivers.
"""

from fastapi import APIRouter, Depends

from herald.api.deps import get_registration_service
from herald.schemas.push import (
    BroadcastIntent,
    BroadcastRequest,
    NotifyRequest,
    Payload,
    SubscribeRequest,
    TargetedIntent,
    UnsubscribeRequest,
)
from herald.services.registration import RegistrationService

router = APIRouter(tags=["push"])


@router.get("/vapid-public-key")
def get_vapid_public_key(service: RegistrationService = Depends(get_registration_service)) -> dict:
    """Return the VAPID public key so the frontend can subscribe."""
    return {"publicKey": service.get_sender_public_key()}


@router.post("/subscribe")
def subscribe(
    data: SubscribeRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> dict:
    """Upsert a browser push subscription."""
    service.subscribe(data.userId, data.subscription.endpoint, data.subscription.keys, device_id=data.deviceId)
    return {"success": True, "message": "Subscription registered"}


@router.delete("/subscribe")
def unsubscribe(
    data: UnsubscribeRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> dict:
    """Remove a push subscription."""
    service.unsubscribe(data.userId, data.endpoint)
    return {"success": True, "message": "Subscription removed"}


@router.post("/notify")
async def notify(
    data: NotifyRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> dict:
    intent = TargetedIntent(
        userIds=data.userIds,
        notification=Payload(**data.model_dump(exclude={"userIds"})),
    )
    await service.publish(intent)
    return {"success": True, "message": "Notification queued"}


@router.post("/broadcast")
async def broadcast(
    data: BroadcastRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> dict:
    await service.broadcast(BroadcastIntent(notification=Payload(**data.model_dump())))
    return {"success": True, "message": "Broadcast queued"}
