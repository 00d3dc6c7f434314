from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field


class SubscriptionKeys(BaseModel):
    p256dh: str
    auth: str


class PushSubscriptionInfo(BaseModel):
    endpoint: str
    keys: SubscriptionKeys


class SubscribeRequest(BaseModel):
    userId: str
    subscription: PushSubscriptionInfo
    deviceId: str | None = None


class UnsubscribeRequest(BaseModel):
    userId: str
    endpoint: str


class Payload(BaseModel):
    """Notification content. Opaque to everything but the push transport and the client."""

    title: str
    body: str
    icon: str | None = None
    badge: str | None = None
    data: dict[str, Any] | None = None
    tag: str | None = None


class NotifyRequest(Payload):
    userIds: list[str]


class BroadcastRequest(BaseModel):
    title: str
    body: str
    icon: str | None = None
    badge: str | None = None
    data: dict[str, Any] | None = None


class TargetedIntent(BaseModel):
    type: Literal["targeted"] = "targeted"
    userIds: list[str]
    notification: Payload


class BroadcastIntent(BaseModel):
    type: Literal["broadcast"] = "broadcast"
    notification: Payload


NotificationIntent = Annotated[Union[TargetedIntent, BroadcastIntent], Field(discriminator="type")]


class Subscription(BaseModel):
    """A stored subscription as handed to the dispatcher."""

    id: int
    owner_id: str
    device_id: str
    endpoint: str
    p256dh: str
    auth: str

    model_config = {"from_attributes": True}
