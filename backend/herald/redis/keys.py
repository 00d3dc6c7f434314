"""
Namespaced Redis key helpers.

Intent queues are Redis lists:
  {SERVER_DOMAIN}:push:notify         →  targeted intents (game notifications)
  {SERVER_DOMAIN}:push:announcements  →  broadcast intents

The SERVER_DOMAIN prefix avoids collisions when several deployments share a
Redis cluster.
"""

from herald.config import settings


def notify_queue_key() -> str:
    return f"{settings.SERVER_DOMAIN}:push:notify"


def announcements_queue_key() -> str:
    return f"{settings.SERVER_DOMAIN}:push:announcements"


def intent_queue_keys() -> list[str]:
    return [notify_queue_key(), announcements_queue_key()]
