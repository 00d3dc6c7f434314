"""VAPID sender key material, loaded once per process."""

import json
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

from herald.config import settings
from herald.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

PLACEHOLDER_PREFIX = "PLACEHOLDER"


@dataclass(frozen=True)
class VapidKeys:
    public_key: str
    private_key: str
    subject: str


def load_vapid_keys() -> VapidKeys:
    """Read the key pair from VAPID_KEYS_FILE, or from the individual settings.

    Raises ConfigurationError if the keys are missing or still placeholders.
    """
    if settings.VAPID_KEYS_FILE:
        try:
            with open(settings.VAPID_KEYS_FILE, encoding="utf-8") as fh:
                doc = json.load(fh)
        except (OSError, ValueError) as exc:
            raise ConfigurationError(f"Cannot read VAPID keys file: {exc}") from exc
        if not isinstance(doc, dict):
            raise ConfigurationError("VAPID keys file must contain a JSON object")
        keys = VapidKeys(
            public_key=doc.get("publicKey") or "",
            private_key=doc.get("privateKey") or "",
            subject=doc.get("subject") or settings.VAPID_CLAIMS_EMAIL,
        )
    else:
        keys = VapidKeys(
            public_key=settings.VAPID_PUBLIC_KEY,
            private_key=settings.VAPID_PRIVATE_KEY,
            subject=settings.VAPID_CLAIMS_EMAIL,
        )

    if not keys.public_key or keys.public_key.startswith(PLACEHOLDER_PREFIX) or not keys.private_key:
        raise ConfigurationError("VAPID keys not configured - provision a real key pair")

    logger.info("VAPID keys ready (public=%s…)", keys.public_key[:20])
    return keys


class VapidKeyProvider:
    """Loads the key pair on first use and holds it for the life of the process.

    Concurrent first calls share a single load.  A failed load is not cached,
    so provisioning the keys later does not need a restart.
    """

    def __init__(self, loader: Callable[[], VapidKeys] = load_vapid_keys) -> None:
        self._loader = loader
        self._keys: VapidKeys | None = None
        self._lock = threading.Lock()

    def get(self) -> VapidKeys:
        if self._keys is None:
            with self._lock:
                if self._keys is None:
                    self._keys = self._loader()
        return self._keys


vapid_keys = VapidKeyProvider()
