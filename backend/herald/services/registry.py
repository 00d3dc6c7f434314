"""
Subscription registry - durable store of (owner, endpoint, key material).

One row per (owner_id, endpoint).  The endpoint is reduced to a fixed-width
subscription_id (sha256 hex) so the unique constraint stays indexable no
matter how long the push service makes its URLs.

Every operation opens its own short-lived session, so one registry instance
can be shared between threads and the dispatcher's concurrent lookups.
Store failures surface as StoreUnavailable; no retries happen here.
"""

import hashlib
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from herald.config import settings
from herald.core.exceptions import StoreUnavailable
from herald.models.push_subscription import DEFAULT_DEVICE_ID, PushSubscription
from herald.schemas.push import Subscription, SubscriptionKeys

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}


def subscription_id_for(endpoint: str) -> str:
    """Stable identifier derived from the endpoint URL."""
    return hashlib.sha256(endpoint.encode("utf-8")).hexdigest()


@dataclass
class SubscriptionPage:
    items: list[Subscription]
    cursor: int | None  # None once the scan is exhausted


class SubscriptionRegistry:
    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        page_size: int | None = None,
        ttl_days: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.page_size = page_size or settings.PUSH_PAGE_SIZE
        self.ttl = timedelta(days=ttl_days or settings.SUBSCRIPTION_TTL_DAYS)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self._session_factory() as db:
                yield db
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Subscription store unavailable: {exc}") from exc

    # ── Writes ──────────────────────────────────────────────────────────────

    def put(
        self,
        owner_id: str,
        device_id: str | None,
        endpoint: str,
        keys: SubscriptionKeys,
        *,
        now: datetime | None = None,
    ) -> None:
        """Insert or overwrite the record for (owner_id, endpoint). Last write wins."""
        now = now or datetime.now(timezone.utc)
        values = {
            "owner_id": owner_id,
            "device_id": device_id or DEFAULT_DEVICE_ID,
            "subscription_id": subscription_id_for(endpoint),
            "endpoint": endpoint,
            "p256dh": keys.p256dh,
            "auth": keys.auth,
            "created_at": now,
            "updated_at": now,
            "expires_at": now + self.ttl,
        }
        with self._session() as db:
            insert = _UPSERT_DIALECTS.get(db.get_bind().dialect.name)
            if insert is not None:
                stmt = insert(PushSubscription).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["owner_id", "subscription_id"],
                    set_={
                        "device_id": stmt.excluded.device_id,
                        "endpoint": stmt.excluded.endpoint,
                        "p256dh": stmt.excluded.p256dh,
                        "auth": stmt.excluded.auth,
                        "updated_at": stmt.excluded.updated_at,
                        "expires_at": stmt.excluded.expires_at,
                    },
                )
                db.execute(stmt)
            else:
                existing = db.execute(
                    select(PushSubscription).filter_by(
                        owner_id=owner_id, subscription_id=values["subscription_id"]
                    )
                ).scalar_one_or_none()
                if existing:
                    for field in ("device_id", "endpoint", "p256dh", "auth", "updated_at", "expires_at"):
                        setattr(existing, field, values[field])
                else:
                    db.add(PushSubscription(**values))
            db.commit()

    def delete(self, owner_id: str, endpoint: str) -> bool:
        """Remove the record for (owner_id, endpoint). Returns False if there was none."""
        with self._session() as db:
            result = db.execute(
                delete(PushSubscription).where(
                    PushSubscription.owner_id == owner_id,
                    PushSubscription.subscription_id == subscription_id_for(endpoint),
                )
            )
            db.commit()
            return result.rowcount > 0

    def purge_expired(self, *, now: datetime | None = None) -> int:
        """Delete records whose expiry has passed. Returns the number removed."""
        now = now or datetime.now(timezone.utc)
        with self._session() as db:
            result = db.execute(delete(PushSubscription).where(PushSubscription.expires_at <= now))
            db.commit()
        if result.rowcount:
            logger.info("Purged %d expired push subscriptions", result.rowcount)
        return result.rowcount

    # ── Reads ───────────────────────────────────────────────────────────────

    def list_by_owner(self, owner_id: str, *, now: datetime | None = None) -> list[Subscription]:
        now = now or datetime.now(timezone.utc)
        with self._session() as db:
            rows = db.execute(
                select(PushSubscription)
                .where(PushSubscription.owner_id == owner_id, PushSubscription.expires_at > now)
                .order_by(PushSubscription.id)
            ).scalars()
            return [Subscription.model_validate(row) for row in rows]

    def list_page(
        self,
        after_id: int = 0,
        limit: int | None = None,
        *,
        now: datetime | None = None,
    ) -> SubscriptionPage:
        """Return up to *limit* live records with id > *after_id* (keyset pagination)."""
        limit = limit or self.page_size
        now = now or datetime.now(timezone.utc)
        with self._session() as db:
            rows = db.execute(
                select(PushSubscription)
                .where(PushSubscription.id > after_id, PushSubscription.expires_at > now)
                .order_by(PushSubscription.id)
                .limit(limit)
            ).scalars()
            items = [Subscription.model_validate(row) for row in rows]
        cursor = items[-1].id if len(items) == limit else None
        return SubscriptionPage(items=items, cursor=cursor)

    def list_all(self) -> Iterator[Subscription]:
        """Lazily walk every live record, one page in memory at a time."""
        cursor = 0
        while cursor is not None:
            page = self.list_page(cursor)
            yield from page.items
            cursor = page.cursor
