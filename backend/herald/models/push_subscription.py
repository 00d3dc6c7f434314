from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from herald.database import Base

DEFAULT_DEVICE_ID = "default"


class PushSubscription(Base):
    __tablename__ = "push_subscriptions"
    __table_args__ = (UniqueConstraint("owner_id", "subscription_id", name="uq_push_subscriptions_owner_sub"),)

    id = Column(Integer, primary_key=True, index=True)  # also the broadcast scan cursor
    owner_id = Column(String(255), nullable=False, index=True)
    device_id = Column(String(255), nullable=False, default=DEFAULT_DEVICE_ID)
    subscription_id = Column(String(64), nullable=False)  # sha256 hex of endpoint
    endpoint = Column(String(1000), nullable=False)
    p256dh = Column(String(255), nullable=False)  # Client public key
    auth = Column(String(255), nullable=False)  # Auth secret
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
