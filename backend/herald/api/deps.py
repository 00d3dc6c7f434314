from fastapi import Depends
from sqlalchemy.orm import sessionmaker

from herald.database import SessionLocal
from herald.services.registration import RegistrationService
from herald.services.registry import SubscriptionRegistry
from herald.services.vapid import VapidKeyProvider, vapid_keys


def get_session_factory() -> sessionmaker:
    return SessionLocal


def get_vapid_keys() -> VapidKeyProvider:
    return vapid_keys


def get_registry(session_factory: sessionmaker = Depends(get_session_factory)) -> SubscriptionRegistry:
    return SubscriptionRegistry(session_factory)


def get_registration_service(
    registry: SubscriptionRegistry = Depends(get_registry),
    keys: VapidKeyProvider = Depends(get_vapid_keys),
) -> RegistrationService:
    return RegistrationService(registry, keys)
