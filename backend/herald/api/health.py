from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

from herald.api.deps import get_session_factory
from herald.redis.client import get_redis

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(session_factory: sessionmaker = Depends(get_session_factory)) -> dict:
    result: dict = {"status": "healthy", "database": "connected", "redis": "disconnected"}
    try:
        with session_factory() as db:
            db.execute(text("SELECT 1"))
    except Exception as exc:
        result.update(status="unhealthy", database="disconnected", error=str(exc))

    r = get_redis()
    if r is not None:
        try:
            await r.ping()
            result["redis"] = "connected"
        except Exception as exc:
            result.update(status="unhealthy", error=str(exc))
    else:
        result["status"] = "unhealthy"
    return result
