from fastapi import APIRouter, Depends, Response
import redis
from sqlalchemy import text
from sqlalchemy.orm import Session

from ugcstudio.core.config import settings
from ugcstudio.db.session import get_db
from ugcstudio.services.circuit_breaker import get_circuit_breaker
from ugcstudio.services.dispatch.client import PROVIDER


router = APIRouter()


@router.get("/health")
def health() -> dict:
    """Liveness probe - always returns 200 if app is running."""
    return {"status": "ok"}


@router.get("/ready")
def readiness(response: Response, db: Session = Depends(get_db)) -> dict:
    """
    Readiness probe.

    The database is required (503 when it is down). Redis only backs the
    in-flight claim, which fails open, so a Redis outage reports "degraded".
    """
    checks: dict[str, str] = {}
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"
    try:
        redis.Redis.from_url(settings.redis_url, socket_connect_timeout=1).ping()
        checks["redis"] = "ok"
    except redis.RedisError as e:
        checks["redis"] = f"error: {e}"
    checks["automation_circuit"] = get_circuit_breaker(PROVIDER).current_state

    if checks["database"] != "ok":
        response.status_code = 503
        return {"status": "not_ready", "checks": checks}
    status = "ready" if checks["redis"] == "ok" else "degraded"
    return {"status": status, "checks": checks}
