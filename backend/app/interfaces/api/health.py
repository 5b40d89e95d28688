from time import perf_counter

from fastapi import APIRouter, Request, Response, status
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.infrastructure.cache.redis_client import get_redis_client
from app.infrastructure.db.session import SessionLocal
from app.infrastructure.observability.metrics import measure_redis, metrics_response

router = APIRouter()


def _scheduler_state(request: Request) -> dict:
    scheduler = getattr(request.app.state, "version_check_scheduler", None)
    if scheduler is None:
        return {"running": False, "last_run_at": None}
    return {
        "running": scheduler.is_running,
        "last_run_at": scheduler.last_run_at.isoformat() if scheduler.last_run_at else None,
    }


@router.get("/health", status_code=status.HTTP_200_OK)
def health_check(request: Request) -> dict:
    db_status = "up"
    redis_status = "up"
    db_latency_ms: float | None = None
    redis_latency_ms: float | None = None
    worker_alive = False

    try:
        db_started_at = perf_counter()
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        db_latency_ms = round((perf_counter() - db_started_at) * 1000, 2)
    except SQLAlchemyError:
        db_status = "down"

    try:
        redis_client = get_redis_client()
        redis_started_at = perf_counter()
        with measure_redis("health_ping"):
            redis_client.ping()
        redis_latency_ms = round((perf_counter() - redis_started_at) * 1000, 2)

        with measure_redis("health_worker_heartbeat_check"):
            worker_alive = bool(redis_client.exists(settings.worker_heartbeat_key))
    except RedisError:
        redis_status = "down"
        worker_alive = False

    scheduler = _scheduler_state(request)
    # Either the in-process scheduler or a Celery worker must be driving version checks.
    checks_driven = scheduler["running"] or worker_alive
    overall = "ok" if db_status == "up" and redis_status == "up" and checks_driven else "degraded"

    return {
        "status": overall,
        "version": settings.app_version,
        "services": {
            "api": "up",
            "database": db_status,
            "redis": redis_status,
            "worker_alive": worker_alive,
            "version_check_scheduler": scheduler,
            "db_latency_ms": db_latency_ms,
            "redis_latency_ms": redis_latency_ms,
        },
    }


@router.get("/ready", status_code=status.HTTP_200_OK)
def readiness_check(request: Request, response: Response) -> dict:
    payload = health_check(request)
    services = payload["services"]
    if services["database"] != "up" or not (services["worker_alive"] or services["version_check_scheduler"]["running"]):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "not_ready", "services": services}
    return {"status": "ready", "services": services}


@router.get("/metrics", include_in_schema=False)
def metrics():
    return metrics_response()
