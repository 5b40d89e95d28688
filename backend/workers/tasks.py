import asyncio
import logging
from datetime import UTC, datetime
from uuid import UUID

from app.application.services.incident_impact_service import reconcile_component_statuses as reconcile_statuses
from app.application.services.status_errors import ComponentNotFoundError
from app.application.services.version_check_service import build_version_check_service
from app.core.config import settings
from app.infrastructure.cache.redis_client import get_redis_client
from app.infrastructure.db.session import SessionLocal
from app.infrastructure.observability.metrics import increment_background_counter, measure_redis
from workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="workers.tasks.ping")
def ping() -> str:
    return "pong"


@celery_app.task(name="workers.tasks.worker_heartbeat")
def worker_heartbeat() -> dict:
    redis_client = get_redis_client()
    now = datetime.now(UTC).isoformat()
    with measure_redis("worker_heartbeat_set"):
        redis_client.set(
            settings.worker_heartbeat_key,
            now,
            ex=max(15, settings.worker_heartbeat_ttl_seconds),
        )
    return {"heartbeat_at": now}


@celery_app.task(name="workers.tasks.check_all_component_versions")
def check_all_component_versions() -> dict:
    # Fresh service per run: asyncio.run gives every task its own event loop.
    service = build_version_check_service(distributed_lock=True)
    results = asyncio.run(service.run_scheduled_cycle())
    if results is None:
        logger.info("version_check_task_skipped reason=lock_not_acquired")
        return {"status": "skipped", "reason": "lock_not_acquired"}

    unreachable = sum(1 for result in results if not result.reachable)
    increment_background_counter("version_check_cycles_total")
    if unreachable:
        increment_background_counter("version_probe_failures_total", unreachable)
    logger.info("version_check_task_completed checked=%s unreachable=%s", len(results), unreachable)
    return {"status": "completed", "checked": len(results), "unreachable": unreachable}


@celery_app.task(name="workers.tasks.rescan_component")
def rescan_component(component_id: str) -> dict:
    service = build_version_check_service()
    with SessionLocal() as db:
        try:
            results = asyncio.run(service.rescan_potential_outages(db, UUID(component_id)))
        except ComponentNotFoundError:
            logger.warning("rescan_component_not_found component_id=%s", component_id)
            return {"status": "missing"}
    return {channel: result.to_dict() if result else None for channel, result in results.items()}


@celery_app.task(name="workers.tasks.reconcile_component_statuses")
def reconcile_component_statuses() -> dict:
    with SessionLocal() as db:
        result = reconcile_statuses(db)
    return {"affected": len(result.affected), "reset": len(result.reset)}
