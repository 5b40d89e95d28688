from celery import Celery
from celery.schedules import schedule
from kombu import Queue

from app.core.config import settings

celery_app = Celery(
    "status_page",
    broker=settings.cache_redis_url,
    backend=settings.cache_redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_default_queue="scheduler",
    task_queues=(
        Queue("scheduler"),
        Queue("probes"),
    ),
    task_routes={
        "workers.tasks.check_all_component_versions": {"queue": "probes"},
        "workers.tasks.rescan_component": {"queue": "probes"},
        "workers.tasks.reconcile_component_statuses": {"queue": "scheduler"},
        "workers.tasks.worker_heartbeat": {"queue": "scheduler"},
    },
    beat_schedule={
        "version-check-every-interval": {
            "task": "workers.tasks.check_all_component_versions",
            "schedule": schedule(float(settings.version_check_interval_seconds)),
            "options": {"queue": "probes"},
        },
        "worker-heartbeat-every-15s": {
            "task": "workers.tasks.worker_heartbeat",
            "schedule": schedule(15.0),
            "options": {"queue": "scheduler"},
        },
    },
)

celery_app.autodiscover_tasks(["workers"])
