"""
Celery Configuration for Call Status Tracking
"""
from celery import Celery

from call_orchestrator.core.config import settings

REDIS_URL = settings.redis_url or "redis://localhost:6379/0"

celery_app = Celery(
    "call_orchestrator",
    broker=REDIS_URL,
    backend=REDIS_URL,
    include=["call_orchestrator.tasks.call_tasks"]
)

celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task routing
    task_routes={
        "call_orchestrator.tasks.call_tasks.track_call_status_task": {"queue": "tracking"},
    },

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=120,
    task_soft_time_limit=90,

    result_expires=3600,

    broker_connection_retry_on_startup=True,
)
