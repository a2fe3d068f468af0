"""
Celery Tasks for Background Call Tracking
"""
from .celery_app import celery_app
from .call_tasks import track_call_status_task

__all__ = ["celery_app", "track_call_status_task"]
