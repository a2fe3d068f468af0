"""
Call Status Tracking Tasks
Bounded status polling run on a Celery worker instead of the API process
"""
import asyncio
import time
from typing import Any, Dict, Optional
from celery import shared_task
from celery.utils.log import get_task_logger

from call_orchestrator.core.config import settings

logger = get_task_logger(__name__)


def run_async(coro):
    """Helper to run async code in Celery tasks"""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _poll(call_log_id: str, past_deadline: bool) -> Optional[Dict[str, Any]]:
    # Connections are bound to the event loop, so each run opens its own
    from call_orchestrator.db.repository import DatabaseRepository
    from call_orchestrator.services.call_manager import CallManager

    repos = DatabaseRepository.create_repositories(settings.database_type.lower())
    if not await repos.initialize():
        raise RuntimeError(f"Database ({settings.database_type}) unavailable")

    try:
        manager = CallManager(repositories=repos)
        session = await manager.tracker.poll_once(call_log_id)
        if session is None:
            return None
        if not session.is_terminal and past_deadline:
            await repos.call_logs.mark_unconfirmed(call_log_id)
            session = await repos.call_logs.get_session(call_log_id)
        return {"status": session.status.value, "terminal": session.is_terminal}
    finally:
        await repos.close()


@shared_task(
    bind=True,
    name="call_orchestrator.tasks.call_tasks.track_call_status_task",
    max_retries=3,
    default_retry_delay=5,
    queue="tracking"
)
def track_call_status_task(
    self,
    call_log_id: str,
    deadline: Optional[float] = None
) -> Dict[str, Any]:
    """
    Poll one call session once and reschedule until it is terminal

    Past the deadline the session keeps its last status and is flagged
    unconfirmed.
    """
    if deadline is None:
        deadline = time.time() + settings.status_poll_max_seconds
    interval = settings.status_poll_interval_seconds
    past_deadline = time.time() + interval > deadline

    try:
        result = run_async(_poll(call_log_id, past_deadline))
    except Exception as e:
        logger.error(f"Status poll for call log {call_log_id} failed: {e}")
        if self.request.retries < self.max_retries:
            raise self.retry(exc=e)
        return {"status": "failed", "error": str(e), "call_log_id": call_log_id}

    if result is None:
        logger.warning(f"Call log {call_log_id} no longer exists; stopping")
        return {"status": "missing", "call_log_id": call_log_id}

    if result["terminal"] or past_deadline:
        logger.info(f"Stopped tracking call log {call_log_id} at {result['status']}")
        return {"status": result["status"], "call_log_id": call_log_id, "task_id": self.request.id}

    track_call_status_task.apply_async(args=[call_log_id, deadline], countdown=interval)
    return {"status": result["status"], "call_log_id": call_log_id, "rescheduled": True}
