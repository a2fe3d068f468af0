"""
Call lifecycle API routes
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Query

from call_orchestrator.api.middleware.auth import require_api_key
from call_orchestrator.core.config import settings
from call_orchestrator.core.logging import get_logger
from call_orchestrator.models.call import (
    CallIntent,
    CallResult,
    StatusQuery,
    StatusResult,
    TerminateRequest,
    TerminateResult,
)
from call_orchestrator.services.call_manager import CallManager, get_call_manager

logger = get_logger(__name__)

router = APIRouter(prefix="/calls", tags=["calls"], dependencies=[Depends(require_api_key)])


def get_manager() -> CallManager:
    """Dependency to get call manager"""
    return get_call_manager()


def schedule_tracking(call_log_id: str, manager: CallManager, background_tasks: BackgroundTasks) -> None:
    """Start the bounded status polling loop on the configured backend"""
    backend = settings.status_tracking_backend
    if backend == "background":
        background_tasks.add_task(manager.track_call, call_log_id)
    elif backend == "celery":
        from call_orchestrator.tasks.call_tasks import track_call_status_task

        track_call_status_task.delay(call_log_id)
    else:
        logger.debug(f"Status tracking disabled; call log {call_log_id} relies on callbacks")


# Static routes MUST come before dynamic routes with path parameters

@router.post("/dispatch", response_model=CallResult, response_model_exclude_none=True)
async def dispatch_call(
    intent: CallIntent,
    background_tasks: BackgroundTasks,
    manager: CallManager = Depends(get_manager)
):
    """
    Place an outbound call to a prospect

    - **prospectId**: Prospect to call
    - **agentConfigId**: Agent configuration (greeting, prompt, voice)
    - **userId**: Owner of the provider credentials
    - **providerPath**: `telephony` or `telephony+conversation`
    - **voiceOverride** / **conversationAgentId**: Optional per-call overrides
    """
    result = await manager.initiate_call(intent)

    # A pending session with an unknown outcome is reconciled by the same loop
    if result.call_log_id and (result.success or result.outcome_unknown):
        schedule_tracking(result.call_log_id, manager, background_tasks)

    return result


@router.post("/status", response_model=StatusResult, response_model_exclude_none=True)
async def call_status(
    query: StatusQuery,
    manager: CallManager = Depends(get_manager)
):
    """
    Check a call's status with the provider
    """
    return await manager.get_call_status(query)


@router.post("/end", response_model=TerminateResult, response_model_exclude_none=True)
async def end_call(
    request: TerminateRequest,
    manager: CallManager = Depends(get_manager)
):
    """
    End a live call
    """
    logger.info(f"End requested for call {request.call_sid}")
    return await manager.end_call(request)


@router.get("")
async def list_calls(
    user_id: str = Query(..., alias="userId"),
    limit: int = Query(50, ge=1, le=200),
    manager: CallManager = Depends(get_manager)
):
    """
    A user's call sessions, newest first

    `active_call_log_id` names the session currently holding the user's
    in-flight slot, if any.
    """
    return await manager.list_sessions(user_id, limit=limit)


@router.get("/{call_log_id}", response_model=StatusResult, response_model_exclude_none=True)
async def get_call(
    call_log_id: str,
    manager: CallManager = Depends(get_manager)
):
    """
    Get a call session by log id, reconciling it with the provider when it has no call SID
    """
    return await manager.get_session(call_log_id)
