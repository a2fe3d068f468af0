"""
Call Dispatcher
Submits a NormalizedCallRequest to the provider under the in-flight guard
and a fixed request timeout
"""

import asyncio
from typing import Dict, Optional, Set

from call_orchestrator.core.config import settings
from call_orchestrator.core.exceptions import (
    CallAlreadyInProgressError,
    CallLogError,
    PlacementUnconfirmedError,
    ProviderRejectedError,
    ProviderTimeoutError,
)
from call_orchestrator.core.logging import get_logger, mask_phone
from call_orchestrator.db.base import DuplicateKeyError, StoreUnavailableError
from call_orchestrator.db.repository import CallLogRepository, ProspectRepository
from call_orchestrator.models.call import (
    CallSession,
    CallStatus,
    NormalizedCallRequest,
    ProviderPath,
    utcnow,
)
from call_orchestrator.models.provider import DispatchOutcome
from call_orchestrator.services.telephony.twilio_service import TwilioService
from call_orchestrator.services.voice.elevenlabs_service import ElevenLabsService

logger = get_logger(__name__)


class CallDispatcher:
    """
    Places calls.

    The session row is reserved in INITIATED before the provider is
    contacted; the database's one-live-session-per-user index makes that
    reservation the in-flight guard. A timed-out placement keeps running
    in the background and settles the reserved row when it finishes.
    """

    def __init__(
        self,
        call_logs: CallLogRepository,
        prospects: ProspectRepository,
        twilio_service: Optional[TwilioService] = None,
        elevenlabs_service: Optional[ElevenLabsService] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.call_logs = call_logs
        self.prospects = prospects
        self.twilio_service = twilio_service or TwilioService()
        self.elevenlabs_service = elevenlabs_service or ElevenLabsService()
        self.timeout_seconds = timeout_seconds or settings.dispatch_timeout_seconds
        self._background: Set[asyncio.Task] = set()

    async def dispatch(self, request: NormalizedCallRequest) -> Dict[str, str]:
        """
        Place the call

        Returns:
            {"call_sid": ..., "call_log_id": ...}

        Raises:
            CallAlreadyInProgressError: the user already has a live session
            ProviderTimeoutError: no answer from the provider in time; outcome unknown
            ProviderRejectedError: the provider refused the call
            PlacementUnconfirmedError: the request failed with no provider verdict; outcome unknown
            CallLogError: the session row could not be written
        """
        active = await self.call_logs.get_active_session(request.user_id)
        if active is not None:
            logger.info(f"Rejecting dispatch for user {request.user_id}: call log {active.id} is {active.status.value}")
            raise CallAlreadyInProgressError(active.id, active.call_sid)

        await self._reserve_session(request)

        if request.debug_mode:
            logger.info(
                f"[debug] dispatching {request.call_log_id} via {request.provider_path.value}: "
                f"to={mask_phone(request.to_number)} from={mask_phone(request.from_number)} "
                f"voice={request.conversation.voice_id} agent={request.conversation.conversation_agent_id}"
            )

        placement = asyncio.ensure_future(self._place(request))
        try:
            outcome = await asyncio.wait_for(asyncio.shield(placement), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                f"Dispatch of call log {request.call_log_id} timed out after "
                f"{self.timeout_seconds:g}s; outcome unknown"
            )
            self._settle_in_background(placement, request)
            raise ProviderTimeoutError("call placement", self.timeout_seconds, call_log_id=request.call_log_id)
        except ProviderRejectedError as e:
            await self._mark_failed(request.call_log_id, e)
            raise
        except ProviderTimeoutError as e:
            # The provider client's own socket timeout fired first
            logger.warning(f"Placement of call log {request.call_log_id} timed out in the provider client")
            raise ProviderTimeoutError(
                "call placement", self.timeout_seconds, call_log_id=request.call_log_id
            ) from e
        except Exception as e:
            logger.exception(
                f"Placement of call log {request.call_log_id} failed without a provider verdict: {e!r}"
            )
            raise PlacementUnconfirmedError(request.call_log_id, repr(e)) from e

        await self._record_placement(request, outcome)
        return {"call_sid": outcome.call_sid, "call_log_id": request.call_log_id}

    async def _reserve_session(self, request: NormalizedCallRequest) -> None:
        session = CallSession(
            id=request.call_log_id,
            user_id=request.user_id,
            prospect_id=request.prospect_id,
            agent_config_id=request.agent_config_id,
            provider_path=request.provider_path,
            status=CallStatus.INITIATED,
            to_number=request.to_number,
            bypass_validation=request.bypass_validation,
            started_at=utcnow(),
        )
        try:
            await self.call_logs.create_session(session)
        except DuplicateKeyError as e:
            # Lost the race against a concurrent dispatch for the same user
            logger.info(f"Concurrent dispatch detected for user {request.user_id}")
            raise CallAlreadyInProgressError() from e
        except StoreUnavailableError as e:
            raise CallLogError(str(e)) from e

    async def _place(self, request: NormalizedCallRequest) -> DispatchOutcome:
        if request.provider_path == ProviderPath.TELEPHONY_CONVERSATION:
            return await self.elevenlabs_service.place_call(request)
        return await self.twilio_service.place_call(request)

    async def _record_placement(self, request: NormalizedCallRequest, outcome: DispatchOutcome) -> None:
        try:
            await self.call_logs.record_call_sid(request.call_log_id, outcome.call_sid)
            reported = CallStatus.normalize(outcome.status)
            if reported is not None:
                await self.call_logs.transition(request.call_log_id, reported)
            await self.prospects.mark_calling(request.prospect_id)
        except (StoreUnavailableError, DuplicateKeyError) as e:
            logger.error(f"Call {outcome.call_sid} placed but call log {request.call_log_id} not updated: {e}")
            raise CallLogError(str(e)) from e

        logger.info(f"Call log {request.call_log_id} dispatched as {outcome.call_sid}")

    async def _mark_failed(self, call_log_id: str, error: ProviderRejectedError) -> None:
        logger.warning(f"Provider rejected call log {call_log_id}: {error.error_code} {error.message}")
        await self.call_logs.transition(
            call_log_id,
            CallStatus.FAILED,
            {
                "ended_at": utcnow(),
                "error_code": error.error_code,
                "error_message": error.message,
            },
        )

    def _settle_in_background(self, placement: asyncio.Future, request: NormalizedCallRequest) -> None:
        task = asyncio.ensure_future(self._settle_late_placement(placement, request))
        self._background.add(task)
        task.add_done_callback(self._background_done)

    def _background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Settling a late placement failed: {task.exception()!r}")

    async def _settle_late_placement(self, placement: asyncio.Future, request: NormalizedCallRequest) -> None:
        try:
            outcome = await placement
        except ProviderRejectedError as e:
            await self._mark_failed(request.call_log_id, e)
            return
        except ProviderTimeoutError:
            logger.warning(f"Late placement of call log {request.call_log_id} never answered; left for reconciliation")
            return

        logger.info(f"Late placement of call log {request.call_log_id} succeeded")
        await self._record_placement(request, outcome)

    async def drain(self) -> None:
        """Wait for late placements still settling in the background"""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
