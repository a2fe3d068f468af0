"""
Call Status Tracker
Reconciles provider-reported call status into the canonical session record
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Optional

from call_orchestrator.core.config import settings
from call_orchestrator.core.exceptions import (
    CallNotFoundError,
    OrchestratorError,
    ProviderTimeoutError,
    StatusCheckTimeoutError,
)
from call_orchestrator.core.logging import get_logger
from call_orchestrator.db.base import StoreUnavailableError
from call_orchestrator.db.repository import CallLogRepository
from call_orchestrator.models.call import CallSession, CallStatus, utcnow
from call_orchestrator.models.provider import TwilioCallInfo
from call_orchestrator.services.credentials import CredentialResolver
from call_orchestrator.services.telephony.twilio_service import TwilioService

logger = get_logger(__name__)

# Tolerance between our clock and the provider's when matching unplaced calls
CLOCK_SKEW = timedelta(seconds=10)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=utcnow().tzinfo)
    return value


class CallStatusTracker:
    """
    Status checks, status callbacks and the bounded polling loop.

    The provider is the only source of transitions. Every update goes
    through CallLogRepository.transition, which keeps terminal sessions
    frozen and progression forward-only.
    """

    def __init__(
        self,
        call_logs: CallLogRepository,
        credentials: CredentialResolver,
        twilio_service: Optional[TwilioService] = None,
        timeout_seconds: Optional[float] = None,
        poll_interval_seconds: Optional[float] = None,
        poll_max_seconds: Optional[float] = None,
    ):
        self.call_logs = call_logs
        self.credentials = credentials
        self.twilio_service = twilio_service or TwilioService()
        self.timeout_seconds = timeout_seconds or settings.status_check_timeout_seconds
        self.poll_interval_seconds = (
            poll_interval_seconds if poll_interval_seconds is not None
            else settings.status_poll_interval_seconds
        )
        self.poll_max_seconds = (
            poll_max_seconds if poll_max_seconds is not None
            else settings.status_poll_max_seconds
        )

    async def check_status(self, call_sid: str, user_id: Optional[str] = None) -> CallSession:
        """
        Fetch the call's status from the provider and apply it

        Terminal sessions are returned as stored without contacting the provider.

        Raises:
            CallNotFoundError: no local session, or the provider has no such call
            StatusCheckTimeoutError: the provider did not answer in time
        """
        session = await self.call_logs.get_by_call_sid(call_sid)
        if session is None:
            raise CallNotFoundError(call_sid)
        if session.is_terminal:
            return session

        credentials = await self.credentials.resolve_for_status(user_id or session.user_id)
        try:
            info = await asyncio.wait_for(
                self.twilio_service.get_call(credentials, call_sid),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.warning(f"Status check for {call_sid} timed out after {self.timeout_seconds:g}s")
            raise StatusCheckTimeoutError(call_sid, self.timeout_seconds) from e

        logger.debug(f"Provider reports {call_sid} as {info.status}")
        updated = await self.apply_call_info(session.id, info)
        return updated or session

    async def apply_call_info(self, call_log_id: str, info: TwilioCallInfo) -> Optional[CallSession]:
        return await self.apply_provider_status(
            call_log_id,
            info.status,
            duration=info.duration,
            cost=info.price,
            ended_at=info.end_time,
        )

    async def apply_provider_status(
        self,
        call_log_id: str,
        provider_status: Any,
        duration: Optional[int] = None,
        recording_url: Optional[str] = None,
        cost: Optional[float] = None,
        ended_at: Optional[datetime] = None,
    ) -> Optional[CallSession]:
        """
        Apply one provider status report, from polling or a status callback

        Unknown status strings are logged and ignored.
        """
        status = CallStatus.normalize(provider_status)
        if status is None:
            logger.warning(f"Ignoring unrecognised provider status {provider_status!r} for call log {call_log_id}")
            return await self.call_logs.get_session(call_log_id)

        details = {}
        if status.is_terminal:
            details = {
                "ended_at": _aware(ended_at) or utcnow(),
                "duration_seconds": duration,
                "recording_url": recording_url,
                "cost": cost,
            }
        elif recording_url:
            details = {"recording_url": recording_url}

        session, changed = await self.call_logs.transition(call_log_id, status, details)
        if session is not None and changed and session.is_terminal:
            logger.info(f"Call log {call_log_id} reached terminal status {session.status.value}")
        return session

    async def poll_once(self, call_log_id: str) -> Optional[CallSession]:
        """
        One polling iteration

        Provider errors are logged; the next iteration tries again.
        """
        session = await self.call_logs.get_session(call_log_id)
        if session is None or session.is_terminal:
            return session

        try:
            if session.call_sid:
                return await self.check_status(session.call_sid, session.user_id)
            return await self.reconcile(call_log_id)
        except (OrchestratorError, StoreUnavailableError) as e:
            logger.warning(f"Status poll for call log {call_log_id} failed: {e}")
            return session

    async def poll_until_terminal(self, call_log_id: str) -> Optional[CallSession]:
        """
        Poll on a fixed interval until the session is terminal or the ceiling passes

        At the ceiling the session keeps its last known status and is
        flagged unconfirmed.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.poll_max_seconds
        logger.info(f"Tracking call log {call_log_id} every {self.poll_interval_seconds:g}s")

        while True:
            session = await self.poll_once(call_log_id)
            if session is None or session.is_terminal:
                return session

            if loop.time() + self.poll_interval_seconds > deadline:
                await self.call_logs.mark_unconfirmed(call_log_id)
                return await self.call_logs.get_session(call_log_id)

            await asyncio.sleep(self.poll_interval_seconds)

    async def reconcile(self, call_log_id: str) -> CallSession:
        """
        Look up a session by log id, adopting its provider call if it never got one

        A session without a call SID is matched against recent provider calls
        to the same number. If none shows up within the grace period the
        provider never placed it, and the session is marked failed.

        Raises:
            CallNotFoundError: no such session
        """
        session = await self.call_logs.get_session(call_log_id)
        if session is None:
            raise CallNotFoundError(call_log_id)
        if session.is_terminal or session.call_sid:
            return session

        credentials = await self.credentials.resolve_for_status(session.user_id)
        started_after = _aware(session.started_at) - CLOCK_SKEW
        try:
            calls = await asyncio.wait_for(
                self.twilio_service.list_calls(
                    credentials,
                    to_number=session.to_number,
                    started_after=started_after,
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError("reconciliation", self.timeout_seconds, call_log_id=call_log_id) from e

        match = await self._find_unclaimed(calls, started_after)
        if match is not None:
            logger.info(f"Adopting provider call {match.sid} for call log {call_log_id}")
            await self.call_logs.record_call_sid(call_log_id, match.sid)
            return await self.apply_call_info(call_log_id, match) or session

        age = utcnow() - _aware(session.started_at)
        if age.total_seconds() > settings.unplaced_call_grace_seconds:
            logger.warning(f"Provider has no call for call log {call_log_id}; marking failed")
            failed, _ = await self.call_logs.transition(
                call_log_id,
                CallStatus.FAILED,
                {
                    "ended_at": utcnow(),
                    "error_code": "CALL_ERROR",
                    "error_message": "Provider has no record of this call",
                },
            )
            return failed or session

        return session

    async def _find_unclaimed(self, calls, started_after: datetime) -> Optional[TwilioCallInfo]:
        candidates = []
        for call in calls:
            created = _aware(call.date_created or call.start_time)
            if created is not None and created < started_after:
                continue
            if await self.call_logs.get_by_call_sid(call.sid) is not None:
                continue
            candidates.append((created or utcnow(), call))

        if not candidates:
            return None
        candidates.sort(key=lambda pair: pair[0])
        return candidates[0][1]
