"""
Call Terminator
"""

import asyncio
from typing import Optional

from call_orchestrator.core.config import settings
from call_orchestrator.core.exceptions import NoActiveCallError, ProviderTimeoutError
from call_orchestrator.core.logging import get_logger
from call_orchestrator.db.repository import CallLogRepository
from call_orchestrator.models.call import CallSession, CallStatus, utcnow
from call_orchestrator.services.credentials import CredentialResolver
from call_orchestrator.services.telephony.twilio_service import TwilioService

logger = get_logger(__name__)

# Calls that have not been answered can only be canceled
UNANSWERED_STATUSES = {CallStatus.INITIATED, CallStatus.QUEUED, CallStatus.RINGING}


class CallTerminator:
    """
    Ends a live call early.

    The local terminal update is optimistic: the provider's status
    callbacks and polling remain authoritative, and the forward-only
    transition rules keep a later report from reopening the session.
    """

    def __init__(
        self,
        call_logs: CallLogRepository,
        credentials: CredentialResolver,
        twilio_service: Optional[TwilioService] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.call_logs = call_logs
        self.credentials = credentials
        self.twilio_service = twilio_service or TwilioService()
        self.timeout_seconds = timeout_seconds or settings.terminate_timeout_seconds

    async def end_call(self, call_sid: str) -> CallSession:
        """
        Ask the provider to end the call and close the session locally

        Raises:
            NoActiveCallError: the call is unknown or already terminal
            ProviderTimeoutError: the provider did not answer in time
            ProviderRejectedError: the provider refused the request
        """
        session = await self.call_logs.get_by_call_sid(call_sid)
        if session is None or session.is_terminal:
            raise NoActiveCallError(call_sid)

        target = CallStatus.CANCELED if session.status in UNANSWERED_STATUSES else CallStatus.COMPLETED
        credentials = await self.credentials.resolve_for_status(session.user_id)

        try:
            await asyncio.wait_for(
                self.twilio_service.end_call(credentials, call_sid, target),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError("end call", self.timeout_seconds, call_sid=call_sid) from e

        updated, changed = await self.call_logs.transition(session.id, target, {"ended_at": utcnow()})
        if not changed:
            logger.info(f"Call {call_sid} was already {updated.status.value if updated else 'gone'} locally")
        else:
            logger.info(f"Call {call_sid} ended as {target.value}")
        return updated or session
