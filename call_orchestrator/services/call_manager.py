"""
Call Manager Service
Facade over the call lifecycle components. Every typed failure is turned
into the structured result envelope the UI layer renders.
"""

from typing import Any, Dict, Optional, Tuple

from call_orchestrator.core.config import settings
from call_orchestrator.core.exceptions import OrchestratorError
from call_orchestrator.core.logging import get_logger
from call_orchestrator.db.base import StoreUnavailableError
from call_orchestrator.db.repository import Repositories, get_repositories
from call_orchestrator.models.call import (
    CallIntent,
    CallResult,
    CallSession,
    ProviderPath,
    StatusQuery,
    StatusResult,
    TerminateRequest,
    TerminateResult,
)
from call_orchestrator.models.webhook import (
    CorrelationParams,
    SpeechResultPayload,
    StatusCallbackPayload,
    TwilioVoicePayload,
)
from call_orchestrator.services.credentials import CredentialResolver
from call_orchestrator.services.dispatcher import CallDispatcher
from call_orchestrator.services.request_builder import CallRequestBuilder
from call_orchestrator.services.response_interpreter import ResponseInterpreter
from call_orchestrator.services.status_tracker import CallStatusTracker
from call_orchestrator.services.telephony.twilio_service import TwilioService
from call_orchestrator.services.terminator import CallTerminator
from call_orchestrator.services.voice.elevenlabs_service import ElevenLabsService

logger = get_logger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred while processing the call"


class CallManager:
    """
    Wires the Credential Resolver, Request Builder, Dispatcher, Status
    Tracker, Terminator and Response Interpreter together
    """

    def __init__(
        self,
        repositories: Optional[Repositories] = None,
        twilio_service: Optional[TwilioService] = None,
        elevenlabs_service: Optional[ElevenLabsService] = None,
        validation_cache=None,
    ):
        self.repositories = repositories or get_repositories()
        self.twilio = twilio_service or TwilioService()
        self.elevenlabs = elevenlabs_service or ElevenLabsService()

        repos = self.repositories
        self.credentials = CredentialResolver(repos.profiles, self.twilio, self.elevenlabs, validation_cache)
        self.builder = CallRequestBuilder(repos.prospects, repos.agent_configs)
        self.dispatcher = CallDispatcher(repos.call_logs, repos.prospects, self.twilio, self.elevenlabs)
        self.tracker = CallStatusTracker(repos.call_logs, self.credentials, self.twilio)
        self.terminator = CallTerminator(repos.call_logs, self.credentials, self.twilio)
        self.interpreter = ResponseInterpreter(
            repos.call_logs, repos.prospects, repos.agent_configs, self.tracker, self.twilio
        )

    # ==================== User-facing operations ====================

    async def initiate_call(self, intent: CallIntent) -> CallResult:
        """
        Resolve credentials, build the request and dispatch it

        Returns:
            CallResult; never raises
        """
        logger.info(
            f"Dispatch requested by user {intent.user_id} for prospect {intent.prospect_id} "
            f"via {intent.provider_path.value}"
        )

        try:
            credentials = await self.credentials.resolve(intent.user_id, intent.provider_path)
            if settings.verify_credentials_on_dispatch and not intent.bypass_validation:
                await self.credentials.validate(credentials, intent.provider_path)
            request = await self.builder.build(intent, credentials)
            placed = await self.dispatcher.dispatch(request)
        except OrchestratorError as e:
            logger.warning(f"Dispatch for user {intent.user_id} failed: {e.error_code} {e.message}")
            return CallResult(
                success=False,
                call_sid=e.details.get("call_sid"),
                call_log_id=e.details.get("call_log_id"),
                code=e.error_code,
                message=e.message,
                outcome_unknown=True if getattr(e, "outcome_unknown", False) else None,
            )
        except Exception as e:
            logger.exception(f"Unexpected error dispatching call for user {intent.user_id}: {e}")
            return CallResult(success=False, code="CALL_ERROR", message=GENERIC_ERROR_MESSAGE)

        return CallResult(
            success=True,
            call_sid=placed["call_sid"],
            call_log_id=placed["call_log_id"],
            message="Call initiated successfully",
        )

    async def get_call_status(self, query: StatusQuery) -> StatusResult:
        """Check a call's status with the provider and reconcile it"""
        try:
            session = await self.tracker.check_status(query.call_sid, query.user_id)
        except OrchestratorError as e:
            return self._status_failure(e)
        except Exception as e:
            logger.exception(f"Unexpected error checking status of {query.call_sid}: {e}")
            return StatusResult(success=False, code="CALL_ERROR", message=GENERIC_ERROR_MESSAGE)

        return self._status_result(session)

    async def get_session(self, call_log_id: str) -> StatusResult:
        """Look a session up by log id, adopting its provider call if it never got one"""
        try:
            session = await self.tracker.reconcile(call_log_id)
        except OrchestratorError as e:
            return self._status_failure(e)
        except Exception as e:
            logger.exception(f"Unexpected error reconciling call log {call_log_id}: {e}")
            return StatusResult(success=False, code="CALL_ERROR", message=GENERIC_ERROR_MESSAGE)

        return self._status_result(session)

    async def list_sessions(self, user_id: str, limit: int = 50) -> Dict[str, Any]:
        """A user's call history, newest first, with any live session called out"""
        call_logs = self.repositories.call_logs
        try:
            sessions = await call_logs.list_sessions(user_id, limit=limit)
            active = await call_logs.get_active_session(user_id)
        except StoreUnavailableError as e:
            logger.error(f"Listing call logs for user {user_id} failed: {e}")
            return {"success": False, "code": "CALL_LOG_ERROR", "message": "Call history is unavailable"}

        return {
            "success": True,
            "active_call_log_id": active.id if active else None,
            "data": [session.snapshot() for session in sessions],
        }

    async def end_call(self, request: TerminateRequest) -> TerminateResult:
        """End a live call"""
        try:
            session = await self.terminator.end_call(request.call_sid)
        except OrchestratorError as e:
            return TerminateResult(success=False, code=e.error_code, message=e.message)
        except Exception as e:
            logger.exception(f"Unexpected error ending call {request.call_sid}: {e}")
            return TerminateResult(success=False, code="CALL_ERROR", message=GENERIC_ERROR_MESSAGE)

        return TerminateResult(
            success=True,
            message="Call ended successfully",
            call_status=session.status.value,
        )

    async def verify_credentials(self, user_id: str, provider_path: ProviderPath) -> Dict[str, Any]:
        """Explicitly validate a user's provider credentials"""
        try:
            credentials = await self.credentials.resolve(user_id, provider_path)
            results = await self.credentials.validate(credentials, provider_path)
        except OrchestratorError as e:
            return {"success": False, "code": e.error_code, "message": e.message}
        except Exception as e:
            logger.exception(f"Unexpected error verifying credentials for user {user_id}: {e}")
            return {"success": False, "code": "CALL_ERROR", "message": GENERIC_ERROR_MESSAGE}

        return {"success": True, "message": "Credentials verified", "data": results}

    async def track_call(self, call_log_id: str) -> Optional[CallSession]:
        """Bounded polling loop, run in the background after a dispatch"""
        return await self.tracker.poll_until_terminal(call_log_id)

    # ==================== Webhooks ====================

    async def handle_answer_webhook(self, correlation: CorrelationParams, payload: TwilioVoicePayload) -> str:
        return await self.interpreter.handle_answer(correlation, payload)

    async def handle_speech_webhook(self, correlation: CorrelationParams, payload: SpeechResultPayload) -> str:
        return await self.interpreter.handle_speech(correlation, payload)

    async def handle_status_callback(
        self,
        correlation: CorrelationParams,
        payload: StatusCallbackPayload,
    ) -> Optional[CallSession]:
        """Feed a provider status callback through the same path as polling"""
        call_logs = self.repositories.call_logs

        session = None
        if correlation.call_log_id:
            session = await call_logs.get_session(correlation.call_log_id)
        if session is None:
            session = await call_logs.get_by_call_sid(payload.CallSid)
        if session is None:
            logger.warning(f"Status callback for unknown call {payload.CallSid}")
            return None

        if not session.call_sid:
            await call_logs.record_call_sid(session.id, payload.CallSid)

        logger.info(f"Status callback for call log {session.id}: {payload.CallStatus}")
        return await self.tracker.apply_provider_status(
            session.id,
            payload.CallStatus,
            duration=payload.CallDuration,
            recording_url=payload.RecordingUrl,
        )

    async def webhook_validation_context(self, correlation: CorrelationParams) -> Tuple[bool, Optional[str]]:
        """
        Whether signature checks may be skipped for this call, and the auth
        token Twilio signed the webhook with
        """
        bypass = False
        user_id = correlation.user_id
        if correlation.call_log_id:
            session = await self.repositories.call_logs.get_session(correlation.call_log_id)
            if session is not None:
                bypass = session.bypass_validation and settings.allow_webhook_validation_bypass
                user_id = session.user_id

        if user_id:
            profile = await self.repositories.profiles.get_profile(user_id)
            if profile is not None and profile.twilio_auth_token:
                return bypass, profile.twilio_auth_token

        return bypass, settings.twilio_auth_token

    # ==================== Helpers ====================

    @staticmethod
    def _status_result(session: CallSession) -> StatusResult:
        return StatusResult(
            success=True,
            call_status=session.status.value,
            data=session.snapshot(),
        )

    @staticmethod
    def _status_failure(error: OrchestratorError) -> StatusResult:
        return StatusResult(
            success=False,
            code=error.error_code,
            message=error.message,
            outcome_unknown=True if getattr(error, "outcome_unknown", False) else None,
        )


_call_manager: Optional[CallManager] = None


def get_call_manager() -> CallManager:
    """Get the CallManager singleton instance"""
    global _call_manager
    if _call_manager is None:
        _call_manager = CallManager()
    return _call_manager


async def initialize_call_manager() -> CallManager:
    """Connect the database, create the schema and build the singleton"""
    from call_orchestrator.db.repository import initialize_database

    if not await initialize_database():
        logger.error(f"Database ({settings.database_type}) failed to initialize")
    return get_call_manager()


def set_call_manager(manager: Optional[CallManager]) -> None:
    """Replace the singleton (used by the test suite)"""
    global _call_manager
    _call_manager = manager
