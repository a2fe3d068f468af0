"""
Twilio Telephony Service
Places, inspects and ends calls on a user's Twilio account and builds the
TwiML documents the webhooks answer with
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional, Dict, Any, List, AsyncIterator
from urllib.parse import urlencode

from twilio.rest import Client
from twilio.base.exceptions import TwilioRestException
from twilio.http.async_http_client import AsyncTwilioHttpClient
from twilio.twiml.voice_response import VoiceResponse

from call_orchestrator.core.config import settings
from call_orchestrator.core.exceptions import (
    CallNotFoundError,
    CredentialsInvalidError,
    ProviderRejectedError,
)
from call_orchestrator.core.logging import get_logger, mask_phone
from call_orchestrator.models.call import CallStatus, NormalizedCallRequest, ProviderCredentials
from call_orchestrator.models.provider import DispatchOutcome, TwilioCallInfo

logger = get_logger(__name__)

STATUS_CALLBACK_EVENTS = ["initiated", "ringing", "answered", "completed"]
TRIAL_ACCOUNT_ERROR_CODES = {21219, 21215}
RATE_LIMIT_ERROR_CODES = {20429}
AUTH_ERROR_CODES = {20003}

GOODBYE_MESSAGE = "Thank you for your time. Goodbye."
APOLOGY_MESSAGE = (
    "I'm sorry, there was an error processing your response. "
    "Thank you for your time. Goodbye."
)


def map_twilio_error(error: TwilioRestException) -> ProviderRejectedError:
    """
    Map a Twilio REST error onto a stable error code

    Args:
        error: Exception raised by twilio-python

    Returns:
        ProviderRejectedError carrying the mapped code
    """
    message = error.msg or str(error)
    lowered = message.lower()

    if "trial account" in lowered or error.code in TRIAL_ACCOUNT_ERROR_CODES:
        code = "TWILIO_TRIAL_ACCOUNT"
    elif error.status == 429 or error.code in RATE_LIMIT_ERROR_CODES:
        code = "RATE_LIMITED"
    else:
        code = "TWILIO_API_ERROR"

    return ProviderRejectedError("Twilio", message, error_code=code, provider_code=error.code)


def webhook_url(path: str, params: Optional[Dict[str, str]] = None) -> str:
    """Absolute URL of one of our Twilio webhooks, with correlation query parameters"""
    url = f"{settings.webhook_base_url}/{path.lstrip('/')}"
    if params:
        url = f"{url}?{urlencode(params)}"
    return url


class TwilioService:
    """Service for interacting with the Twilio API on behalf of one account"""

    def __init__(self, voice: Optional[str] = None):
        self.voice = voice or settings.voice_name

    @asynccontextmanager
    async def _client(self, credentials: ProviderCredentials) -> AsyncIterator[Client]:
        http_client = AsyncTwilioHttpClient()
        client = Client(
            credentials.twilio_account_sid,
            credentials.twilio_auth_token,
            http_client=http_client,
        )
        try:
            yield client
        finally:
            await http_client.close()

    async def place_call(self, request: NormalizedCallRequest) -> DispatchOutcome:
        """
        Initiate an outbound call whose voice URL is our greeting webhook

        Args:
            request: Fully resolved call request

        Returns:
            DispatchOutcome with the Twilio call SID

        Raises:
            ProviderRejectedError: Twilio refused the call
        """
        correlation = request.correlation_params()
        call_params = {
            "to": request.to_number,
            "from_": request.from_number,
            "url": webhook_url("voice", correlation),
            "method": "POST",
            "status_callback": webhook_url("status", {"call_log_id": request.call_log_id}),
            "status_callback_event": STATUS_CALLBACK_EVENTS,
            "status_callback_method": "POST",
            "record": True,
        }

        logger.info(
            f"Initiating Twilio call to {mask_phone(request.to_number)} "
            f"for call log {request.call_log_id}"
        )

        try:
            async with self._client(request.credentials) as client:
                call = await client.calls.create_async(**call_params)
        except TwilioRestException as e:
            logger.error(f"Twilio API error: {e.code} - {e.msg}")
            raise map_twilio_error(e) from e

        logger.info(f"Call initiated successfully: {call.sid}")
        return DispatchOutcome(
            call_sid=call.sid,
            provider="twilio",
            status=str(call.status) if call.status else None,
        )

    async def get_call(self, credentials: ProviderCredentials, call_sid: str) -> TwilioCallInfo:
        """
        Get information about a call

        Raises:
            CallNotFoundError: Twilio has no such call
            ProviderRejectedError: any other Twilio error
        """
        try:
            async with self._client(credentials) as client:
                call = await client.calls(call_sid).fetch_async()
        except TwilioRestException as e:
            if e.status == 404:
                raise CallNotFoundError(call_sid) from e
            logger.error(f"Failed to get call {call_sid}: {e.msg}")
            raise map_twilio_error(e) from e

        return TwilioCallInfo.from_resource(call)

    async def end_call(
        self,
        credentials: ProviderCredentials,
        call_sid: str,
        status: CallStatus = CallStatus.COMPLETED,
    ) -> TwilioCallInfo:
        """
        End an active call

        Twilio only accepts 'canceled' for calls that have not been answered
        and 'completed' for calls that have.
        """
        logger.info(f"Ending call {call_sid} as {status.value}")

        try:
            async with self._client(credentials) as client:
                call = await client.calls(call_sid).update_async(status=status.value)
        except TwilioRestException as e:
            if e.status == 404:
                raise CallNotFoundError(call_sid) from e
            logger.error(f"Failed to end call {call_sid}: {e.msg}")
            raise map_twilio_error(e) from e

        return TwilioCallInfo.from_resource(call)

    async def list_calls(
        self,
        credentials: ProviderCredentials,
        to_number: Optional[str] = None,
        started_after: Optional[datetime] = None,
        limit: int = 20,
    ) -> List[TwilioCallInfo]:
        """
        List recent calls, optionally to one number since a given time
        """
        params: Dict[str, Any] = {"limit": limit}
        if to_number:
            params["to"] = to_number
        if started_after:
            params["start_time_after"] = started_after

        try:
            async with self._client(credentials) as client:
                calls = await client.calls.list_async(**params)
        except TwilioRestException as e:
            logger.error(f"Failed to list calls: {e.msg}")
            raise map_twilio_error(e) from e

        return [TwilioCallInfo.from_resource(call) for call in calls]

    async def verify_account(self, credentials: ProviderCredentials) -> Dict[str, Any]:
        """
        Fetch the account resource to prove the SID/token pair works

        Raises:
            CredentialsInvalidError: Twilio rejected the credentials
        """
        try:
            async with self._client(credentials) as client:
                account = await client.api.v2010.accounts(credentials.twilio_account_sid).fetch_async()
        except TwilioRestException as e:
            if e.status in (401, 403, 404) or e.code in AUTH_ERROR_CODES:
                raise CredentialsInvalidError("Twilio", e.msg or "authentication failed") from e
            raise map_twilio_error(e) from e

        return {
            "account_sid": account.sid,
            "friendly_name": account.friendly_name,
            "status": str(account.status) if account.status else None,
            "type": str(account.type) if account.type else None,
        }

    # ==================== TwiML ====================

    def generate_greeting_twiml(self, greeting: str, gather_action_url: str) -> str:
        """
        Greeting followed by a speech <Gather> that posts the answer back to us

        Args:
            greeting: Personalised opening line
            gather_action_url: Response webhook URL carrying correlation params

        Returns:
            TwiML string
        """
        response = VoiceResponse()
        response.say(greeting, voice=self.voice)
        response.pause(length=1)

        gather = response.gather(
            input="speech",
            action=gather_action_url,
            method="POST",
            timeout=5,
            speech_timeout="auto",
        )
        gather.say(
            "I'm listening for your response. Please let me know if you'd be "
            "interested in speaking with an agent.",
            voice=self.voice,
        )

        response.say("I didn't catch that. Thank you for your time. Goodbye.", voice=self.voice)
        response.hangup()
        return str(response)

    def generate_reply_twiml(self, reply: str) -> str:
        """Speak the reply, say goodbye and hang up"""
        response = VoiceResponse()
        response.say(reply, voice=self.voice)
        response.pause(length=1)
        response.say(GOODBYE_MESSAGE, voice=self.voice)
        response.hangup()
        return str(response)

    def generate_hangup_twiml(self, message: Optional[str] = None) -> str:
        """
        Generate TwiML to hang up a call

        Args:
            message: Optional message before hanging up

        Returns:
            TwiML string
        """
        response = VoiceResponse()

        if message:
            response.say(message, voice=self.voice)

        response.hangup()
        return str(response)
