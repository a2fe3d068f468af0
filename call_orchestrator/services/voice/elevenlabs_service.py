"""
ElevenLabs Conversational AI Service
Places calls through ElevenLabs' Twilio bridge and checks API keys
"""

from typing import Optional, Dict, Any

import httpx

from call_orchestrator.core.config import settings
from call_orchestrator.core.exceptions import (
    CredentialsInvalidError,
    ProviderRejectedError,
    ProviderTimeoutError,
)
from call_orchestrator.core.logging import get_logger, mask_phone
from call_orchestrator.models.call import NormalizedCallRequest
from call_orchestrator.models.provider import DispatchOutcome, ElevenLabsOutboundCallResponse

logger = get_logger(__name__)

OUTBOUND_CALL_PATH = "/v1/convai/twilio/outbound-call"
USER_PATH = "/v1/user"


def _error_detail(response: httpx.Response) -> str:
    """Pull a readable message out of an ElevenLabs error body"""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase

    detail = body.get("message") or body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, dict):
        detail = detail.get("message") or detail.get("status")
    return str(detail or response.text or response.reason_phrase)


def map_elevenlabs_error(status_code: int, message: str) -> ProviderRejectedError:
    """Map an ElevenLabs HTTP error onto a stable error code"""
    lowered = message.lower()

    if status_code == 401 or "api key" in lowered or "api_key" in lowered:
        code = "ELEVENLABS_API_KEY_MISSING"
    elif status_code == 429:
        code = "RATE_LIMITED"
    elif "trial account" in lowered:
        code = "TWILIO_TRIAL_ACCOUNT"
    else:
        code = "CALL_ERROR"

    return ProviderRejectedError("ElevenLabs", message, error_code=code, provider_code=status_code)


class ElevenLabsService:
    """Service for interacting with the ElevenLabs Conversational AI API"""

    def __init__(self, base_url: Optional[str] = None):
        self.base_url = (base_url or settings.elevenlabs_api_base_url).rstrip("/")
        self.agent_phone_number_id = settings.elevenlabs_agent_phone_number_id
        # The dispatcher's own timer governs; this only stops a hung socket
        self.timeout = settings.dispatch_timeout_seconds + 5

    def _headers(self, api_key: str) -> Dict[str, str]:
        return {
            "xi-api-key": api_key,
            "Content-Type": "application/json"
        }

    def build_payload(self, request: NormalizedCallRequest) -> Dict[str, Any]:
        """
        Body for the outbound-call endpoint

        The voice override and greeting travel in conversation_config_override;
        prospect details travel as dynamic variables.
        """
        conversation = request.conversation
        override: Dict[str, Any] = {}
        if conversation.voice_id:
            override["tts"] = {"voice_id": conversation.voice_id}
        if conversation.greeting:
            override["agent"] = {"first_message": conversation.greeting}

        payload: Dict[str, Any] = {
            "agent_id": conversation.conversation_agent_id,
            "to_number": request.to_number,
            "conversation_initiation_client_data": {
                "dynamic_variables": dict(conversation.dynamic_variables),
                "conversation_config_override": override,
            },
        }
        if self.agent_phone_number_id:
            payload["agent_phone_number_id"] = self.agent_phone_number_id
        return payload

    async def place_call(self, request: NormalizedCallRequest) -> DispatchOutcome:
        """
        Start an outbound conversation bridged over Twilio

        Raises:
            ProviderRejectedError: ElevenLabs refused the call
            ProviderTimeoutError: the socket itself timed out
        """
        api_key = request.credentials.elevenlabs_api_key
        payload = self.build_payload(request)

        logger.info(
            f"Making ElevenLabs outbound call to {mask_phone(request.to_number)} "
            f"with agent {payload['agent_id']}"
        )
        if request.debug_mode:
            logger.info(f"ElevenLabs payload for {request.call_log_id}: {payload}")

        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout) as client:
                response = await client.post(
                    OUTBOUND_CALL_PATH,
                    headers=self._headers(api_key),
                    json=payload
                )
                response.raise_for_status()
                result = ElevenLabsOutboundCallResponse.model_validate(response.json())
        except httpx.HTTPStatusError as e:
            detail = _error_detail(e.response)
            logger.error(f"ElevenLabs API error {e.response.status_code}: {detail}")
            raise map_elevenlabs_error(e.response.status_code, detail) from e
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(
                "ElevenLabs outbound call", self.timeout, call_log_id=request.call_log_id
            ) from e
        except httpx.RequestError as e:
            logger.error(f"ElevenLabs request failed: {e}")
            raise ProviderRejectedError("ElevenLabs", str(e)) from e

        if not result.success or not result.call_sid:
            message = result.message or "Outbound call was not started"
            raise map_elevenlabs_error(response.status_code, message)

        logger.info(f"ElevenLabs call started: {result.call_sid}")
        return DispatchOutcome(
            call_sid=result.call_sid,
            provider="elevenlabs",
            conversation_id=result.conversation_id,
            raw=result.model_dump(by_alias=True),
        )

    async def verify_api_key(self, api_key: str) -> Dict[str, Any]:
        """
        Fetch the key owner's user record

        Raises:
            CredentialsInvalidError: ElevenLabs rejected the key
        """
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=settings.validation_timeout_seconds
            ) as client:
                response = await client.get(USER_PATH, headers=self._headers(api_key))
                response.raise_for_status()
                user = response.json()
        except httpx.HTTPStatusError as e:
            detail = _error_detail(e.response)
            if e.response.status_code in (401, 403):
                raise CredentialsInvalidError("ElevenLabs", detail) from e
            raise map_elevenlabs_error(e.response.status_code, detail) from e
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError("ElevenLabs key validation", settings.validation_timeout_seconds) from e
        except httpx.RequestError as e:
            raise ProviderRejectedError("ElevenLabs", str(e)) from e

        subscription = user.get("subscription") or {}
        return {
            "user_id": user.get("user_id"),
            "tier": subscription.get("tier"),
        }
