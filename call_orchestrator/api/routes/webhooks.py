"""
Webhook routes for Twilio callbacks

Correlation ids (call_log_id, prospect_id, agent_config_id, user_id) come
in the query string set at dispatch time; call details come form-encoded.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Form
from fastapi.responses import Response

from call_orchestrator.api.middleware.webhook_security import validate_twilio_webhook
from call_orchestrator.core.logging import get_logger
from call_orchestrator.models.webhook import (
    CorrelationParams,
    SpeechResultPayload,
    StatusCallbackPayload,
    TwilioVoicePayload,
)
from call_orchestrator.services.call_manager import get_call_manager

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def twiml_response(twiml: str) -> Response:
    return Response(content=twiml, media_type="application/xml")


@router.post("/twilio/voice")
async def handle_answered_call(
    correlation: CorrelationParams = Depends(validate_twilio_webhook),
    CallSid: Optional[str] = Form(None),
    AccountSid: Optional[str] = Form(None),
    From: Optional[str] = Form(None),
    To: Optional[str] = Form(None),
    CallStatus: Optional[str] = Form(None),
):
    """
    Answer-time webhook: greet the prospect and listen for a reply

    Called by Twilio when the outbound call is answered.
    """
    logger.info(f"Call answered, SID: {CallSid}, call log: {correlation.call_log_id}")

    payload = TwilioVoicePayload(
        CallSid=CallSid,
        AccountSid=AccountSid,
        From=From,
        To=To,
        CallStatus=CallStatus,
    )
    twiml = await get_call_manager().handle_answer_webhook(correlation, payload)
    return twiml_response(twiml)


@router.post("/twilio/response")
async def handle_speech_response(
    correlation: CorrelationParams = Depends(validate_twilio_webhook),
    CallSid: Optional[str] = Form(None),
    SpeechResult: Optional[str] = Form(None),
    Confidence: Optional[float] = Form(None),
):
    """
    Gather action: classify what the prospect said and reply
    """
    logger.info(f"Speech result for call log {correlation.call_log_id}")

    payload = SpeechResultPayload(
        CallSid=CallSid,
        SpeechResult=SpeechResult,
        Confidence=Confidence,
    )
    twiml = await get_call_manager().handle_speech_webhook(correlation, payload)
    return twiml_response(twiml)


@router.post("/twilio/status")
async def handle_call_status(
    correlation: CorrelationParams = Depends(validate_twilio_webhook),
    CallSid: str = Form(...),
    CallStatus: str = Form(...),
    AccountSid: Optional[str] = Form(None),
    CallDuration: Optional[int] = Form(None),
    RecordingUrl: Optional[str] = Form(None),
):
    """
    Handle call status updates from Twilio

    Always acknowledged so Twilio does not retry; failures are logged.
    """
    logger.info(f"Call status update: {CallSid} -> {CallStatus}")

    payload = StatusCallbackPayload(
        CallSid=CallSid,
        CallStatus=CallStatus,
        AccountSid=AccountSid,
        CallDuration=CallDuration,
        RecordingUrl=RecordingUrl,
    )
    try:
        await get_call_manager().handle_status_callback(correlation, payload)
    except Exception as e:
        logger.exception(f"Error applying status callback for {CallSid}: {e}")

    return {"status": "received"}
