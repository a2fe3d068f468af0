"""
Webhook payloads posted by Twilio (form-encoded)
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class CorrelationParams(BaseModel):
    """Query-string identifiers threaded from dispatch into every webhook"""
    call_log_id: Optional[str] = None
    prospect_id: Optional[str] = None
    agent_config_id: Optional[str] = None
    user_id: Optional[str] = None

    @property
    def complete(self) -> bool:
        return bool(self.call_log_id and self.prospect_id and self.agent_config_id)


class TwilioVoicePayload(BaseModel):
    """Answer-time voice webhook"""
    model_config = ConfigDict(extra="ignore")

    CallSid: Optional[str] = None
    AccountSid: Optional[str] = None
    From: Optional[str] = None
    To: Optional[str] = None
    CallStatus: Optional[str] = None


class SpeechResultPayload(BaseModel):
    """<Gather input="speech"> action callback"""
    model_config = ConfigDict(extra="ignore")

    CallSid: Optional[str] = None
    SpeechResult: Optional[str] = None
    Confidence: Optional[float] = Field(default=None)


class StatusCallbackPayload(BaseModel):
    """Asynchronous call status callback"""
    model_config = ConfigDict(extra="ignore")

    CallSid: str
    CallStatus: str
    AccountSid: Optional[str] = None
    CallDuration: Optional[int] = None
    RecordingUrl: Optional[str] = None
