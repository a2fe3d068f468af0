"""
Data models for the outbound call lifecycle
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CallStatus(str, Enum):
    """Canonical status of a call session, using the telephony provider's vocabulary"""
    INITIATED = "initiated"
    QUEUED = "queued"
    RINGING = "ringing"
    IN_PROGRESS = "in-progress"
    ANSWERED = "answered"
    COMPLETED = "completed"
    FAILED = "failed"
    BUSY = "busy"
    NO_ANSWER = "no-answer"
    CANCELED = "canceled"

    @classmethod
    def normalize(cls, value: Optional[str]) -> Optional["CallStatus"]:
        """
        Map a provider status string onto the vocabulary.

        Matching is case-insensitive and accepts underscore spellings and
        "cancelled". Returns None for anything unrecognised.
        """
        if value is None:
            return None
        if isinstance(value, CallStatus):
            return value
        key = str(value).strip().lower().replace("_", "-")
        if key == "cancelled":
            key = "canceled"
        try:
            return cls(key)
        except ValueError:
            return None

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def rank(self) -> int:
        """Position in the forward-only progression"""
        return STATUS_RANK[self]


TERMINAL_STATUSES = frozenset({
    CallStatus.COMPLETED,
    CallStatus.FAILED,
    CallStatus.BUSY,
    CallStatus.NO_ANSWER,
    CallStatus.CANCELED,
})

ACTIVE_STATUSES = tuple(s for s in CallStatus if s not in TERMINAL_STATUSES)

STATUS_RANK: Dict[CallStatus, int] = {
    CallStatus.INITIATED: 0,
    CallStatus.QUEUED: 1,
    CallStatus.RINGING: 2,
    CallStatus.IN_PROGRESS: 3,
    CallStatus.ANSWERED: 3,
    CallStatus.COMPLETED: 4,
    CallStatus.FAILED: 4,
    CallStatus.BUSY: 4,
    CallStatus.NO_ANSWER: 4,
    CallStatus.CANCELED: 4,
}


class ProviderPath(str, Enum):
    """Which back-ends place the call"""
    TELEPHONY = "telephony"
    TELEPHONY_CONVERSATION = "telephony+conversation"


class Classification(str, Enum):
    """Outcome of the keyword classifier"""
    INTERESTED = "interested"
    NOT_INTERESTED = "not interested"
    UNCLEAR = "unclear"


class CallIntent(BaseModel):
    """Request model for dispatching a call"""
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "prospectId": "3f7a0c1e-5b2d-4c8e-9a61-0d2f4b7e8c90",
                "agentConfigId": "a1b2c3d4-0000-4000-8000-000000000001",
                "userId": "u-123",
                "providerPath": "telephony",
                "debugMode": False
            }
        }
    )

    prospect_id: str = Field(..., alias="prospectId")
    agent_config_id: str = Field(..., alias="agentConfigId")
    user_id: str = Field(..., alias="userId")
    provider_path: ProviderPath = Field(default=ProviderPath.TELEPHONY, alias="providerPath")
    voice_override: Optional[str] = Field(default=None, alias="voiceOverride")
    conversation_agent_id: Optional[str] = Field(default=None, alias="conversationAgentId")
    debug_mode: bool = Field(default=False, alias="debugMode")
    bypass_validation: bool = Field(default=False, alias="bypassValidation")


class ProviderCredentials(BaseModel):
    """Short-lived copy of the secrets needed for one call attempt"""
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = Field(default=None, repr=False)
    twilio_phone_number: Optional[str] = None
    elevenlabs_api_key: Optional[str] = Field(default=None, repr=False)
    uses_platform_telephony: bool = False


class ConversationParameters(BaseModel):
    """Voice and persona settings merged from the agent config and intent overrides"""
    greeting: Optional[str] = None
    system_prompt: Optional[str] = None
    voice_id: Optional[str] = None
    conversation_agent_id: Optional[str] = None
    llm_model: Optional[str] = None
    temperature: Optional[float] = None
    dynamic_variables: Dict[str, str] = Field(default_factory=dict)


class NormalizedCallRequest(BaseModel):
    """Fully resolved request handed to the dispatcher"""
    call_log_id: str
    user_id: str
    prospect_id: str
    agent_config_id: str
    provider_path: ProviderPath
    to_number: str
    from_number: Optional[str] = None
    conversation: ConversationParameters = Field(default_factory=ConversationParameters)
    credentials: ProviderCredentials = Field(repr=False)
    debug_mode: bool = False
    bypass_validation: bool = False

    def correlation_params(self) -> Dict[str, str]:
        """Identifiers threaded through the provider back into the webhooks"""
        return {
            "call_log_id": self.call_log_id,
            "prospect_id": self.prospect_id,
            "agent_config_id": self.agent_config_id,
            "user_id": self.user_id,
        }


class TranscriptEntry(BaseModel):
    """Transcript entry for a call"""
    timestamp: datetime = Field(default_factory=utcnow)
    role: str = Field(..., description="Speaker role (agent/caller)")
    text: str
    confidence: Optional[float] = None


class CallSession(BaseModel):
    """Canonical record of one outbound call attempt"""
    id: str
    user_id: str
    prospect_id: Optional[str] = None
    agent_config_id: Optional[str] = None
    provider_path: ProviderPath = ProviderPath.TELEPHONY
    call_sid: Optional[str] = None
    status: CallStatus = CallStatus.INITIATED
    to_number: Optional[str] = None
    unconfirmed: bool = False
    bypass_validation: bool = False

    started_at: datetime = Field(default_factory=utcnow)
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    recording_url: Optional[str] = None
    cost: Optional[float] = None

    extracted_data: Dict[str, Any] = Field(default_factory=dict)
    summary: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    updated_at: Optional[datetime] = None
    transcript: List[TranscriptEntry] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def snapshot(self) -> Dict[str, Any]:
        """Serialisable view returned to the UI layer"""
        data = self.model_dump(mode="json", exclude={"transcript", "bypass_validation"})
        data["status"] = self.status.value
        data["transcript"] = [entry.model_dump(mode="json") for entry in self.transcript]
        return data


# Result envelopes returned to the UI layer

class CallResult(BaseModel):
    """Dispatch outcome"""
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    call_sid: Optional[str] = Field(default=None, alias="callSid")
    call_log_id: Optional[str] = Field(default=None, alias="callLogId")
    message: Optional[str] = None
    code: Optional[str] = None
    outcome_unknown: Optional[bool] = Field(default=None, alias="outcomeUnknown")


class StatusQuery(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    call_sid: str = Field(..., alias="callSid")
    user_id: Optional[str] = Field(default=None, alias="userId")


class StatusResult(BaseModel):
    success: bool
    call_status: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    message: Optional[str] = None
    code: Optional[str] = None
    outcome_unknown: Optional[bool] = Field(default=None, alias="outcomeUnknown")

    model_config = ConfigDict(populate_by_name=True)


class TerminateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    call_sid: str = Field(..., alias="callSid")


class TerminateResult(BaseModel):
    success: bool
    message: Optional[str] = None
    code: Optional[str] = None
    call_status: Optional[str] = None
