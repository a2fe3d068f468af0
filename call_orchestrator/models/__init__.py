"""Data models for the Call Orchestrator"""

from .call import (
    CallStatus,
    TERMINAL_STATUSES,
    ACTIVE_STATUSES,
    ProviderPath,
    Classification,
    CallIntent,
    ProviderCredentials,
    ConversationParameters,
    NormalizedCallRequest,
    TranscriptEntry,
    CallSession,
    CallResult,
    StatusQuery,
    StatusResult,
    TerminateRequest,
    TerminateResult,
    utcnow,
)
from .provider import TwilioCallInfo, ElevenLabsOutboundCallResponse, DispatchOutcome
from .webhook import (
    CorrelationParams,
    TwilioVoicePayload,
    SpeechResultPayload,
    StatusCallbackPayload,
)

__all__ = [
    "CallStatus",
    "TERMINAL_STATUSES",
    "ACTIVE_STATUSES",
    "ProviderPath",
    "Classification",
    "CallIntent",
    "ProviderCredentials",
    "ConversationParameters",
    "NormalizedCallRequest",
    "TranscriptEntry",
    "CallSession",
    "CallResult",
    "StatusQuery",
    "StatusResult",
    "TerminateRequest",
    "TerminateResult",
    "utcnow",
    "TwilioCallInfo",
    "ElevenLabsOutboundCallResponse",
    "DispatchOutcome",
    "CorrelationParams",
    "TwilioVoicePayload",
    "SpeechResultPayload",
    "StatusCallbackPayload",
]
