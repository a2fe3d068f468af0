"""Services for the Call Orchestrator"""

from .telephony.twilio_service import TwilioService
from .voice.elevenlabs_service import ElevenLabsService
from .credentials import CredentialResolver
from .request_builder import CallRequestBuilder
from .dispatcher import CallDispatcher
from .status_tracker import CallStatusTracker
from .terminator import CallTerminator
from .response_interpreter import ResponseInterpreter, classify
from .call_manager import CallManager, get_call_manager, set_call_manager

__all__ = [
    "TwilioService",
    "ElevenLabsService",
    "CredentialResolver",
    "CallRequestBuilder",
    "CallDispatcher",
    "CallStatusTracker",
    "CallTerminator",
    "ResponseInterpreter",
    "classify",
    "CallManager",
    "get_call_manager",
    "set_call_manager",
]
