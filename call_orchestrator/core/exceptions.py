"""
Custom Exceptions for the Call Orchestrator
Every failure the orchestrator reports carries a stable error code
"""

from typing import Optional, Dict, Any


class OrchestratorError(Exception):
    """Base exception for all call orchestrator errors"""

    def __init__(
        self,
        message: str,
        error_code: str = "CALL_ERROR",
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 500
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response"""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details
        }


# Authentication
class AuthenticationError(OrchestratorError):
    """Raised when the service API key is missing or wrong"""

    def __init__(self, message: str = "Invalid or missing API key"):
        super().__init__(
            message=message,
            error_code="AUTH_FAILED",
            status_code=401
        )


# Credential Exceptions
class CredentialsMissingError(OrchestratorError):
    """Raised when a credential required by the provider path is absent"""

    def __init__(self, message: str, error_code: str, user_id: Optional[str] = None):
        super().__init__(
            message=message,
            error_code=error_code,
            details={"user_id": user_id} if user_id else {},
            status_code=400
        )


class ProfileNotFoundError(CredentialsMissingError):
    """Raised when the user has no profile record"""

    def __init__(self, user_id: str):
        super().__init__(
            message=(
                "Profile setup incomplete. Please visit your profile settings "
                "and verify your Twilio credentials."
            ),
            error_code="PROFILE_NOT_FOUND",
            user_id=user_id
        )


class TwilioConfigIncompleteError(CredentialsMissingError):
    """Raised when telephony secrets are missing"""

    def __init__(self, user_id: Optional[str] = None, missing: Optional[list] = None):
        super().__init__(
            message=(
                "Twilio configuration is incomplete. Please update your profile with your "
                "Twilio Account SID, Auth Token, and Phone Number."
            ),
            error_code="TWILIO_CONFIG_INCOMPLETE",
            user_id=user_id
        )
        if missing:
            self.details["missing"] = missing


class ElevenLabsKeyMissingError(CredentialsMissingError):
    """Raised when the speech-provider API key is missing"""

    def __init__(self, user_id: Optional[str] = None):
        super().__init__(
            message="ElevenLabs API key not configured in your profile",
            error_code="ELEVENLABS_API_KEY_MISSING",
            user_id=user_id
        )


class CredentialsInvalidError(OrchestratorError):
    """Raised when a provider explicitly rejected the stored credentials"""

    def __init__(self, provider: str, message: str):
        super().__init__(
            message=f"Invalid {provider} credentials: {message}",
            error_code="CREDENTIALS_INVALID",
            details={"provider": provider, "reason": message},
            status_code=400
        )


class ProfileStoreUnavailableError(OrchestratorError):
    """Raised when the profile store stayed unreachable after retries"""

    def __init__(self, user_id: str):
        super().__init__(
            message="Profile store is temporarily unavailable. Please try again.",
            error_code="PROFILE_STORE_UNAVAILABLE",
            details={"user_id": user_id},
            status_code=503
        )


# Request building
class ProspectNotFoundError(OrchestratorError):
    """Raised when the prospect reference does not resolve"""

    def __init__(self, prospect_id: str):
        super().__init__(
            message=f"Prospect not found. The prospect with ID {prospect_id} does not exist or has been deleted.",
            error_code="PROSPECT_NOT_FOUND",
            details={"prospect_id": prospect_id},
            status_code=404
        )


class MissingPhoneNumberError(OrchestratorError):
    """Raised when the prospect has no usable phone number"""

    def __init__(self, prospect_id: str, phone_number: Optional[str] = None):
        super().__init__(
            message="Prospect has no valid phone number",
            error_code="MISSING_PHONE_NUMBER",
            details={
                "prospect_id": prospect_id,
                "hint": "Use E.164 format (e.g., +14155551234)"
            },
            status_code=400
        )
        self.phone_number = phone_number


class ConfigNotFoundError(OrchestratorError):
    """Raised when the agent configuration reference does not resolve"""

    def __init__(self, agent_config_id: str):
        super().__init__(
            message=f"Agent configuration not found: {agent_config_id}",
            error_code="CONFIG_NOT_FOUND",
            details={"agent_config_id": agent_config_id},
            status_code=404
        )


# Call Exceptions
class CallAlreadyInProgressError(OrchestratorError):
    """Raised when a dispatch arrives while the user's previous call is still live"""

    def __init__(self, call_log_id: Optional[str] = None, call_sid: Optional[str] = None):
        super().__init__(
            message="A call is already in progress. Wait for it to finish or end it first.",
            error_code="CALL_IN_PROGRESS",
            details={"call_log_id": call_log_id, "call_sid": call_sid},
            status_code=409
        )


class CallLogError(OrchestratorError):
    """Raised when the call session row could not be written"""

    def __init__(self, message: str):
        super().__init__(
            message=f"Failed to create call log: {message}",
            error_code="CALL_LOG_ERROR",
            status_code=500
        )


class CallNotFoundError(OrchestratorError):
    """Raised when a call is not known locally or at the provider"""

    def __init__(self, call_ref: str):
        super().__init__(
            message=f"Call not found: {call_ref}",
            error_code="CALL_NOT_FOUND",
            details={"call": call_ref},
            status_code=404
        )


class NoActiveCallError(OrchestratorError):
    """Raised when termination is requested for a call that is not live"""

    def __init__(self, call_sid: str):
        super().__init__(
            message="No active call to end",
            error_code="NO_ACTIVE_CALL",
            details={"call_sid": call_sid},
            status_code=409
        )


# Provider Exceptions
class ProviderTimeoutError(OrchestratorError):
    """
    Raised when a provider request outlived its timeout.

    The remote side effect may still have happened; callers reconcile
    through a status check instead of treating this as a failure.
    """

    outcome_unknown = True

    def __init__(
        self,
        operation: str,
        timeout_seconds: float,
        call_log_id: Optional[str] = None,
        call_sid: Optional[str] = None
    ):
        super().__init__(
            message=(
                f"The {operation} request timed out after {timeout_seconds:g}s. "
                "The call may still have been placed - please check call status."
            ),
            error_code="REQUEST_TIMEOUT",
            details={
                "operation": operation,
                "call_log_id": call_log_id,
                "call_sid": call_sid
            },
            status_code=504
        )
        self.call_log_id = call_log_id


class PlacementUnconfirmedError(OrchestratorError):
    """
    Raised when the placement request failed without a provider verdict
    (transport error, unreadable response).

    The provider may have placed the call; the session stays pending until
    a status check or reconciliation settles it.
    """

    outcome_unknown = True

    def __init__(self, call_log_id: str, reason: str):
        super().__init__(
            message=(
                "The call request failed before the provider confirmed it. "
                "The call may still have been placed - please check call status."
            ),
            error_code="CALL_ERROR",
            details={"call_log_id": call_log_id, "reason": reason},
            status_code=502
        )
        self.call_log_id = call_log_id


class StatusCheckTimeoutError(ProviderTimeoutError):
    """Raised when a status lookup outlived its timeout"""

    def __init__(self, call_sid: str, timeout_seconds: float):
        super().__init__("status check", timeout_seconds, call_sid=call_sid)
        self.message = f"Status check timed out after {timeout_seconds:g}s - please check again."


class ProviderRejectedError(OrchestratorError):
    """Raised when a provider refused a request"""

    def __init__(
        self,
        provider: str,
        message: str,
        error_code: str = "CALL_ERROR",
        provider_code: Optional[Any] = None
    ):
        super().__init__(
            message=f"{provider} error: {message}",
            error_code=error_code,
            details={"provider": provider, "provider_code": provider_code},
            status_code=502
        )
        self.provider = provider
        self.provider_code = provider_code


# Webhook Exceptions
class WebhookValidationError(OrchestratorError):
    """Raised when webhook signature validation fails"""

    def __init__(self, message: str = "Invalid webhook signature"):
        super().__init__(
            message=message,
            error_code="WEBHOOK_VALIDATION_FAILED",
            status_code=403
        )
