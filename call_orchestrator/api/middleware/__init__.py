"""API Middleware"""

from .auth import get_api_key, require_api_key
from .webhook_security import (
    TwilioWebhookValidator,
    correlation_from_request,
    validate_twilio_webhook,
)

__all__ = [
    # Auth
    "get_api_key",
    "require_api_key",
    # Webhook security
    "TwilioWebhookValidator",
    "correlation_from_request",
    "validate_twilio_webhook",
]
