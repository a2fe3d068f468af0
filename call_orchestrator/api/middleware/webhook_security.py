"""
Webhook Security Middleware
Validates Twilio webhook signatures with the owning user's auth token
"""

from typing import Dict, Optional
from fastapi import Request
from twilio.request_validator import RequestValidator

from call_orchestrator.core.config import settings
from call_orchestrator.core.exceptions import WebhookValidationError
from call_orchestrator.core.logging import get_logger
from call_orchestrator.models.webhook import CorrelationParams
from call_orchestrator.services.call_manager import get_call_manager

logger = get_logger(__name__)


class TwilioWebhookValidator:
    """
    Validates Twilio webhook signatures
    https://www.twilio.com/docs/usage/security#validating-requests
    """

    def __init__(self, auth_token: str):
        self.validator = RequestValidator(auth_token)

    @staticmethod
    def public_url(request: Request) -> str:
        """The URL Twilio signed, honouring a reverse proxy's forwarded headers"""
        url = str(request.url)
        forwarded_proto = request.headers.get("X-Forwarded-Proto")
        forwarded_host = request.headers.get("X-Forwarded-Host")

        if forwarded_proto and forwarded_host:
            url = f"{forwarded_proto}://{forwarded_host}{request.url.path}"
            if request.url.query:
                url = f"{url}?{request.url.query}"
        return url

    def validate(self, url: str, params: Dict[str, str], signature: Optional[str]) -> None:
        """
        Raises:
            WebhookValidationError: missing or wrong signature
        """
        if not signature:
            logger.warning("Missing Twilio signature header")
            raise WebhookValidationError("Missing X-Twilio-Signature header")

        if not self.validator.validate(url, params, signature):
            logger.warning("Invalid Twilio signature")
            raise WebhookValidationError("Invalid Twilio signature")


def correlation_from_request(request: Request) -> CorrelationParams:
    query = request.query_params
    return CorrelationParams(
        call_log_id=query.get("call_log_id"),
        prospect_id=query.get("prospect_id"),
        agent_config_id=query.get("agent_config_id"),
        user_id=query.get("user_id"),
    )


async def validate_twilio_webhook(request: Request) -> CorrelationParams:
    """
    Dependency for every Twilio webhook route

    Returns the correlation parameters carried in the query string.
    Validation is skipped when disabled globally, or when the call was
    dispatched with bypass_validation and bypassing is allowed.
    """
    correlation = correlation_from_request(request)
    if not settings.validate_twilio_signatures:
        return correlation

    bypass, auth_token = await get_call_manager().webhook_validation_context(correlation)
    if bypass:
        logger.info(f"Skipping signature validation for call log {correlation.call_log_id}")
        return correlation

    if not auth_token:
        logger.error("No Twilio auth token available to validate webhook")
        raise WebhookValidationError("Cannot validate webhook signature")

    form = await request.form()
    params = {key: str(value) for key, value in form.items()}
    validator = TwilioWebhookValidator(auth_token)
    validator.validate(
        TwilioWebhookValidator.public_url(request),
        params,
        request.headers.get("X-Twilio-Signature"),
    )
    return correlation
