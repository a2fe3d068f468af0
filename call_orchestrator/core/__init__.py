"""Core module for configuration, settings, and shared utilities"""

from .config import settings, get_settings, Settings
from .logging import setup_logging, get_logger, mask_phone
from .exceptions import (
    OrchestratorError,
    AuthenticationError,
    CredentialsMissingError,
    ProfileNotFoundError,
    TwilioConfigIncompleteError,
    ElevenLabsKeyMissingError,
    CredentialsInvalidError,
    ProfileStoreUnavailableError,
    ProspectNotFoundError,
    MissingPhoneNumberError,
    ConfigNotFoundError,
    CallAlreadyInProgressError,
    CallLogError,
    CallNotFoundError,
    NoActiveCallError,
    ProviderTimeoutError,
    PlacementUnconfirmedError,
    StatusCheckTimeoutError,
    ProviderRejectedError,
    WebhookValidationError
)

__all__ = [
    # Config
    "settings",
    "get_settings",
    "Settings",
    # Logging
    "setup_logging",
    "get_logger",
    "mask_phone",
    # Exceptions
    "OrchestratorError",
    "AuthenticationError",
    "CredentialsMissingError",
    "ProfileNotFoundError",
    "TwilioConfigIncompleteError",
    "ElevenLabsKeyMissingError",
    "CredentialsInvalidError",
    "ProfileStoreUnavailableError",
    "ProspectNotFoundError",
    "MissingPhoneNumberError",
    "ConfigNotFoundError",
    "CallAlreadyInProgressError",
    "CallLogError",
    "CallNotFoundError",
    "NoActiveCallError",
    "ProviderTimeoutError",
    "PlacementUnconfirmedError",
    "StatusCheckTimeoutError",
    "ProviderRejectedError",
    "WebhookValidationError"
]
