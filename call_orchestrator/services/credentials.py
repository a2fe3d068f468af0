"""
Credential Resolver
Looks up and optionally validates the provider secrets a call attempt needs
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

from call_orchestrator.core.config import settings
from call_orchestrator.core.exceptions import (
    CredentialsInvalidError,
    ElevenLabsKeyMissingError,
    ProfileNotFoundError,
    ProfileStoreUnavailableError,
    ProviderTimeoutError,
    TwilioConfigIncompleteError,
)
from call_orchestrator.core.logging import get_logger
from call_orchestrator.db.base import StoreUnavailableError
from call_orchestrator.db.models import ProfileDB
from call_orchestrator.db.repository import ProfileRepository
from call_orchestrator.models.call import ProviderCredentials, ProviderPath
from call_orchestrator.services.telephony.twilio_service import TwilioService
from call_orchestrator.services.validation_cache import create_validation_cache, validation_key
from call_orchestrator.services.voice.elevenlabs_service import ElevenLabsService
from call_orchestrator.utils.retry import RetryError, retry_async_operation

logger = get_logger(__name__)

TWILIO_FIELDS = ("twilio_account_sid", "twilio_auth_token", "twilio_phone_number")


def _present(value: Optional[str]) -> bool:
    return bool(value and value.strip())


class CredentialResolver:
    """
    Resolves ProviderCredentials for a user and provider path.

    Resolution is a pure read of the profile store. Validation against the
    providers only happens through validate(), and its results are cached.
    """

    def __init__(
        self,
        profiles: ProfileRepository,
        twilio_service: Optional[TwilioService] = None,
        elevenlabs_service: Optional[ElevenLabsService] = None,
        cache=None,
    ):
        self.profiles = profiles
        self.twilio_service = twilio_service or TwilioService()
        self.elevenlabs_service = elevenlabs_service or ElevenLabsService()
        self.cache = cache or create_validation_cache()

    async def _fetch_profile(self, user_id: str) -> Optional[ProfileDB]:
        try:
            return await retry_async_operation(
                lambda: self.profiles.get_profile(user_id),
                exceptions=(StoreUnavailableError,),
                operation_name=f"profile lookup for {user_id}",
            )
        except RetryError as e:
            raise ProfileStoreUnavailableError(user_id) from e

    def _platform_telephony(self) -> Optional[ProviderCredentials]:
        if _present(settings.twilio_account_sid) and _present(settings.twilio_auth_token):
            return ProviderCredentials(
                twilio_account_sid=settings.twilio_account_sid,
                twilio_auth_token=settings.twilio_auth_token,
                twilio_phone_number=settings.twilio_phone_number,
                uses_platform_telephony=True,
            )
        return None

    async def resolve(self, user_id: str, provider_path: ProviderPath) -> ProviderCredentials:
        """
        Resolve the secrets required for provider_path

        Raises:
            ProfileNotFoundError: the user has no profile
            TwilioConfigIncompleteError: telephony secrets missing
            ElevenLabsKeyMissingError: speech-provider key missing
            ProfileStoreUnavailableError: the store stayed down after retries
        """
        profile = await self._fetch_profile(user_id)
        if profile is None:
            raise ProfileNotFoundError(user_id)

        if provider_path == ProviderPath.TELEPHONY:
            missing = [name for name in TWILIO_FIELDS if not _present(getattr(profile, name))]
            if missing:
                logger.warning(f"Twilio configuration incomplete for user {user_id}: missing {missing}")
                raise TwilioConfigIncompleteError(user_id, missing)
            return ProviderCredentials(
                twilio_account_sid=profile.twilio_account_sid.strip(),
                twilio_auth_token=profile.twilio_auth_token.strip(),
                twilio_phone_number=profile.twilio_phone_number.strip(),
            )

        if not _present(profile.elevenlabs_api_key):
            raise ElevenLabsKeyMissingError(user_id)

        if _present(profile.twilio_account_sid) and _present(profile.twilio_auth_token):
            telephony = ProviderCredentials(
                twilio_account_sid=profile.twilio_account_sid.strip(),
                twilio_auth_token=profile.twilio_auth_token.strip(),
                twilio_phone_number=(profile.twilio_phone_number or "").strip() or None,
            )
        else:
            telephony = self._platform_telephony() or ProviderCredentials()

        return telephony.model_copy(update={"elevenlabs_api_key": profile.elevenlabs_api_key.strip()})

    async def resolve_for_status(self, user_id: Optional[str] = None) -> ProviderCredentials:
        """
        Telephony secrets able to read a call's status: the user's own, or the platform's

        Raises:
            TwilioConfigIncompleteError: neither is available
        """
        if user_id:
            profile = await self._fetch_profile(user_id)
            if profile and _present(profile.twilio_account_sid) and _present(profile.twilio_auth_token):
                return ProviderCredentials(
                    twilio_account_sid=profile.twilio_account_sid.strip(),
                    twilio_auth_token=profile.twilio_auth_token.strip(),
                    twilio_phone_number=profile.twilio_phone_number,
                )

        platform = self._platform_telephony()
        if platform is None:
            raise TwilioConfigIncompleteError(user_id)
        return platform

    async def validate(self, credentials: ProviderCredentials, provider_path: ProviderPath) -> Dict[str, Any]:
        """
        Check the credentials against the providers

        Returns:
            Per-provider validation details

        Raises:
            CredentialsInvalidError: a provider rejected the credentials
            ProviderTimeoutError: a provider did not answer in time
        """
        results: Dict[str, Any] = {}

        if provider_path == ProviderPath.TELEPHONY or (
            credentials.twilio_account_sid and not credentials.uses_platform_telephony
        ):
            key = validation_key("twilio", credentials.twilio_account_sid, credentials.twilio_auth_token)
            results["twilio"] = await self._cached_check(
                key, "Twilio", lambda: self.twilio_service.verify_account(credentials)
            )

        if provider_path == ProviderPath.TELEPHONY_CONVERSATION:
            key = validation_key("elevenlabs", credentials.elevenlabs_api_key)
            results["elevenlabs"] = await self._cached_check(
                key, "ElevenLabs", lambda: self.elevenlabs_service.verify_api_key(credentials.elevenlabs_api_key)
            )

        return results

    async def _cached_check(
        self,
        key: str,
        provider: str,
        check: Callable[[], Awaitable[Dict[str, Any]]],
    ) -> Dict[str, Any]:
        cached = await self.cache.get(key)
        if cached is not None:
            if not cached.get("valid"):
                raise CredentialsInvalidError(provider, cached.get("message", "rejected"))
            return cached

        timeout = settings.validation_timeout_seconds
        try:
            details = await asyncio.wait_for(check(), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(f"{provider} credential validation", timeout) from e
        except CredentialsInvalidError as e:
            await self.cache.set(key, {"valid": False, "message": e.details["reason"]})
            logger.warning(f"{provider} credentials rejected")
            raise

        result = {"valid": True, **details}
        await self.cache.set(key, result)
        logger.info(f"{provider} credentials validated")
        return result
