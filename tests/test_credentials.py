"""
Tests for the credential resolver
"""

import asyncio
import pytest
from unittest.mock import AsyncMock, patch

from call_orchestrator.core.config import settings
from call_orchestrator.core.exceptions import (
    CredentialsInvalidError,
    ElevenLabsKeyMissingError,
    ProfileNotFoundError,
    ProfileStoreUnavailableError,
    ProviderTimeoutError,
    TwilioConfigIncompleteError,
)
from call_orchestrator.db.base import StoreUnavailableError
from call_orchestrator.db.models import ProfileDB
from call_orchestrator.models.call import ProviderPath
from call_orchestrator.services.credentials import CredentialResolver
from call_orchestrator.services.validation_cache import MemoryValidationCache


@pytest.fixture
def resolver(seeded, mock_twilio_service, mock_elevenlabs_service):
    return CredentialResolver(
        seeded.profiles,
        mock_twilio_service,
        mock_elevenlabs_service,
        MemoryValidationCache(),
    )


class TestResolve:
    """Tests for credential resolution"""

    @pytest.mark.asyncio
    async def test_telephony_credentials(self, resolver):
        credentials = await resolver.resolve("user-1", ProviderPath.TELEPHONY)

        assert credentials.twilio_account_sid == "ACuser"
        assert credentials.twilio_auth_token == "user-token"
        assert credentials.twilio_phone_number == "+15559876543"
        assert credentials.uses_platform_telephony is False

    @pytest.mark.asyncio
    async def test_secrets_are_not_in_repr(self, resolver):
        credentials = await resolver.resolve("user-1", ProviderPath.TELEPHONY_CONVERSATION)

        assert "user-token" not in repr(credentials)
        assert "xi-user-key" not in repr(credentials)

    @pytest.mark.asyncio
    async def test_unknown_user(self, resolver):
        with pytest.raises(ProfileNotFoundError) as exc_info:
            await resolver.resolve("nobody", ProviderPath.TELEPHONY)

        assert exc_info.value.error_code == "PROFILE_NOT_FOUND"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["twilio_account_sid", "twilio_auth_token", "twilio_phone_number"])
    async def test_incomplete_twilio_configuration(self, seeded, resolver, field):
        profile = await seeded.profiles.get_profile("user-1")
        await seeded.profiles.save_profile(profile.model_copy(update={field: "  "}))

        with pytest.raises(TwilioConfigIncompleteError) as exc_info:
            await resolver.resolve("user-1", ProviderPath.TELEPHONY)

        assert exc_info.value.details["missing"] == [field]

    @pytest.mark.asyncio
    async def test_conversation_path_needs_elevenlabs_key(self, seeded, resolver):
        await seeded.profiles.save_profile(ProfileDB(id="user-1", twilio_account_sid="ACuser"))

        with pytest.raises(ElevenLabsKeyMissingError):
            await resolver.resolve("user-1", ProviderPath.TELEPHONY_CONVERSATION)

    @pytest.mark.asyncio
    async def test_conversation_path_falls_back_to_platform_telephony(self, seeded, resolver):
        await seeded.profiles.save_profile(ProfileDB(id="user-2", elevenlabs_api_key="xi-2"))

        credentials = await resolver.resolve("user-2", ProviderPath.TELEPHONY_CONVERSATION)

        assert credentials.elevenlabs_api_key == "xi-2"
        assert credentials.uses_platform_telephony is True
        assert credentials.twilio_account_sid == settings.twilio_account_sid

    @pytest.mark.asyncio
    async def test_store_outage_is_retried(self, resolver):
        profile = ProfileDB(
            id="user-1",
            twilio_account_sid="ACuser",
            twilio_auth_token="user-token",
            twilio_phone_number="+15559876543",
        )
        resolver.profiles.get_profile = AsyncMock(side_effect=[StoreUnavailableError("down"), profile])

        credentials = await resolver.resolve("user-1", ProviderPath.TELEPHONY)

        assert credentials.twilio_account_sid == "ACuser"
        assert resolver.profiles.get_profile.await_count == 2

    @pytest.mark.asyncio
    async def test_store_outage_exhausts_retries(self, resolver):
        resolver.profiles.get_profile = AsyncMock(side_effect=StoreUnavailableError("down"))

        with pytest.raises(ProfileStoreUnavailableError) as exc_info:
            await resolver.resolve("user-1", ProviderPath.TELEPHONY)

        assert exc_info.value.error_code == "PROFILE_STORE_UNAVAILABLE"
        assert resolver.profiles.get_profile.await_count == settings.credential_fetch_max_attempts

    @pytest.mark.asyncio
    async def test_status_credentials_fall_back_to_platform(self, resolver):
        credentials = await resolver.resolve_for_status("nobody")

        assert credentials.uses_platform_telephony is True


class TestValidate:
    """Tests for remote validation and its cache"""

    @pytest.mark.asyncio
    async def test_validation_is_cached(self, resolver, mock_twilio_service):
        credentials = await resolver.resolve("user-1", ProviderPath.TELEPHONY)

        first = await resolver.validate(credentials, ProviderPath.TELEPHONY)
        second = await resolver.validate(credentials, ProviderPath.TELEPHONY)

        assert first["twilio"]["valid"] is True
        assert second == first
        assert mock_twilio_service.verify_account.await_count == 1

    @pytest.mark.asyncio
    async def test_rejection_is_cached(self, resolver, mock_twilio_service):
        mock_twilio_service.verify_account.side_effect = CredentialsInvalidError("Twilio", "Authenticate")
        credentials = await resolver.resolve("user-1", ProviderPath.TELEPHONY)

        for _ in range(2):
            with pytest.raises(CredentialsInvalidError) as exc_info:
                await resolver.validate(credentials, ProviderPath.TELEPHONY)
            assert exc_info.value.message == "Invalid Twilio credentials: Authenticate"

        assert mock_twilio_service.verify_account.await_count == 1

    @pytest.mark.asyncio
    async def test_conversation_path_checks_both_providers(
        self, resolver, mock_twilio_service, mock_elevenlabs_service
    ):
        credentials = await resolver.resolve("user-1", ProviderPath.TELEPHONY_CONVERSATION)

        results = await resolver.validate(credentials, ProviderPath.TELEPHONY_CONVERSATION)

        assert set(results) == {"twilio", "elevenlabs"}
        mock_elevenlabs_service.verify_api_key.assert_awaited_once_with("xi-user-key")

    @pytest.mark.asyncio
    async def test_validation_timeout(self, resolver, mock_twilio_service):
        async def hang(credentials):
            await asyncio.sleep(1)

        mock_twilio_service.verify_account.side_effect = hang
        credentials = await resolver.resolve("user-1", ProviderPath.TELEPHONY)

        with patch.object(settings, "validation_timeout_seconds", 0.01):
            with pytest.raises(ProviderTimeoutError) as exc_info:
                await resolver.validate(credentials, ProviderPath.TELEPHONY)

        assert exc_info.value.error_code == "REQUEST_TIMEOUT"
