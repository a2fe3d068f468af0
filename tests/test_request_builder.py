"""
Tests for phone normalisation and the call request builder
"""

import pytest
from unittest.mock import patch

from call_orchestrator.core.exceptions import (
    ConfigNotFoundError,
    MissingPhoneNumberError,
    ProspectNotFoundError,
)
from call_orchestrator.db.models import AgentConfigDB, ProspectDB
from call_orchestrator.models.call import ProviderCredentials, ProviderPath
from call_orchestrator.services.request_builder import CallRequestBuilder, build_greeting
from call_orchestrator.utils.phone import is_valid_e164, normalize_e164


class TestPhoneNormalisation:
    """Tests for E.164 normalisation"""

    @pytest.mark.parametrize("raw,expected", [
        ("+15551234567", "+15551234567"),
        ("555-123-4567", "+15551234567"),
        ("(555) 123 4567", "+15551234567"),
        ("+44 20 7946 0958", "+442079460958"),
        ("  +1 (555) 123-4567 ", "+15551234567"),
    ])
    def test_normalises(self, raw, expected):
        assert normalize_e164(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "   ", "123", "not a number", "+0123456789"])
    def test_rejects_unusable_numbers(self, raw):
        assert normalize_e164(raw) is None

    def test_is_valid_e164(self):
        assert is_valid_e164("+15551234567")
        assert not is_valid_e164("5551234567")


class TestGreeting:
    """Tests for the default greeting"""

    def test_personalised_greeting(self):
        prospect = ProspectDB(id="p", first_name="Jane", property_address="12 Oak Street")

        greeting = build_greeting(prospect, company_name="Acme Homes")

        assert greeting.startswith("Hello, Jane. This is an AI assistant calling on behalf of Acme Homes.")
        assert greeting.endswith("your property at 12 Oak Street?")

    def test_greeting_without_details(self):
        greeting = build_greeting(ProspectDB(id="p"), company_name="Acme Homes")

        assert greeting.startswith("Hello. This is an AI assistant")
        assert greeting.endswith("real estate opportunities in your area?")


class TestCallRequestBuilder:
    """Tests for CallRequestBuilder"""

    @pytest.fixture
    def builder(self, seeded):
        return CallRequestBuilder(seeded.prospects, seeded.agent_configs)

    @pytest.fixture
    def credentials(self):
        return ProviderCredentials(
            twilio_account_sid="ACuser",
            twilio_auth_token="user-token",
            twilio_phone_number="+15559876543",
            elevenlabs_api_key="xi-user-key",
        )

    @pytest.mark.asyncio
    async def test_build_telephony_request(self, builder, credentials, make_intent):
        request = await builder.build(make_intent(), credentials)

        assert request.to_number == "+15551234567"
        assert request.from_number == "+15559876543"
        assert request.provider_path == ProviderPath.TELEPHONY
        assert request.conversation.voice_id == "voice-config"
        assert "Jane" in request.conversation.greeting
        assert request.conversation.dynamic_variables["user_name"] == "Jane Doe"
        assert request.correlation_params() == {
            "call_log_id": request.call_log_id,
            "prospect_id": "prospect-1",
            "agent_config_id": "config-1",
            "user_id": "user-1",
        }

    @pytest.mark.asyncio
    async def test_each_build_gets_a_fresh_call_log_id(self, builder, credentials, make_intent):
        first = await builder.build(make_intent(), credentials)
        second = await builder.build(make_intent(), credentials)

        assert first.call_log_id != second.call_log_id

    @pytest.mark.asyncio
    async def test_intent_overrides_win(self, builder, credentials, make_intent):
        intent = make_intent(
            providerPath="telephony+conversation",
            voiceOverride="voice-override",
            conversationAgentId="agent-override",
        )

        request = await builder.build(intent, credentials)

        assert request.conversation.voice_id == "voice-override"
        assert request.conversation.conversation_agent_id == "agent-override"

    @pytest.mark.asyncio
    async def test_unformatted_phone_is_normalised(self, seeded, builder, credentials, make_intent):
        await seeded.prospects.save_prospect(ProspectDB(id="prospect-1", first_name="Jane", phone_number="(555) 123-4567"))

        request = await builder.build(make_intent(), credentials)

        assert request.to_number == "+15551234567"

    @pytest.mark.asyncio
    async def test_missing_prospect(self, builder, credentials, make_intent):
        with pytest.raises(ProspectNotFoundError) as exc_info:
            await builder.build(make_intent(prospectId="nobody"), credentials)

        assert exc_info.value.error_code == "PROSPECT_NOT_FOUND"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("phone", [None, "", "12"])
    async def test_missing_phone_number(self, seeded, builder, credentials, make_intent, phone):
        await seeded.prospects.save_prospect(ProspectDB(id="prospect-1", first_name="Jane", phone_number=phone))

        with pytest.raises(MissingPhoneNumberError) as exc_info:
            await builder.build(make_intent(), credentials)

        assert exc_info.value.error_code == "MISSING_PHONE_NUMBER"

    @pytest.mark.asyncio
    async def test_missing_config(self, builder, credentials, make_intent):
        with pytest.raises(ConfigNotFoundError):
            await builder.build(make_intent(agentConfigId="missing"), credentials)

    @pytest.mark.asyncio
    async def test_conversation_path_needs_an_agent(self, seeded, builder, credentials, make_intent):
        await seeded.agent_configs.save_config(AgentConfigDB(id="config-1", voice_id="voice-config"))

        with patch("call_orchestrator.services.request_builder.settings") as mock_settings:
            mock_settings.elevenlabs_default_agent_id = None
            mock_settings.company_name = "eXp Realty"
            with pytest.raises(ConfigNotFoundError):
                await builder.build(make_intent(providerPath="telephony+conversation"), credentials)

    @pytest.mark.asyncio
    async def test_platform_default_agent(self, seeded, builder, credentials, make_intent):
        await seeded.agent_configs.save_config(AgentConfigDB(id="config-1"))

        with patch("call_orchestrator.services.request_builder.settings") as mock_settings:
            mock_settings.elevenlabs_default_agent_id = "agent-platform"
            mock_settings.company_name = "eXp Realty"
            request = await builder.build(make_intent(providerPath="telephony+conversation"), credentials)

        assert request.conversation.conversation_agent_id == "agent-platform"
