"""
Tests for the keyword classifier and the voice webhooks
"""

import pytest
from unittest.mock import AsyncMock

from call_orchestrator.models.call import CallStatus, Classification
from call_orchestrator.models.webhook import CorrelationParams, SpeechResultPayload, TwilioVoicePayload
from call_orchestrator.services.response_interpreter import classify, reply_for


class TestClassifier:
    """Tests for classify"""

    @pytest.mark.parametrize("utterance,expected", [
        ("Yes, I'm interested, tell me more", Classification.INTERESTED),
        ("No thanks, not interested", Classification.NOT_INTERESTED),
        ("Maybe, I don't know", Classification.UNCLEAR),
        ("yes but no", Classification.UNCLEAR),
        ("Sure, I'd like to learn more", Classification.INTERESTED),
        ("I'm busy, call me later", Classification.NOT_INTERESTED),
        ("NOT INTERESTED", Classification.NOT_INTERESTED),
        ("", Classification.UNCLEAR),
    ])
    def test_classify(self, utterance, expected):
        assert classify(utterance) == expected

    def test_substrings_do_not_match(self):
        """'know' and 'nobody' are not 'no'; 'yesterday' is not 'yes'"""
        assert classify("nobody knows, yesterday") == Classification.UNCLEAR

    def test_classification_is_deterministic(self):
        results = {classify("Yes, I'm interested, tell me more") for _ in range(20)}
        assert results == {Classification.INTERESTED}

    def test_replies(self):
        assert reply_for(Classification.INTERESTED).startswith("Great!")
        assert "Acme Homes" in reply_for(Classification.NOT_INTERESTED, company_name="Acme Homes")
        assert "follow up" in reply_for(Classification.UNCLEAR)


class TestAnswerWebhook:
    """Tests for the answer-time greeting"""

    @pytest.fixture
    async def placed(self, manager, make_intent):
        result = await manager.initiate_call(make_intent())
        return CorrelationParams(
            call_log_id=result.call_log_id,
            prospect_id="prospect-1",
            agent_config_id="config-1",
            user_id="user-1",
        )

    @pytest.mark.asyncio
    async def test_greeting_and_gather(self, manager, placed):
        twiml = await manager.handle_answer_webhook(
            placed, TwilioVoicePayload(CallSid="CA00000000000000000000000000000001", CallStatus="in-progress")
        )

        assert "<Gather" in twiml
        assert 'input="speech"' in twiml
        assert "Hello, Jane" in twiml
        assert "/api/v1/webhooks/twilio/response?" in twiml
        assert f"call_log_id={placed.call_log_id}" in twiml

        session = await manager.repositories.call_logs.get_session(placed.call_log_id)
        assert session.status == CallStatus.ANSWERED
        assert session.transcript[0].role == "agent"
        assert session.transcript[0].text.startswith("Hello, Jane")

    @pytest.mark.asyncio
    async def test_configured_greeting_wins(self, manager, seeded, placed):
        config = await seeded.agent_configs.get_config("config-1")
        await seeded.agent_configs.save_config(config.model_copy(update={"greeting": "Hi from Acme!"}))

        twiml = await manager.handle_answer_webhook(placed, TwilioVoicePayload())

        assert "Hi from Acme!" in twiml

    @pytest.mark.asyncio
    async def test_missing_correlation(self, manager):
        twiml = await manager.handle_answer_webhook(CorrelationParams(), TwilioVoicePayload())

        assert "<Hangup" in twiml
        assert "error processing this call" in twiml

    @pytest.mark.asyncio
    async def test_missing_config(self, manager, placed):
        correlation = placed.model_copy(update={"agent_config_id": "missing"})

        twiml = await manager.handle_answer_webhook(correlation, TwilioVoicePayload())

        assert "AI agent configuration" in twiml
        assert "<Hangup" in twiml

    @pytest.mark.asyncio
    async def test_missing_prospect(self, manager, placed):
        correlation = placed.model_copy(update={"prospect_id": "missing"})

        twiml = await manager.handle_answer_webhook(correlation, TwilioVoicePayload())

        assert "retrieving your information" in twiml

    @pytest.mark.asyncio
    async def test_records_sid_when_dispatch_never_did(self, manager, placed):
        call_logs = manager.repositories.call_logs
        await call_logs.adapter.execute(
            "UPDATE call_logs SET twilio_call_sid = NULL WHERE id = ?", (placed.call_log_id,)
        )

        await manager.handle_answer_webhook(placed, TwilioVoicePayload(CallSid="CAfromwebhook"))

        session = await call_logs.get_session(placed.call_log_id)
        assert session.call_sid == "CAfromwebhook"


class TestSpeechWebhook:
    """Tests for the spoken-response handler"""

    @pytest.fixture
    async def placed(self, manager, make_intent):
        result = await manager.initiate_call(make_intent())
        return CorrelationParams(
            call_log_id=result.call_log_id,
            prospect_id="prospect-1",
            agent_config_id="config-1",
        )

    @pytest.mark.asyncio
    async def test_interested_response(self, manager, placed):
        twiml = await manager.handle_speech_webhook(
            placed, SpeechResultPayload(SpeechResult="Yes, I'm interested, tell me more", Confidence=0.93)
        )

        assert "Great!" in twiml
        assert "Goodbye" in twiml
        assert "<Hangup" in twiml

        prospect = await manager.repositories.prospects.get_prospect("prospect-1")
        assert prospect.status == "Completed"
        assert prospect.notes == "INTERESTED: Yes, I'm interested, tell me more"

        session = await manager.repositories.call_logs.get_session(placed.call_log_id)
        assert session.extracted_data == {"interested": True, "response": "Yes, I'm interested, tell me more"}
        assert session.summary == "Prospect expressed interest in speaking with an agent."
        assert [entry.role for entry in session.transcript] == ["caller", "agent"]
        assert session.transcript[0].confidence == 0.93

    @pytest.mark.asyncio
    async def test_not_interested_response(self, manager, placed):
        await manager.handle_speech_webhook(placed, SpeechResultPayload(SpeechResult="No thanks, not interested"))

        prospect = await manager.repositories.prospects.get_prospect("prospect-1")
        assert prospect.notes.startswith("NOT INTERESTED:")
        session = await manager.repositories.call_logs.get_session(placed.call_log_id)
        assert session.extracted_data["interested"] is False

    @pytest.mark.asyncio
    async def test_unclear_response(self, manager, placed):
        await manager.handle_speech_webhook(placed, SpeechResultPayload(SpeechResult="Maybe, I don't know"))

        prospect = await manager.repositories.prospects.get_prospect("prospect-1")
        assert prospect.notes.startswith("RESPONSE UNCLEAR:")
        session = await manager.repositories.call_logs.get_session(placed.call_log_id)
        assert session.extracted_data["interested"] is None

    @pytest.mark.asyncio
    async def test_speech_does_not_change_status(self, manager, placed):
        await manager.tracker.apply_provider_status(placed.call_log_id, "completed")

        await manager.handle_speech_webhook(placed, SpeechResultPayload(SpeechResult="yes"))

        session = await manager.repositories.call_logs.get_session(placed.call_log_id)
        assert session.status == CallStatus.COMPLETED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("speech", [None, "", "   "])
    async def test_empty_speech(self, manager, placed, speech):
        twiml = await manager.handle_speech_webhook(placed, SpeechResultPayload(SpeechResult=speech))

        assert "error processing your response" in twiml
        prospect = await manager.repositories.prospects.get_prospect("prospect-1")
        assert prospect.status == "Calling"

    @pytest.mark.asyncio
    async def test_store_failure_degrades_to_apology(self, manager, placed):
        manager.repositories.call_logs.add_transcript_entry = AsyncMock(side_effect=RuntimeError("disk full"))

        twiml = await manager.handle_speech_webhook(placed, SpeechResultPayload(SpeechResult="yes"))

        assert "error processing your response" in twiml
        assert "<Hangup" in twiml
