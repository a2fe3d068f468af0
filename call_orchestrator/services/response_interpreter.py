"""
Response Interpreter
Answers Twilio's voice webhooks: the greeting at answer time and the reply
to the prospect's spoken response.

Both handlers always return TwiML. The other end is a live phone call with
no error UI, so any failure degrades to a spoken apology and a hangup.
"""

import re
from typing import Dict, Optional, Tuple

from call_orchestrator.core.config import settings
from call_orchestrator.core.logging import get_logger
from call_orchestrator.db.repository import AgentConfigRepository, CallLogRepository, ProspectRepository
from call_orchestrator.models.call import CallStatus, Classification, TranscriptEntry
from call_orchestrator.models.webhook import CorrelationParams, SpeechResultPayload, TwilioVoicePayload
from call_orchestrator.services.request_builder import build_greeting
from call_orchestrator.services.status_tracker import CallStatusTracker
from call_orchestrator.services.telephony.twilio_service import (
    APOLOGY_MESSAGE,
    TwilioService,
    webhook_url,
)

logger = get_logger(__name__)

POSITIVE_KEYWORDS = ("yes", "sure", "interested", "tell me more", "learn more")
NEGATIVE_KEYWORDS = ("no", "not interested", "busy", "later")

CALL_ERROR_MESSAGE = "I'm sorry, there was an error processing this call. Please try again later."
CONFIG_ERROR_MESSAGE = "I'm sorry, there was an error with the AI agent configuration. Please try again later."
PROSPECT_ERROR_MESSAGE = "I'm sorry, there was an error retrieving your information. Please try again later."

NOTE_PREFIXES: Dict[Classification, str] = {
    Classification.INTERESTED: "INTERESTED:",
    Classification.NOT_INTERESTED: "NOT INTERESTED:",
    Classification.UNCLEAR: "RESPONSE UNCLEAR:",
}

SUMMARIES: Dict[Classification, str] = {
    Classification.INTERESTED: "Prospect expressed interest in speaking with an agent.",
    Classification.NOT_INTERESTED: "Prospect declined interest in speaking with an agent.",
    Classification.UNCLEAR: "Unclear if prospect is interested; follow-up recommended.",
}

INTEREST_FLAGS: Dict[Classification, Optional[bool]] = {
    Classification.INTERESTED: True,
    Classification.NOT_INTERESTED: False,
    Classification.UNCLEAR: None,
}


def _keyword_pattern(keywords: Tuple[str, ...]) -> re.Pattern:
    # Longest phrases first so "not interested" wins over "no"
    ordered = sorted(keywords, key=len, reverse=True)
    return re.compile(r"\b(?:" + "|".join(re.escape(k) for k in ordered) + r")\b", re.IGNORECASE)


_POSITIVE = _keyword_pattern(POSITIVE_KEYWORDS)
_NEGATIVE = _keyword_pattern(NEGATIVE_KEYWORDS)


def classify(utterance: str) -> Classification:
    """
    Keyword classifier over one utterance.

    Keywords match whole words only, so "know" does not count as "no".
    Negative phrases are removed before scanning for positive keywords,
    which keeps "not interested" from also reading as "interested".
    Positive only is interested, negative only is not interested, and
    both or neither is unclear.
    """
    text = utterance or ""
    negative = bool(_NEGATIVE.search(text))
    remainder = _NEGATIVE.sub(" ", text)
    positive = bool(_POSITIVE.search(remainder))

    if positive and not negative:
        return Classification.INTERESTED
    if negative and not positive:
        return Classification.NOT_INTERESTED
    return Classification.UNCLEAR


def reply_for(classification: Classification, company_name: Optional[str] = None) -> str:
    company = company_name or settings.company_name
    if classification == Classification.INTERESTED:
        return (
            "Great! I'll have an agent reach out to you soon to discuss your real estate needs. "
            "They'll call you at this number. Thank you for your time today."
        )
    if classification == Classification.NOT_INTERESTED:
        return (
            "I understand. Thank you for taking the time to speak with me today. If you change "
            "your mind or have any real estate questions in the future, please don't hesitate to "
            f"reach out to {company}. Have a great day!"
        )
    return (
        "Thank you for your response. I'll pass along your feedback to our team. An agent may "
        "reach out to follow up with more information. Have a great day!"
    )


class ResponseInterpreter:
    """Webhook-side handler for the telephony-only conversation"""

    def __init__(
        self,
        call_logs: CallLogRepository,
        prospects: ProspectRepository,
        agent_configs: AgentConfigRepository,
        tracker: CallStatusTracker,
        twilio_service: Optional[TwilioService] = None,
    ):
        self.call_logs = call_logs
        self.prospects = prospects
        self.agent_configs = agent_configs
        self.tracker = tracker
        self.twilio_service = twilio_service or TwilioService()

    async def handle_answer(self, correlation: CorrelationParams, payload: TwilioVoicePayload) -> str:
        """Greeting plus a speech <Gather> posting back to the response webhook"""
        if not correlation.complete:
            logger.warning("Voice webhook called without correlation parameters")
            return self.twilio_service.generate_hangup_twiml(CALL_ERROR_MESSAGE)

        try:
            config = await self.agent_configs.get_config(correlation.agent_config_id)
            if config is None:
                logger.error(f"Agent config {correlation.agent_config_id} not found for answered call")
                return self.twilio_service.generate_hangup_twiml(CONFIG_ERROR_MESSAGE)

            prospect = await self.prospects.get_prospect(correlation.prospect_id)
            if prospect is None:
                logger.error(f"Prospect {correlation.prospect_id} not found for answered call")
                return self.twilio_service.generate_hangup_twiml(PROSPECT_ERROR_MESSAGE)

            session = await self.call_logs.get_session(correlation.call_log_id)
            if session is not None:
                if payload.CallSid and not session.call_sid:
                    await self.call_logs.record_call_sid(session.id, payload.CallSid)
                await self.tracker.apply_provider_status(session.id, CallStatus.ANSWERED)

            greeting = config.greeting or build_greeting(prospect)
            if session is not None:
                await self.call_logs.add_transcript_entry(
                    session.id, TranscriptEntry(role="agent", text=greeting)
                )

            action = webhook_url("response", correlation.model_dump(exclude_none=True))
            return self.twilio_service.generate_greeting_twiml(greeting, action)
        except Exception as e:
            logger.exception(f"Error answering call log {correlation.call_log_id}: {e}")
            return self.twilio_service.generate_hangup_twiml(CALL_ERROR_MESSAGE)

    async def handle_speech(self, correlation: CorrelationParams, payload: SpeechResultPayload) -> str:
        """
        Record and classify the prospect's answer, then reply and hang up
        """
        utterance = (payload.SpeechResult or "").strip()
        if not correlation.complete or not utterance:
            logger.warning(
                f"Response webhook missing parameters (call_log_id={correlation.call_log_id}, "
                f"speech={'yes' if utterance else 'no'})"
            )
            return self.twilio_service.generate_hangup_twiml(APOLOGY_MESSAGE)

        try:
            session = await self.call_logs.get_session(correlation.call_log_id)
            if session is None:
                logger.error(f"Call log {correlation.call_log_id} not found for speech result")
                return self.twilio_service.generate_hangup_twiml(APOLOGY_MESSAGE)

            logger.info(f"Speech received for call log {session.id} (confidence: {payload.Confidence})")
            await self.call_logs.add_transcript_entry(
                session.id,
                TranscriptEntry(role="caller", text=utterance, confidence=payload.Confidence),
            )

            classification = classify(utterance)
            await self.prospects.mark_completed(
                correlation.prospect_id, f"{NOTE_PREFIXES[classification]} {utterance}"
            )
            await self.call_logs.update_outcome(
                session.id,
                {"interested": INTEREST_FLAGS[classification], "response": utterance},
                SUMMARIES[classification],
            )

            reply = reply_for(classification)
            await self.call_logs.add_transcript_entry(session.id, TranscriptEntry(role="agent", text=reply))
            logger.info(f"Call log {session.id} classified as {classification.value}")
            return self.twilio_service.generate_reply_twiml(reply)
        except Exception as e:
            logger.exception(f"Error processing response for call log {correlation.call_log_id}: {e}")
            return self.twilio_service.generate_hangup_twiml(APOLOGY_MESSAGE)
