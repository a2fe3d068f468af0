"""
Call Request Builder
Turns a CallIntent into a NormalizedCallRequest
"""

import uuid
from typing import Dict, Optional

from call_orchestrator.core.config import settings
from call_orchestrator.core.exceptions import (
    ConfigNotFoundError,
    MissingPhoneNumberError,
    ProspectNotFoundError,
)
from call_orchestrator.core.logging import get_logger, mask_phone
from call_orchestrator.db.models import AgentConfigDB, ProspectDB
from call_orchestrator.db.repository import AgentConfigRepository, ProspectRepository
from call_orchestrator.models.call import (
    CallIntent,
    ConversationParameters,
    NormalizedCallRequest,
    ProviderCredentials,
    ProviderPath,
)
from call_orchestrator.utils.phone import normalize_e164

logger = get_logger(__name__)


def build_greeting(prospect: ProspectDB, company_name: Optional[str] = None) -> str:
    """Opening line personalised with the prospect's first name and property"""
    company = company_name or settings.company_name
    greeting = "Hello"
    if prospect.first_name:
        greeting += f", {prospect.first_name}"
    greeting += f". This is an AI assistant calling on behalf of {company}. "
    greeting += (
        "I'm reaching out to discuss your property needs. Would you be interested "
        "in speaking with one of our agents about "
    )
    if prospect.property_address:
        greeting += f"your property at {prospect.property_address}?"
    else:
        greeting += "real estate opportunities in your area?"
    return greeting


def dynamic_variables(prospect: ProspectDB) -> Dict[str, str]:
    variables = {
        "user_name": prospect.display_name,
        "first_name": prospect.first_name or "",
        "property_address": prospect.property_address or "",
    }
    return {k: v for k, v in variables.items() if v}


class CallRequestBuilder:
    """Resolves the prospect and agent configuration behind an intent"""

    def __init__(self, prospects: ProspectRepository, agent_configs: AgentConfigRepository):
        self.prospects = prospects
        self.agent_configs = agent_configs

    async def build(self, intent: CallIntent, credentials: ProviderCredentials) -> NormalizedCallRequest:
        """
        Build the request for one call attempt

        Args:
            intent: What the user asked for
            credentials: Secrets already resolved for intent.provider_path

        Raises:
            ProspectNotFoundError, MissingPhoneNumberError, ConfigNotFoundError
        """
        prospect = await self.prospects.get_prospect(intent.prospect_id)
        if prospect is None:
            raise ProspectNotFoundError(intent.prospect_id)

        to_number = normalize_e164(prospect.phone_number)
        if to_number is None:
            logger.warning(f"Prospect {prospect.id} has no usable phone number")
            raise MissingPhoneNumberError(prospect.id, prospect.phone_number)

        config = await self.agent_configs.get_config(intent.agent_config_id)
        if config is None:
            raise ConfigNotFoundError(intent.agent_config_id)

        conversation = self._conversation_parameters(intent, config, prospect)
        if intent.provider_path == ProviderPath.TELEPHONY_CONVERSATION and not conversation.conversation_agent_id:
            logger.warning(f"No conversation agent configured for agent config {config.id}")
            raise ConfigNotFoundError(intent.agent_config_id)

        request = NormalizedCallRequest(
            call_log_id=str(uuid.uuid4()),
            user_id=intent.user_id,
            prospect_id=prospect.id,
            agent_config_id=config.id,
            provider_path=intent.provider_path,
            to_number=to_number,
            from_number=credentials.twilio_phone_number,
            conversation=conversation,
            credentials=credentials,
            debug_mode=intent.debug_mode,
            bypass_validation=intent.bypass_validation,
        )

        logger.info(
            f"Built {request.provider_path.value} call request {request.call_log_id} "
            f"to {mask_phone(to_number)}"
        )
        return request

    def _conversation_parameters(
        self,
        intent: CallIntent,
        config: AgentConfigDB,
        prospect: ProspectDB,
    ) -> ConversationParameters:
        # Intent-level overrides win over the stored configuration
        return ConversationParameters(
            greeting=config.greeting or build_greeting(prospect),
            system_prompt=config.system_prompt,
            voice_id=intent.voice_override or config.voice_id,
            conversation_agent_id=(
                intent.conversation_agent_id
                or config.conversation_agent_id
                or settings.elevenlabs_default_agent_id
            ),
            llm_model=config.llm_model,
            temperature=config.temperature,
            dynamic_variables=dynamic_variables(prospect),
        )
