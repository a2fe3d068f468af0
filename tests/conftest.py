"""
Pytest configuration and fixtures
"""

import os
import pytest
from unittest.mock import AsyncMock

# Set test environment variables before importing application modules
os.environ["DATABASE_TYPE"] = "sqlite"
os.environ["SQLITE_PATH"] = ":memory:"
os.environ.pop("REDIS_URL", None)
os.environ.pop("SERVICE_API_KEY", None)
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("API_BASE_URL", "https://calls.example.com")
os.environ.setdefault("TWILIO_ACCOUNT_SID", "ACplatform")
os.environ.setdefault("TWILIO_AUTH_TOKEN", "platform-token")
os.environ.setdefault("TWILIO_PHONE_NUMBER", "+15550000000")
os.environ.setdefault("CREDENTIAL_FETCH_RETRY_DELAY", "0")
os.environ.setdefault("STATUS_TRACKING_BACKEND", "off")
os.environ.setdefault("VALIDATE_TWILIO_SIGNATURES", "false")

from call_orchestrator.db.adapters.sqlite import SQLiteAdapter
from call_orchestrator.db.models import AgentConfigDB, ProfileDB, ProspectDB
from call_orchestrator.db.repository import Repositories, set_repositories
from call_orchestrator.models.call import CallIntent, ProviderPath
from call_orchestrator.models.provider import DispatchOutcome, TwilioCallInfo
from call_orchestrator.services.call_manager import CallManager, set_call_manager
from call_orchestrator.services.telephony.twilio_service import TwilioService
from call_orchestrator.services.validation_cache import MemoryValidationCache
from call_orchestrator.services.voice.elevenlabs_service import ElevenLabsService

USER_ID = "user-1"
PROSPECT_ID = "prospect-1"
CONFIG_ID = "config-1"
PROSPECT_PHONE = "+15551234567"


def build_intent(**overrides) -> CallIntent:
    """Dispatch intent for the seeded user, prospect and configuration"""
    data = {
        "prospectId": PROSPECT_ID,
        "agentConfigId": CONFIG_ID,
        "userId": USER_ID,
    }
    data.update(overrides)
    return CallIntent(**data)


def call_info(sid: str, status: str, **extra) -> TwilioCallInfo:
    return TwilioCallInfo(sid=sid, status=status, **extra)


@pytest.fixture
async def repositories():
    """Fresh in-memory database with the schema created"""
    repos = Repositories(SQLiteAdapter(":memory:"))
    assert await repos.initialize()
    yield repos
    await repos.close()


@pytest.fixture
async def seeded(repositories):
    """A fully configured user, one prospect and one agent configuration"""
    await repositories.profiles.save_profile(ProfileDB(
        id=USER_ID,
        twilio_account_sid="ACuser",
        twilio_auth_token="user-token",
        twilio_phone_number="+15559876543",
        elevenlabs_api_key="xi-user-key",
    ))
    await repositories.prospects.save_prospect(ProspectDB(
        id=PROSPECT_ID,
        first_name="Jane",
        last_name="Doe",
        phone_number=PROSPECT_PHONE,
        property_address="12 Oak Street",
        status="New",
    ))
    await repositories.agent_configs.save_config(AgentConfigDB(
        id=CONFIG_ID,
        user_id=USER_ID,
        config_name="Listing outreach",
        system_prompt="You are a friendly real estate assistant.",
        voice_id="voice-config",
        conversation_agent_id="agent-config",
    ))
    return repositories


@pytest.fixture
def mock_twilio_service():
    """Real TwiML generation, mocked network calls"""
    service = TwilioService()
    service.place_call = AsyncMock(return_value=DispatchOutcome(
        call_sid="CA00000000000000000000000000000001",
        provider="twilio",
        status="queued",
    ))
    service.get_call = AsyncMock(return_value=call_info("CA00000000000000000000000000000001", "in-progress"))
    service.end_call = AsyncMock(return_value=call_info("CA00000000000000000000000000000001", "completed"))
    service.list_calls = AsyncMock(return_value=[])
    service.verify_account = AsyncMock(return_value={"account_sid": "ACuser", "status": "active"})
    return service


@pytest.fixture
def mock_elevenlabs_service():
    """Fixture for mocked ElevenLabs service"""
    service = ElevenLabsService()
    service.place_call = AsyncMock(return_value=DispatchOutcome(
        call_sid="CA00000000000000000000000000000e11",
        provider="elevenlabs",
        conversation_id="conv-1",
    ))
    service.verify_api_key = AsyncMock(return_value={"user_id": "el-user", "tier": "creator"})
    return service


@pytest.fixture
def manager(seeded, mock_twilio_service, mock_elevenlabs_service):
    """Call manager wired to the seeded database and mocked providers"""
    manager = CallManager(
        repositories=seeded,
        twilio_service=mock_twilio_service,
        elevenlabs_service=mock_elevenlabs_service,
        validation_cache=MemoryValidationCache(),
    )
    set_repositories(seeded)
    set_call_manager(manager)
    yield manager
    set_call_manager(None)
    set_repositories(None)


@pytest.fixture
def conversation_intent():
    return build_intent(providerPath=ProviderPath.TELEPHONY_CONVERSATION.value)


@pytest.fixture
def make_intent():
    """Factory for dispatch intents against the seeded records"""
    return build_intent

