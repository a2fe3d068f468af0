"""
Database Models

Records read from the identity, prospect and agent-configuration stores,
and the SQL schema shared by the SQLite and PostgreSQL adapters.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class ProfileDB(BaseModel):
    """Identity/profile store record with per-user provider secrets"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = Field(default=None, repr=False)
    twilio_phone_number: Optional[str] = None
    elevenlabs_api_key: Optional[str] = Field(default=None, repr=False)


class ProspectDB(BaseModel):
    """Prospect/contact store record"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    property_address: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None
    last_call_attempted: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts)


class AgentConfigDB(BaseModel):
    """Agent configuration record"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: Optional[str] = None
    config_name: str = "Default"
    system_prompt: Optional[str] = None
    greeting: Optional[str] = None
    voice_id: Optional[str] = None
    voice_provider: Optional[str] = None
    conversation_agent_id: Optional[str] = None
    llm_model: Optional[str] = None
    temperature: Optional[float] = None


# Non-terminal statuses, kept in sync with models.call.ACTIVE_STATUSES
ACTIVE_STATUS_SQL = "('initiated', 'queued', 'ringing', 'in-progress', 'answered')"

SQLITE_SCHEMA = f"""
CREATE TABLE IF NOT EXISTS profiles (
    id TEXT PRIMARY KEY,
    twilio_account_sid TEXT,
    twilio_auth_token TEXT,
    twilio_phone_number TEXT,
    elevenlabs_api_key TEXT
);

CREATE TABLE IF NOT EXISTS prospects (
    id TEXT PRIMARY KEY,
    first_name TEXT,
    last_name TEXT,
    phone_number TEXT,
    property_address TEXT,
    status TEXT,
    notes TEXT,
    last_call_attempted TEXT
);

CREATE TABLE IF NOT EXISTS agent_configs (
    id TEXT PRIMARY KEY,
    user_id TEXT,
    config_name TEXT NOT NULL DEFAULT 'Default',
    system_prompt TEXT,
    greeting TEXT,
    voice_id TEXT,
    voice_provider TEXT,
    conversation_agent_id TEXT,
    llm_model TEXT,
    temperature REAL
);

CREATE TABLE IF NOT EXISTS call_logs (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    prospect_id TEXT,
    agent_config_id TEXT,
    provider_path TEXT NOT NULL DEFAULT 'telephony',
    twilio_call_sid TEXT UNIQUE,
    call_status TEXT NOT NULL DEFAULT 'initiated',
    to_number TEXT,
    unconfirmed INTEGER NOT NULL DEFAULT 0,
    bypass_validation INTEGER NOT NULL DEFAULT 0,
    started_at TEXT NOT NULL,
    ended_at TEXT,
    call_duration_seconds INTEGER,
    recording_url TEXT,
    cost REAL,
    extracted_data TEXT DEFAULT '{{}}',
    summary TEXT,
    error_code TEXT,
    error_message TEXT,
    updated_at TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_call_logs_one_active
    ON call_logs(user_id) WHERE call_status IN {ACTIVE_STATUS_SQL};

CREATE TABLE IF NOT EXISTS call_transcripts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    call_log_id TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    role TEXT NOT NULL,
    text TEXT NOT NULL,
    confidence REAL,
    FOREIGN KEY (call_log_id) REFERENCES call_logs(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_call_transcripts_log ON call_transcripts(call_log_id);
"""

POSTGRES_SCHEMA = f"""
CREATE TABLE IF NOT EXISTS profiles (
    id VARCHAR(255) PRIMARY KEY,
    twilio_account_sid VARCHAR(64),
    twilio_auth_token TEXT,
    twilio_phone_number VARCHAR(32),
    elevenlabs_api_key TEXT
);

CREATE TABLE IF NOT EXISTS prospects (
    id VARCHAR(255) PRIMARY KEY,
    first_name TEXT,
    last_name TEXT,
    phone_number VARCHAR(50),
    property_address TEXT,
    status VARCHAR(50),
    notes TEXT,
    last_call_attempted TEXT
);

CREATE TABLE IF NOT EXISTS agent_configs (
    id VARCHAR(255) PRIMARY KEY,
    user_id VARCHAR(255),
    config_name TEXT NOT NULL DEFAULT 'Default',
    system_prompt TEXT,
    greeting TEXT,
    voice_id VARCHAR(255),
    voice_provider VARCHAR(50),
    conversation_agent_id VARCHAR(255),
    llm_model VARCHAR(100),
    temperature DOUBLE PRECISION
);

CREATE TABLE IF NOT EXISTS call_logs (
    id VARCHAR(255) PRIMARY KEY,
    user_id VARCHAR(255) NOT NULL,
    prospect_id VARCHAR(255),
    agent_config_id VARCHAR(255),
    provider_path VARCHAR(50) NOT NULL DEFAULT 'telephony',
    twilio_call_sid VARCHAR(64) UNIQUE,
    call_status VARCHAR(20) NOT NULL DEFAULT 'initiated',
    to_number VARCHAR(50),
    unconfirmed INTEGER NOT NULL DEFAULT 0,
    bypass_validation INTEGER NOT NULL DEFAULT 0,
    started_at TEXT NOT NULL,
    ended_at TEXT,
    call_duration_seconds INTEGER,
    recording_url TEXT,
    cost DOUBLE PRECISION,
    extracted_data TEXT DEFAULT '{{}}',
    summary TEXT,
    error_code VARCHAR(64),
    error_message TEXT,
    updated_at TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_call_logs_one_active
    ON call_logs(user_id) WHERE call_status IN {ACTIVE_STATUS_SQL};

CREATE TABLE IF NOT EXISTS call_transcripts (
    id SERIAL PRIMARY KEY,
    call_log_id VARCHAR(255) NOT NULL REFERENCES call_logs(id) ON DELETE CASCADE,
    timestamp TEXT NOT NULL,
    role VARCHAR(20) NOT NULL,
    text TEXT NOT NULL,
    confidence DOUBLE PRECISION
);

CREATE INDEX IF NOT EXISTS idx_call_transcripts_log ON call_transcripts(call_log_id);
"""
