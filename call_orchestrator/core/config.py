"""
Configuration management for the Call Orchestrator
Uses Pydantic Settings for environment variable management
"""

from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Platform Twilio account (fallback for bridged calls and status checks)
    twilio_account_sid: Optional[str] = Field(default=None)
    twilio_auth_token: Optional[str] = Field(default=None)
    twilio_phone_number: Optional[str] = Field(default=None)

    # ElevenLabs Conversational AI
    elevenlabs_api_base_url: str = Field(default="https://api.elevenlabs.io")
    elevenlabs_agent_phone_number_id: Optional[str] = Field(default=None)
    elevenlabs_default_agent_id: Optional[str] = Field(default=None)

    # Storage
    database_type: str = Field(default="sqlite")
    sqlite_path: str = Field(default="call_orchestrator.db")
    postgres_url: Optional[str] = Field(default=None)
    redis_url: Optional[str] = Field(default=None)

    # Application Settings
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    environment: str = Field(default="development")
    service_api_key: Optional[str] = Field(default=None)

    # Server Configuration
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=8000)
    api_base_url: str = Field(default="http://localhost:8000")

    # CORS Settings
    allowed_origins: str = Field(default="http://localhost:3000,http://localhost:5173")

    # Provider timeouts (seconds)
    dispatch_timeout_seconds: float = Field(default=30.0)
    status_check_timeout_seconds: float = Field(default=15.0)
    terminate_timeout_seconds: float = Field(default=15.0)
    validation_timeout_seconds: float = Field(default=15.0)

    # Status polling
    status_poll_interval_seconds: float = Field(default=5.0)
    status_poll_max_seconds: float = Field(default=900.0)
    status_tracking_backend: str = Field(default="background")
    unplaced_call_grace_seconds: float = Field(default=120.0)

    # Credential lookups
    credential_fetch_max_attempts: int = Field(default=3)
    credential_fetch_retry_delay: float = Field(default=0.5)
    credential_validation_ttl_seconds: int = Field(default=300)
    verify_credentials_on_dispatch: bool = Field(default=False)

    # Webhooks
    validate_twilio_signatures: bool = Field(default=True)
    allow_webhook_validation_bypass: bool = Field(default=False)

    # Spoken templates
    company_name: str = Field(default="eXp Realty")
    voice_name: str = Field(default="alice")

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    @property
    def webhook_base_url(self) -> str:
        """Base URL Twilio calls back into"""
        return f"{self.api_base_url.rstrip('/')}/api/v1/webhooks/twilio"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
