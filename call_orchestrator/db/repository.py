"""
Repository Implementations

Profile, prospect, agent-configuration and call-log repositories that work
with any DatabaseAdapter (SQLite, PostgreSQL).
"""

import json
import logging
from datetime import datetime
from typing import Optional, List, Dict, Any, Tuple

from call_orchestrator.db.base import DatabaseAdapter, CallLogRepositoryInterface
from call_orchestrator.db.models import ProfileDB, ProspectDB, AgentConfigDB
from call_orchestrator.models.call import (
    CallSession,
    CallStatus,
    ProviderPath,
    TranscriptEntry,
    utcnow,
)
from call_orchestrator.core.config import settings

logger = logging.getLogger(__name__)

# Singleton instance
_repositories_instance: Optional["Repositories"] = None

# Columns a status transition may fill in alongside the new status
TRANSITION_DETAIL_COLUMNS = {
    "ended_at": "ended_at",
    "duration_seconds": "call_duration_seconds",
    "recording_url": "recording_url",
    "cost": "cost",
    "error_code": "error_code",
    "error_message": "error_message",
}

MAX_TRANSITION_ATTEMPTS = 5


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_datetime(value: Any) -> Optional[datetime]:
    """Parse datetime from string or return as-is if already datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None


def _parse_json_dict(value: Any) -> Dict[str, Any]:
    """Parse JSON dict from string or return as-is if already dict."""
    if value is None:
        return {}
    if isinstance(value, dict):
        return value
    try:
        parsed = json.loads(value)
        return parsed if isinstance(parsed, dict) else {}
    except (json.JSONDecodeError, TypeError):
        return {}


class ProfileRepository:
    """Read access to the identity/profile store"""

    def __init__(self, adapter: DatabaseAdapter):
        self.adapter = adapter

    async def get_profile(self, user_id: str) -> Optional[ProfileDB]:
        row = await self.adapter.fetch_one("SELECT * FROM profiles WHERE id = ?", (user_id,))
        return ProfileDB(**row) if row else None

    async def save_profile(self, profile: ProfileDB) -> ProfileDB:
        """Insert or replace a profile (local development and fixtures)."""
        await self.adapter.execute("DELETE FROM profiles WHERE id = ?", (profile.id,))
        await self.adapter.execute(
            """
            INSERT INTO profiles (
                id, twilio_account_sid, twilio_auth_token, twilio_phone_number, elevenlabs_api_key
            ) VALUES (?, ?, ?, ?, ?)
            """,
            (
                profile.id,
                profile.twilio_account_sid,
                profile.twilio_auth_token,
                profile.twilio_phone_number,
                profile.elevenlabs_api_key,
            ),
        )
        return profile


class ProspectRepository:
    """Prospect lookups and the status bookkeeping the call flow owns"""

    def __init__(self, adapter: DatabaseAdapter):
        self.adapter = adapter

    async def get_prospect(self, prospect_id: str) -> Optional[ProspectDB]:
        row = await self.adapter.fetch_one("SELECT * FROM prospects WHERE id = ?", (prospect_id,))
        if not row:
            return None
        row["last_call_attempted"] = _parse_datetime(row.get("last_call_attempted"))
        return ProspectDB(**row)

    async def save_prospect(self, prospect: ProspectDB) -> ProspectDB:
        """Insert or replace a prospect (local development and fixtures)."""
        await self.adapter.execute("DELETE FROM prospects WHERE id = ?", (prospect.id,))
        await self.adapter.execute(
            """
            INSERT INTO prospects (
                id, first_name, last_name, phone_number, property_address,
                status, notes, last_call_attempted
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                prospect.id,
                prospect.first_name,
                prospect.last_name,
                prospect.phone_number,
                prospect.property_address,
                prospect.status,
                prospect.notes,
                _iso(prospect.last_call_attempted),
            ),
        )
        return prospect

    async def mark_calling(self, prospect_id: str) -> None:
        await self.adapter.execute(
            "UPDATE prospects SET status = ?, last_call_attempted = ? WHERE id = ?",
            ("Calling", utcnow().isoformat(), prospect_id),
        )

    async def mark_completed(self, prospect_id: str, notes: str) -> None:
        await self.adapter.execute(
            "UPDATE prospects SET status = ?, notes = ? WHERE id = ?",
            ("Completed", notes, prospect_id),
        )


class AgentConfigRepository:
    """Read access to agent configurations"""

    def __init__(self, adapter: DatabaseAdapter):
        self.adapter = adapter

    async def get_config(self, agent_config_id: str) -> Optional[AgentConfigDB]:
        row = await self.adapter.fetch_one(
            "SELECT * FROM agent_configs WHERE id = ?", (agent_config_id,)
        )
        return AgentConfigDB(**row) if row else None

    async def save_config(self, config: AgentConfigDB) -> AgentConfigDB:
        """Insert or replace a configuration (local development and fixtures)."""
        await self.adapter.execute("DELETE FROM agent_configs WHERE id = ?", (config.id,))
        await self.adapter.execute(
            """
            INSERT INTO agent_configs (
                id, user_id, config_name, system_prompt, greeting, voice_id,
                voice_provider, conversation_agent_id, llm_model, temperature
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                config.id,
                config.user_id,
                config.config_name,
                config.system_prompt,
                config.greeting,
                config.voice_id,
                config.voice_provider,
                config.conversation_agent_id,
                config.llm_model,
                config.temperature,
            ),
        )
        return config


class CallLogRepository(CallLogRepositoryInterface):
    """
    Repository for call sessions and their transcripts.

    Status writes are compare-and-set on the previous status so that
    concurrent writers (poller, status callback, webhook, terminator)
    cannot move a session backwards or out of a terminal status.
    """

    def __init__(self, adapter: DatabaseAdapter):
        self.adapter = adapter

    # ==================== Sessions ====================

    async def create_session(self, session: CallSession) -> CallSession:
        """Insert a new session row; DuplicateKeyError if the user already has a live one."""
        query = """
            INSERT INTO call_logs (
                id, user_id, prospect_id, agent_config_id, provider_path,
                twilio_call_sid, call_status, to_number, unconfirmed, bypass_validation,
                started_at, ended_at, call_duration_seconds, recording_url, cost,
                extracted_data, summary, error_code, error_message, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """

        params = (
            session.id,
            session.user_id,
            session.prospect_id,
            session.agent_config_id,
            session.provider_path.value,
            session.call_sid,
            session.status.value,
            session.to_number,
            int(session.unconfirmed),
            int(session.bypass_validation),
            _iso(session.started_at) or utcnow().isoformat(),
            _iso(session.ended_at),
            session.duration_seconds,
            session.recording_url,
            session.cost,
            json.dumps(session.extracted_data, default=str),
            session.summary,
            session.error_code,
            session.error_message,
            utcnow().isoformat(),
        )

        await self.adapter.execute(query, params)
        logger.info(f"Created call log: {session.id}")
        return session

    async def get_session(self, call_log_id: str) -> Optional[CallSession]:
        row = await self.adapter.fetch_one("SELECT * FROM call_logs WHERE id = ?", (call_log_id,))
        if not row:
            return None
        session = self._row_to_session(row)
        session.transcript = await self.get_transcripts(call_log_id)
        return session

    async def get_by_call_sid(self, call_sid: str) -> Optional[CallSession]:
        row = await self.adapter.fetch_one(
            "SELECT id FROM call_logs WHERE twilio_call_sid = ?", (call_sid,)
        )
        if not row:
            return None
        return await self.get_session(row["id"])

    async def get_active_session(self, user_id: str) -> Optional[CallSession]:
        statuses = [s.value for s in CallStatus if not s.is_terminal]
        placeholders = ", ".join("?" for _ in statuses)
        row = await self.adapter.fetch_one(
            f"SELECT id FROM call_logs WHERE user_id = ? AND call_status IN ({placeholders})",
            (user_id, *statuses),
        )
        if not row:
            return None
        return await self.get_session(row["id"])

    async def record_call_sid(self, call_log_id: str, call_sid: str) -> bool:
        affected = await self.adapter.execute(
            """
            UPDATE call_logs SET twilio_call_sid = ?, updated_at = ?
            WHERE id = ? AND twilio_call_sid IS NULL
            """,
            (call_sid, utcnow().isoformat(), call_log_id),
        )
        if affected:
            logger.info(f"Recorded call SID {call_sid} on call log {call_log_id}")
        return bool(affected)

    async def transition(
        self,
        call_log_id: str,
        new_status: CallStatus,
        details: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Optional[CallSession], bool]:
        details = {k: v for k, v in (details or {}).items() if v is not None}

        for _ in range(MAX_TRANSITION_ATTEMPTS):
            current = await self.get_session(call_log_id)
            if current is None:
                return None, False

            if current.status == new_status:
                if details:
                    await self._fill_missing_details(call_log_id, details)
                    current = await self.get_session(call_log_id)
                return current, False

            if current.status.is_terminal or new_status.rank <= current.status.rank:
                logger.debug(
                    f"Ignoring transition {current.status.value} -> {new_status.value} "
                    f"for call log {call_log_id}"
                )
                return current, False

            set_clauses = ["call_status = ?", "updated_at = ?"]
            params: List[Any] = [new_status.value, utcnow().isoformat()]
            for key, value in details.items():
                column = TRANSITION_DETAIL_COLUMNS.get(key)
                if column is None:
                    continue
                set_clauses.append(f"{column} = ?")
                params.append(value.isoformat() if isinstance(value, datetime) else value)
            params.extend([call_log_id, current.status.value])

            affected = await self.adapter.execute(
                f"UPDATE call_logs SET {', '.join(set_clauses)} WHERE id = ? AND call_status = ?",
                tuple(params),
            )
            if affected:
                logger.info(
                    f"Call log {call_log_id}: {current.status.value} -> {new_status.value}"
                )
                return await self.get_session(call_log_id), True

            # Another writer moved the row first; re-read and decide again
            logger.debug(f"Concurrent status write on call log {call_log_id}, retrying")

        return await self.get_session(call_log_id), False

    async def _fill_missing_details(self, call_log_id: str, details: Dict[str, Any]) -> None:
        set_clauses = []
        params: List[Any] = []
        for key, value in details.items():
            column = TRANSITION_DETAIL_COLUMNS.get(key)
            if column is None:
                continue
            set_clauses.append(f"{column} = COALESCE({column}, ?)")
            params.append(value.isoformat() if isinstance(value, datetime) else value)
        if not set_clauses:
            return
        params.append(call_log_id)
        await self.adapter.execute(
            f"UPDATE call_logs SET {', '.join(set_clauses)} WHERE id = ?",
            tuple(params),
        )

    async def mark_unconfirmed(self, call_log_id: str) -> None:
        await self.adapter.execute(
            "UPDATE call_logs SET unconfirmed = 1, updated_at = ? WHERE id = ?",
            (utcnow().isoformat(), call_log_id),
        )
        logger.warning(f"Call log {call_log_id} left unconfirmed after polling ceiling")

    async def update_outcome(
        self,
        call_log_id: str,
        extracted_data: Dict[str, Any],
        summary: str,
    ) -> None:
        await self.adapter.execute(
            "UPDATE call_logs SET extracted_data = ?, summary = ?, updated_at = ? WHERE id = ?",
            (json.dumps(extracted_data, default=str), summary, utcnow().isoformat(), call_log_id),
        )

    async def list_sessions(
        self,
        user_id: str,
        limit: int = 50,
        since: Optional[datetime] = None,
    ) -> List[CallSession]:
        query = "SELECT * FROM call_logs WHERE user_id = ?"
        params: List[Any] = [user_id]
        if since:
            query += " AND started_at >= ?"
            params.append(since.isoformat())
        query += " ORDER BY started_at DESC LIMIT ?"
        params.append(limit)

        rows = await self.adapter.fetch_all(query, tuple(params))
        return [self._row_to_session(row) for row in rows]

    # ==================== Transcripts ====================

    async def add_transcript_entry(self, call_log_id: str, entry: TranscriptEntry) -> TranscriptEntry:
        await self.adapter.execute(
            """
            INSERT INTO call_transcripts (call_log_id, timestamp, role, text, confidence)
            VALUES (?, ?, ?, ?, ?)
            """,
            (call_log_id, entry.timestamp.isoformat(), entry.role, entry.text, entry.confidence),
        )
        logger.debug(f"Added transcript entry for call log: {call_log_id}")
        return entry

    async def get_transcripts(self, call_log_id: str) -> List[TranscriptEntry]:
        rows = await self.adapter.fetch_all(
            "SELECT * FROM call_transcripts WHERE call_log_id = ? ORDER BY id ASC",
            (call_log_id,),
        )
        return [
            TranscriptEntry(
                timestamp=_parse_datetime(row.get("timestamp")) or utcnow(),
                role=row["role"],
                text=row["text"],
                confidence=row.get("confidence"),
            )
            for row in rows
        ]

    # ==================== Helper Methods ====================

    def _row_to_session(self, row: Dict[str, Any]) -> CallSession:
        """Convert a database row to CallSession."""
        return CallSession(
            id=row["id"],
            user_id=row["user_id"],
            prospect_id=row.get("prospect_id"),
            agent_config_id=row.get("agent_config_id"),
            provider_path=ProviderPath(row.get("provider_path") or ProviderPath.TELEPHONY.value),
            call_sid=row.get("twilio_call_sid"),
            status=CallStatus.normalize(row.get("call_status")) or CallStatus.INITIATED,
            to_number=row.get("to_number"),
            unconfirmed=bool(row.get("unconfirmed")),
            bypass_validation=bool(row.get("bypass_validation")),
            started_at=_parse_datetime(row.get("started_at")) or utcnow(),
            ended_at=_parse_datetime(row.get("ended_at")),
            duration_seconds=row.get("call_duration_seconds"),
            recording_url=row.get("recording_url"),
            cost=row.get("cost"),
            extracted_data=_parse_json_dict(row.get("extracted_data")),
            summary=row.get("summary"),
            error_code=row.get("error_code"),
            error_message=row.get("error_message"),
            updated_at=_parse_datetime(row.get("updated_at")),
        )


class Repositories:
    """All repositories sharing one adapter"""

    def __init__(self, adapter: DatabaseAdapter):
        self.adapter = adapter
        self.profiles = ProfileRepository(adapter)
        self.prospects = ProspectRepository(adapter)
        self.agent_configs = AgentConfigRepository(adapter)
        self.call_logs = CallLogRepository(adapter)

    async def initialize(self) -> bool:
        """
        Initialize the repositories (connect and setup schema).

        Returns:
            True if initialization successful, False otherwise.
        """
        connected = await self.adapter.connect()
        if not connected:
            return False

        return await self.adapter.initialize_schema()

    async def close(self) -> None:
        """Close the database connection."""
        await self.adapter.disconnect()


class DatabaseRepository:
    """
    Main database repository factory.

    This class provides a unified interface to get the appropriate
    repositories based on configuration.
    """

    @staticmethod
    def create_repositories(db_type: str = "sqlite") -> Repositories:
        """
        Create repositories with the specified database type.

        Args:
            db_type: Database type ("sqlite" or "postgres")
        """
        if db_type == "postgres":
            from call_orchestrator.db.adapters.postgres import PostgresAdapter
            adapter = PostgresAdapter()
        else:
            from call_orchestrator.db.adapters.sqlite import SQLiteAdapter
            adapter = SQLiteAdapter()

        return Repositories(adapter)


def get_repositories() -> Repositories:
    """
    Get or create the singleton repositories instance.

    The database type comes from the DATABASE_TYPE setting (default: "sqlite").
    """
    global _repositories_instance

    if _repositories_instance is None:
        db_type = settings.database_type.lower()

        if db_type == "postgres" and not settings.postgres_url:
            logger.warning("PostgreSQL selected but POSTGRES_URL not set, falling back to SQLite")
            db_type = "sqlite"

        _repositories_instance = DatabaseRepository.create_repositories(db_type)
        logger.info(f"Created {db_type} repository instance")

    return _repositories_instance


def set_repositories(repositories: Optional[Repositories]) -> None:
    """Replace the singleton (used by the test suite)."""
    global _repositories_instance
    _repositories_instance = repositories


async def initialize_database() -> bool:
    """
    Initialize the database (connect and create schema).

    Call this at application startup.
    """
    repos = get_repositories()
    return await repos.initialize()


async def close_database() -> None:
    """
    Close the database connection.

    Call this at application shutdown.
    """
    global _repositories_instance
    if _repositories_instance:
        await _repositories_instance.close()
        _repositories_instance = None
        logger.info("Database connection closed")
