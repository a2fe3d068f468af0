"""
Database Adapter Base Classes

This module defines the abstract interfaces that all database adapters
must implement. This enables easy switching between different databases.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List, Dict, Any, Tuple

from call_orchestrator.models.call import CallSession, CallStatus, TranscriptEntry


class DuplicateKeyError(Exception):
    """A write collided with a unique constraint"""


class StoreUnavailableError(Exception):
    """The backing store could not be reached"""


class DatabaseAdapter(ABC):
    """
    Abstract base class for database adapters.

    All database implementations (SQLite, PostgreSQL) must implement this
    interface. Queries use '?' placeholders; adapters translate as needed.
    Driver-level unique violations surface as DuplicateKeyError and
    connection failures as StoreUnavailableError.
    """

    @abstractmethod
    async def connect(self) -> bool:
        """
        Establish connection to the database.
        Returns True if successful, False otherwise.
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the database connection."""
        pass

    @abstractmethod
    async def initialize_schema(self) -> bool:
        """
        Create necessary tables if they don't exist.
        Returns True if successful, False otherwise.
        """
        pass

    @abstractmethod
    async def execute(self, query: str, params: tuple = ()) -> int:
        """Execute a write and return the number of affected rows."""
        pass

    @abstractmethod
    async def fetch_one(self, query: str, params: tuple = ()) -> Optional[Dict[str, Any]]:
        """Execute query and return single row as dict."""
        pass

    @abstractmethod
    async def fetch_all(self, query: str, params: tuple = ()) -> List[Dict[str, Any]]:
        """Execute query and return all rows as list of dicts."""
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        """Check if database connection is active."""
        pass


class CallLogRepositoryInterface(ABC):
    """
    Abstract interface for call session operations.

    The session's own status column is the in-flight guard: a session
    whose status is non-terminal blocks further dispatches for its user.
    """

    # ==================== Sessions ====================

    @abstractmethod
    async def create_session(self, session: CallSession) -> CallSession:
        """
        Insert a new session.

        Raises DuplicateKeyError when the user already holds a
        non-terminal session.
        """
        pass

    @abstractmethod
    async def get_session(self, call_log_id: str) -> Optional[CallSession]:
        pass

    @abstractmethod
    async def get_by_call_sid(self, call_sid: str) -> Optional[CallSession]:
        pass

    @abstractmethod
    async def get_active_session(self, user_id: str) -> Optional[CallSession]:
        pass

    @abstractmethod
    async def record_call_sid(self, call_log_id: str, call_sid: str) -> bool:
        """Attach the provider call id to a session that has none yet."""
        pass

    @abstractmethod
    async def transition(
        self,
        call_log_id: str,
        new_status: CallStatus,
        details: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Optional[CallSession], bool]:
        """
        Move a session forward to new_status.

        Returns the resulting session and whether the status changed.
        Terminal sessions never change status.
        """
        pass

    @abstractmethod
    async def mark_unconfirmed(self, call_log_id: str) -> None:
        pass

    @abstractmethod
    async def update_outcome(
        self,
        call_log_id: str,
        extracted_data: Dict[str, Any],
        summary: str,
    ) -> None:
        pass

    @abstractmethod
    async def list_sessions(
        self,
        user_id: str,
        limit: int = 50,
        since: Optional[datetime] = None,
    ) -> List[CallSession]:
        pass

    # ==================== Transcripts ====================

    @abstractmethod
    async def add_transcript_entry(self, call_log_id: str, entry: TranscriptEntry) -> TranscriptEntry:
        pass

    @abstractmethod
    async def get_transcripts(self, call_log_id: str) -> List[TranscriptEntry]:
        pass
