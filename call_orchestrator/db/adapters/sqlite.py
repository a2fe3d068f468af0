"""
SQLite Database Adapter

Implementation of the DatabaseAdapter interface on the standard library
sqlite3 module, for local development and the test suite. Statements
are short and run inline on the event loop.
"""

import logging
import sqlite3
from typing import Optional, List, Dict, Any

from call_orchestrator.db.base import DatabaseAdapter, DuplicateKeyError, StoreUnavailableError
from call_orchestrator.db.models import SQLITE_SCHEMA

logger = logging.getLogger(__name__)


class SQLiteAdapter(DatabaseAdapter):
    """
    SQLite database adapter.

    A single connection is held for the adapter's lifetime so that
    ':memory:' databases survive between statements.
    """

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize SQLite adapter.

        Args:
            db_path: Path to the database file, or ':memory:'
        """
        from call_orchestrator.core.config import settings

        self.db_path = db_path or settings.sqlite_path
        self._conn: Optional[sqlite3.Connection] = None

    async def connect(self) -> bool:
        """Open the database file."""
        try:
            self._conn = sqlite3.connect(
                self.db_path,
                isolation_level=None,
                check_same_thread=False,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            logger.info(f"Connected to SQLite database: {self.db_path}")
            return True
        except sqlite3.Error as e:
            logger.error(f"Failed to connect to SQLite: {e}")
            self._conn = None
            return False

    async def disconnect(self) -> None:
        """Close the SQLite connection."""
        if self._conn:
            try:
                self._conn.close()
            except sqlite3.Error as e:
                logger.warning(f"Error closing SQLite connection: {e}")
            finally:
                self._conn = None
                logger.info("Disconnected from SQLite database")

    async def initialize_schema(self) -> bool:
        """Create necessary tables if they don't exist."""
        if not self._conn:
            logger.error("Cannot initialize schema: Not connected")
            return False

        try:
            self._conn.executescript(SQLITE_SCHEMA)
            logger.info("SQLite schema initialized successfully")
            return True
        except sqlite3.Error as e:
            logger.error(f"Failed to initialize SQLite schema: {e}")
            return False

    async def execute(self, query: str, params: tuple = ()) -> int:
        """Execute a write and return the affected row count."""
        conn = self._require_connection()
        try:
            cursor = conn.execute(query, params)
            return cursor.rowcount
        except sqlite3.IntegrityError as e:
            raise DuplicateKeyError(str(e)) from e
        except sqlite3.OperationalError as e:
            logger.error(f"Query execution failed: {e}\nQuery: {query}")
            raise StoreUnavailableError(str(e)) from e

    async def fetch_one(self, query: str, params: tuple = ()) -> Optional[Dict[str, Any]]:
        """Execute query and return single row as dict."""
        conn = self._require_connection()
        try:
            row = conn.execute(query, params).fetchone()
            return dict(row) if row else None
        except sqlite3.OperationalError as e:
            logger.error(f"Query execution failed: {e}\nQuery: {query}")
            raise StoreUnavailableError(str(e)) from e

    async def fetch_all(self, query: str, params: tuple = ()) -> List[Dict[str, Any]]:
        """Execute query and return all rows as list of dicts."""
        conn = self._require_connection()
        try:
            rows = conn.execute(query, params).fetchall()
            return [dict(row) for row in rows]
        except sqlite3.OperationalError as e:
            logger.error(f"Query execution failed: {e}\nQuery: {query}")
            raise StoreUnavailableError(str(e)) from e

    def is_connected(self) -> bool:
        """Check if database connection is active."""
        return self._conn is not None

    def _require_connection(self) -> sqlite3.Connection:
        if not self._conn:
            raise StoreUnavailableError("Not connected to database")
        return self._conn
