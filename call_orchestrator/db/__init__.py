"""
Database Abstraction Layer

Adapters for SQLite and PostgreSQL behind one interface, and the
repositories the orchestrator reads and writes through.

Usage:
    from call_orchestrator.db import get_repositories

    repos = get_repositories()
    session = await repos.call_logs.get_session(call_log_id)
"""

from call_orchestrator.db.base import (
    DatabaseAdapter,
    DuplicateKeyError,
    StoreUnavailableError,
)
from call_orchestrator.db.repository import (
    Repositories,
    DatabaseRepository,
    ProfileRepository,
    ProspectRepository,
    AgentConfigRepository,
    CallLogRepository,
    get_repositories,
    set_repositories,
    initialize_database,
    close_database,
)
from call_orchestrator.db.models import ProfileDB, ProspectDB, AgentConfigDB

__all__ = [
    "DatabaseAdapter",
    "DuplicateKeyError",
    "StoreUnavailableError",
    "Repositories",
    "DatabaseRepository",
    "ProfileRepository",
    "ProspectRepository",
    "AgentConfigRepository",
    "CallLogRepository",
    "get_repositories",
    "set_repositories",
    "initialize_database",
    "close_database",
    "ProfileDB",
    "ProspectDB",
    "AgentConfigDB",
]
