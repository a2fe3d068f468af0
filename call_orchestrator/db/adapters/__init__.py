"""
Database Adapters

Each adapter implements the DatabaseAdapter interface for one backend.
"""

from call_orchestrator.db.adapters.sqlite import SQLiteAdapter

__all__ = ["SQLiteAdapter"]
