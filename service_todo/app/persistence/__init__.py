"""
Persistence package for the Todo Service.

Provides the SQLAlchemy table definition, engine factory, and the
repository that owns all reads and writes of todo rows.
"""

from .database import create_database_engine, metadata, todos
from .sql_repository import SQLTodoRepository, TodoRepository

__all__ = [
    "SQLTodoRepository",
    "TodoRepository",
    "create_database_engine",
    "metadata",
    "todos",
]
