"""
Database engine construction and table definitions.
"""

from sqlalchemy import Boolean, Column, DateTime, Integer, MetaData, Table, Text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

metadata = MetaData()

todos = Table(
    "todos",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("task", Text, nullable=False),
    Column("completed", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    sqlite_autoincrement=True,
)


def _connect_args(database_url: str, timeout: float) -> dict:
    backend = make_url(database_url).get_backend_name()
    if backend == "sqlite":
        return {"timeout": timeout}
    if backend == "postgresql":
        return {"timeout": timeout, "command_timeout": timeout}
    return {}


def create_database_engine(database_url: str, timeout: float = 5.0, echo: bool = False) -> AsyncEngine:
    """Build the connection pool shared by all requests.

    Whoever holds the returned engine must ``dispose()`` it on shutdown.
    """
    return create_async_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        connect_args=_connect_args(database_url, timeout),
    )
