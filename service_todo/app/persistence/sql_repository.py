"""
SQL persistence layer for the Todo service.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

from sqlalchemy import delete, insert, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from shared.errors import StorageError
from shared.logging import get_logger
from ..models import Todo, TodoUpdateRequest, utcnow
from .database import metadata, todos


class TodoRepository(Protocol):
    """Storage contract used by the service layer.

    Missing rows are reported as ``None``/``False``; ``StorageError`` is
    reserved for connectivity and constraint failures.
    """

    async def create(self, task: str) -> Todo: ...

    async def get(self, todo_id: int) -> Optional[Todo]: ...

    async def list(self) -> List[Todo]: ...

    async def update(self, todo_id: int, request: TodoUpdateRequest) -> Optional[Todo]: ...

    async def set_status(self, todo_id: int, completed: bool) -> Optional[Todo]: ...

    async def update_status(self, todo_id: int, completed: bool) -> bool: ...

    async def delete(self, todo_id: int) -> bool: ...


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _next_timestamp(previous: datetime) -> datetime:
    """Current time, nudged forward so it is strictly after ``previous``."""
    now = utcnow()
    if now <= previous:
        now = previous + timedelta(microseconds=1)
    return now


class SQLTodoRepository:
    """Single-table todo repository on top of an async SQLAlchemy engine."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.logger = get_logger("todo.persistence.sql")

    async def start(self):
        """Create the todos table if it does not exist."""
        async with self._connection("initialize") as conn:
            await conn.run_sync(metadata.create_all)
        self.logger.info("SQL persistence started", backend=self.engine.dialect.name)

    async def stop(self):
        """Dispose of the connection pool."""
        await self.engine.dispose()
        self.logger.info("SQL persistence stopped")

    @asynccontextmanager
    async def _connection(self, operation: str) -> AsyncIterator[AsyncConnection]:
        try:
            async with self.engine.begin() as conn:
                yield conn
        except SQLAlchemyError as e:
            self.logger.error("Storage operation failed", operation=operation, error=str(e))
            raise StorageError(f"Failed to {operation} todo", str(e)) from e

    async def create(self, task: str) -> Todo:
        """Insert a new todo and return it."""
        now = utcnow()
        async with self._connection("create") as conn:
            result = await conn.execute(
                insert(todos).values(task=task, completed=False, created_at=now, updated_at=now)
            )
            todo_id = result.inserted_primary_key[0]

        return Todo(id=todo_id, task=task, completed=False, created_at=now, updated_at=now)

    async def get(self, todo_id: int) -> Optional[Todo]:
        """Load a todo by id."""
        async with self._connection("get") as conn:
            row = (await conn.execute(select(todos).where(todos.c.id == todo_id))).first()

        return self._row_to_todo(row) if row is not None else None

    async def list(self) -> List[Todo]:
        """All todos, newest first."""
        async with self._connection("list") as conn:
            rows = (
                await conn.execute(select(todos).order_by(todos.c.created_at.desc(), todos.c.id.desc()))
            ).all()

        return [self._row_to_todo(row) for row in rows]

    async def update(self, todo_id: int, request: TodoUpdateRequest) -> Optional[Todo]:
        """Apply the supplied fields; ``None`` when the todo does not exist."""
        return await self._apply(todo_id, request.changes(), "update")

    async def set_status(self, todo_id: int, completed: bool) -> Optional[Todo]:
        """Set the completion flag and return the updated todo; ``None`` when it does not exist."""
        return await self._apply(todo_id, {"completed": completed}, "update status of")

    async def update_status(self, todo_id: int, completed: bool) -> bool:
        """Set the completion flag; ``False`` when the todo does not exist."""
        return await self.set_status(todo_id, completed) is not None

    async def delete(self, todo_id: int) -> bool:
        """Delete a todo. Returns whether a row was removed; a missing id is not an error."""
        async with self._connection("delete") as conn:
            result = await conn.execute(delete(todos).where(todos.c.id == todo_id))

        if result.rowcount == 0:
            self.logger.debug("Todo not found for deletion", todo_id=todo_id)
        return result.rowcount > 0

    async def _apply(self, todo_id: int, changes: Dict[str, Any], operation: str) -> Optional[Todo]:
        async with self._connection(operation) as conn:
            row = (
                await conn.execute(select(todos).where(todos.c.id == todo_id).with_for_update())
            ).first()
            if row is None:
                return None

            current = self._row_to_todo(row)
            values = dict(changes, updated_at=_next_timestamp(current.updated_at))
            result = await conn.execute(update(todos).where(todos.c.id == todo_id).values(**values))
            if result.rowcount == 0:
                # Deleted concurrently
                return None

        return current.model_copy(update=values)

    def _row_to_todo(self, row) -> Todo:
        """Convert database row to Todo."""
        return Todo(
            id=row.id,
            task=row.task,
            completed=bool(row.completed),
            created_at=_as_utc(row.created_at),
            updated_at=_as_utc(row.updated_at),
        )

    async def health_check(self) -> bool:
        """Check database health."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            self.logger.warning("Database health check failed", error=str(e))
            return False
