"""
Test helper functions and fixtures for the Todo service.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from unittest.mock import AsyncMock

import pytest
from prometheus_client import CollectorRegistry

from shared.config import TodoConfig
from shared.metrics import MetricsCollector
from service_todo.app.models import Todo, utcnow


BASE_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def create_test_config(tmp_path=None, **overrides) -> TodoConfig:
    """Config with external capabilities switched off and a throwaway SQLite file."""
    values = {
        "redis_enabled": False,
        "kafka_enabled": False,
        "log_format": "console",
        "log_level": "warning",
    }
    if tmp_path is not None:
        values["database_url"] = f"sqlite+aiosqlite:///{tmp_path}/todos.db"
    values.update(overrides)
    return TodoConfig(**values)


def create_test_todo(todo_id: int = 1, task: str = "Buy milk", completed: bool = False, minutes: int = 0) -> Todo:
    """Build a todo with deterministic timestamps."""
    timestamp = BASE_TIME + timedelta(minutes=minutes)
    return Todo(id=todo_id, task=task, completed=completed, created_at=timestamp, updated_at=timestamp)


def create_mock_cache(todo: Optional[Todo] = None, todos: Optional[List[Todo]] = None) -> AsyncMock:
    """Cache double; lookups miss unless a value is supplied."""
    cache = AsyncMock()
    cache.get_todo.return_value = todo
    cache.get_todos.return_value = todos
    return cache


class InMemoryTodoCache:
    """Dict-backed cache with the same contract as the Redis one; TTLs are recorded, not enforced."""

    def __init__(self):
        self.todos: Dict[int, Todo] = {}
        self.all_todos: Optional[List[Todo]] = None
        self.ttls: Dict[str, int] = {}

    async def get_todo(self, todo_id: int) -> Optional[Todo]:
        return self.todos.get(todo_id)

    async def set_todo(self, todo: Todo, ttl_seconds: int):
        self.todos[todo.id] = todo
        self.ttls[f"todo:{todo.id}"] = ttl_seconds

    async def delete_todo(self, todo_id: int):
        self.todos.pop(todo_id, None)

    async def get_todos(self) -> Optional[List[Todo]]:
        return self.all_todos

    async def set_todos(self, todos: List[Todo], ttl_seconds: int):
        self.all_todos = list(todos)
        self.ttls["todos:all"] = ttl_seconds

    async def invalidate_todos(self):
        self.all_todos = None


class InMemoryTodoRepository:
    """Dict-backed repository with the same contract as the SQL one."""

    def __init__(self):
        self.todos: Dict[int, Todo] = {}
        self.next_id = 1
        self.calls: List[str] = []

    async def create(self, task: str) -> Todo:
        self.calls.append("create")
        now = utcnow()
        todo = Todo(id=self.next_id, task=task, completed=False, created_at=now, updated_at=now)
        self.todos[todo.id] = todo
        self.next_id += 1
        return todo

    async def get(self, todo_id: int) -> Optional[Todo]:
        self.calls.append("get")
        return self.todos.get(todo_id)

    async def list(self) -> List[Todo]:
        self.calls.append("list")
        return sorted(self.todos.values(), key=lambda t: (t.created_at, t.id), reverse=True)

    async def update(self, todo_id: int, request) -> Optional[Todo]:
        self.calls.append("update")
        return self._apply(todo_id, request.changes())

    async def set_status(self, todo_id: int, completed: bool) -> Optional[Todo]:
        self.calls.append("set_status")
        return self._apply(todo_id, {"completed": completed})

    async def update_status(self, todo_id: int, completed: bool) -> bool:
        self.calls.append("update_status")
        return self._apply(todo_id, {"completed": completed}) is not None

    async def delete(self, todo_id: int) -> bool:
        self.calls.append("delete")
        return self.todos.pop(todo_id, None) is not None

    def _apply(self, todo_id: int, changes: Dict) -> Optional[Todo]:
        current = self.todos.get(todo_id)
        if current is None:
            return None
        updated_at = max(utcnow(), current.updated_at + timedelta(microseconds=1))
        todo = current.model_copy(update=dict(changes, updated_at=updated_at))
        self.todos[todo_id] = todo
        return todo


@pytest.fixture
def metrics():
    """Todo metrics collector on a private registry."""
    return MetricsCollector("todo", CollectorRegistry())


@pytest.fixture
def repository():
    """In-memory repository."""
    return InMemoryTodoRepository()


@pytest.fixture
def todo_config(tmp_path):
    """Service config backed by a temporary SQLite database."""
    return create_test_config(tmp_path)
