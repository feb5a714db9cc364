"""
Unit tests for the Todo orchestration service.
"""

from unittest.mock import AsyncMock

import pytest

from shared.errors import CacheError, EventPublishError, StorageError
from service_todo.app.models import TodoCreateRequest, TodoEventType, TodoUpdateRequest
from service_todo.app.services.todo_service import TodoService
from conftest import InMemoryTodoCache, create_mock_cache, create_test_todo


def operation_count(metrics, operation: str, status: str) -> float:
    return metrics.get_sample_value("todo_operations_total", {"operation": operation, "status": status})


class TestTodoService:
    """Test cases for TodoService."""

    @pytest.fixture
    def cache(self):
        """Cache double that always misses."""
        return create_mock_cache()

    @pytest.fixture
    def publisher(self):
        """Publisher double."""
        return AsyncMock()

    @pytest.fixture
    def service(self, repository, cache, publisher, metrics):
        """Service with every capability present."""
        return TodoService(repository, cache=cache, publisher=publisher, metrics=metrics)

    def published_events(self, publisher):
        return [call.args[0] for call in publisher.publish.await_args_list]

    # create

    @pytest.mark.asyncio
    async def test_create_todo(self, service, repository, cache, publisher, metrics):
        """Test creating a todo caches it, invalidates the list and publishes."""
        todo = await service.create_todo(TodoCreateRequest(task="Buy milk"))

        assert todo.id == 1
        assert todo.completed is False
        assert repository.todos[1] == todo
        cache.set_todo.assert_awaited_once_with(todo, 1800)
        cache.invalidate_todos.assert_awaited_once()

        events = self.published_events(publisher)
        assert len(events) == 1
        assert events[0].type == TodoEventType.CREATED
        assert events[0].todo_id == todo.id
        assert events[0].payload["task"] == "Buy milk"

        assert operation_count(metrics, "create", "success") == 1.0
        assert metrics.get_sample_value(
            "todo_operations_duration_seconds_count", {"operation": "create"}
        ) == 1.0

    @pytest.mark.asyncio
    async def test_create_todo_storage_failure(self, cache, publisher, metrics):
        """Test that a repository failure propagates and nothing else happens."""
        repository = AsyncMock()
        repository.create.side_effect = StorageError("Failed to create todo", "disk full")
        service = TodoService(repository, cache=cache, publisher=publisher, metrics=metrics)

        with pytest.raises(StorageError):
            await service.create_todo(TodoCreateRequest(task="Buy milk"))

        cache.set_todo.assert_not_awaited()
        cache.invalidate_todos.assert_not_awaited()
        publisher.publish.assert_not_awaited()
        assert operation_count(metrics, "create", "error") == 1.0

    @pytest.mark.asyncio
    async def test_create_todo_survives_cache_failure(self, service, cache, publisher, metrics):
        """Test that cache errors never fail a committed write."""
        cache.set_todo.side_effect = CacheError("Failed to cache todo")
        cache.invalidate_todos.side_effect = CacheError("Failed to invalidate todos cache")

        todo = await service.create_todo(TodoCreateRequest(task="Buy milk"))

        assert todo.id == 1
        publisher.publish.assert_awaited_once()
        assert operation_count(metrics, "create", "success") == 1.0

    @pytest.mark.asyncio
    async def test_create_todo_survives_publish_failure(self, service, repository, publisher, metrics):
        """Test that a failed event publish is only logged."""
        publisher.publish.side_effect = EventPublishError("Failed to publish event")

        todo = await service.create_todo(TodoCreateRequest(task="Buy milk"))

        assert repository.todos[todo.id] == todo
        assert operation_count(metrics, "create", "success") == 1.0

    @pytest.mark.asyncio
    async def test_create_without_optional_capabilities(self, repository, metrics):
        """Test that cache and publisher may both be absent."""
        service = TodoService(repository, metrics=metrics)

        todo = await service.create_todo(TodoCreateRequest(task="Buy milk"))

        assert await service.get_todo(todo.id) == todo
        assert await service.list_todos() == [todo]

    # get

    @pytest.mark.asyncio
    async def test_get_todo_cache_hit(self, cache, publisher, metrics):
        """Test that a cache hit never touches the repository."""
        cached = create_test_todo(3)
        cache.get_todo.return_value = cached
        repository = AsyncMock()
        repository.get.side_effect = StorageError("Failed to get todo")
        service = TodoService(repository, cache=cache, publisher=publisher, metrics=metrics)

        result = await service.get_todo(3)

        assert result == cached
        repository.get.assert_not_awaited()
        assert operation_count(metrics, "get", "cache_hit") == 1.0

    @pytest.mark.asyncio
    async def test_get_after_create_served_from_cache(self, repository, metrics):
        """Test a todo written by create is read back from cache, not the store."""
        cache = InMemoryTodoCache()
        service = TodoService(repository, cache=cache, metrics=metrics)
        created = await service.create_todo(TodoCreateRequest(task="Buy milk"))
        repository.get = AsyncMock(side_effect=StorageError("Failed to get todo", "store unavailable"))

        result = await service.get_todo(created.id)

        assert result == created
        repository.get.assert_not_awaited()
        assert cache.ttls[f"todo:{created.id}"] == 1800
        assert operation_count(metrics, "get", "cache_hit") == 1.0
        assert operation_count(metrics, "get", "error") == 0.0

    @pytest.mark.asyncio
    async def test_list_after_write_is_not_stale(self, repository, metrics):
        """Test a write drops the cached list so the next list sees it."""
        cache = InMemoryTodoCache()
        service = TodoService(repository, cache=cache, metrics=metrics)
        first = await service.create_todo(TodoCreateRequest(task="first"))
        assert await service.list_todos() == [first]

        second = await service.create_todo(TodoCreateRequest(task="second"))

        assert [todo.id for todo in await service.list_todos()] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_get_todo_cache_miss_populates_cache(self, service, repository, cache, metrics):
        """Test read-through on a miss."""
        created = await repository.create("Buy milk")

        result = await service.get_todo(created.id)

        assert result == created
        cache.get_todo.assert_awaited_once_with(created.id)
        cache.set_todo.assert_awaited_once_with(created, 1800)
        assert operation_count(metrics, "get", "success") == 1.0

    @pytest.mark.asyncio
    async def test_get_todo_not_found(self, service, cache, metrics):
        """Test reading an id that does not exist."""
        assert await service.get_todo(404) is None

        cache.set_todo.assert_not_awaited()
        assert operation_count(metrics, "get", "not_found") == 1.0

    @pytest.mark.asyncio
    async def test_get_todo_cache_error_falls_through(self, service, repository, cache):
        """Test that a failing cache read behaves like a miss."""
        created = await repository.create("Buy milk")
        cache.get_todo.side_effect = CacheError("Failed to read todo from cache")

        assert await service.get_todo(created.id) == created

    @pytest.mark.asyncio
    async def test_get_todo_storage_failure(self, cache, metrics):
        """Test that repository errors on read propagate."""
        repository = AsyncMock()
        repository.get.side_effect = StorageError("Failed to get todo")
        service = TodoService(repository, cache=cache, metrics=metrics)

        with pytest.raises(StorageError):
            await service.get_todo(1)

        assert operation_count(metrics, "get", "error") == 1.0

    # list

    @pytest.mark.asyncio
    async def test_list_todos_cache_hit(self, service, repository, cache, metrics):
        """Test serving the list from cache."""
        cached = [create_test_todo(2, minutes=1), create_test_todo(1)]
        cache.get_todos.return_value = cached

        assert await service.list_todos() == cached
        assert "list" not in repository.calls
        assert operation_count(metrics, "get_all", "cache_hit") == 1.0

    @pytest.mark.asyncio
    async def test_list_todos_cache_miss(self, service, repository, cache, metrics):
        """Test read-through of the list with its own TTL."""
        first = await repository.create("first")
        second = await repository.create("second")

        todos = await service.list_todos()

        assert [todo.id for todo in todos] == [second.id, first.id]
        cache.set_todos.assert_awaited_once_with(todos, 300)
        assert operation_count(metrics, "get_all", "success") == 1.0

    @pytest.mark.asyncio
    async def test_list_todos_empty(self, service):
        """Test listing an empty store."""
        assert await service.list_todos() == []

    # update

    @pytest.mark.asyncio
    async def test_update_todo(self, service, repository, cache, publisher, metrics):
        """Test a successful update refreshes the cache and publishes."""
        created = await repository.create("old")

        updated = await service.update_todo(created.id, TodoUpdateRequest(task="new", completed=True))

        assert updated.task == "new"
        assert updated.completed is True
        assert updated.updated_at > created.updated_at
        cache.set_todo.assert_awaited_once_with(updated, 1800)
        cache.invalidate_todos.assert_awaited_once()

        events = self.published_events(publisher)
        assert [event.type for event in events] == [TodoEventType.UPDATED]
        assert events[0].payload["task"] == "new"
        assert operation_count(metrics, "update", "success") == 1.0

    @pytest.mark.asyncio
    async def test_update_todo_not_found(self, service, cache, publisher, metrics):
        """Test that a missing todo causes no cache write and no event."""
        assert await service.update_todo(99, TodoUpdateRequest(task="x")) is None

        cache.set_todo.assert_not_awaited()
        cache.invalidate_todos.assert_not_awaited()
        publisher.publish.assert_not_awaited()
        assert operation_count(metrics, "update", "not_found") == 1.0

    @pytest.mark.asyncio
    async def test_update_then_get_sees_new_value(self, repository, metrics):
        """Test that a read after a write sees the write."""
        service = TodoService(repository, metrics=metrics)
        created = await service.create_todo(TodoCreateRequest(task="old"))

        await service.update_todo(created.id, TodoUpdateRequest(task="new"))

        assert (await service.get_todo(created.id)).task == "new"

    # status

    @pytest.mark.asyncio
    async def test_set_todo_status(self, service, repository, cache, publisher, metrics):
        """Test changing only the completion flag."""
        created = await repository.create("task")

        updated = await service.set_todo_status(created.id, True)

        assert updated.completed is True
        assert updated.task == "task"
        cache.set_todo.assert_awaited_once_with(updated, 1800)
        cache.invalidate_todos.assert_awaited_once()
        assert self.published_events(publisher)[0].type == TodoEventType.UPDATED
        assert operation_count(metrics, "update_status", "success") == 1.0

    @pytest.mark.asyncio
    async def test_set_todo_status_uses_single_write(self, service, repository, cache, publisher):
        """Test the updated todo comes from the status write itself, without a re-read."""
        created = await repository.create("task")
        repository.get = AsyncMock(side_effect=StorageError("Failed to get todo"))

        updated = await service.set_todo_status(created.id, True)

        assert updated.completed is True
        assert repository.calls == ["create", "set_status"]
        repository.get.assert_not_awaited()
        assert self.published_events(publisher)[0].payload["completed"] is True

    @pytest.mark.asyncio
    async def test_set_todo_status_not_found(self, service, publisher, metrics):
        """Test changing the flag of a missing todo."""
        assert await service.set_todo_status(99, True) is None

        publisher.publish.assert_not_awaited()
        assert operation_count(metrics, "update_status", "not_found") == 1.0

    # delete

    @pytest.mark.asyncio
    async def test_delete_todo(self, service, repository, cache, publisher, metrics):
        """Test deleting evicts both cache entries and publishes."""
        created = await repository.create("task")

        await service.delete_todo(created.id)

        assert created.id not in repository.todos
        cache.delete_todo.assert_awaited_once_with(created.id)
        cache.invalidate_todos.assert_awaited_once()

        events = self.published_events(publisher)
        assert events[0].type == TodoEventType.DELETED
        assert events[0].payload == {"id": created.id}
        assert operation_count(metrics, "delete", "success") == 1.0

    @pytest.mark.asyncio
    async def test_delete_todo_is_idempotent(self, service, metrics):
        """Test deleting a missing id succeeds."""
        await service.delete_todo(12345)
        await service.delete_todo(12345)

        assert operation_count(metrics, "delete", "success") == 2.0

    @pytest.mark.asyncio
    async def test_delete_todo_storage_failure(self, cache, publisher, metrics):
        """Test that a failed delete leaves the cache alone."""
        repository = AsyncMock()
        repository.delete.side_effect = StorageError("Failed to delete todo")
        service = TodoService(repository, cache=cache, publisher=publisher, metrics=metrics)

        with pytest.raises(StorageError):
            await service.delete_todo(1)

        cache.delete_todo.assert_not_awaited()
        publisher.publish.assert_not_awaited()
        assert operation_count(metrics, "delete", "error") == 1.0
