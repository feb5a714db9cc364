"""
Todo orchestration: repository first, then best-effort cache and events.
"""

from contextlib import contextmanager
from typing import Awaitable, Callable, List, Optional, TypeVar

from shared.logging import get_logger
from shared.metrics import MetricsCollector, get_metrics_collector
from shared.tracing import get_tracer
from ..cache.redis_cache import TODO_TTL_SECONDS, TODOS_TTL_SECONDS, RedisCache
from ..events.kafka_producer import KafkaEventPublisher
from ..models import Todo, TodoCreateRequest, TodoEvent, TodoUpdateRequest
from ..persistence.sql_repository import TodoRepository

T = TypeVar("T")

# Outcome labels for todo_operations_total
SUCCESS = "success"
ERROR = "error"
NOT_FOUND = "not_found"
CACHE_HIT = "cache_hit"


class TodoService:
    """Todo service implementation.

    The repository is the source of truth. Cache and publisher are optional
    capabilities: either may be ``None``, and a failure in either is logged
    and never propagated to the caller.
    """

    def __init__(
        self,
        repository: TodoRepository,
        cache: Optional[RedisCache] = None,
        publisher: Optional[KafkaEventPublisher] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        self.repository = repository
        self.cache = cache
        self.publisher = publisher
        self.metrics = metrics or get_metrics_collector("todo")
        self.logger = get_logger("todo.services.todo")
        self.tracer = get_tracer(__name__)

    @contextmanager
    def _observe(self, operation: str):
        with self.tracer.start_as_current_span(f"todo.{operation}"):
            with self.metrics.time_operation("todo_operations_duration_seconds", operation=operation):
                yield

    def _record(self, operation: str, status: str):
        self.metrics.record_operation(operation, status)

    async def _best_effort_cache(self, action: str, call: Callable[[RedisCache], Awaitable[T]]) -> Optional[T]:
        if self.cache is None:
            return None
        try:
            return await call(self.cache)
        except Exception as e:
            self.logger.warning(f"Failed to {action}", error=str(e))
            return None

    async def _best_effort_publish(self, event: TodoEvent):
        if self.publisher is None:
            return
        try:
            await self.publisher.publish(event)
        except Exception as e:
            self.logger.error(
                f"Failed to publish todo {event.type.value} event",
                todo_id=event.todo_id,
                error=str(e)
            )

    async def _after_write(self, todo: Todo, event: TodoEvent):
        await self._best_effort_cache("cache todo", lambda cache: cache.set_todo(todo, TODO_TTL_SECONDS))
        await self._best_effort_cache("invalidate todos cache", lambda cache: cache.invalidate_todos())
        await self._best_effort_publish(event)

    async def create_todo(self, request: TodoCreateRequest) -> Todo:
        """Create a todo."""
        with self._observe("create"):
            try:
                todo = await self.repository.create(request.task)
            except Exception:
                self._record("create", ERROR)
                raise

            await self._after_write(todo, TodoEvent.created(todo))

            self._record("create", SUCCESS)
            self.logger.info("Todo created successfully", todo_id=todo.id)
            return todo

    async def get_todo(self, todo_id: int) -> Optional[Todo]:
        """Fetch a todo, cache first. ``None`` when it does not exist."""
        with self._observe("get"):
            cached = await self._best_effort_cache("read todo from cache", lambda cache: cache.get_todo(todo_id))
            if cached is not None:
                self._record("get", CACHE_HIT)
                return cached

            try:
                todo = await self.repository.get(todo_id)
            except Exception:
                self._record("get", ERROR)
                raise

            if todo is None:
                self._record("get", NOT_FOUND)
                return None

            await self._best_effort_cache("cache todo", lambda cache: cache.set_todo(todo, TODO_TTL_SECONDS))

            self._record("get", SUCCESS)
            return todo

    async def list_todos(self) -> List[Todo]:
        """All todos, newest first, cache first."""
        with self._observe("get_all"):
            cached = await self._best_effort_cache("read todos from cache", lambda cache: cache.get_todos())
            if cached is not None:
                self._record("get_all", CACHE_HIT)
                return cached

            try:
                todos = await self.repository.list()
            except Exception:
                self._record("get_all", ERROR)
                raise

            await self._best_effort_cache("cache todos", lambda cache: cache.set_todos(todos, TODOS_TTL_SECONDS))

            self._record("get_all", SUCCESS)
            return todos

    async def update_todo(self, todo_id: int, request: TodoUpdateRequest) -> Optional[Todo]:
        """Apply a partial update. ``None`` when the todo does not exist."""
        with self._observe("update"):
            try:
                todo = await self.repository.update(todo_id, request)
            except Exception:
                self._record("update", ERROR)
                raise

            if todo is None:
                self._record("update", NOT_FOUND)
                return None

            await self._after_write(todo, TodoEvent.updated(todo))

            self._record("update", SUCCESS)
            self.logger.info("Todo updated successfully", todo_id=todo.id)
            return todo

    async def set_todo_status(self, todo_id: int, completed: bool) -> Optional[Todo]:
        """Change only the completion flag. ``None`` when the todo does not exist."""
        with self._observe("update_status"):
            try:
                todo = await self.repository.set_status(todo_id, completed)
            except Exception:
                self._record("update_status", ERROR)
                raise

            if todo is None:
                self._record("update_status", NOT_FOUND)
                return None

            await self._after_write(todo, TodoEvent.updated(todo))

            self._record("update_status", SUCCESS)
            self.logger.info("Todo status updated successfully", todo_id=todo.id, completed=todo.completed)
            return todo

    async def delete_todo(self, todo_id: int):
        """Delete a todo. Deleting a missing id succeeds."""
        with self._observe("delete"):
            try:
                await self.repository.delete(todo_id)
            except Exception:
                self._record("delete", ERROR)
                raise

            await self._best_effort_cache("delete todo from cache", lambda cache: cache.delete_todo(todo_id))
            await self._best_effort_cache("invalidate todos cache", lambda cache: cache.invalidate_todos())
            await self._best_effort_publish(TodoEvent.deleted(todo_id))

            self._record("delete", SUCCESS)
            self.logger.info("Todo deleted successfully", todo_id=todo_id)
