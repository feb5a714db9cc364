"""
Todo service: HTTP surface and component wiring.
"""

import re
from typing import Awaitable, List, Optional, TypeVar

from fastapi import Response, status
from prometheus_client import CollectorRegistry

from shared.base_service import BaseService
from shared.config import TodoConfig, get_config
from shared.errors import (
    CacheError,
    EventPublishError,
    NotFoundError,
    TodoServiceException,
    ValidationError,
)
from .cache.redis_cache import RedisCache
from .events.kafka_producer import KafkaEventPublisher
from .models import Todo, TodoCreateRequest, TodoStatusRequest, TodoUpdateRequest
from .persistence.database import create_database_engine
from .persistence.sql_repository import SQLTodoRepository
from .services.todo_service import TodoService

T = TypeVar("T")

_TODO_ID_PATTERN = re.compile(r"-?[0-9]+")

# Identifiers are stored as signed 64-bit integers
TODO_ID_MIN = -(2 ** 63)
TODO_ID_MAX = 2 ** 63 - 1


def parse_todo_id(raw: str) -> int:
    """Parse a path identifier, rejecting anything that is not a plain 64-bit integer."""
    if not _TODO_ID_PATTERN.fullmatch(raw):
        raise ValidationError("Invalid todo ID", f"{raw!r} is not an integer")

    todo_id = int(raw)
    if not TODO_ID_MIN <= todo_id <= TODO_ID_MAX:
        raise ValidationError("Invalid todo ID", f"{raw} is out of range")
    return todo_id


class TodoAPIService(BaseService):
    """Todo service implementation."""

    def __init__(self, config: Optional[TodoConfig] = None, registry: Optional[CollectorRegistry] = None):
        self.config: TodoConfig = config or get_config()
        super().__init__("todo", self.config, registry)

        # Built in start(), released in stop()
        self.repository: Optional[SQLTodoRepository] = None
        self.cache: Optional[RedisCache] = None
        self.publisher: Optional[KafkaEventPublisher] = None
        self.todo_service: Optional[TodoService] = None

        self._setup_todo_routes()

    def _service(self) -> TodoService:
        if self.todo_service is None:
            raise RuntimeError("TodoService not initialized. Check lifespan setup.")
        return self.todo_service

    async def _call(self, message: str, awaitable: Awaitable[T]) -> T:
        """Await a service call, turning unexpected failures into a 500 with ``message``."""
        try:
            return await awaitable
        except (ValidationError, NotFoundError):
            raise
        except Exception as e:
            self.logger.error(message, error=str(e))
            raise TodoServiceException(message) from e

    def _setup_todo_routes(self):
        """Set up todo routes."""

        @self.app.get("/todos", response_model=List[Todo], tags=["todos"])
        async def list_todos():
            """Get all todos, newest first."""
            return await self._call("Failed to get todos", self._service().list_todos())

        @self.app.post("/todos", response_model=Todo, status_code=status.HTTP_201_CREATED, tags=["todos"])
        async def create_todo(request: TodoCreateRequest):
            """Create a new todo."""
            return await self._call("Failed to create todo", self._service().create_todo(request))

        @self.app.get("/todos/{todo_id}", response_model=Todo, tags=["todos"])
        async def get_todo(todo_id: str):
            """Get a todo by id."""
            parsed_id = parse_todo_id(todo_id)
            todo = await self._call("Failed to get todo", self._service().get_todo(parsed_id))
            if todo is None:
                raise NotFoundError()
            return todo

        @self.app.put("/todos/{todo_id}", response_model=Todo, tags=["todos"])
        async def update_todo(todo_id: str, request: TodoUpdateRequest):
            """Update task and/or completion flag of a todo."""
            parsed_id = parse_todo_id(todo_id)
            todo = await self._call("Failed to update todo", self._service().update_todo(parsed_id, request))
            if todo is None:
                raise NotFoundError()
            return todo

        @self.app.patch("/todos/{todo_id}/status", response_model=Todo, tags=["todos"])
        async def update_todo_status(todo_id: str, request: TodoStatusRequest):
            """Set only the completion flag of a todo."""
            parsed_id = parse_todo_id(todo_id)
            todo = await self._call(
                "Failed to update todo status",
                self._service().set_todo_status(parsed_id, request.completed)
            )
            if todo is None:
                raise NotFoundError()
            return todo

        @self.app.delete("/todos/{todo_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["todos"])
        async def delete_todo(todo_id: str):
            """Delete a todo. Missing ids are not an error."""
            parsed_id = parse_todo_id(todo_id)
            await self._call("Failed to delete todo", self._service().delete_todo(parsed_id))
            return Response(status_code=status.HTTP_204_NO_CONTENT)

    async def _start_cache(self) -> Optional[RedisCache]:
        if not self.config.cache_configured:
            self.logger.info("Redis cache disabled")
            return None

        cache = RedisCache(
            host=self.config.redis_host,
            port=self.config.redis_port,
            password=self.config.redis_password,
            db=self.config.redis_db,
            timeout=self.config.redis_timeout,
            metrics=self.metrics
        )
        try:
            await cache.start()
        except CacheError as e:
            self.logger.warning(
                "Failed to initialize Redis cache, continuing without cache",
                error=e.message,
                details=e.details
            )
            return None
        return cache

    async def _start_publisher(self) -> Optional[KafkaEventPublisher]:
        if not self.config.events_configured:
            self.logger.info("Kafka events disabled")
            return None

        publisher = KafkaEventPublisher(
            bootstrap_servers=self.config.kafka_broker_list,
            topic=self.config.kafka_topic,
            publish_timeout=self.config.kafka_publish_timeout,
            metrics=self.metrics
        )
        try:
            await publisher.start()
        except EventPublishError as e:
            self.logger.warning(
                "Failed to initialize Kafka producer, continuing without events",
                error=e.message,
                details=e.details
            )
            return None
        return publisher

    async def start(self):
        """Start todo service components."""
        engine = create_database_engine(
            self.config.database_url,
            timeout=self.config.database_timeout,
            echo=self.config.database_echo
        )
        self.repository = SQLTodoRepository(engine)
        await self.repository.start()

        self.cache = await self._start_cache()
        self.publisher = await self._start_publisher()

        self.todo_service = TodoService(
            repository=self.repository,
            cache=self.cache,
            publisher=self.publisher,
            metrics=self.metrics
        )

        self.logger.info(
            "Todo service started",
            cache_enabled=self.cache is not None,
            events_enabled=self.publisher is not None
        )

    async def stop(self):
        """Stop todo service components."""
        self.todo_service = None

        if self.publisher:
            try:
                await self.publisher.stop()
            except Exception as e:
                self.logger.error("Error stopping Kafka producer", error=str(e))
            self.publisher = None

        if self.cache:
            try:
                await self.cache.stop()
            except Exception as e:
                self.logger.error("Error stopping Redis cache", error=str(e))
            self.cache = None

        if self.repository:
            await self.repository.stop()
            self.repository = None

        self.logger.info("Todo service stopped")


def create_app(config: Optional[TodoConfig] = None):
    """Create todo service application."""
    service = TodoAPIService(config)
    return service.app


def main():
    """Console entry point."""
    TodoAPIService().run()


if __name__ == "__main__":
    main()
