"""
Redis caching layer for the Todo service.
"""

import json
from typing import List, Optional

import redis.asyncio as redis
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from shared.errors import CacheError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..models import Todo

TODO_TTL_SECONDS = 30 * 60
TODOS_TTL_SECONDS = 5 * 60

_todo_list_adapter = TypeAdapter(List[Todo])


class RedisCache:
    """Read-through helpers for single todos and the full todo list.

    A miss is reported as ``None``. Every failure raises ``CacheError`` and
    it is up to the caller to decide that the cache is optional.
    """

    TODO_PREFIX = "todo:"
    ALL_TODOS_KEY = "todos:all"

    def __init__(
        self,
        host: str,
        port: int = 6379,
        password: Optional[str] = None,
        db: int = 0,
        timeout: float = 2.0,
        metrics: Optional[MetricsCollector] = None
    ):
        self.host = host
        self.port = port
        self.password = password
        self.db = db
        self.timeout = timeout
        self.metrics = metrics
        self.logger = get_logger("todo.cache.redis")
        self.redis: Optional[redis.Redis] = None

    async def start(self):
        """Start the Redis cache."""
        self.redis = redis.Redis(
            host=self.host,
            port=self.port,
            password=self.password,
            db=self.db,
            decode_responses=True,
            socket_connect_timeout=self.timeout,
            socket_timeout=self.timeout,
            health_check_interval=30
        )
        try:
            await self.redis.ping()
        except redis.RedisError as e:
            await self.redis.aclose()
            self.redis = None
            raise CacheError("Failed to connect to Redis", str(e)) from e

        self.logger.info("Redis cache started", host=self.host, port=self.port, db=self.db)

    async def stop(self):
        """Stop the Redis cache."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            self.logger.info("Redis cache stopped")

    def _client(self) -> redis.Redis:
        if self.redis is None:
            raise CacheError("Redis cache not started")
        return self.redis

    def _todo_key(self, todo_id: int) -> str:
        return f"{self.TODO_PREFIX}{todo_id}"

    def _record_lookup(self, hit: bool):
        if self.metrics:
            self.metrics.increment_counter("cache_hits_total" if hit else "cache_misses_total")

    async def get_todo(self, todo_id: int) -> Optional[Todo]:
        """Cached todo, or ``None`` on a miss."""
        key = self._todo_key(todo_id)
        try:
            cached_data = await self._client().get(key)
        except redis.RedisError as e:
            raise CacheError("Failed to read todo from cache", str(e)) from e

        if cached_data is None:
            self._record_lookup(False)
            return None

        try:
            todo = Todo.model_validate_json(cached_data)
        except PydanticValidationError as e:
            raise CacheError("Corrupt cached todo", str(e)) from e

        self._record_lookup(True)
        self.logger.debug("Cache hit for todo", cache_key=key)
        return todo

    async def set_todo(self, todo: Todo, ttl_seconds: int = TODO_TTL_SECONDS):
        """Cache a single todo."""
        key = self._todo_key(todo.id)
        try:
            await self._client().set(key, todo.model_dump_json(), ex=ttl_seconds)
        except redis.RedisError as e:
            raise CacheError("Failed to cache todo", str(e)) from e

        self.logger.debug("Cached todo", cache_key=key, ttl=ttl_seconds)

    async def delete_todo(self, todo_id: int):
        """Drop a single cached todo."""
        try:
            await self._client().delete(self._todo_key(todo_id))
        except redis.RedisError as e:
            raise CacheError("Failed to delete todo from cache", str(e)) from e

    async def get_todos(self) -> Optional[List[Todo]]:
        """Cached todo list, or ``None`` on a miss."""
        try:
            cached_data = await self._client().get(self.ALL_TODOS_KEY)
        except redis.RedisError as e:
            raise CacheError("Failed to read todos from cache", str(e)) from e

        if cached_data is None:
            self._record_lookup(False)
            return None

        try:
            todos = _todo_list_adapter.validate_json(cached_data)
        except PydanticValidationError as e:
            raise CacheError("Corrupt cached todo list", str(e)) from e

        self._record_lookup(True)
        return todos

    async def set_todos(self, todos: List[Todo], ttl_seconds: int = TODOS_TTL_SECONDS):
        """Cache the full todo list."""
        data = json.dumps([todo.model_dump(mode="json") for todo in todos])
        try:
            await self._client().set(self.ALL_TODOS_KEY, data, ex=ttl_seconds)
        except redis.RedisError as e:
            raise CacheError("Failed to cache todos", str(e)) from e

        self.logger.debug("Cached todo list", count=len(todos), ttl=ttl_seconds)

    async def invalidate_todos(self):
        """Drop the cached todo list."""
        try:
            await self._client().delete(self.ALL_TODOS_KEY)
        except redis.RedisError as e:
            raise CacheError("Failed to invalidate todos cache", str(e)) from e

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            return bool(await self._client().ping())
        except (CacheError, redis.RedisError):
            return False
