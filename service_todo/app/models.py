"""
Todo data models.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, StrictBool, StrictStr

TASK_MIN_LENGTH = 1
TASK_MAX_LENGTH = 500


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


class Todo(BaseModel):
    """A todo item."""
    id: int = Field(..., description="Identifier assigned by the store")
    task: str = Field(..., min_length=TASK_MIN_LENGTH, max_length=TASK_MAX_LENGTH, description="Task description")
    completed: bool = Field(False, description="Completion flag")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")


class TodoCreateRequest(BaseModel):
    """Request model for creating a todo."""
    task: StrictStr = Field(..., min_length=TASK_MIN_LENGTH, max_length=TASK_MAX_LENGTH, description="Task description")


class TodoUpdateRequest(BaseModel):
    """Request model for a partial todo update.

    Both fields are presence-or-absence only: ``None`` (or a JSON null) means
    "leave unchanged", there is no way to clear a field.
    """
    task: Optional[StrictStr] = Field(None, min_length=TASK_MIN_LENGTH, max_length=TASK_MAX_LENGTH, description="New task description")
    completed: Optional[StrictBool] = Field(None, description="New completion flag")

    def changes(self) -> Dict[str, Any]:
        """Fields that were supplied with a value."""
        return {name: value for name, value in (("task", self.task), ("completed", self.completed)) if value is not None}


class TodoStatusRequest(BaseModel):
    """Request model for a status-only update."""
    completed: StrictBool = Field(..., description="New completion flag")


class TodoEventType(str, Enum):
    """Todo change event types."""
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class TodoEvent(BaseModel):
    """Change notification published after a committed write."""
    type: TodoEventType
    todo_id: int
    timestamp: datetime = Field(default_factory=utcnow)
    payload: Dict[str, Any] = Field(default_factory=dict, description="Entity snapshot")

    @classmethod
    def created(cls, todo: Todo) -> "TodoEvent":
        return cls(type=TodoEventType.CREATED, todo_id=todo.id, payload=todo.model_dump(mode="json"))

    @classmethod
    def updated(cls, todo: Todo) -> "TodoEvent":
        return cls(type=TodoEventType.UPDATED, todo_id=todo.id, payload=todo.model_dump(mode="json"))

    @classmethod
    def deleted(cls, todo_id: int) -> "TodoEvent":
        # The row is gone, only the id survives
        return cls(type=TodoEventType.DELETED, todo_id=todo_id, payload={"id": todo_id})

    @property
    def key(self) -> str:
        """Message key; keeps events for one todo on one partition."""
        return f"todo-{self.todo_id}"
