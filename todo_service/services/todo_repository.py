"""In-memory TODO storage backing the CRUD routes.

Stands in for the database layer; thread-safe so sync and async handlers
can share it.
"""

from __future__ import annotations

import itertools
import logging
import threading
from datetime import datetime, timezone

from todo_service.core.errors import NotFoundAppError, ValidationAppError
from todo_service.schemas.todo import Todo, TodoCreate, TodoUpdate

logger = logging.getLogger(__name__)


class TodoRepository:
    """Dict-backed TODO repository with auto-incrementing ids."""

    def __init__(self) -> None:
        self._items: dict[int, Todo] = {}
        self._ids = itertools.count(1)
        self._lock = threading.RLock()

    def list_all(self) -> list[Todo]:
        with self._lock:
            return sorted(self._items.values(), key=lambda todo: todo.id)

    def get(self, todo_id: int) -> Todo:
        with self._lock:
            todo = self._items.get(todo_id)
        if todo is None:
            raise NotFoundAppError(
                code="todo_not_found",
                message=f"Todo {todo_id} not found",
                details={"todo_id": todo_id},
            )
        return todo

    def create(self, payload: TodoCreate) -> Todo:
        now = datetime.now(timezone.utc)
        with self._lock:
            todo = Todo(
                id=next(self._ids),
                title=payload.title,
                description=payload.description,
                created_at=now,
                updated_at=now,
            )
            self._items[todo.id] = todo
        logger.info("todo.created", extra={"todo_id": todo.id})
        return todo

    def update(self, todo_id: int, payload: TodoUpdate) -> Todo:
        changes = payload.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationAppError(
                code="empty_update",
                message="No valid fields to update",
                details={"todo_id": todo_id},
            )
        with self._lock:
            current = self.get(todo_id)
            changes["updated_at"] = datetime.now(timezone.utc)
            todo = current.model_copy(update=changes)
            self._items[todo_id] = todo
        return todo

    def delete(self, todo_id: int) -> None:
        with self._lock:
            self.get(todo_id)
            del self._items[todo_id]
        logger.info("todo.deleted", extra={"todo_id": todo_id})

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
            self._ids = itertools.count(1)
