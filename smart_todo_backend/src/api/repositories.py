from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from threading import RLock
from typing import Callable, List, Optional

from .models import TodoEntity
from .schemas import TodoCreate, TodoUpdate
from .settings import get_settings

_UPDATABLE = ("title", "description", "completed", "due_date", "priority", "categories")


def _copy(entity: TodoEntity) -> TodoEntity:
    out = entity.copy()
    out["categories"] = list(entity["categories"])
    return out


# PUBLIC_INTERFACE
class Repository(ABC):
    """
    Abstract repository contract for todo storage backends.

    Every operation is scoped by owner: a record that exists but belongs to
    someone else is reported exactly like a missing one and is never touched.
    """

    @abstractmethod
    def create(self, owner: str, data: TodoCreate) -> TodoEntity:
        """Create and return a new TodoEntity owned by ``owner``."""

    @abstractmethod
    def get(self, owner: str, todo_id: str) -> Optional[TodoEntity]:
        """Return the owner's TodoEntity by id, or None."""

    @abstractmethod
    def update(self, owner: str, todo_id: str, data: TodoUpdate) -> Optional[TodoEntity]:
        """Apply the fields set on ``data``. Return the updated entity or None if no owned record matched."""

    @abstractmethod
    def delete(self, owner: str, todo_id: str) -> bool:
        """Delete the owner's TodoEntity. Return True if a row was removed."""

    @abstractmethod
    def list(self, owner: str) -> List[TodoEntity]:
        """Return all of the owner's todos, most recently created first."""


class InMemoryRepository(Repository):
    """
    Thread-safe in-memory repository suitable for testing and default runtime.
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        self._lock = RLock()
        self._items: dict[str, TodoEntity] = {}
        self._clock = clock

    def _now(self) -> datetime:
        return self._clock()

    def _owned(self, owner: str, todo_id: str) -> Optional[TodoEntity]:
        item = self._items.get(todo_id)
        if item is None or item["owner"] != owner:
            return None
        return item

    def create(self, owner: str, data: TodoCreate) -> TodoEntity:
        now = self._now()
        entity: TodoEntity = {
            "id": uuid.uuid4().hex,
            "owner": owner,
            "title": data.title,
            "description": data.description,
            "created_at": now,
            "due_date": data.due_date,
            "priority": data.priority,
            "categories": list(data.categories),
            "completed": data.completed,
            "updated_at": now,
        }
        with self._lock:
            self._items[entity["id"]] = entity
        return _copy(entity)

    def get(self, owner: str, todo_id: str) -> Optional[TodoEntity]:
        with self._lock:
            item = self._owned(owner, todo_id)
            return None if item is None else _copy(item)

    def update(self, owner: str, todo_id: str, data: TodoUpdate) -> Optional[TodoEntity]:
        with self._lock:
            existing = self._owned(owner, todo_id)
            if existing is None:
                return None

            # Only fields the caller actually sent; null clears optional fields and is ignored for title and completed
            updated = _copy(existing)
            for field in _UPDATABLE:
                if field not in data.model_fields_set:
                    continue
                value = getattr(data, field)
                if field in ("title", "completed") and value is None:
                    continue
                if field == "categories":
                    value = list(value or [])
                updated[field] = value  # type: ignore[literal-required]
            updated["updated_at"] = self._now()

            self._items[todo_id] = updated
            return _copy(updated)

    def delete(self, owner: str, todo_id: str) -> bool:
        with self._lock:
            if self._owned(owner, todo_id) is None:
                return False
            del self._items[todo_id]
            return True

    def list(self, owner: str) -> List[TodoEntity]:
        with self._lock:
            items = [_copy(t) for t in self._items.values() if t["owner"] == owner]
        items.sort(key=lambda t: t["created_at"], reverse=True)
        return items


_default_repository: Optional[Repository] = None


# PUBLIC_INTERFACE
def get_repository() -> Repository:
    """
    Return the process-wide repository configured in settings.
    - memory: InMemoryRepository
    - sqlite: SQLiteRepository
    """
    global _default_repository
    if _default_repository is None:
        settings = get_settings()
        if settings.persistence_backend == "sqlite":
            from .db import SQLiteRepository

            _default_repository = SQLiteRepository(settings.sqlite_db_path)
        else:
            _default_repository = InMemoryRepository()
    return _default_repository
