from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Literal, Optional, TypedDict

Priority = Literal["high", "medium", "low"]
TodoStatus = Literal["in-progress", "done", "overdue"]

PRIORITIES = ("high", "medium", "low")


# PUBLIC_INTERFACE
class TodoEntity(TypedDict):
    """
    A lightweight domain model representing a Todo item for non-ORM storage
    backends.

    Fields:
    - id: Opaque unique identifier (uuid4 hex), immutable
    - owner: Identifier of the owning user, immutable
    - title: Short title (1..200 chars, trimmed on input via schemas)
    - description: Optional detailed description
    - created_at: Local creation timestamp (datetime)
    - due_date: Optional due datetime; None means no deadline
    - priority: Optional 'high' | 'medium' | 'low'
    - categories: Ordered list of free-text labels, possibly empty
    - completed: Boolean completion flag
    - updated_at: Local last update timestamp (datetime)
    """

    id: str
    owner: str
    title: str
    description: Optional[str]
    created_at: datetime
    due_date: Optional[datetime]
    priority: Optional[Priority]
    categories: List[str]
    completed: bool
    updated_at: datetime


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class Identity:
    """The authenticated caller, resolved from the session token."""

    user_id: str
    email: Optional[str] = None


# PUBLIC_INTERFACE
def todo_status(todo: TodoEntity, now: datetime) -> TodoStatus:
    """Classify a todo as done, overdue or in-progress relative to ``now``."""
    if todo["completed"]:
        return "done"
    due = todo["due_date"]
    if due is not None and due < now:
        return "overdue"
    return "in-progress"
