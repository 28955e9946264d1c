"""
Filtering and ordering of a user's todo list.

``derive`` is a pure function: it takes the full list, the user's criteria
and a reference instant, and returns a new list. Steps always run in the
same order: search, status, priority, sort.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Iterable, List, Literal, Tuple

from pyuca import Collator

from .models import TodoEntity, todo_status

StatusFilter = Literal["all", "in-progress", "done", "overdue"]
PriorityFilter = Literal["all", "high", "medium", "low"]
SortKey = Literal["priority", "due_date", "created_date", "title"]

STATUS_FILTERS = ("all", "in-progress", "done", "overdue")
PRIORITY_FILTERS = ("all", "high", "medium", "low")
SORT_KEYS = ("priority", "due_date", "created_date", "title")

PRIORITY_RANK = {"high": 3, "medium": 2, "low": 1}


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class DeriveCriteria:
    """What the user typed and picked in the list toolbar."""

    search: str = ""
    status: StatusFilter = "all"
    priority: PriorityFilter = "all"
    sort: SortKey = "created_date"


@lru_cache(maxsize=1)
def _collator() -> Collator:
    return Collator()


def title_sort_key(title: str) -> Tuple[Tuple[int, ...], str]:
    """Unicode collation key, so titles order alphabetically rather than by code point."""
    return _collator().sort_key(title), title


def _matches_search(todo: TodoEntity, needle: str) -> bool:
    if needle in todo["title"].lower():
        return True
    description = todo["description"]
    return bool(description) and needle in description.lower()


def _sorted(todos: Iterable[TodoEntity], key: SortKey) -> List[TodoEntity]:
    if key == "priority":
        return sorted(todos, key=lambda t: PRIORITY_RANK.get(t["priority"] or "low", 1), reverse=True)
    if key == "due_date":
        # Undated items go last; (False, due) sorts before (True, ...)
        return sorted(
            todos,
            key=lambda t: (t["due_date"] is None, t["due_date"] or datetime.min),
        )
    if key == "title":
        return sorted(todos, key=lambda t: title_sort_key(t["title"]))
    return sorted(todos, key=lambda t: t["created_at"], reverse=True)


# PUBLIC_INTERFACE
def derive(todos: Iterable[TodoEntity], criteria: DeriveCriteria, now: datetime) -> List[TodoEntity]:
    """
    Return the todos matching ``criteria`` in the requested order.

    The input is never mutated and no record is invented: the result is a
    re-ordered subset of the input. Unknown status, priority or sort values
    behave like their defaults.
    """
    result = list(todos)

    query = criteria.search.strip().lower()
    if query:
        result = [t for t in result if _matches_search(t, query)]

    if criteria.status != "all" and criteria.status in STATUS_FILTERS:
        result = [t for t in result if todo_status(t, now) == criteria.status]

    if criteria.priority != "all" and criteria.priority in PRIORITY_FILTERS:
        result = [t for t in result if t["priority"] == criteria.priority]

    sort_key = criteria.sort if criteria.sort in SORT_KEYS else "created_date"
    return _sorted(result, sort_key)
