from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional

from .errors import ServiceError, is_session_error
from .models import Identity, TodoEntity
from .repositories import Repository
from .schemas import TodoCreate, TodoUpdate

logger = logging.getLogger(__name__)

# PUBLIC_INTERFACE
@dataclass
class GatewayResult:
    """Outcome of one gateway operation: either data or a user-visible error plus status code."""

    ok: bool
    status_code: int = 200
    error: Optional[str] = None
    todo: Optional[TodoEntity] = None
    todos: List[TodoEntity] = field(default_factory=list)
    redirect_to: Optional[str] = None
    # Set when the write succeeded but reloading the list did not
    warning: Optional[str] = None

class _InFlight(Exception):
    pass

# PUBLIC_INTERFACE
class TodoGateway:
    """
    Facade over the todo store for one caller.

    Keeps the caller's last loaded list in ``todos`` and the last failure in
    ``error``. A failed operation never changes ``todos``. Nothing is retried:
    the caller decides whether to submit again. A write that succeeded stays a
    success even when the list reload after it fails; the reload failure is
    reported in ``error`` and ``GatewayResult.warning``. Only one operation may
    be in flight at a time; the flag is released whatever the outcome.
    """

    def __init__(
        self,
        repository: Repository,
        identity: Optional[Identity],
        auth_entry_point: str = "/login",
    ) -> None:
        self._repository = repository
        self._identity = identity
        self._auth_entry_point = auth_entry_point
        self.todos: List[TodoEntity] = []
        self.error: Optional[str] = None
        self.in_flight = False

    @contextmanager
    def _request(self) -> Iterator[None]:
        if self.in_flight:
            raise _InFlight()
        self.in_flight = True
        try:
            yield
        finally:
            self.in_flight = False

    def can_edit(self, todo: TodoEntity) -> bool:
        """Whether the current caller may modify ``todo``."""
        return self._identity is not None and todo["owner"] == self._identity.user_id

    def _snapshot_forbids(self, todo_id: str) -> bool:
        for todo in self.todos:
            if todo["id"] == todo_id:
                return not self.can_edit(todo)
        return False

    def _unauthenticated(self) -> GatewayResult:
        self.error = "Authentication required"
        return GatewayResult(ok=False, status_code=401, error=self.error, redirect_to=self._auth_entry_point)

    def _failure(self, exc: Exception, fallback: str, redirect_on_session: bool = False) -> GatewayResult:
        message = str(exc) or fallback
        self.error = message
        if isinstance(exc, ServiceError):
            return GatewayResult(ok=False, status_code=exc.status_code, error=message)
        if is_session_error(exc):
            logger.warning("Session rejected by store: %s", message)
            return GatewayResult(
                ok=False,
                status_code=401,
                error=message,
                redirect_to=self._auth_entry_point if redirect_on_session else None,
            )
        logger.error("%s: %s", fallback, message)
        return GatewayResult(ok=False, status_code=500, error=message)

    def _guarded(self, operation: Callable[[str], GatewayResult]) -> GatewayResult:
        if self._identity is None:
            return self._unauthenticated()
        try:
            with self._request():
                return operation(self._identity.user_id)
        except _InFlight:
            return GatewayResult(ok=False, status_code=409, error="Another request is already in progress")

    def _refresh(self, owner: str) -> Optional[str]:
        """Reload ``todos`` after a write. A failed reload keeps the old list and is reported, not raised."""
        try:
            self.todos = self._repository.list(owner)
        except Exception as exc:
            message = str(exc) or "Failed to refresh todos"
            logger.warning("Todo list refresh failed after a successful write: %s", message)
            self.error = message
            return message
        self.error = None
        return None

    def _run(
        self,
        action: Callable[[str], Optional[TodoEntity]],
        fallback: str,
        success_status: int = 200,
    ) -> GatewayResult:
        def operation(owner: str) -> GatewayResult:
            try:
                todo = action(owner)
            except Exception as exc:
                return self._failure(exc, fallback)
            if todo is None:
                self.error = "Todo not found"
                return GatewayResult(ok=False, status_code=404, error=self.error)
            warning = self._refresh(owner)
            return GatewayResult(
                ok=True, status_code=success_status, todo=todo, todos=list(self.todos), warning=warning
            )

        return self._guarded(operation)

    # PUBLIC_INTERFACE
    def create(self, data: TodoCreate) -> GatewayResult:
        """Persist a new todo owned by the caller and reload the list."""
        return self._run(
            lambda owner: self._repository.create(owner, data),
            "Failed to create todo",
            success_status=201,
        )

    # PUBLIC_INTERFACE
    def update(self, todo_id: str, data: TodoUpdate) -> GatewayResult:
        """Apply ``data`` to one of the caller's todos; other owners' records are refused."""
        if self._snapshot_forbids(todo_id):
            self.error = "You can only modify your own todos"
            return GatewayResult(ok=False, status_code=403, error=self.error)
        return self._run(
            lambda owner: self._repository.update(owner, todo_id, data),
            "Failed to update todo",
        )

    # PUBLIC_INTERFACE
    def toggle_complete(self, todo_id: str, completed: bool) -> GatewayResult:
        """Set only the completion flag (and the update timestamp)."""
        return self.update(todo_id, TodoUpdate(completed=completed))

    # PUBLIC_INTERFACE
    def delete(self, todo_id: str, confirmed: bool = False) -> GatewayResult:
        """Delete one of the caller's todos. Nothing is sent to the store unless ``confirmed``."""
        if not confirmed:
            return GatewayResult(ok=False, status_code=400, error="Deletion must be confirmed")
        if self._snapshot_forbids(todo_id):
            self.error = "You can only modify your own todos"
            return GatewayResult(ok=False, status_code=403, error=self.error)

        def _delete(owner: str) -> Optional[TodoEntity]:
            existing = self._repository.get(owner, todo_id)
            if existing is None or not self._repository.delete(owner, todo_id):
                return None
            return existing

        return self._run(_delete, "Failed to delete todo", success_status=204)

    # PUBLIC_INTERFACE
    def list(self) -> GatewayResult:
        """
        Reload the caller's todos, newest first. A rejected session is reported
        with ``redirect_to`` set to the sign-in entry point.
        """

        def operation(owner: str) -> GatewayResult:
            try:
                todos = self._repository.list(owner)
            except Exception as exc:
                return self._failure(exc, "Failed to load todos", redirect_on_session=True)
            self.todos = todos
            self.error = None
            return GatewayResult(ok=True, todos=list(todos))

        return self._guarded(operation)
