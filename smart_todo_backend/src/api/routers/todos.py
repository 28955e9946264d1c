from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response, status

from ..auth import get_current_identity
from ..derive import DeriveCriteria, derive
from ..gateway import GatewayResult, TodoGateway
from ..models import Identity, TodoEntity, todo_status
from ..repositories import Repository, get_repository
from ..schemas import TodoCreate, TodoOut, TodoUpdate
from ..settings import get_settings
from ..utils import get_now

router = APIRouter(
    prefix="/api/v1/todos",
    tags=["todos"],
)


def _get_gateway(
    repo: Repository = Depends(get_repository),
    identity: Identity = Depends(get_current_identity),
) -> TodoGateway:
    """
    Dependency building a gateway for the authenticated caller.
    """
    return TodoGateway(repo, identity, auth_entry_point=get_settings().auth_entry_point)


def _to_out(todo: TodoEntity, now: datetime) -> TodoOut:
    return TodoOut(**todo, status=todo_status(todo, now))  # type: ignore[arg-type]


def _raise_for(result: GatewayResult) -> None:
    if result.ok:
        return
    headers = None
    if result.redirect_to:
        headers = {"Location": result.redirect_to, "WWW-Authenticate": "Bearer"}
    raise HTTPException(status_code=result.status_code, detail=result.error, headers=headers)


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=TodoOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Todo",
    description="Create a new Todo item owned by the caller and return the created resource.",
    responses={
        201: {"description": "Todo created successfully"},
        401: {"description": "Missing or invalid session"},
        422: {"description": "Validation error"},
    },
)
def create_todo(
    payload: TodoCreate,
    gateway: TodoGateway = Depends(_get_gateway),
    now: datetime = Depends(get_now),
) -> TodoOut:
    """
    Create a new Todo.
    """
    result = gateway.create(payload)
    _raise_for(result)
    assert result.todo is not None
    return _to_out(result.todo, now)


# PUBLIC_INTERFACE
@router.get(
    "/",
    response_model=List[TodoOut],
    summary="List Todos",
    description=(
        "List the caller's todos.\n\n"
        "Query parameters:\n"
        "- q: case-insensitive search in title/description\n"
        "- status: all, in-progress, done, overdue\n"
        "- priority: all, high, medium, low\n"
        "- sort: priority, due_date, created_date (default), title\n\n"
        "An expired session answers 401 with a Location header pointing at the sign-in page."
    ),
    responses={
        200: {"description": "List retrieved successfully"},
        401: {"description": "Missing, invalid or expired session"},
    },
)
def list_todos(
    q: Optional[str] = Query(None, description="Search text for title/description"),
    status_filter: Literal["all", "in-progress", "done", "overdue"] = Query(
        "all", alias="status", description="Filter by derived status"
    ),
    priority: Literal["all", "high", "medium", "low"] = Query("all", description="Filter by priority"),
    sort: Literal["priority", "due_date", "created_date", "title"] = Query(
        "created_date", description="Sort order"
    ),
    gateway: TodoGateway = Depends(_get_gateway),
    now: datetime = Depends(get_now),
) -> List[TodoOut]:
    """
    List todos through the derivation pipeline.
    """
    result = gateway.list()
    _raise_for(result)
    criteria = DeriveCriteria(search=q or "", status=status_filter, priority=priority, sort=sort)
    return [_to_out(t, now) for t in derive(result.todos, criteria, now)]


# PUBLIC_INTERFACE
@router.get(
    "/{todo_id}",
    response_model=TodoOut,
    summary="Get Todo",
    description="Get a single Todo item by ID.",
    responses={
        200: {"description": "Todo found"},
        404: {"description": "Todo not found"},
    },
)
def get_todo(
    todo_id: str,
    gateway: TodoGateway = Depends(_get_gateway),
    now: datetime = Depends(get_now),
) -> TodoOut:
    """
    Retrieve a single Todo item by its ID.
    """
    result = gateway.list()
    _raise_for(result)
    for todo in result.todos:
        if todo["id"] == todo_id:
            return _to_out(todo, now)
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Todo not found")


# PUBLIC_INTERFACE
@router.put(
    "/{todo_id}",
    response_model=TodoOut,
    summary="Replace Todo",
    description=(
        "Replace an existing Todo item. Any fields omitted will be set to their default/null "
        "equivalent as per the schema."
    ),
    responses={
        200: {"description": "Todo updated"},
        404: {"description": "Todo not found"},
    },
)
def put_todo(
    todo_id: str,
    payload: TodoCreate,
    gateway: TodoGateway = Depends(_get_gateway),
    now: datetime = Depends(get_now),
) -> TodoOut:
    """
    Full update (replace) semantics implemented via the partial-update capable gateway.
    """
    result = gateway.update(todo_id, TodoUpdate.replacing(payload))
    _raise_for(result)
    assert result.todo is not None
    return _to_out(result.todo, now)


# PUBLIC_INTERFACE
@router.patch(
    "/{todo_id}",
    response_model=TodoOut,
    summary="Update Todo",
    description="Partially update fields of a Todo item.",
    responses={
        200: {"description": "Todo updated"},
        404: {"description": "Todo not found"},
    },
)
def patch_todo(
    todo_id: str,
    payload: TodoUpdate,
    gateway: TodoGateway = Depends(_get_gateway),
    now: datetime = Depends(get_now),
) -> TodoOut:
    """
    Partial update of a Todo item.
    """
    result = gateway.update(todo_id, payload)
    _raise_for(result)
    assert result.todo is not None
    return _to_out(result.todo, now)


# PUBLIC_INTERFACE
@router.patch(
    "/{todo_id}/complete",
    response_model=TodoOut,
    summary="Toggle Completion",
    description="Set the completion flag of a Todo item.",
    responses={
        200: {"description": "Todo updated"},
        404: {"description": "Todo not found"},
    },
)
def toggle_todo(
    todo_id: str,
    completed: bool = Body(..., embed=True, description="New completion state"),
    gateway: TodoGateway = Depends(_get_gateway),
    now: datetime = Depends(get_now),
) -> TodoOut:
    """
    Mark a Todo done or not done.
    """
    result = gateway.toggle_complete(todo_id, completed)
    _raise_for(result)
    assert result.todo is not None
    return _to_out(result.todo, now)


# PUBLIC_INTERFACE
@router.delete(
    "/{todo_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Delete Todo",
    description="Delete a Todo item by ID. Requires confirm=true.",
    responses={
        204: {"description": "Todo deleted"},
        400: {"description": "Deletion not confirmed"},
        404: {"description": "Todo not found"},
    },
)
def delete_todo(
    todo_id: str,
    confirm: bool = Query(False, description="Must be true to delete"),
    gateway: TodoGateway = Depends(_get_gateway),
) -> Response:
    """
    Delete a Todo. Returns 204 on success, 400 without confirmation, 404 if not found.
    """
    result = gateway.delete(todo_id, confirmed=confirm)
    _raise_for(result)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
