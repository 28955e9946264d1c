from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials

from ..analyzer import analyze_todos
from ..auth import bearer_scheme, get_current_identity
from ..errors import ErrorKind, ServiceError, validation_error
from ..extractor import extract_task
from ..gateway import TodoGateway
from ..llm import StructuredGenerator, get_generator
from ..models import Identity, todo_status
from ..repositories import Repository, get_repository
from ..schemas import AnalysisEnvelope, ErrorOut, ExtractionEnvelope, TodoOut
from ..settings import get_settings
from ..utils import get_now

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/ai",
    tags=["ai"],
)

_ERROR_RESPONSES: Dict[int | str, Dict[str, Any]] = {
    400: {"model": ErrorOut, "description": "Malformed body or invalid input"},
    401: {"model": ErrorOut, "description": "Missing session or AI service authentication failure"},
    404: {"model": ErrorOut, "description": "AI model not found"},
    429: {"model": ErrorOut, "description": "AI service rate limit"},
    500: {"model": ErrorOut, "description": "Missing configuration or unexpected failure"},
}


async def _json_body(request: Request) -> Dict[str, Any]:
    """Parse the body ourselves so malformed JSON answers 400 with an ``error`` field."""
    try:
        body = await request.json()
    except ValueError:
        raise validation_error("Malformed request body. Send a JSON object.")
    if not isinstance(body, dict):
        raise validation_error("Malformed request body. Send a JSON object.")
    return body


async def _require_identity(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Identity:
    try:
        return await get_current_identity(creds)
    except HTTPException as exc:
        raise ServiceError(str(exc.detail), exc.status_code, ErrorKind.AUTHORIZATION) from exc


# PUBLIC_INTERFACE
@router.post(
    "/extract-task",
    response_model=ExtractionEnvelope,
    summary="Extract Task",
    description="Turn a free-text instruction into a structured todo draft using the hosted model.",
    responses=_ERROR_RESPONSES,
)
def extract_task_endpoint(
    generator: StructuredGenerator = Depends(get_generator),
    identity: Identity = Depends(_require_identity),
    body: Dict[str, Any] = Depends(_json_body),
    repo: Repository = Depends(get_repository),
    now: datetime = Depends(get_now),
) -> ExtractionEnvelope:
    """
    Request body: ``{"text": str, "save": bool}``. With ``save`` true the draft
    is also created as a todo for the caller and returned under ``todo``.
    """
    text = body.get("text")
    if text is None:
        raise validation_error("Input text is required. Include a 'text' field.")
    if not isinstance(text, str):
        raise validation_error("Input text must be a string.")
    save = body.get("save", False)
    if not isinstance(save, bool):
        raise validation_error("'save' must be a boolean.")

    result = extract_task(text, generator, now)
    logger.info("Extracted task draft for user %s", identity.user_id)
    if not save:
        return ExtractionEnvelope(data=result)

    gateway = TodoGateway(repo, identity, auth_entry_point=get_settings().auth_entry_point)
    created = gateway.create(result.to_todo_draft())
    if not created.ok or created.todo is None:
        raise ServiceError(created.error or "Failed to create todo", created.status_code)
    todo = TodoOut(**created.todo, status=todo_status(created.todo, now))  # type: ignore[arg-type]
    return ExtractionEnvelope(data=result, todo=todo)


# PUBLIC_INTERFACE
@router.post(
    "/analyze-todos",
    response_model=AnalysisEnvelope,
    summary="Analyze Todos",
    description="Summarize the caller's todos for today or the current week with insights and recommendations.",
    responses=_ERROR_RESPONSES,
)
def analyze_todos_endpoint(
    generator: StructuredGenerator = Depends(get_generator),
    identity: Identity = Depends(_require_identity),
    body: Dict[str, Any] = Depends(_json_body),
    repo: Repository = Depends(get_repository),
    now: datetime = Depends(get_now),
) -> AnalysisEnvelope:
    """
    Request body: ``{"period": "today" | "week"}``. Each call is independent;
    nothing is cached between periods or requests.
    """
    period = body.get("period")
    if period not in ("today", "week"):
        raise validation_error("An analysis period is required: 'today' or 'week'.")

    try:
        todos = repo.list(identity.user_id)
    except Exception as exc:
        logger.exception("Loading todos for analysis failed")
        raise ServiceError("Failed to load todos for analysis.", 500, ErrorKind.UNCLASSIFIED) from exc

    result = analyze_todos(todos, period, generator, now)
    return AnalysisEnvelope(data=result)
