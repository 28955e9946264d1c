import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import ServiceError
from .routers import ai as ai_router
from .routers import todos as todos_router
from .settings import get_settings
from .utils import configure_logging

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {
        "name": "todos",
        "description": "Owner-scoped CRUD operations for Todo items with search, status/priority filters and sorting.",
    },
    {
        "name": "ai",
        "description": "AI-assisted task extraction and period summaries backed by a hosted Gemini model.",
    },
]

_settings = get_settings()
configure_logging(_settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Smart Todo Backend",
    description="Personal todo service with AI-assisted task creation and AI-generated summaries.",
    version="0.1.0",
    openapi_tags=openapi_tags,
)


# CORS_ALLOW_ORIGINS; credentials only with an explicit origin list
_origins = _settings.cors_allow_origins
_any_origin = not _origins or _origins == ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if _any_origin else _origins,
    allow_credentials=not _any_origin,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Body and query validation failures on the todo endpoints answer 422 as
    ``{"error": "ValidationError", "message": ..., "detail": [...]}``.
    """
    logger.debug("Validation failed for %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=422,
        content={
            "error": "ValidationError",
            "message": "Request validation failed",
            "detail": jsonable_encoder(exc.errors()),
        },
    )


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """
    Render classified failures as ``{"error": message}`` with their status code.
    """
    logger.info("%s %s -> %s (%s)", request.method, request.url.path, exc.status_code, exc.kind.value)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


# PUBLIC_INTERFACE
@app.get("/", summary="Health Check", tags=["health"])
def health_check():
    """
    Health check endpoint.

    Returns:
        A JSON object indicating service health.
    """
    return {
        "message": "Healthy",
        "backend": _settings.persistence_backend,
        "ai_configured": _settings.google_api_key is not None,
    }


# Include routers
app.include_router(todos_router.router)
app.include_router(ai_router.router)
