from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    Env vars:
    - PERSISTENCE_BACKEND: 'memory' (default) or 'sqlite'
    - SQLITE_DB_PATH: path to sqlite db file. Default './data/todos.db'
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins; '*' by default
    - AUTH_JWT_SECRET: HS256 secret shared with the auth service that issues session tokens
    - AUTH_JWT_AUDIENCE: expected 'aud' claim of session tokens (optional)
    - AUTH_ENTRY_POINT: where clients are sent when their session expires (default '/login')
    - GOOGLE_GENERATIVE_AI_API_KEY: API key for the hosted Gemini model
    - AI_MODEL: model name used for structured generation (default 'gemini-2.5-flash')
    - LOG_LEVEL: root log level (default 'INFO')
    """

    persistence_backend: str
    sqlite_db_path: str
    cors_allow_origins: List[str]
    auth_jwt_secret: str
    auth_jwt_audience: Optional[str]
    auth_entry_point: str
    google_api_key: Optional[str]
    ai_model: str
    log_level: str


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _parse_origins(origins_value: str) -> List[str]:
    """
    Parse CORS origins from env. Supports:
    - '*' to allow all origins
    - Comma-separated list of origins
    """
    value = origins_value.strip()
    if value == "*":
        # Star will be handled in main via allow_origins=["*"]
        return ["*"]
    return [o.strip() for o in value.split(",") if o.strip()]


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return application settings loaded from environment variables."""
    backend = _get_env("PERSISTENCE_BACKEND", "memory").strip().lower()
    if backend not in {"memory", "sqlite"}:
        # Fallback to memory if unsupported
        backend = "memory"

    sqlite_path = _get_env("SQLITE_DB_PATH", "./data/todos.db").strip()
    cors_raw = _get_env("CORS_ALLOW_ORIGINS", "*")
    origins = _parse_origins(cors_raw)

    audience = os.getenv("AUTH_JWT_AUDIENCE") or None
    api_key = os.getenv("GOOGLE_GENERATIVE_AI_API_KEY") or None

    return Settings(
        persistence_backend=backend,
        sqlite_db_path=sqlite_path,
        cors_allow_origins=origins,
        auth_jwt_secret=_get_env("AUTH_JWT_SECRET", "change-me"),
        auth_jwt_audience=audience,
        auth_entry_point=_get_env("AUTH_ENTRY_POINT", "/login").strip(),
        google_api_key=api_key.strip() if api_key else None,
        ai_model=_get_env("AI_MODEL", "gemini-2.5-flash").strip(),
        log_level=_get_env("LOG_LEVEL", "INFO").strip().upper(),
    )
