from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from google.genai import errors as genai_errors

logger = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation"
    AUTHORIZATION = "authorization"
    UPSTREAM_CONFIGURATION = "upstream_configuration"
    UPSTREAM_TRANSIENT = "upstream_transient"
    UNCLASSIFIED = "unclassified"


# PUBLIC_INTERFACE
class ServiceError(Exception):
    """
    A classified failure carrying a human-readable message and the HTTP status
    the API layer should answer with. Rendered as ``{"error": message}``.
    """

    def __init__(self, message: str, status_code: int = 500, kind: ErrorKind = ErrorKind.UNCLASSIFIED) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.kind = kind

    def __repr__(self) -> str:
        return f"ServiceError({self.message!r}, status_code={self.status_code}, kind={self.kind.value})"


def validation_error(message: str) -> ServiceError:
    return ServiceError(message, 400, ErrorKind.VALIDATION)


def configuration_error(message: str) -> ServiceError:
    return ServiceError(message, 500, ErrorKind.UPSTREAM_CONFIGURATION)


@dataclass(frozen=True)
class UpstreamRule:
    """
    One row of the upstream error table: what to look for and how to report it.

    ``codes`` match a structured status code outright. ``refines`` lists codes
    that only match when the message also contains one of ``needles``.
    """

    codes: Tuple[int, ...]
    needles: Tuple[str, ...]
    status_code: int
    kind: ErrorKind
    message: str
    refines: Tuple[int, ...] = ()

    def matches_code(self, code: int, text: str) -> bool:
        if code in self.codes:
            return True
        return code in self.refines and self.matches_text(text)

    def matches_text(self, text: str) -> bool:
        return any(needle in text for needle in self.needles)


# Checked in order; the first matching row wins.
UPSTREAM_ERROR_RULES: Tuple[UpstreamRule, ...] = (
    UpstreamRule(
        codes=(429,),
        needles=("429", "quota", "rate limit", "too many requests", "resource_exhausted"),
        status_code=429,
        kind=ErrorKind.UPSTREAM_TRANSIENT,
        message="The AI service rate limit was exceeded. Please try again in a moment.",
    ),
    UpstreamRule(
        codes=(401, 403),
        # Gemini answers a bad key with 400 INVALID_ARGUMENT
        refines=(400,),
        needles=("api key", "api_key_invalid", "authentication", "401", "unauthorized", "permission_denied"),
        status_code=401,
        kind=ErrorKind.UPSTREAM_CONFIGURATION,
        message="Authentication with the AI service failed. Check the API key.",
    ),
    UpstreamRule(
        codes=(404,),
        needles=("model", "not found", "404"),
        status_code=404,
        kind=ErrorKind.UPSTREAM_CONFIGURATION,
        message="The AI model could not be found. Check the model name.",
    ),
    UpstreamRule(
        codes=(400,),
        needles=("400", "bad request", "invalid"),
        status_code=400,
        kind=ErrorKind.VALIDATION,
        message="The AI service rejected the request. Please check your input.",
    ),
)


def _status_code_of(exc: BaseException) -> Optional[int]:
    if isinstance(exc, genai_errors.APIError):
        return exc.code
    for attr in ("code", "status_code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def _unclassified(exc: BaseException, fallback_message: str) -> ServiceError:
    logger.error("Unclassified AI service failure", exc_info=exc)
    return ServiceError(fallback_message, 500, ErrorKind.UNCLASSIFIED)


# PUBLIC_INTERFACE
def classify_upstream_error(exc: BaseException, fallback_message: str) -> ServiceError:
    """
    Map a failure raised while talking to the hosted model onto the error taxonomy.

    When the exception carries a structured status code (``google.genai.errors.APIError``
    or any ``code``/``status_code`` attribute) only that code decides, with the
    message used to tell a rejected API key from other 400s. A code no rule
    knows, such as a 503, is an unclassified 500. Exceptions without a code are
    matched by their lowercase message against ``UPSTREAM_ERROR_RULES``.
    """
    if isinstance(exc, ServiceError):
        return exc

    text = str(exc).lower()
    code = _status_code_of(exc)
    if code is not None:
        for rule in UPSTREAM_ERROR_RULES:
            if rule.matches_code(code, text):
                return ServiceError(rule.message, rule.status_code, rule.kind)
        return _unclassified(exc, fallback_message)

    for rule in UPSTREAM_ERROR_RULES:
        if rule.matches_text(text):
            return ServiceError(rule.message, rule.status_code, rule.kind)

    return _unclassified(exc, fallback_message)


# PUBLIC_INTERFACE
class SessionExpiredError(Exception):
    """Raised by a store when the caller's session is no longer accepted."""


SESSION_ERROR_NEEDLES: Tuple[str, ...] = ("jwt", "authentication", "unauthorized", "session expired")


# PUBLIC_INTERFACE
def is_session_error(exc: BaseException) -> bool:
    """True when a store failure means the caller has to sign in again."""
    if isinstance(exc, SessionExpiredError):
        return True
    text = str(exc).lower()
    return any(needle in text for needle in SESSION_ERROR_NEEDLES)
