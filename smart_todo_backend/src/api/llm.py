from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import Any, Dict, Protocol, Type

from google import genai
from google.genai import types
from pydantic import BaseModel

from .errors import configuration_error
from .settings import get_settings

logger = logging.getLogger(__name__)


class MalformedModelOutput(Exception):
    """The model answered, but not with a JSON object."""


# PUBLIC_INTERFACE
class StructuredGenerator(Protocol):
    """Anything that can turn a prompt plus an output schema into a raw JSON object."""

    def generate(self, prompt: str, schema: Type[BaseModel]) -> Dict[str, Any]:
        ...


def _strip_fences(text: str) -> str:
    return text.replace("```json", "").replace("```", "").strip()


# PUBLIC_INTERFACE
class GeminiGenerator:
    """Structured generation against a hosted Gemini model via google-genai."""

    def __init__(self, api_key: str, model: str) -> None:
        self._client = genai.Client(api_key=api_key)
        self._model = model

    def generate(self, prompt: str, schema: Type[BaseModel]) -> Dict[str, Any]:
        """
        Ask the model for a JSON object shaped like ``schema``.

        The returned dict is still untrusted: callers validate and normalize it.
        When the SDK could not parse the answer into ``schema`` the raw JSON
        text is decoded instead so callers can repair what is there.
        """
        response = self._client.models.generate_content(
            model=self._model,
            contents=prompt,
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=schema,
            ),
        )

        parsed = response.parsed
        if isinstance(parsed, BaseModel):
            return parsed.model_dump()
        if isinstance(parsed, dict):
            return parsed

        text = _strip_fences(response.text or "")
        try:
            data = json.loads(text) if text else None
        except json.JSONDecodeError as exc:
            raise MalformedModelOutput("AI response could not be decoded as a JSON object") from exc
        if not isinstance(data, dict):
            raise MalformedModelOutput("AI response could not be decoded as a JSON object")
        logger.warning("Model output did not match %s; continuing with raw JSON", schema.__name__)
        return data


@lru_cache(maxsize=4)
def _cached_generator(api_key: str, model: str) -> GeminiGenerator:
    return GeminiGenerator(api_key=api_key, model=model)


# PUBLIC_INTERFACE
def get_generator() -> StructuredGenerator:
    """
    FastAPI dependency returning the configured model client.

    Raises:
        ServiceError(500) when GOOGLE_GENERATIVE_AI_API_KEY is not set.
    """
    settings = get_settings()
    if not settings.google_api_key:
        raise configuration_error("GOOGLE_GENERATIVE_AI_API_KEY is not configured.")
    return _cached_generator(settings.google_api_key, settings.ai_model)
