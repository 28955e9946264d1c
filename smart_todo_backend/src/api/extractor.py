"""
Natural-language task extraction.

Free text such as "tomorrow afternoon important client call" is cleaned,
checked, embedded in a prompt together with the current date context and
sent to the model with the ``ExtractionResult`` schema. Whatever comes back
is normalized by ``postprocess_result`` before anyone sees it.
"""
from __future__ import annotations

import logging
import re
import unicodedata
from datetime import date, datetime, timedelta
from typing import Any, List, Mapping, Optional

from .errors import classify_upstream_error, validation_error
from .llm import StructuredGenerator
from .models import PRIORITIES
from .schemas import ExtractionResult

logger = logging.getLogger(__name__)

MIN_TEXT_LENGTH = 2
MAX_TEXT_LENGTH = 500
MAX_PICTOGRAPHS = 10
MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500

DEFAULT_TITLE = "New task"
DEFAULT_TIME = "09:00"
DEFAULT_PRIORITY = "medium"
FALLBACK_CATEGORY = "other"
ELLIPSIS = "..."

WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

_WHITESPACE = re.compile(r"\s+")
_PICTOGRAPH = re.compile("[\U0001F300-\U0001F9FF]")
_TIME_24H = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


# PUBLIC_INTERFACE
def preprocess_input(text: str) -> str:
    """Trim, collapse whitespace runs to a single space and apply NFC normalization."""
    collapsed = _WHITESPACE.sub(" ", text.strip())
    return unicodedata.normalize("NFC", collapsed)


# PUBLIC_INTERFACE
def validate_input(text: str) -> None:
    """
    Reject input the model should not see.

    Raises:
        ServiceError(400) for empty, too short, too long or pictograph-heavy input.
    """
    if not text or not text.strip():
        raise validation_error("Input text is empty. Please describe the task.")
    if len(text) < MIN_TEXT_LENGTH:
        raise validation_error(f"Input text is too short. Enter at least {MIN_TEXT_LENGTH} characters.")
    if len(text) > MAX_TEXT_LENGTH:
        raise validation_error(f"Input text is too long. Enter at most {MAX_TEXT_LENGTH} characters.")
    if len(_PICTOGRAPH.findall(text)) > MAX_PICTOGRAPHS:
        raise validation_error("Too many emoji. Please describe the task in words.")


# PUBLIC_INTERFACE
def build_extraction_prompt(text: str, now: datetime) -> str:
    """Build the model instruction with the date context resolved against ``now``."""
    today = now.date()
    tomorrow = today + timedelta(days=1)
    day_after = today + timedelta(days=2)
    weekday = WEEKDAY_NAMES[today.weekday()]

    return f"""Convert the following natural-language input into a todo item.

=== Current context ===
Current date: {today.isoformat()} ({weekday})
Current time: {now.strftime("%H:%M")}
Tomorrow: {tomorrow.isoformat()}
Day after tomorrow: {day_after.isoformat()}

=== Input ===
"{text}"

=== Rules (follow strictly) ===

1. title
   - Extract the core of the task concisely
   - Leave out date and time expressions

2. description
   - Optional extra detail; keep the context of the input

3. due_date, YYYY-MM-DD
   - "today" -> {today.isoformat()}
   - "tomorrow" -> {tomorrow.isoformat()}
   - "day after tomorrow" -> {day_after.isoformat()}
   - "this [weekday]" -> that weekday of the current week (next week if it has already passed)
   - "next [weekday]" -> that weekday of next week
   - An explicit date is used as given (e.g. "January 15", "2026-01-15")
   - Without a date use {today.isoformat()}

4. due_time, HH:MM in 24-hour format
   - "morning" -> 09:00
   - "noon" / "lunch" -> 12:00
   - "afternoon" -> 14:00
   - "evening" -> 18:00
   - "night" -> 21:00
   - An explicit time is used as given (e.g. "3pm" or "15:00" -> 15:00)
   - Without a time use 09:00

5. priority, one of "high", "medium", "low"
   - high: "urgent", "important", "asap", "must", "critical", "immediately", "right away"
   - medium: "normal", "whenever convenient", or no priority keyword at all
   - low: "no rush", "slowly", "someday", "later", "eventually"

6. category, a list; several may apply
   - work: "meeting", "report", "project", "client", "presentation", "office", "deadline"
   - personal: "shopping", "friend", "family", "personal", "appointment", "birthday"
   - health: "exercise", "workout", "hospital", "doctor", "yoga", "gym", "checkup", "medicine"
   - study: "study", "book", "lecture", "course", "exam", "homework", "assignment"
   - If no keyword matches, pick the single best-fitting category from the content
   - Include every category that clearly applies

=== Output ===
- Answer with JSON that matches the schema exactly
- Dates as YYYY-MM-DD, times as HH:MM"""


def _truncate(value: str, limit: int) -> str:
    if len(value) <= limit:
        return value
    return value[: limit - len(ELLIPSIS)] + ELLIPSIS


def _normalize_due_date(value: Any, today: date) -> str:
    parsed: Optional[date] = None
    if isinstance(value, datetime):
        parsed = value.date()
    elif isinstance(value, date):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = date.fromisoformat(value.strip()[:10])
        except ValueError:
            parsed = None
    if parsed is None or parsed < today:
        return today.isoformat()
    return parsed.isoformat()


def _normalize_categories(value: Any) -> List[str]:
    if isinstance(value, str):
        value = [value]
    labels: List[str] = []
    if isinstance(value, (list, tuple)):
        for item in value:
            if item is None:
                continue
            label = str(item).strip()
            if label and label not in labels:
                labels.append(label)
    return labels or [FALLBACK_CATEGORY]


# PUBLIC_INTERFACE
def postprocess_result(raw: Any, today: date) -> ExtractionResult:
    """
    Turn whatever the model returned into a well-formed ``ExtractionResult``.

    Every field is repaired independently, so even ``None`` or a dict of
    garbage yields a usable draft dated no earlier than ``today``.
    """
    data: Mapping[str, Any] = raw if isinstance(raw, Mapping) else {}

    title = str(data.get("title") or "").strip()
    title = _truncate(title, MAX_TITLE_LENGTH) if title else DEFAULT_TITLE

    due_time = data.get("due_time")
    if not isinstance(due_time, str) or not _TIME_24H.match(due_time.strip()):
        due_time = DEFAULT_TIME
    else:
        due_time = due_time.strip()

    priority = str(data.get("priority") or "").strip().lower()
    if priority not in PRIORITIES:
        priority = DEFAULT_PRIORITY

    description = data.get("description")
    if description is not None:
        description = str(description).strip() or None
    if description:
        description = _truncate(description, MAX_DESCRIPTION_LENGTH)

    return ExtractionResult(
        title=title,
        description=description,
        due_date=_normalize_due_date(data.get("due_date"), today),
        due_time=due_time,
        priority=priority,  # type: ignore[arg-type]
        category=_normalize_categories(data.get("category")),
    )


# PUBLIC_INTERFACE
def extract_task(text: str, generator: StructuredGenerator, now: datetime) -> ExtractionResult:
    """
    Run the full extraction: preprocess, validate, prompt, generate, normalize.

    Raises:
        ServiceError: validation failures (400) or a classified model failure.
    """
    cleaned = preprocess_input(text)
    validate_input(cleaned)

    prompt = build_extraction_prompt(cleaned, now)
    try:
        raw = generator.generate(prompt, ExtractionResult)
    except Exception as exc:
        logger.error("Task extraction failed: %s", exc)
        raise classify_upstream_error(exc, "Something went wrong while creating the task. Please try again later.") from exc

    return postprocess_result(raw, now.date())
