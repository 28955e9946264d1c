from __future__ import annotations

from datetime import date, datetime
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import Priority

# Shared type for incoming due_date which can be a date, datetime, or ISO8601 string
DueDateInput = Union[date, datetime, str]


def _to_local_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def _parse_due_date(value: Optional[DueDateInput]) -> Optional[datetime]:
    """
    Internal helper to normalize due_date input into a naive local datetime.
    - If value is a string, attempt to parse via datetime.fromisoformat; if time is missing, set to 00:00.
    - If value is a date (not datetime), convert to datetime at 00:00.
    - Aware datetimes are converted to local time and stripped of tzinfo.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return _to_local_naive(value)

    if isinstance(value, date):
        # Promote a date to a datetime at midnight
        return datetime(value.year, value.month, value.day, 0, 0, 0)

    if isinstance(value, str):
        s = value.strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            return _to_local_naive(datetime.fromisoformat(s))
        except ValueError:
            try:
                d = date.fromisoformat(s)
                return datetime(d.year, d.month, d.day, 0, 0, 0)
            except ValueError as e:
                raise ValueError(
                    "Invalid due_date format. Use ISO8601 date or datetime string (e.g., '2025-01-31' or '2025-01-31T13:45:00')."
                ) from e

    raise ValueError("Invalid type for due_date; expected date, datetime, or ISO8601 string.")


def _clean_categories(value: Optional[List[str]]) -> List[str]:
    """Strip labels, drop blanks and repeated labels while keeping display order."""
    if not value:
        return []
    seen: List[str] = []
    for raw in value:
        label = str(raw).strip()
        if label and label not in seen:
            seen.append(label)
    return seen


def _validate_title(v: str) -> str:
    s = v.strip()
    if not (1 <= len(s) <= 200):
        raise ValueError("title length must be between 1 and 200 characters")
    return s


# PUBLIC_INTERFACE
class TodoCreate(BaseModel):
    """
    Schema for creating a new Todo item. The owner is never part of the
    payload; it comes from the caller's session.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Prepare quarterly report",
                "description": "Collect numbers from finance",
                "completed": False,
                "due_date": "2025-02-01T14:00:00",
                "priority": "high",
                "categories": ["work"],
            }
        }
    )

    title: str = Field(..., description="Short title for the todo item", min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, description="Optional detailed description")
    completed: bool = Field(default=False, description="Completion status flag")
    due_date: Optional[datetime] = Field(
        default=None,
        description="Due date/time of the todo item. Accepts ISO8601 date or datetime; dates are set to 00:00",
    )
    priority: Optional[Priority] = Field(default=None, description="high, medium or low; omit for unset")
    categories: List[str] = Field(default_factory=list, description="Free-text category labels")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """
        Strip whitespace and enforce 1..200 length.
        """
        if v is None:
            raise ValueError("title is required")
        return _validate_title(v)

    @field_validator("description")
    @classmethod
    def blank_description_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Optional[DueDateInput]) -> Optional[datetime]:
        """
        Normalize due_date from str/date/datetime to datetime.
        """
        return _parse_due_date(v)

    @field_validator("categories", mode="before")
    @classmethod
    def clean_categories(cls, v: Optional[List[str]]) -> List[str]:
        return _clean_categories(v)


# PUBLIC_INTERFACE
class TodoUpdate(BaseModel):
    """
    Schema for updating an existing Todo item.
    All fields are optional; only provided fields will be updated.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Prepare quarterly report draft",
                "completed": True,
                "due_date": "2025-02-02T09:30:00",
                "priority": "medium",
            }
        }
    )

    title: Optional[str] = Field(default=None, description="Short title for the todo item", min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, description="Optional detailed description")
    completed: Optional[bool] = Field(default=None, description="Completion status flag")
    due_date: Optional[datetime] = Field(
        default=None,
        description="Due date/time of the todo item. Accepts ISO8601 date or datetime; dates are set to 00:00",
    )
    priority: Optional[Priority] = Field(default=None, description="high, medium or low; null clears it")
    categories: Optional[List[str]] = Field(default=None, description="Replacement category labels")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        """
        If title is provided, strip whitespace and enforce 1..200 length.
        """
        if v is None:
            return v
        return _validate_title(v)

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Optional[DueDateInput]) -> Optional[datetime]:
        return _parse_due_date(v)

    @field_validator("categories", mode="before")
    @classmethod
    def clean_categories(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return None
        return _clean_categories(v)

    @classmethod
    def replacing(cls, payload: TodoCreate) -> "TodoUpdate":
        """Full-field update built from a create payload (PUT semantics)."""
        return cls(**payload.model_dump())


# PUBLIC_INTERFACE
class TodoOut(BaseModel):
    """
    Schema returned by the API for a Todo item.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "3f2c6a8e9b0d4e1f8a7b6c5d4e3f2a1b",
                "owner": "user-123",
                "title": "Prepare quarterly report",
                "description": "Collect numbers from finance",
                "completed": False,
                "due_date": "2025-02-01T14:00:00",
                "priority": "high",
                "categories": ["work"],
                "status": "in-progress",
                "created_at": "2025-01-25T10:15:30.123456",
                "updated_at": "2025-01-26T09:00:00.000001",
            }
        }
    )

    id: str = Field(..., description="Unique identifier of the todo item")
    owner: str = Field(..., description="Identifier of the owning user")
    title: str = Field(..., description="Short title for the todo item")
    description: Optional[str] = Field(default=None, description="Optional detailed description")
    completed: bool = Field(..., description="Completion status flag")
    due_date: Optional[datetime] = Field(
        default=None, description="Due date/time of the todo item as an ISO8601 datetime"
    )
    priority: Optional[Priority] = Field(default=None, description="Priority, null when unset")
    categories: List[str] = Field(default_factory=list, description="Category labels")
    status: Optional[str] = Field(default=None, description="Derived status: in-progress, done or overdue")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")


# PUBLIC_INTERFACE
class ExtractionResult(BaseModel):
    """
    Structured todo draft produced from free text. Also used as the response
    schema sent to the model.
    """

    title: str = Field(..., description="Concise task title without date or time expressions")
    description: Optional[str] = Field(default=None, description="Optional extra detail from the input")
    due_date: str = Field(..., description="Due date in YYYY-MM-DD format")
    due_time: str = Field(..., description="Due time in 24-hour HH:MM format, '09:00' when absent")
    priority: Priority = Field(..., description="high, medium or low")
    category: List[str] = Field(default_factory=list, description="Category labels")

    def to_todo_draft(self) -> TodoCreate:
        """Merge due_date and due_time into a single due datetime and build a create payload."""
        due = datetime.fromisoformat(f"{self.due_date}T{self.due_time}:00")
        return TodoCreate(
            title=self.title,
            description=self.description,
            due_date=due,
            priority=self.priority,
            categories=self.category,
        )


# PUBLIC_INTERFACE
class AnalysisResult(BaseModel):
    """Summary, urgent titles, insights and recommendations for one period."""

    summary: str = Field(..., description="One paragraph summary including completion rate and change")
    urgentTasks: List[str] = Field(default_factory=list, description="Titles of urgent tasks")
    insights: List[str] = Field(default_factory=list, description="3 to 5 insights")
    recommendations: List[str] = Field(default_factory=list, description="3 to 4 actionable recommendations")

    @field_validator("urgentTasks", "insights", "recommendations", mode="before")
    @classmethod
    def coerce_text_list(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        return [str(item).strip() for item in v if item is not None and str(item).strip()]


class ExtractionEnvelope(BaseModel):
    success: bool = True
    data: ExtractionResult
    todo: Optional[TodoOut] = Field(default=None, description="The saved todo when the request asked for 'save'")


class AnalysisEnvelope(BaseModel):
    success: bool = True
    data: AnalysisResult


class ErrorOut(BaseModel):
    error: str
