"""
Period summaries of a user's todos.

The numbers are computed here and handed to the model verbatim; the model
only writes the prose (summary, insights, recommendations) around them.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional

from pydantic import ValidationError

from .errors import classify_upstream_error, validation_error
from .llm import StructuredGenerator
from .models import TodoEntity
from .schemas import AnalysisResult

logger = logging.getLogger(__name__)

Period = Literal["today", "week"]
PERIODS = ("today", "week")

# 0=Sunday .. 6=Saturday
SUNDAY_FIRST_DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")
PRIORITY_BUCKETS = ("high", "medium", "low", "none")
TIME_SLOTS = ("morning", "afternoon", "evening", "night", "none")


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class Window:
    """Half-open interval ``[start, end)`` of local time."""

    start: datetime
    end: datetime

    def contains(self, when: datetime) -> bool:
        return self.start <= when < self.end


def _midnight(day: date) -> datetime:
    return datetime.combine(day, time.min)


def _week_start(today: date) -> date:
    # Weeks run Monday..Sunday; a Sunday belongs to the week that began six days earlier
    return today - timedelta(days=today.weekday())


# PUBLIC_INTERFACE
def period_window(period: Period, now: datetime) -> Window:
    """Calendar window for ``period`` around ``now``."""
    today = now.date()
    if period == "today":
        return Window(_midnight(today), _midnight(today + timedelta(days=1)))
    monday = _week_start(today)
    return Window(_midnight(monday), _midnight(monday + timedelta(days=7)))


# PUBLIC_INTERFACE
def previous_window(period: Period, now: datetime) -> Window:
    """The window right before ``period_window(period, now)``: yesterday, or last week."""
    current = period_window(period, now)
    span = current.end - current.start
    return Window(current.start - span, current.start)


# PUBLIC_INTERFACE
def in_period(todo: TodoEntity, window: Window) -> bool:
    """Undated todos belong to every period."""
    due = todo["due_date"]
    return due is None or window.contains(due)


@dataclass
class CompletionCount:
    total: int = 0
    completed: int = 0

    def add(self, completed: bool) -> None:
        self.total += 1
        if completed:
            self.completed += 1

    @property
    def rate(self) -> float:
        return _percent(self.completed, self.total)


def _percent(part: float, whole: float) -> float:
    return (part / whole) * 100 if whole else 0.0


def _priority_bucket(todo: TodoEntity) -> str:
    return todo["priority"] or "none"


def _time_slot(due: Optional[datetime]) -> str:
    if due is None:
        return "none"
    if 9 <= due.hour < 12:
        return "morning"
    if 12 <= due.hour < 18:
        return "afternoon"
    if 18 <= due.hour < 21:
        return "evening"
    return "night"


def _count_categories(todos: Iterable[TodoEntity]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for todo in todos:
        for label in todo["categories"]:
            counts[label] = counts.get(label, 0) + 1
    return counts


# PUBLIC_INTERFACE
@dataclass
class PeriodStatistics:
    """Everything the prompt states as fact about the period."""

    period: str
    total: int = 0
    completed: int = 0
    completion_rate: float = 0.0
    previous_completion_rate: float = 0.0
    completion_rate_change: float = 0.0
    by_priority: Dict[str, CompletionCount] = field(default_factory=dict)
    with_due_date: int = 0
    completed_on_time: int = 0
    on_time_rate: float = 0.0
    overdue: int = 0
    urgent_titles: List[str] = field(default_factory=list)
    time_slots: Dict[str, int] = field(default_factory=dict)
    by_weekday: Dict[int, CompletionCount] = field(default_factory=dict)
    categories: Dict[str, int] = field(default_factory=dict)
    completed_high_priority_ratio: float = 0.0
    completed_avg_categories: float = 0.0
    completed_with_description_ratio: float = 0.0
    postponed_by_priority: Dict[str, int] = field(default_factory=dict)
    postponed_by_category: Dict[str, int] = field(default_factory=dict)


# PUBLIC_INTERFACE
def compute_statistics(
    todos: List[TodoEntity],
    previous: List[TodoEntity],
    period: Period,
    now: datetime,
) -> PeriodStatistics:
    """
    Compute the period figures from the todos in the period and in the
    previous period.

    On-time completion uses ``updated_at`` as the completion time, which is an
    approximation: editing a finished todo after its deadline makes it late.
    """
    today = now.date()
    stats = PeriodStatistics(period=period)

    stats.total = len(todos)
    stats.completed = sum(1 for t in todos if t["completed"])
    stats.completion_rate = _percent(stats.completed, stats.total)
    stats.previous_completion_rate = _percent(sum(1 for t in previous if t["completed"]), len(previous))
    stats.completion_rate_change = stats.completion_rate - stats.previous_completion_rate

    stats.by_priority = {bucket: CompletionCount() for bucket in PRIORITY_BUCKETS}
    for todo in todos:
        stats.by_priority[_priority_bucket(todo)].add(todo["completed"])

    dated = [t for t in todos if t["due_date"] is not None]
    stats.with_due_date = len(dated)
    stats.completed_on_time = sum(
        1 for t in dated if t["completed"] and t["updated_at"] <= t["due_date"]  # type: ignore[operator]
    )
    stats.on_time_rate = _percent(stats.completed_on_time, stats.with_due_date)

    postponed = [t for t in dated if not t["completed"] and t["due_date"].date() < today]  # type: ignore[union-attr]
    stats.overdue = len(postponed)
    stats.postponed_by_priority = {bucket: 0 for bucket in PRIORITY_BUCKETS}
    for todo in postponed:
        stats.postponed_by_priority[_priority_bucket(todo)] += 1
    stats.postponed_by_category = _count_categories(postponed)

    for todo in todos:
        if todo["completed"]:
            continue
        due = todo["due_date"]
        if todo["priority"] == "high" or (due is not None and 0 <= (due.date() - today).days <= 1):
            stats.urgent_titles.append(todo["title"])

    stats.time_slots = {slot: 0 for slot in TIME_SLOTS}
    for todo in todos:
        stats.time_slots[_time_slot(todo["due_date"])] += 1

    if period == "week":
        for todo in dated:
            day = (todo["due_date"].weekday() + 1) % 7  # type: ignore[union-attr]
            stats.by_weekday.setdefault(day, CompletionCount()).add(todo["completed"])
        stats.by_weekday = dict(sorted(stats.by_weekday.items()))

    stats.categories = _count_categories(todos)

    done = [t for t in todos if t["completed"]]
    if done:
        stats.completed_high_priority_ratio = sum(1 for t in done if t["priority"] == "high") / len(done)
        stats.completed_avg_categories = sum(len(t["categories"]) for t in done) / len(done)
        stats.completed_with_description_ratio = sum(1 for t in done if t["description"]) / len(done)

    return stats


# PUBLIC_INTERFACE
def empty_analysis(period: Period) -> AnalysisResult:
    """Canned answer for a period without any todos; the model is not consulted."""
    label = "today" if period == "today" else "this week"
    return AnalysisResult(
        summary=f"There are no tasks for {label}.",
        urgentTasks=[],
        insights=["Add a task to get started!"],
        recommendations=["Try adding a new task."],
    )


def _fmt(value: float) -> str:
    return f"{value:.1f}"


def _lines(counts: Mapping[str, int], empty: str) -> str:
    if not counts:
        return empty
    return "\n".join(f"- {name}: {count}" for name, count in counts.items())


def _todos_for_prompt(todos: Iterable[TodoEntity]) -> List[Dict[str, Any]]:
    return [
        {
            "title": t["title"],
            "description": t["description"] or "",
            "due_date": t["due_date"].isoformat() if t["due_date"] else None,
            "priority": t["priority"] or "none",
            "category": list(t["categories"]),
            "completed": t["completed"],
        }
        for t in todos
    ]


# PUBLIC_INTERFACE
def build_analysis_prompt(todos: List[TodoEntity], stats: PeriodStatistics, period: Period, now: datetime) -> str:
    """Render the statistics and raw items into the analysis instruction."""
    window = period_window(period, now)
    if period == "today":
        label = "Today"
        date_info = f"Date: {window.start.date().isoformat()}"
        previous_label = "yesterday"
        next_step = "a concrete plan for tomorrow"
    else:
        label = "This week"
        last_day = (window.end - timedelta(days=1)).date()
        date_info = f"Week: {window.start.date().isoformat()} ~ {last_day.isoformat()}"
        previous_label = "last week"
        next_step = "a concrete plan for next week"

    change = stats.completion_rate_change
    trend = "improved" if change > 0 else "needs attention" if change < 0 else "unchanged"
    total = stats.total

    priority_lines = "\n".join(
        f"- {bucket}: {c.completed}/{c.total} completed ({_fmt(c.rate)}%)"
        for bucket, c in stats.by_priority.items()
    )
    slot_lines = "\n".join(
        f"- {slot}: {count} ({_fmt(_percent(count, total))}%)" for slot, count in stats.time_slots.items()
    )

    postponed = ""
    if stats.overdue:
        postponed = "- Postponed by priority: " + ", ".join(
            f"{bucket} {count}" for bucket, count in stats.postponed_by_priority.items()
        )
    if stats.postponed_by_category:
        postponed += "\n- Postponed by category: " + ", ".join(
            f"{name} {count}" for name, count in stats.postponed_by_category.items()
        )

    weekday_section = ""
    if period == "week":
        if stats.by_weekday:
            rows = "\n".join(
                f"- {SUNDAY_FIRST_DAY_NAMES[day]}: {c.completed}/{c.total} completed ({_fmt(c.rate)}%)"
                for day, c in stats.by_weekday.items()
            )
        else:
            rows = "- no data"
        weekday_section = f"=== Completion by weekday (this week) ===\n{rows}\n"

    if stats.completed:
        easy = (
            "Traits of completed tasks:\n"
            f"- High priority share: {_fmt(stats.completed_high_priority_ratio * 100)}%\n"
            f"- Average number of categories: {_fmt(stats.completed_avg_categories)}\n"
            f"- Share with a description: {_fmt(stats.completed_with_description_ratio * 100)}%"
        )
    else:
        easy = "- No completed tasks yet, nothing to analyze."

    urgent = "\n".join(f"- {title}" for title in stats.urgent_titles) or "- none"
    weekly_pattern = "- The most productive weekday and time of day\n   " if period == "week" else ""

    return f"""You are a task management coach. Analyze the user's todo list in depth and give practical, motivating insights.

=== Period ===
{label} ({date_info})
Previous period: {previous_label}

=== Todos ===
{json.dumps(_todos_for_prompt(todos), indent=2, ensure_ascii=False)}

=== 1. Completion ===
- Total tasks: {total}
- Completed: {stats.completed}
- Completion rate: {_fmt(stats.completion_rate)}%
- Previous completion rate: {_fmt(stats.previous_completion_rate)}%
- Change: {"+" if change >= 0 else ""}{_fmt(change)} percentage points ({trend})

=== Completion by priority ===
{priority_lines}

=== 2. Time management ===
- Tasks with a due date: {stats.with_due_date}
- On-time rate: {_fmt(stats.on_time_rate)}% ({stats.completed_on_time}/{stats.with_due_date})
- Overdue tasks: {stats.overdue}
{postponed}

=== Time of day ===
{slot_lines}

{weekday_section}
=== 3. Productivity patterns ===
{easy}

=== Category distribution ===
{_lines(stats.categories, "- no categories")}

=== Urgent tasks ===
{urgent}

=== What to produce ===

1. summary: one natural paragraph about {label.lower()} that states the total, the completion rate and the change versus {previous_label}.

2. urgentTasks: titles of urgent tasks. Start from the list above; you may add others you judge urgent.

3. insights: 3 to 5 specific items covering
   - completion rate analysis (trend, which priorities get done)
   - time management analysis (on-time rate, postponement patterns, time-of-day focus)
   - productivity patterns ({weekly_pattern}what gets postponed, what gets done easily)
   - positive reinforcement for what is going well

4. recommendations: 3 to 4 actionable items covering
   - time management
   - priority re-adjustment
   - workload distribution
   - {next_step}

=== Tone ===
- Friendly and conversational
- Encouraging: highlight strengths first, then frame improvements constructively
- Concrete and actionable"""


def _repair(raw: Any, stats: PeriodStatistics) -> AnalysisResult:
    data = dict(raw) if isinstance(raw, Mapping) else {}
    try:
        return AnalysisResult.model_validate(data)
    except ValidationError:
        logger.warning("Analysis output failed validation; repairing it from local statistics")
    summary = data.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        data["summary"] = (
            f"{stats.completed} of {stats.total} tasks completed ({_fmt(stats.completion_rate)}%), "
            f"{'+' if stats.completion_rate_change >= 0 else ''}{_fmt(stats.completion_rate_change)} "
            "percentage points versus the previous period."
        )
    for key in ("urgentTasks", "insights", "recommendations"):
        if not isinstance(data.get(key), (list, str)):
            data[key] = []
    if not data["urgentTasks"]:
        data["urgentTasks"] = list(stats.urgent_titles)
    return AnalysisResult.model_validate(data)


# PUBLIC_INTERFACE
def analyze_todos(
    todos: Iterable[TodoEntity],
    period: str,
    generator: StructuredGenerator,
    now: datetime,
) -> AnalysisResult:
    """
    Summarize the owner's todos for ``period`` ('today' or 'week').

    ``todos`` is the owner's full list; period membership is decided here.

    Raises:
        ServiceError: invalid period (400) or a classified model failure.
    """
    if period not in PERIODS:
        raise validation_error("An analysis period is required: 'today' or 'week'.")

    everything = list(todos)
    current = [t for t in everything if in_period(t, period_window(period, now))]  # type: ignore[arg-type]
    if not current:
        logger.info("No todos for period %s; skipping model call", period)
        return empty_analysis(period)  # type: ignore[arg-type]

    previous = [t for t in everything if in_period(t, previous_window(period, now))]  # type: ignore[arg-type]
    stats = compute_statistics(current, previous, period, now)  # type: ignore[arg-type]
    prompt = build_analysis_prompt(current, stats, period, now)  # type: ignore[arg-type]

    try:
        raw = generator.generate(prompt, AnalysisResult)
    except Exception as exc:
        logger.error("Todo analysis failed for period %s: %s", period, exc)
        raise classify_upstream_error(
            exc, "Something went wrong while analyzing your tasks. Please try again later."
        ) from exc

    return _repair(raw, stats)
