"""
Data model for the AI coach: stored workout records, chat turns, the coach
profile, and the derived metrics summary sent to the relay.

Stored records come from an on-device store with loose typing, so the input
models coerce garbage to safe defaults instead of rejecting it. Field names
travel over the wire in camelCase.
"""
import math
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


Lang = Literal["sv", "en"]
Role = Literal["user", "assistant"]
Source = Literal["remote", "fallback"]


def normalize_lang(value: Any) -> str:
    """Anything that is not explicitly English is answered in Swedish."""
    return "en" if value == "en" else "sv"


class Intent(str, Enum):
    """Closed set of coaching answers the local engine knows how to give."""
    NEXT = "next"
    PB = "pb"
    SUMMARY = "summary"
    VOLUME = "volume"
    BALANCE = "balance"
    UNKNOWN = "unknown"


def _coerce_text(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return ""
        return str(int(value)) if float(value).is_integer() else str(value)
    if isinstance(value, str):
        return value
    return ""


def _coerce_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip().replace(",", "."))
        except ValueError:
            return None
    return None


def _coerce_list(value: Any) -> list:
    return value if isinstance(value, list) else []


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(by_alias=True, mode="json")


# ==================== Stored records ====================


class SetEntry(CamelModel):
    reps: str = ""
    weight: Optional[float] = None
    done: Optional[bool] = None

    @field_validator("reps", mode="before")
    @classmethod
    def _reps_as_text(cls, value):
        return _coerce_text(value)

    @field_validator("weight", mode="before")
    @classmethod
    def _weight_as_number(cls, value):
        return _coerce_number(value)

    @field_validator("done", mode="before")
    @classmethod
    def _done_as_flag(cls, value):
        return value if isinstance(value, bool) else None


class ExerciseEntry(CamelModel):
    name: str = ""
    muscle_group: Optional[str] = None
    sets: int = 0
    reps: str = ""
    weight: Optional[float] = None
    performed_sets: list[SetEntry] = Field(default_factory=list)

    @field_validator("name", "reps", mode="before")
    @classmethod
    def _as_text(cls, value):
        return _coerce_text(value)

    @field_validator("muscle_group", mode="before")
    @classmethod
    def _muscle_as_text(cls, value):
        return value if isinstance(value, str) else None

    @field_validator("sets", mode="before")
    @classmethod
    def _sets_as_count(cls, value):
        number = _coerce_number(value)
        if number is None or not math.isfinite(number):
            return 0
        return int(number)

    @field_validator("weight", mode="before")
    @classmethod
    def _weight_as_number(cls, value):
        return _coerce_number(value)

    @field_validator("performed_sets", mode="before")
    @classmethod
    def _sets_as_list(cls, value):
        return [item for item in _coerce_list(value) if isinstance(item, (dict, SetEntry))]


class WorkoutRecord(CamelModel):
    id: str = ""
    date: str = ""
    completed_at: Optional[str] = None
    updated_at: Optional[str] = None
    created_at: Optional[str] = None
    is_completed: bool = False
    duration_minutes: Optional[int] = None
    exercises: list[ExerciseEntry] = Field(default_factory=list)

    @field_validator("id", "date", mode="before")
    @classmethod
    def _as_text(cls, value):
        return _coerce_text(value)

    @field_validator("completed_at", "updated_at", "created_at", mode="before")
    @classmethod
    def _timestamp_as_text(cls, value):
        return value if isinstance(value, str) and value.strip() else None

    @field_validator("is_completed", mode="before")
    @classmethod
    def _completed_flag(cls, value):
        return value is True

    @field_validator("duration_minutes", mode="before")
    @classmethod
    def _duration_as_minutes(cls, value):
        number = _coerce_number(value)
        if number is None or not math.isfinite(number) or number <= 0:
            return None
        return int(number)

    @field_validator("exercises", mode="before")
    @classmethod
    def _exercises_as_list(cls, value):
        return [item for item in _coerce_list(value) if isinstance(item, (dict, ExerciseEntry))]


class CoachContext(CamelModel):
    """What the app knows locally when the user asks something."""
    workouts: list[WorkoutRecord] = Field(default_factory=list)
    weekly_goal: int = 0
    today_iso: str = Field(default="", alias="todayISO")

    @field_validator("workouts", mode="before")
    @classmethod
    def _workouts_as_list(cls, value):
        return [item for item in _coerce_list(value) if isinstance(item, (dict, WorkoutRecord))]

    @field_validator("weekly_goal", mode="before")
    @classmethod
    def _goal_as_count(cls, value):
        number = _coerce_number(value)
        if number is None or not math.isfinite(number):
            return 0
        return max(0, int(number))

    @field_validator("today_iso", mode="before")
    @classmethod
    def _today_as_text(cls, value):
        return value if isinstance(value, str) else ""


# ==================== Conversation ====================


class ConversationTurn(CamelModel):
    role: Role
    text: str

    @field_validator("text")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("text must not be empty")
        return value


def coerce_history(items: Any) -> list[ConversationTurn]:
    """Keep only well-formed turns, dropping anything else silently."""
    turns = []
    for item in _coerce_list(items):
        if isinstance(item, ConversationTurn):
            turns.append(item)
            continue
        if not isinstance(item, dict):
            continue
        role = item.get("role")
        text = item.get("text")
        if role not in ("user", "assistant") or not isinstance(text, str) or not text.strip():
            continue
        turns.append(ConversationTurn(role=role, text=text))
    return turns


class CoachProfile(CamelModel):
    goal: str = ""
    focus_exercises: str = ""
    limitations: str = ""
    schedule: str = ""
    preferences: str = ""

    def has_data(self) -> bool:
        return any([self.goal, self.focus_exercises, self.limitations, self.schedule, self.preferences])


# ==================== Derived summary ====================


class ExerciseStat(CamelModel):
    name: str
    sessions: int = 0
    sets: int = 0
    reps: int = 0
    volume: float = 0
    best_weight: float = 0


class PBEvent(CamelModel):
    exercise: str
    date: str
    weight: float
    delta: float


class MetricsSummary(CamelModel):
    """Recomputed per request from the local records, never persisted."""
    total_sessions: int = 0
    sessions7: int = 0
    sessions30: int = 0
    minutes7: int = 0
    volume7: int = 0
    avg_minutes7: int = 0
    last_workout_date: Optional[str] = None
    days_since_last: Optional[int] = None
    top_exercises: list[ExerciseStat] = Field(default_factory=list)
    top_exercise_window_days: int = 0
    pb_events30: list[PBEvent] = Field(default_factory=list)
    latest_pb: Optional[PBEvent] = None
    weekly_goal: int = 0
    weekly_left: int = 0
    muscle_focus_tip: Optional[str] = None


class CoachReply(CamelModel):
    text: str
    source: Source
    workout_title: str = ""
    basis: str = ""
