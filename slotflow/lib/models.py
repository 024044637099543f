"""
Domain types for the suggestion workflow.

ManualInput is the user's request and is validated with pydantic at
the boundary. The suggestion side is plain frozen dataclasses: once a
suggestion is built from a backend response its slot list never
changes, only its status (via with_status).
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

TITLE_MAX_LENGTH = 120
DESCRIPTION_MAX_LENGTH = 500
DURATION_MIN_MINUTES = 15
DURATION_MAX_MINUTES = 180
DURATION_STEP_MINUTES = 15
MAX_DEADLINE_AHEAD = timedelta(days=365)
PREFERRED_WINDOW_MIN = timedelta(hours=1)
PREFERRED_WINDOW_MAX = timedelta(hours=24)


def parse_instant(value: str | datetime) -> datetime:
    """Parse an ISO-8601 instant, treating naive values as UTC."""
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_instant(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class ManualInput(BaseModel):
    """What the user asked to schedule. Immutable once submitted."""

    model_config = ConfigDict(frozen=True)

    title: str = Field(max_length=TITLE_MAX_LENGTH)
    description: Optional[str] = Field(default=None, max_length=DESCRIPTION_MAX_LENGTH)
    duration_minutes: int
    deadline: datetime
    preferred_window: Optional[tuple[datetime, datetime]] = None
    target_task_id: Optional[str] = None

    @field_validator("title")
    @classmethod
    def _title_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Title is required")
        return value

    @field_validator("duration_minutes")
    @classmethod
    def _duration_in_steps(cls, value: int) -> int:
        if value < DURATION_MIN_MINUTES:
            raise ValueError(f"Duration must be at least {DURATION_MIN_MINUTES} minutes")
        if value > DURATION_MAX_MINUTES:
            raise ValueError(f"Duration must not exceed {DURATION_MAX_MINUTES} minutes")
        if value % DURATION_STEP_MINUTES:
            raise ValueError(f"Duration must be a multiple of {DURATION_STEP_MINUTES} minutes")
        return value

    @field_validator("deadline", mode="before")
    @classmethod
    def _parse_deadline(cls, value):
        return parse_instant(value) if isinstance(value, (str, datetime)) else value

    @field_validator("deadline")
    @classmethod
    def _deadline_in_future(cls, value: datetime) -> datetime:
        now = datetime.now(timezone.utc)
        if value <= now:
            raise ValueError("Deadline must be in the future")
        if value > now + MAX_DEADLINE_AHEAD:
            raise ValueError("Deadline must be within 1 year from now")
        return value

    @field_validator("preferred_window", mode="before")
    @classmethod
    def _parse_window(cls, value):
        if value is None:
            return None
        start, end = value
        return parse_instant(start), parse_instant(end)

    @field_validator("target_task_id")
    @classmethod
    def _task_id_not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            raise ValueError("Task ID cannot be empty")
        return value

    @model_validator(mode="after")
    def _window_ordered(self) -> "ManualInput":
        if self.preferred_window is None:
            return self
        start, end = self.preferred_window
        if start >= end:
            raise ValueError("Preferred window start must be before its end")
        span = end - start
        if span < PREFERRED_WINDOW_MIN:
            raise ValueError("Preferred window must be at least 1 hour")
        if span > PREFERRED_WINDOW_MAX:
            raise ValueError("Preferred window must not exceed 24 hours")
        return self

    def to_payload(self) -> dict[str, Any]:
        """Serialise for the generate request body."""
        payload: dict[str, Any] = {
            "title": self.title,
            "duration_minutes": self.duration_minutes,
            "deadline": format_instant(self.deadline),
        }
        if self.description:
            payload["description"] = self.description
        if self.preferred_window:
            payload["preferred_window"] = [format_instant(t) for t in self.preferred_window]
        if self.target_task_id:
            payload["target_task_id"] = self.target_task_id
        return payload


class SuggestionStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass(frozen=True)
class SlotMetadata:
    """Adjustments the generator made to fit the request."""
    adjusted_duration: bool = False
    adjusted_deadline: bool = False
    adjustment_reason: Optional[str] = None
    source: Optional[str] = None

    @property
    def adjusted(self) -> bool:
        return self.adjusted_duration or self.adjusted_deadline

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["SlotMetadata"]:
        if not data:
            return None
        return cls(
            adjusted_duration=bool(data.get("adjusted_duration", False)),
            adjusted_deadline=bool(data.get("adjusted_deadline", False)),
            adjustment_reason=data.get("adjustment_reason"),
            source=data.get("source"),
        )


@dataclass(frozen=True)
class SuggestedSlot:
    """A candidate start time. slot_index is an identifier, not a position."""
    slot_index: int
    suggested_start_at: datetime
    planned_minutes: int
    confidence: float  # 0.0-1.0
    reason: str = ""
    metadata: Optional[SlotMetadata] = None

    def __post_init__(self):
        if self.planned_minutes <= 0:
            raise ValueError(f"planned_minutes must be positive, got {self.planned_minutes}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within 0.0-1.0, got {self.confidence}")

    @property
    def is_adjusted(self) -> bool:
        return self.metadata is not None and self.metadata.adjusted


@dataclass(frozen=True)
class FallbackAutoMode:
    enabled: bool = False
    reason: str = ""


@dataclass(frozen=True)
class AISuggestion:
    """A generated suggestion and its candidate slots."""
    id: str
    manual_input: ManualInput
    suggested_slots: tuple[SuggestedSlot, ...]
    confidence: float = 0.0
    reason: str = ""
    status: SuggestionStatus = SuggestionStatus.PENDING
    fallback_auto_mode: FallbackAutoMode = field(default_factory=FallbackAutoMode)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        indexes = [s.slot_index for s in self.suggested_slots]
        if len(indexes) != len(set(indexes)):
            raise ValueError(f"Duplicate slot_index in suggestion {self.id}: {indexes}")

    @property
    def slot_indexes(self) -> frozenset[int]:
        return frozenset(s.slot_index for s in self.suggested_slots)

    def get_slot(self, slot_index: int) -> Optional[SuggestedSlot]:
        """Look up a slot by its slot_index."""
        for slot in self.suggested_slots:
            if slot.slot_index == slot_index:
                return slot
        return None

    def with_status(self, status: SuggestionStatus) -> "AISuggestion":
        return replace(self, status=status, updated_at=datetime.now(timezone.utc))


@dataclass(frozen=True)
class AcceptResult:
    """Outcome of a successful accept call."""
    suggestion_id: str
    selected_slot_index: int
    schedule_entry_id: str
    message: str = ""
