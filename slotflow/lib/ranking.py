"""
Slot filtering, sorting and comparison.

Everything here is pure: functions take a slot sequence plus a filter or
sort value and return new lists. SlotView bundles the user's current
choices so a UI can hold one value and re-derive the visible list.

Confidence is the continuous 0.0-1.0 score everywhere in this module.
confidence_level() is the only place the three-level Low/Medium/High
scale appears, and it is for display only.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum, IntEnum
from typing import Iterable, Optional, Sequence

from slotflow.lib.models import SuggestedSlot

HIGH_CONFIDENCE_THRESHOLD = 0.7
MEDIUM_CONFIDENCE_THRESHOLD = 0.4
MAX_COMPARED_SLOTS = 2


class ConfidenceLevel(IntEnum):
    LOW = 0
    MEDIUM = 1
    HIGH = 2


def confidence_level(confidence: float) -> ConfidenceLevel:
    """Bucket a 0.0-1.0 confidence into a display level."""
    if confidence >= HIGH_CONFIDENCE_THRESHOLD:
        return ConfidenceLevel.HIGH
    if confidence >= MEDIUM_CONFIDENCE_THRESHOLD:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


class SortField(str, Enum):
    CONFIDENCE = "confidence"
    TIME = "time"
    DURATION = "duration"
    DEADLINE_PROXIMITY = "deadline_proximity"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


SORT_LABELS = {
    (SortField.CONFIDENCE, SortDirection.DESC): "Confidence (High to Low)",
    (SortField.CONFIDENCE, SortDirection.ASC): "Confidence (Low to High)",
    (SortField.TIME, SortDirection.ASC): "Time (Earliest First)",
    (SortField.TIME, SortDirection.DESC): "Time (Latest First)",
    (SortField.DURATION, SortDirection.ASC): "Duration (Shortest First)",
    (SortField.DURATION, SortDirection.DESC): "Duration (Longest First)",
    (SortField.DEADLINE_PROXIMITY, SortDirection.ASC): "Deadline (Closest First)",
    (SortField.DEADLINE_PROXIMITY, SortDirection.DESC): "Deadline (Furthest First)",
}


@dataclass(frozen=True)
class TimeRange:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class DurationRange:
    min: int
    max: int


@dataclass(frozen=True)
class SlotFilter:
    """Active filter predicates. None/False means the predicate is off."""
    min_confidence: Optional[float] = None
    max_confidence: Optional[float] = None
    time_range: Optional[TimeRange] = None
    duration_range: Optional[DurationRange] = None
    show_adjusted_only: bool = False
    show_high_confidence_only: bool = False


@dataclass(frozen=True)
class SlotSort:
    field: SortField = SortField.CONFIDENCE
    direction: SortDirection = SortDirection.DESC

    @property
    def label(self) -> str:
        return SORT_LABELS[(self.field, self.direction)]


DEFAULT_SORT = SlotSort()


def slot_matches(slot: SuggestedSlot, filters: SlotFilter) -> bool:
    """True iff the slot passes every active predicate."""
    if filters.min_confidence is not None and slot.confidence < filters.min_confidence:
        return False
    if filters.max_confidence is not None and slot.confidence > filters.max_confidence:
        return False
    if filters.time_range is not None:
        if not filters.time_range.start <= slot.suggested_start_at <= filters.time_range.end:
            return False
    if filters.duration_range is not None:
        if not filters.duration_range.min <= slot.planned_minutes <= filters.duration_range.max:
            return False
    if filters.show_adjusted_only and not slot.is_adjusted:
        return False
    if filters.show_high_confidence_only and slot.confidence < HIGH_CONFIDENCE_THRESHOLD:
        return False
    return True


def filter_slots(slots: Iterable[SuggestedSlot], filters: SlotFilter) -> list[SuggestedSlot]:
    return [s for s in slots if slot_matches(s, filters)]


def _deadline_proximity(slot: SuggestedSlot) -> float:
    # Needs the request deadline threaded through; every slot ties until then.
    return 0.0


_SORT_KEYS = {
    SortField.CONFIDENCE: lambda s: s.confidence,
    SortField.TIME: lambda s: s.suggested_start_at,
    SortField.DURATION: lambda s: s.planned_minutes,
    SortField.DEADLINE_PROXIMITY: _deadline_proximity,
}


def sort_slots(slots: Iterable[SuggestedSlot], sort: SlotSort = DEFAULT_SORT) -> list[SuggestedSlot]:
    """Stable sort. Equal keys keep their input order in both directions."""
    return sorted(
        slots,
        key=_SORT_KEYS[sort.field],
        reverse=sort.direction == SortDirection.DESC,
    )


def rank_slots(
    slots: Iterable[SuggestedSlot],
    filters: SlotFilter,
    sort: SlotSort = DEFAULT_SORT,
) -> list[SuggestedSlot]:
    """Filter, then sort."""
    return sort_slots(filter_slots(slots, filters), sort)


def slot_rank(ranked: Sequence[SuggestedSlot], slot_index: int) -> int:
    """1-based position of slot_index in a ranked list, or -1 if absent."""
    for position, slot in enumerate(ranked, start=1):
        if slot.slot_index == slot_index:
            return position
    return -1


@dataclass(frozen=True)
class SlotComparison:
    slot_a: SuggestedSlot
    slot_b: SuggestedSlot
    time_difference: float  # minutes, absolute
    confidence_difference: float
    duration_match: bool
    deadline_proximity: float


def compare_slots(slot_a: SuggestedSlot, slot_b: SuggestedSlot) -> SlotComparison:
    delta = slot_b.suggested_start_at - slot_a.suggested_start_at
    return SlotComparison(
        slot_a=slot_a,
        slot_b=slot_b,
        time_difference=abs(delta.total_seconds()) / 60,
        confidence_difference=abs(slot_b.confidence - slot_a.confidence),
        duration_match=slot_a.planned_minutes == slot_b.planned_minutes,
        deadline_proximity=0.0,
    )


def _find(slots: Iterable[SuggestedSlot], slot_index: int) -> Optional[SuggestedSlot]:
    return next((s for s in slots if s.slot_index == slot_index), None)


@dataclass(frozen=True)
class SlotView:
    """The user's current filter/sort/comparison choices.

    Every operation returns a new SlotView.
    """
    filters: SlotFilter = field(default_factory=SlotFilter)
    sort: SlotSort = DEFAULT_SORT
    comparison_mode: bool = False
    comparing: tuple[int, ...] = ()

    def with_filters(self, **changes) -> "SlotView":
        return replace(self, filters=replace(self.filters, **changes))

    def with_sort(self, sort_field: SortField, direction: SortDirection) -> "SlotView":
        return replace(self, sort=SlotSort(SortField(sort_field), SortDirection(direction)))

    def toggle_comparison(self) -> "SlotView":
        entering = not self.comparison_mode
        return replace(self, comparison_mode=entering, comparing=() if entering else self.comparing)

    def add_to_comparison(self, slot_index: int) -> "SlotView":
        if slot_index in self.comparing or len(self.comparing) >= MAX_COMPARED_SLOTS:
            return self
        return replace(self, comparing=self.comparing + (slot_index,))

    def remove_from_comparison(self, slot_index: int) -> "SlotView":
        return replace(self, comparing=tuple(i for i in self.comparing if i != slot_index))

    def clear_comparison(self) -> "SlotView":
        return replace(self, comparing=())

    def visible(self, slots: Iterable[SuggestedSlot]) -> list[SuggestedSlot]:
        return rank_slots(slots, self.filters, self.sort)

    def is_visible(self, slots: Iterable[SuggestedSlot], slot_index: int) -> bool:
        return any(s.slot_index == slot_index for s in filter_slots(slots, self.filters))

    def rank(self, slots: Iterable[SuggestedSlot], slot_index: int) -> int:
        return slot_rank(self.visible(slots), slot_index)

    def comparison(self, slots: Sequence[SuggestedSlot]) -> Optional[SlotComparison]:
        """Compare the two chosen slots, or None unless exactly two are chosen."""
        if len(self.comparing) != MAX_COMPARED_SLOTS:
            return None
        slot_a = _find(slots, self.comparing[0])
        slot_b = _find(slots, self.comparing[1])
        if slot_a is None or slot_b is None:
            return None
        return compare_slots(slot_a, slot_b)
