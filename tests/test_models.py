"""Tests for slotflow.lib.models module."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from slotflow.lib.models import (
    AISuggestion,
    ManualInput,
    SlotMetadata,
    SuggestedSlot,
    SuggestionStatus,
    format_instant,
    parse_instant,
)


def in_days(days: float) -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=days)


def make_input(**overrides) -> ManualInput:
    fields = {"title": "Write quarterly report", "duration_minutes": 60, "deadline": in_days(2)}
    fields.update(overrides)
    return ManualInput(**fields)


def make_slot(index: int, confidence: float = 0.5) -> SuggestedSlot:
    return SuggestedSlot(
        slot_index=index,
        suggested_start_at=datetime(2026, 3, 2, 9, tzinfo=timezone.utc) + timedelta(hours=index),
        planned_minutes=60,
        confidence=confidence,
    )


class TestInstants:
    """Tests for parse_instant / format_instant."""

    def test_parse_z_suffix(self):
        parsed = parse_instant("2026-03-02T09:00:00Z")
        assert parsed == datetime(2026, 3, 2, 9, tzinfo=timezone.utc)

    def test_naive_treated_as_utc(self):
        assert parse_instant("2026-03-02T09:00:00").tzinfo == timezone.utc

    def test_offset_preserved_as_instant(self):
        parsed = parse_instant("2026-03-02T10:00:00+01:00")
        assert parsed == datetime(2026, 3, 2, 9, tzinfo=timezone.utc)

    def test_format_uses_z(self):
        tz = timezone(timedelta(hours=2))
        assert format_instant(datetime(2026, 3, 2, 11, tzinfo=tz)) == "2026-03-02T09:00:00Z"


class TestManualInput:
    """Boundary validation of ManualInput."""

    def test_valid_input(self):
        manual_input = make_input(description="Numbers for Q1", target_task_id="task-7")
        assert manual_input.duration_minutes == 60
        assert manual_input.deadline.tzinfo is not None

    def test_blank_title_rejected(self):
        with pytest.raises(PydanticValidationError, match="Title is required"):
            make_input(title="   ")

    def test_title_too_long(self):
        with pytest.raises(PydanticValidationError):
            make_input(title="x" * 121)

    def test_description_too_long(self):
        with pytest.raises(PydanticValidationError):
            make_input(description="x" * 501)

    @pytest.mark.parametrize("minutes", [15, 45, 180])
    def test_duration_accepted(self, minutes):
        assert make_input(duration_minutes=minutes).duration_minutes == minutes

    @pytest.mark.parametrize("minutes,message", [
        (10, "at least 15"),
        (195, "must not exceed 180"),
        (50, "multiple of 15"),
    ])
    def test_duration_rejected(self, minutes, message):
        with pytest.raises(PydanticValidationError, match=message):
            make_input(duration_minutes=minutes)

    def test_past_deadline_rejected(self):
        with pytest.raises(PydanticValidationError, match="in the future"):
            make_input(deadline=in_days(-1))

    def test_deadline_beyond_one_year_rejected(self):
        with pytest.raises(PydanticValidationError, match="within 1 year"):
            make_input(deadline=in_days(400))

    def test_deadline_string_parsed(self):
        deadline = in_days(3).replace(microsecond=0)
        manual_input = make_input(deadline=format_instant(deadline))
        assert manual_input.deadline == deadline

    def test_preferred_window_accepted(self):
        start = in_days(1)
        manual_input = make_input(preferred_window=(start, start + timedelta(hours=2)))
        assert manual_input.preferred_window[1] - manual_input.preferred_window[0] == timedelta(hours=2)

    @pytest.mark.parametrize("span,message", [
        (timedelta(hours=-1), "before its end"),
        (timedelta(minutes=30), "at least 1 hour"),
        (timedelta(hours=25), "not exceed 24 hours"),
    ])
    def test_preferred_window_rejected(self, span, message):
        start = in_days(1)
        with pytest.raises(PydanticValidationError, match=message):
            make_input(preferred_window=(start, start + span))

    def test_blank_task_id_rejected(self):
        with pytest.raises(PydanticValidationError, match="Task ID cannot be empty"):
            make_input(target_task_id=" ")

    def test_frozen(self):
        manual_input = make_input()
        with pytest.raises(PydanticValidationError):
            manual_input.title = "Changed"

    def test_to_payload(self):
        start = datetime(2026, 3, 2, 9, tzinfo=timezone.utc)
        manual_input = make_input(preferred_window=(start, start + timedelta(hours=3)))
        payload = manual_input.to_payload()
        assert payload["title"] == "Write quarterly report"
        assert payload["duration_minutes"] == 60
        assert payload["deadline"].endswith("Z")
        assert payload["preferred_window"] == ["2026-03-02T09:00:00Z", "2026-03-02T12:00:00Z"]
        assert "description" not in payload
        assert "target_task_id" not in payload


class TestSuggestedSlot:
    """Tests for SuggestedSlot."""

    @pytest.mark.parametrize("confidence", [-0.1, 1.01])
    def test_confidence_outside_unit_interval_rejected(self, confidence):
        with pytest.raises(ValueError, match="confidence"):
            make_slot(0, confidence=confidence)

    def test_confidence_bounds_accepted(self):
        assert make_slot(0, confidence=0.0).confidence == 0.0
        assert make_slot(1, confidence=1.0).confidence == 1.0

    def test_non_positive_minutes_rejected(self):
        with pytest.raises(ValueError, match="planned_minutes"):
            SuggestedSlot(0, datetime(2026, 3, 2, tzinfo=timezone.utc), 0, 0.5)

    def test_is_adjusted(self):
        slot = make_slot(0)
        assert not slot.is_adjusted
        adjusted = SuggestedSlot(
            0, slot.suggested_start_at, 60, 0.5, metadata=SlotMetadata(adjusted_deadline=True)
        )
        assert adjusted.is_adjusted


class TestSlotMetadata:
    def test_from_dict(self):
        metadata = SlotMetadata.from_dict({"adjusted_duration": True, "adjustment_reason": "Too long"})
        assert metadata.adjusted
        assert metadata.adjustment_reason == "Too long"

    def test_from_empty_is_none(self):
        assert SlotMetadata.from_dict(None) is None
        assert SlotMetadata.from_dict({}) is None


class TestAISuggestion:
    """Tests for AISuggestion."""

    def test_duplicate_slot_indexes_rejected(self):
        with pytest.raises(ValueError, match="Duplicate slot_index"):
            AISuggestion("sug-1", make_input(), (make_slot(1), make_slot(1)))

    def test_get_slot_by_index_not_position(self):
        suggestion = AISuggestion("sug-1", make_input(), (make_slot(4), make_slot(2)))
        assert suggestion.get_slot(2).slot_index == 2
        assert suggestion.get_slot(0) is None
        assert suggestion.slot_indexes == frozenset({2, 4})

    def test_with_status_returns_copy(self):
        suggestion = AISuggestion("sug-1", make_input(), (make_slot(0),))
        rejected = suggestion.with_status(SuggestionStatus.REJECTED)
        assert rejected.status == SuggestionStatus.REJECTED
        assert rejected.updated_at is not None
        assert suggestion.status == SuggestionStatus.PENDING
