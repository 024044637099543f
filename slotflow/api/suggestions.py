"""
Suggestions API service.

Turns ManualInput into generate requests and backend bodies into domain
objects. The backend nests slots under items (one request may carry
several logical items); they are flattened into a single slot list with
each slot inheriting its item's metadata.
"""

import logging
from datetime import datetime
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from slotflow.api.client import ResilientClient
from slotflow.api.errors import UnknownError
from slotflow.lib.config import ACCEPT_MODE_ACCEPT_POST, APIConfig
from slotflow.lib.models import (
    AcceptResult,
    AISuggestion,
    FallbackAutoMode,
    ManualInput,
    SlotMetadata,
    SuggestedSlot,
    SuggestionStatus,
    format_instant,
    parse_instant,
)
from slotflow.lib.validate import SchemaError, validate

logger = logging.getLogger(__name__)

# suggestionType understood by the backend
MANUAL_INPUT_MODE = 0

DEFAULT_ACCEPT_MESSAGE = "Suggestion accepted successfully"


def timezone_offset(tz_name: str, at: Optional[datetime] = None) -> str:
    """UTC offset of tz_name as "+HH:MM" (UTC for unknown zones)."""
    try:
        zone = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{tz_name}', sending +00:00")
        return "+00:00"
    raw = (at or datetime.now(zone)).astimezone(zone).strftime("%z")
    return f"{raw[:3]}:{raw[3:]}"


def _optional_instant(value: Any) -> Optional[datetime]:
    return parse_instant(value) if value else None


def suggestion_from_response(data: Any, manual_input: ManualInput) -> AISuggestion:
    """Validate a generate response body and build the AISuggestion.

    Raises:
        UnknownError: if the body is malformed
    """
    try:
        validate(data, "generate_response")
    except SchemaError as e:
        raise UnknownError(f"Malformed generate response: {e}", body=data) from None

    raw = data["data"]["suggestion"]
    try:
        slots = []
        for item in raw["items"]:
            metadata = SlotMetadata.from_dict(item.get("metadata"))
            for slot in item.get("suggested_slots") or []:
                slots.append(SuggestedSlot(
                    slot_index=slot["original_index"],
                    suggested_start_at=parse_instant(slot["suggested_start_at"]),
                    planned_minutes=slot["planned_minutes"],
                    confidence=float(slot["confidence"]),
                    reason=slot.get("reason") or "",
                    metadata=metadata,
                ))

        fallback = raw.get("fallback_auto_mode") or {}
        return AISuggestion(
            id=str(raw["suggestion_id"]),
            manual_input=manual_input,
            suggested_slots=tuple(slots),
            confidence=float(raw.get("confidence", 0.0)),
            reason=raw.get("reason") or "",
            fallback_auto_mode=FallbackAutoMode(
                enabled=bool(fallback.get("enabled", False)),
                reason=fallback.get("reason") or "",
            ),
            created_at=_optional_instant(raw.get("created_at")),
            updated_at=_optional_instant(raw.get("updated_at")),
        )
    except ValueError as e:
        raise UnknownError(f"Malformed generate response: {e}", body=data) from None


def accept_result_from_response(data: Any, suggestion_id: str, slot_index: int) -> AcceptResult:
    """Validate an accept response body and extract the schedule entry id.

    Raises:
        UnknownError: if the body is malformed or carries no schedule entry id
    """
    try:
        validate(data, "accept_response")
    except SchemaError as e:
        raise UnknownError(f"Malformed accept response: {e}", body=data) from None

    nested = data.get("data") or {}
    entry_id = nested.get("schedule_entry_id") or data.get("schedule_entry_id")
    if entry_id is None:
        raise UnknownError("Accept response has no schedule_entry_id", body=data)

    return AcceptResult(
        suggestion_id=suggestion_id,
        selected_slot_index=slot_index,
        schedule_entry_id=str(entry_id),
        message=data.get("message") or DEFAULT_ACCEPT_MESSAGE,
    )


class SuggestionsService:
    """Generate/accept/status calls against the suggestions backend."""

    def __init__(self, client: ResilientClient, config: Optional[APIConfig] = None):
        self.client = client
        self.config = config or client.config

    def _suggestion_url(self, suggestion_id: str, action: str) -> str:
        return f"{self.config.endpoint_url('accept_suggestion')}/{suggestion_id}/{action}"

    async def generate(self, manual_input: ManualInput) -> AISuggestion:
        body = {
            "suggestionType": MANUAL_INPUT_MODE,
            "manual_input": manual_input.to_payload(),
            "timezone": self.config.timezone,
            "timezone_offset": timezone_offset(self.config.timezone),
        }
        response = await self.client.post(self.config.endpoint_url("generate_suggestions"), body)
        suggestion = suggestion_from_response(response.data, manual_input)
        logger.info(
            f"Generated suggestion {suggestion.id} with {len(suggestion.suggested_slots)} slots"
        )
        return suggestion

    async def accept(
        self,
        suggestion_id: str,
        slot_index: int,
        suggested_start_at: datetime,
    ) -> AcceptResult:
        body = {
            "status": SuggestionStatus.ACCEPTED.value,
            "selected_slot_index": slot_index,
            "suggested_start_at": format_instant(suggested_start_at),
        }
        if self.config.accept_mode == ACCEPT_MODE_ACCEPT_POST:
            response = await self.client.post(self._suggestion_url(suggestion_id, "accept"), body)
        else:
            response = await self.client.patch(self._suggestion_url(suggestion_id, "status"), body)
        return accept_result_from_response(response.data, suggestion_id, slot_index)

    async def update_status(self, suggestion_id: str, status: SuggestionStatus) -> None:
        """Set a suggestion's status (used for reject and reopen)."""
        await self.client.patch(
            self._suggestion_url(suggestion_id, "status"),
            {"status": status.value},
        )
