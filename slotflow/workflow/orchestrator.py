"""
Suggestion workflow orchestration.

Drives the generate and accept use cases on top of SuggestionsService
and keeps WorkflowStateMachine in step with what the network did:

    form -> loading -> suggestions -> confirmation -> (delay) -> success
                 \\            \\
                  -> error <---+   (retry / retry_accept from here)

Business-rule failures (nothing selected, slot locked or unknown) are
reported as an in-step validation error and never reach the transport.
Transport failures arrive as APIError, are translated into a short
message per ErrorKind and move the workflow to error.

Only one generate and one accept may be in flight at a time. A response
that arrives after reset() or close() is dropped.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Optional

from slotflow.api.errors import APIError, ErrorKind
from slotflow.api.suggestions import SuggestionsService
from slotflow.lib.analytics import (
    ERROR_OCCURRED,
    FILTER_APPLIED,
    HISTORY_VIEWED,
    SUGGESTION_ACCEPTED,
    SUGGESTION_GENERATED,
    SUGGESTION_REJECTED,
    SUGGESTION_REOPENED,
    WORKFLOW_CLOSED,
    AnalyticsSink,
    LoggingAnalyticsSink,
    track_event,
)
from slotflow.lib.models import (
    AcceptResult,
    AISuggestion,
    ManualInput,
    SuggestedSlot,
    SuggestionStatus,
)
from slotflow.lib.ranking import SlotComparison, SlotView, SortDirection, SortField
from slotflow.workflow.scheduling import ScheduledTask
from slotflow.workflow.state_machine import (
    InvalidTransition,
    SelectionError,
    WorkflowState,
    WorkflowStateMachine,
    WorkflowStep,
)

logger = logging.getLogger(__name__)


ACTION_GENERATE = "generate"
ACTION_ACCEPT = "accept"
ACTION_REJECT = "reject"
ACTION_REOPEN = "reopen"

ERROR_MESSAGES = {
    ErrorKind.AUTH: "Authentication failed. Please sign in again.",
    ErrorKind.NETWORK: "Network error. Please check your connection.",
    ErrorKind.TIMEOUT: "The request timed out. Please try again.",
    ErrorKind.VALIDATION: "Validation failed. Please check your input.",
    ErrorKind.RATE_LIMIT: "Rate limit exceeded. Please try again later.",
    ErrorKind.NOT_FOUND: "The suggestion could not be found.",
    ErrorKind.SERVER: "AI service is currently unavailable. Please try again later.",
}

UNKNOWN_ERROR_MESSAGES = {
    ACTION_GENERATE: "Error occurred while generating suggestions.",
    ACTION_ACCEPT: "Error occurred while accepting the suggestion.",
    ACTION_REJECT: "Error occurred while rejecting the suggestion.",
    ACTION_REOPEN: "Error occurred while reopening the suggestion.",
}


def user_message(error: APIError, action: str) -> str:
    """Short user-facing message for a failed action."""
    message = ERROR_MESSAGES.get(error.kind)
    if message is None:
        return UNKNOWN_ERROR_MESSAGES.get(action, "Something went wrong. Please try again.")
    if error.kind == ErrorKind.RATE_LIMIT and getattr(error, "retry_after", None):
        minutes = max(1, round(error.retry_after / 60))
        return f"Rate limit exceeded. Please try again in about {minutes} minute(s)."
    return message


@dataclass(frozen=True)
class AcceptRequest:
    """The exact accept call last sent, kept for retry_accept."""
    suggestion_id: str
    slot_index: int
    suggested_start_at: datetime


class SuggestionOrchestrator:
    """Runs the suggestion workflow for one user session."""

    def __init__(
        self,
        service: SuggestionsService,
        machine: Optional[WorkflowStateMachine] = None,
        analytics: Optional[AnalyticsSink] = None,
        on_success: Optional[Callable[[str], None]] = None,
        confirmation_delay: Optional[float] = None,
    ):
        """
        Args:
            service: Backend access for generate/accept/status calls
            machine: Workflow state (a fresh one if omitted)
            analytics: Receives workflow events (logged if omitted); failures are ignored
            on_success: Called once with the schedule entry id when success is reached
            confirmation_delay: Seconds spent in confirmation before success
                (service.config.confirmation_delay if omitted)
        """
        self.service = service
        self.machine = machine or WorkflowStateMachine()
        self.analytics = analytics if analytics is not None else LoggingAnalyticsSink()
        self.on_success = on_success
        if confirmation_delay is None:
            confirmation_delay = service.config.confirmation_delay
        self.confirmation_delay = confirmation_delay
        self.view = SlotView()

        self._is_loading = False
        self._is_accepting = False
        self._last_request: Optional[ManualInput] = None
        self._last_accept: Optional[AcceptRequest] = None
        self._last_error: Optional[APIError] = None
        self._last_action: Optional[str] = None
        self._confirmation_task: Optional[ScheduledTask] = None
        # Bumped by reset(); responses from an older session are dropped
        self._session = 0

    # Properties

    @property
    def state(self) -> WorkflowState:
        return self.machine.state

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def is_accepting(self) -> bool:
        return self._is_accepting

    @property
    def last_error(self) -> Optional[APIError]:
        return self._last_error

    @property
    def confirmation_task(self) -> Optional[ScheduledTask]:
        return self._confirmation_task

    @property
    def can_retry(self) -> bool:
        """True if the last failure is retryable and its request is remembered."""
        if self._last_error is None or not self._last_error.retryable:
            return False
        if self._last_action == ACTION_ACCEPT:
            return self._last_accept is not None
        if self._last_action == ACTION_GENERATE:
            return self._last_request is not None
        return False

    # Generate

    async def generate(self, manual_input: ManualInput) -> Optional[AISuggestion]:
        """Request suggestions for manual_input.

        Returns the suggestion, or None if the call was ignored, failed
        or was superseded. Failures are reflected in state and last_error.
        """
        if self._is_loading:
            logger.warning("[WORKFLOW] generate ignored: a generate request is already in flight")
            return None

        self.machine.go_to_loading()
        self.machine.set_manual_input(manual_input)
        self._last_request = manual_input
        self._last_error = None
        self._is_loading = True

        session = self._session
        try:
            suggestion = await self.service.generate(manual_input)
        except APIError as e:
            if self._is_current(session, ACTION_GENERATE):
                self._fail(e, ACTION_GENERATE)
            return None
        finally:
            if session == self._session:
                self._is_loading = False

        if not self._is_current(session, ACTION_GENERATE):
            return None

        self._show(suggestion)
        track_event(
            self.analytics,
            SUGGESTION_GENERATED,
            suggestion_id=suggestion.id,
            slot_count=len(suggestion.suggested_slots),
            confidence=suggestion.confidence,
            duration_minutes=manual_input.duration_minutes,
            fallback_auto_mode=suggestion.fallback_auto_mode.enabled,
        )
        return suggestion

    async def retry(self) -> Optional[AISuggestion]:
        """Re-run generate with the last input, if there is one."""
        if self._last_request is None:
            logger.warning("[WORKFLOW] Nothing to retry: no previous generate request")
            return None
        logger.info("[WORKFLOW] Retrying last generate request")
        return await self.generate(self._last_request)

    # Accept

    async def accept(self, slot_index: Optional[int] = None) -> Optional[AcceptResult]:
        """Accept slot_index (or the selected slot).

        Invalid selections set a validation error on the current step and
        return None without calling the backend.
        """
        if self._is_accepting:
            logger.warning("[WORKFLOW] accept ignored: an accept request is already in flight")
            return None
        if not self.machine.is_step(WorkflowStep.SUGGESTIONS):
            raise InvalidTransition(self.machine.fsm.state, WorkflowStep.CONFIRMATION, "accept outside suggestions")

        state = self.machine.state
        index = slot_index if slot_index is not None else state.selected_slot_index
        problem = self._accept_problem(state, index)
        if problem:
            logger.warning(f"[WORKFLOW] accept rejected: {problem}")
            self.machine.set_error(problem, ErrorKind.VALIDATION)
            return None

        if state.selected_slot_index != index:
            self.machine.set_selected_slot(index)

        slot = state.ai_suggestion.get_slot(index)
        request = AcceptRequest(
            suggestion_id=state.ai_suggestion.id,
            slot_index=index,
            suggested_start_at=slot.suggested_start_at,
        )
        self._last_accept = request
        return await self._submit_accept(request)

    async def retry_accept(self) -> Optional[AcceptResult]:
        """Re-send the last accept request unchanged."""
        if self._last_accept is None:
            logger.warning("[WORKFLOW] Nothing to retry: no previous accept request")
            return None
        if not self.machine.is_step(WorkflowStep.ERROR) or self._last_action != ACTION_ACCEPT:
            logger.warning("[WORKFLOW] retry_accept ignored: the last accept did not fail")
            return None
        if self._is_accepting:
            logger.warning("[WORKFLOW] retry_accept ignored: an accept request is already in flight")
            return None

        request = self._last_accept
        if self.machine.state.selected_slot_index != request.slot_index:
            try:
                self.machine.set_selected_slot(request.slot_index)
            except SelectionError as e:
                self.machine.set_error(str(e), ErrorKind.VALIDATION)
                return None

        logger.info(f"[WORKFLOW] Retrying accept of slot {request.slot_index} for {request.suggestion_id}")
        return await self._submit_accept(request)

    @staticmethod
    def _accept_problem(state: WorkflowState, index: Optional[int]) -> Optional[str]:
        suggestion = state.ai_suggestion
        if suggestion is None:
            return "No suggestion to accept"
        if index is None:
            return "No slot selected"
        if index not in suggestion.slot_indexes:
            return f"Slot {index} does not exist in this suggestion"
        if index in state.locked_slots:
            return f"Slot {index} is locked"
        return None

    async def _submit_accept(self, request: AcceptRequest) -> Optional[AcceptResult]:
        self._is_accepting = True
        self._last_error = None
        self.machine.clear_error()

        session = self._session
        try:
            result = await self.service.accept(
                request.suggestion_id, request.slot_index, request.suggested_start_at
            )
        except APIError as e:
            if self._is_current(session, ACTION_ACCEPT):
                self._fail(e, ACTION_ACCEPT)
            return None
        finally:
            if session == self._session:
                self._is_accepting = False

        if not self._is_current(session, ACTION_ACCEPT):
            return None

        self._last_accept = None
        self.machine.go_to_confirmation(result.schedule_entry_id)
        track_event(
            self.analytics,
            SUGGESTION_ACCEPTED,
            suggestion_id=request.suggestion_id,
            slot_index=request.slot_index,
            schedule_entry_id=result.schedule_entry_id,
        )
        self._schedule_success(result.schedule_entry_id)
        return result

    def _schedule_success(self, schedule_entry_id: str) -> None:
        self._cancel_confirmation()

        def advance() -> None:
            if not self.machine.is_step(WorkflowStep.CONFIRMATION):
                logger.info("[WORKFLOW] Skipping auto-advance: no longer in confirmation")
                return
            self.machine.go_to_success()
            if self.on_success is None:
                return
            try:
                self.on_success(schedule_entry_id)
            except Exception as e:
                logger.warning(f"[WORKFLOW] on_success callback failed: {e}")

        self._confirmation_task = ScheduledTask(self.confirmation_delay, advance)

    def _cancel_confirmation(self) -> None:
        if self._confirmation_task is not None:
            self._confirmation_task.cancel()
            self._confirmation_task = None

    # Reject / reopen

    async def reject(self, reason: Optional[str] = None) -> bool:
        """Mark the current suggestion rejected and return to the form."""
        suggestion = self.machine.state.ai_suggestion
        if suggestion is None:
            self.machine.set_error("No suggestion to reject", ErrorKind.VALIDATION)
            return False

        try:
            await self.service.update_status(suggestion.id, SuggestionStatus.REJECTED)
        except APIError as e:
            self._record_failure(e, ACTION_REJECT)
            self.machine.set_error(user_message(e, ACTION_REJECT), e.kind)
            return False

        track_event(self.analytics, SUGGESTION_REJECTED, suggestion_id=suggestion.id, reason=reason or "")
        self._last_accept = None
        self.machine.go_to_form()
        return True

    async def reopen(self, suggestion: AISuggestion) -> Optional[AISuggestion]:
        """Set an earlier suggestion back to pending and show its slots again."""
        if self._is_loading or self._is_accepting:
            logger.warning("[WORKFLOW] reopen ignored: a request is already in flight")
            return None

        if not self.machine.is_step(WorkflowStep.FORM):
            self._cancel_confirmation()
            self.machine.go_to_form()
        self.machine.go_to_loading()
        self.machine.set_manual_input(suggestion.manual_input)
        self._last_request = suggestion.manual_input
        self._last_error = None
        self._is_loading = True

        session = self._session
        try:
            await self.service.update_status(suggestion.id, SuggestionStatus.PENDING)
        except APIError as e:
            if self._is_current(session, ACTION_REOPEN):
                self._fail(e, ACTION_REOPEN)
            return None
        finally:
            if session == self._session:
                self._is_loading = False

        if not self._is_current(session, ACTION_REOPEN):
            return None

        reopened = suggestion.with_status(SuggestionStatus.PENDING)
        self._show(reopened)
        track_event(self.analytics, SUGGESTION_REOPENED, suggestion_id=suggestion.id)
        return reopened

    # Failure handling

    def _is_current(self, session: int, action: str) -> bool:
        if session != self._session:
            logger.info(f"[WORKFLOW] Dropping {action} response from a reset session")
            return False
        return True

    def _record_failure(self, error: APIError, action: str) -> None:
        self._last_error = error
        self._last_action = action
        logger.warning(f"[WORKFLOW] {action} failed ({error.kind.value}): {error.message}")
        track_event(
            self.analytics,
            ERROR_OCCURRED,
            context=action,
            kind=error.kind.value,
            status=error.status,
            message=error.message,
        )

    def _fail(self, error: APIError, action: str) -> None:
        self._record_failure(error, action)
        self.machine.go_to_error(user_message(error, action), error.kind)

    def _show(self, suggestion: AISuggestion) -> None:
        self.machine.go_to_suggestions(suggestion)
        self.view = replace(self.view, comparison_mode=False, comparing=())

    # Selection

    def select_slot(self, slot_index: int) -> bool:
        """Select a slot. Leaves comparison mode. False if locked or unknown."""
        try:
            self.machine.set_selected_slot(slot_index)
        except SelectionError as e:
            self.machine.set_error(str(e), ErrorKind.VALIDATION)
            return False
        if self.view.comparison_mode:
            self.view = self.view.toggle_comparison()
        if self.machine.is_step(WorkflowStep.SUGGESTIONS):
            self.machine.clear_error()
        return True

    def clear_selection(self) -> None:
        self.machine.set_selected_slot(None)

    def lock_slot(self, slot_index: int) -> bool:
        try:
            self.machine.lock_slot(slot_index)
        except SelectionError as e:
            self.machine.set_error(str(e), ErrorKind.VALIDATION)
            return False
        return True

    def unlock_slot(self, slot_index: int) -> None:
        self.machine.unlock_slot(slot_index)

    # View

    def _slots(self) -> tuple[SuggestedSlot, ...]:
        suggestion = self.machine.state.ai_suggestion
        return suggestion.suggested_slots if suggestion else ()

    def update_filters(self, **changes) -> None:
        self.view = self.view.with_filters(**changes)
        track_event(
            self.analytics,
            FILTER_APPLIED,
            fields=sorted(changes),
            visible_count=len(self.visible_slots()),
        )

    def set_sort(self, sort_field: SortField, direction: SortDirection = SortDirection.DESC) -> None:
        self.view = self.view.with_sort(sort_field, direction)

    def toggle_comparison(self) -> None:
        """Enter or leave comparison mode. Entering clears the selection."""
        self.view = self.view.toggle_comparison()
        if self.view.comparison_mode and self.machine.state.selected_slot_index is not None:
            self.machine.set_selected_slot(None)

    def add_to_comparison(self, slot_index: int) -> bool:
        if slot_index not in {s.slot_index for s in self._slots()}:
            logger.warning(f"[WORKFLOW] Cannot compare unknown slot {slot_index}")
            return False
        before = self.view.comparing
        self.view = self.view.add_to_comparison(slot_index)
        return self.view.comparing != before

    def remove_from_comparison(self, slot_index: int) -> None:
        self.view = self.view.remove_from_comparison(slot_index)

    def visible_slots(self) -> list[SuggestedSlot]:
        return self.view.visible(self._slots())

    def slot_comparison(self) -> Optional[SlotComparison]:
        return self.view.comparison(self._slots())

    def slot_rank(self, slot_index: int) -> int:
        return self.view.rank(self._slots(), slot_index)

    # Navigation

    def back_to_form(self) -> None:
        self._cancel_confirmation()
        self.machine.go_to_form()

    def show_history(self) -> None:
        self.machine.go_to_history()
        track_event(self.analytics, HISTORY_VIEWED, from_step=self.machine.step_history[-2].value)

    def show_analytics(self) -> None:
        self.machine.go_to_analytics()

    def reset(self) -> None:
        """Cancel pending work and start over from an empty form."""
        self._cancel_confirmation()
        self._session += 1
        self._is_loading = False
        self._is_accepting = False
        self._last_request = None
        self._last_accept = None
        self._last_error = None
        self._last_action = None
        self.view = SlotView()
        self.machine.reset()

    def close(self) -> None:
        """End the session: cancel the auto-advance and reset."""
        step = self.machine.step
        self._cancel_confirmation()
        track_event(self.analytics, WORKFLOW_CLOSED, step=step.value)
        self.reset()
