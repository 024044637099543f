"""Workflow state with guarded, copy-on-write transitions.

WorkflowFSM (fsm.py) decides which step may follow which. This module
owns the payload that travels with the steps and exposes one named
operation per transition. Every operation swaps in a new frozen
WorkflowState, so a reader holding the old state never sees a
half-applied update.

Usage:
    from slotflow.workflow.state_machine import WorkflowStateMachine, WorkflowStep

    machine = WorkflowStateMachine()
    machine.go_to_loading()
    machine.go_to_suggestions(suggestion)
    machine.state.current_step  # WorkflowStep.SUGGESTIONS
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from transitions import MachineError

from slotflow.api.errors import ErrorKind
from slotflow.lib.models import AISuggestion, ManualInput
from slotflow.workflow.fsm import TRIGGER_FOR, WorkflowFSM

logger = logging.getLogger(__name__)


class WorkflowStep(Enum):
    """All workflow steps. Values match FSM state strings."""

    FORM = "form"
    LOADING = "loading"
    SUGGESTIONS = "suggestions"
    CONFIRMATION = "confirmation"
    SUCCESS = "success"
    ERROR = "error"
    HISTORY = "history"
    ANALYTICS = "analytics"


class InvalidTransition(Exception):
    """Raised when a transition is not allowed from the current step."""

    def __init__(self, from_step: str, to_step: WorkflowStep, reason: str = ""):
        self.from_step = from_step
        self.to_step = to_step
        super().__init__(
            f"Invalid transition: {from_step} -> {to_step.value}"
            + (f" ({reason})" if reason else "")
        )


class SelectionError(Exception):
    """Raised when a slot cannot be selected or locked."""

    def __init__(self, slot_index: Optional[int], message: str):
        self.slot_index = slot_index
        super().__init__(message)


@dataclass(frozen=True)
class WorkflowState:
    """Snapshot of the workflow. Replaced, never mutated."""
    current_step: WorkflowStep = WorkflowStep.FORM
    manual_input: Optional[ManualInput] = None
    ai_suggestion: Optional[AISuggestion] = None
    selected_slot_index: Optional[int] = None
    locked_slots: frozenset[int] = frozenset()
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    is_loading: bool = False
    schedule_entry_id: Optional[str] = None

    @property
    def has_suggestion(self) -> bool:
        return self.ai_suggestion is not None

    @property
    def has_selected_slot(self) -> bool:
        return self.selected_slot_index is not None


class WorkflowStateMachine:
    """Current step, per-step payload and an append-only step history."""

    def __init__(self):
        self._state = WorkflowState()
        self._history: list[WorkflowStep] = [WorkflowStep.FORM]
        self.fsm = WorkflowFSM(
            selection_check=lambda: self._state.selected_slot_index is not None,
            on_transition=self._record_step,
        )

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def step(self) -> WorkflowStep:
        return self._state.current_step

    @property
    def step_history(self) -> tuple[WorkflowStep, ...]:
        return tuple(self._history)

    def is_step(self, step: WorkflowStep) -> bool:
        return self._state.current_step == step

    def _record_step(self, from_state: str, to_state: str, trigger: str) -> None:
        self._history.append(WorkflowStep(to_state))

    def can_transition(self, to_step: WorkflowStep) -> bool:
        """True if the table allows current -> to_step (guards not evaluated)."""
        return (self.fsm.state, to_step.value) in TRIGGER_FOR

    def _transition(self, to_step: WorkflowStep, **changes) -> None:
        current = self.fsm.state
        trigger = TRIGGER_FOR.get((current, to_step.value))
        if trigger is None:
            raise InvalidTransition(current, to_step)

        try:
            moved = getattr(self.fsm, trigger)()
        except MachineError as e:
            raise InvalidTransition(current, to_step) from e
        if not moved:
            raise InvalidTransition(current, to_step, "guard rejected")

        self._state = replace(self._state, current_step=to_step, **changes)

    # Step navigation

    def go_to_form(self) -> None:
        self._transition(WorkflowStep.FORM, error=None, error_kind=None, is_loading=False)

    def go_to_loading(self) -> None:
        self._transition(WorkflowStep.LOADING, is_loading=True, error=None, error_kind=None)

    def go_to_suggestions(self, suggestion: AISuggestion) -> None:
        self._transition(
            WorkflowStep.SUGGESTIONS,
            ai_suggestion=suggestion,
            selected_slot_index=None,
            locked_slots=frozenset(),
            error=None,
            error_kind=None,
            is_loading=False,
        )

    def go_to_confirmation(self, schedule_entry_id: str) -> None:
        """Requires a selected slot; only called after a successful accept."""
        self._transition(
            WorkflowStep.CONFIRMATION,
            schedule_entry_id=schedule_entry_id,
            error=None,
            error_kind=None,
            is_loading=False,
        )

    def go_to_success(self) -> None:
        self._transition(WorkflowStep.SUCCESS, error=None, error_kind=None, is_loading=False)

    def go_to_error(self, message: str, kind: Optional[ErrorKind] = None) -> None:
        self._transition(WorkflowStep.ERROR, error=message, error_kind=kind, is_loading=False)

    def go_to_history(self) -> None:
        self._transition(WorkflowStep.HISTORY, error=None, error_kind=None, is_loading=False)

    def go_to_analytics(self) -> None:
        self._transition(WorkflowStep.ANALYTICS, error=None, error_kind=None, is_loading=False)

    # Payload updates that keep the current step

    def set_manual_input(self, manual_input: ManualInput) -> None:
        self._state = replace(self._state, manual_input=manual_input)

    def set_error(self, message: Optional[str], kind: Optional[ErrorKind] = None) -> None:
        self._state = replace(self._state, error=message, error_kind=kind if message else None)

    def clear_error(self) -> None:
        self.set_error(None)

    def _require_slot(self, slot_index: int) -> None:
        suggestion = self._state.ai_suggestion
        if suggestion is None:
            raise SelectionError(slot_index, "No suggestion to select from")
        if slot_index not in suggestion.slot_indexes:
            raise SelectionError(slot_index, f"Slot {slot_index} does not exist in suggestion {suggestion.id}")

    def set_selected_slot(self, slot_index: Optional[int]) -> None:
        """Select a slot by slot_index, or clear the selection with None."""
        if slot_index is not None:
            self._require_slot(slot_index)
            if slot_index in self._state.locked_slots:
                raise SelectionError(slot_index, f"Slot {slot_index} is locked")
        self._state = replace(self._state, selected_slot_index=slot_index)

    def lock_slot(self, slot_index: int) -> None:
        """Lock a slot. Locking the selected slot clears the selection."""
        self._require_slot(slot_index)
        selected = self._state.selected_slot_index
        self._state = replace(
            self._state,
            locked_slots=self._state.locked_slots | {slot_index},
            selected_slot_index=None if selected == slot_index else selected,
        )

    def unlock_slot(self, slot_index: int) -> None:
        self._state = replace(self._state, locked_slots=self._state.locked_slots - {slot_index})

    # Queries

    def can_go_back(self) -> bool:
        return len(self._history) > 1 and self.step not in (WorkflowStep.FORM, WorkflowStep.HISTORY)

    def can_go_forward(self) -> bool:
        step = self.step
        if step == WorkflowStep.FORM:
            return self._state.manual_input is not None
        if step == WorkflowStep.SUGGESTIONS:
            return self._state.selected_slot_index is not None
        return step == WorkflowStep.CONFIRMATION

    def reset(self) -> None:
        """Back to a fresh form with an empty history."""
        self.fsm.restart()
        self._state = WorkflowState()
        self._history = [WorkflowStep.FORM]
        logger.info("[FSM] workflow reset")
