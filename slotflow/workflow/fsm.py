"""Suggestion workflow state machine using the transitions library.

Defines which step may follow which. Payload (input, suggestion,
selection, error) lives in WorkflowStateMachine; this module only
knows step names, triggers and the selection guard on confirm.

Usage:
    from slotflow.workflow.fsm import WorkflowFSM

    fsm = WorkflowFSM(selection_check=lambda: True)
    fsm.start_loading()     # form -> loading
    fsm.show_suggestions()  # loading -> suggestions
"""

import logging
from typing import Callable

from transitions import Machine

logger = logging.getLogger(__name__)


STATES = [
    "form",
    "loading",
    "suggestions",
    "confirmation",
    "success",
    "error",
    "history",
    "analytics",
]

INITIAL_STATE = "form"

# Each trigger becomes a method on the FSM
TRANSITIONS = [
    # Returning to the form is always allowed
    {"trigger": "back_to_form", "source": "*", "dest": "form"},

    # Generate
    {"trigger": "start_loading", "source": "form", "dest": "loading"},
    {"trigger": "start_loading", "source": "error", "dest": "loading"},  # business retry
    {"trigger": "show_suggestions", "source": "loading", "dest": "suggestions"},

    # Accept (retry_accept confirms straight from error)
    {"trigger": "confirm", "source": "suggestions", "dest": "confirmation", "conditions": "has_selection"},
    {"trigger": "confirm", "source": "error", "dest": "confirmation", "conditions": "has_selection"},
    {"trigger": "succeed", "source": "confirmation", "dest": "success"},

    # Failure of any in-flight operation
    {"trigger": "fail", "source": "loading", "dest": "error"},
    {"trigger": "fail", "source": "suggestions", "dest": "error"},
    {"trigger": "fail", "source": "error", "dest": "error"},

    # Side excursions
    {"trigger": "show_history", "source": "form", "dest": "history"},
    {"trigger": "show_history", "source": "suggestions", "dest": "history"},
    {"trigger": "show_analytics", "source": "form", "dest": "analytics"},
    {"trigger": "show_analytics", "source": "suggestions", "dest": "analytics"},
]


def _build_trigger_lookup() -> dict[tuple[str, str], str]:
    """Build lookup from (source, dest) -> trigger name, expanding "*"."""
    lookup: dict[tuple[str, str], str] = {}
    for t in TRANSITIONS:
        sources = STATES if t["source"] == "*" else [t["source"]]
        for source in sources:
            lookup.setdefault((source, t["dest"]), t["trigger"])
    return lookup


TRIGGER_FOR = _build_trigger_lookup()


class WorkflowFSM:
    """State machine for the suggestion workflow steps.

    Wraps the transitions library:
    - Only explicit triggers (no auto to_<state> methods)
    - confirm is guarded by selection_check
    - Every completed transition is logged and reported to on_transition
    """

    def __init__(
        self,
        selection_check: Callable[[], bool],
        on_transition: Callable[[str, str, str], None] | None = None,
    ):
        """
        Args:
            selection_check: Returns True when a slot is currently selected
            on_transition: Optional callback(from_state, to_state, trigger)
        """
        self.selection_check = selection_check
        self.on_transition = on_transition

        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial=INITIAL_STATE,
            auto_transitions=False,
            send_event=True,
            after_state_change="on_state_change",
        )

    def has_selection(self, event) -> bool:
        return self.selection_check()

    def on_state_change(self, event) -> None:
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        logger.info(f"[FSM] {from_state} -> {to_state} ({trigger})")

        if self.on_transition:
            self.on_transition(from_state, to_state, trigger)

    def can(self, trigger: str) -> bool:
        """Check if a trigger can be executed in current state (ignoring guards)."""
        return trigger in self.machine.get_triggers(self.state)

    def get_available_triggers(self) -> list[str]:
        return self.machine.get_triggers(self.state)

    def restart(self) -> None:
        """Jump back to the initial state without firing callbacks."""
        self.machine.set_state(INITIAL_STATE)
