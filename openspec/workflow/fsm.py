"""Change lifecycle state machine using transitions library.

States only move forward: draft -> validated -> applied -> archived.
Archived is terminal.

Usage:
    from openspec.workflow.fsm import ChangeFSM

    fsm = ChangeFSM(change_dir)
    fsm.mark_validated()
    fsm.mark_applied()
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable

from transitions import Machine

from openspec.lib.store import load_meta, update_meta

logger = logging.getLogger(__name__)


# State values must match ChangeStatus enum values
STATES = [
    "draft",
    "validated",
    "applied",
    "archived",
]

# Each trigger becomes a method on the FSM
TRANSITIONS = [
    {"trigger": "mark_validated", "source": "draft", "dest": "validated"},
    {"trigger": "mark_applied", "source": "validated", "dest": "applied"},
    {"trigger": "mark_archived", "source": "applied", "dest": "archived"},
]

# Timestamp recorded in meta.env on entering a state
STAMP_FOR = {
    "validated": "VALIDATED_AT",
    "applied": "APPLIED_AT",
    "archived": "ARCHIVED_AT",
}


def _build_trigger_lookup() -> dict[tuple[str, str], str]:
    """Build lookup from (source, dest) -> trigger name."""
    lookup: dict[tuple[str, str], str] = {}
    for t in TRANSITIONS:
        key = (t["source"], t["dest"])
        if key not in lookup:
            lookup[key] = t["trigger"]
    return lookup


TRIGGER_FOR = _build_trigger_lookup()


class ChangeFSM:
    """State machine for a change's lifecycle status.

    Wraps the transitions library with change-specific logic:
    - Loads initial state from meta.env
    - Persists state changes (and entry timestamps) to meta.env
    - Logs all transitions
    """

    def __init__(self, change_dir: Path, on_transition: Callable[[str, str, str], None] | None = None):
        """Initialize FSM for a change.

        Args:
            change_dir: Path to change directory (contains meta.env)
            on_transition: Optional callback(from_state, to_state, trigger) called after transitions
        """
        self.change_dir = change_dir
        self.change_id = change_dir.name
        self.on_transition = on_transition

        initial = load_meta(change_dir)["STATUS"]

        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial=initial,
            auto_transitions=False,  # Only explicit transitions
            send_event=True,  # Pass EventData to callbacks
            after_state_change="on_state_change",
        )

    def on_state_change(self, event) -> None:
        """Callback after any state transition.

        Persists state to disk and logs the transition.
        """
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        logger.info(f"[FSM] {self.change_id}: {from_state} -> {to_state} ({trigger})")

        updates = {"STATUS": to_state}
        stamp = STAMP_FOR.get(to_state)
        if stamp:
            updates[stamp] = datetime.now().isoformat(timespec="seconds")
        update_meta(self.change_dir, updates)

        if self.on_transition:
            self.on_transition(from_state, to_state, trigger)

    def can(self, trigger: str) -> bool:
        """Check if a trigger can be executed in current state."""
        return trigger in self.machine.get_triggers(self.state)

    def get_available_triggers(self) -> list[str]:
        """Get list of triggers available in current state."""
        return self.machine.get_triggers(self.state)
