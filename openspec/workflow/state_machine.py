"""Destination-based helpers over the change FSM.

Callers name the state they want; this module finds the trigger that gets
there and raises InvalidTransition when none exists.

Usage:
    from openspec.workflow.state_machine import transition

    transition(change_dir, ChangeStatus.APPLIED, reason="all tasks done")
"""

import logging
from pathlib import Path

from transitions import MachineError

from openspec.lib.errors import InvalidTransition
from openspec.lib.models import ChangeStatus
from openspec.workflow.fsm import STATES, TRIGGER_FOR, ChangeFSM

logger = logging.getLogger(__name__)

# Forward order of the lifecycle
RANK = {state: i for i, state in enumerate(STATES)}


def parse_state(status_str: str | None) -> ChangeStatus | None:
    """Parse a status string into ChangeStatus, None if unknown."""
    if status_str is None:
        return None
    for state in ChangeStatus:
        if state.value == status_str:
            return state
    return None


def at_least(state: ChangeStatus, floor: ChangeStatus) -> bool:
    return RANK[state.value] >= RANK[floor.value]


def get_state(change_dir: Path) -> ChangeStatus:
    fsm = ChangeFSM(change_dir)
    return parse_state(fsm.state)


def can_transition(change_dir: Path, to_state: ChangeStatus) -> bool:
    """Check if a transition to the given state is valid (self is a no-op)."""
    fsm = ChangeFSM(change_dir)
    if fsm.state == to_state.value:
        return True
    return (fsm.state, to_state.value) in TRIGGER_FOR


def transition(
    change_dir: Path,
    to_state: ChangeStatus,
    reason: str = "",
    fsm: ChangeFSM | None = None,
) -> None:
    """Transition a change to a new state with validation.

    Raises:
        InvalidTransition: If the transition is not allowed
    """
    fsm = fsm or ChangeFSM(change_dir)
    change_id = fsm.change_id
    current_state = fsm.state
    reason_str = f" ({reason})" if reason else ""

    if current_state == to_state.value:
        logger.debug(f"[STATE] {change_id}: already {to_state.value}, no-op")
        return

    trigger = TRIGGER_FOR.get((current_state, to_state.value))
    if trigger is None:
        raise InvalidTransition(current_state, to_state.value, change_id)

    try:
        logger.info(f"[STATE] {change_id}: {current_state} -> {to_state.value}{reason_str}")
        getattr(fsm, trigger)()
    except MachineError as e:
        raise InvalidTransition(current_state, to_state.value, change_id) from e
