"""
Run State Machine

Tracks the lifecycle stage of one mission run.
"""

from enum import Enum, auto
from typing import Optional, Set, Dict, Callable
import time
import logging

logger = logging.getLogger(__name__)


class RunState(Enum):
    """Mission run states"""
    IDLE = auto()           # Not started
    DISCOVERING = auto()    # Opening link, waiting for an autopilot
    READINESS = auto()      # Waiting for health checks
    LOADING = auto()        # Importing and uploading the plan
    EXECUTING = auto()      # Arming and starting the mission
    COMPLETED = auto()      # Mission start accepted
    FAILED = auto()         # A stage failed
    CANCELLED = auto()      # Cancelled by the caller


TERMINAL_STATES = {RunState.COMPLETED, RunState.FAILED, RunState.CANCELLED}

# Valid state transitions
VALID_TRANSITIONS: Dict[RunState, Set[RunState]] = {
    RunState.IDLE: {RunState.DISCOVERING, RunState.FAILED, RunState.CANCELLED},
    RunState.DISCOVERING: {RunState.READINESS, RunState.FAILED, RunState.CANCELLED},
    RunState.READINESS: {RunState.LOADING, RunState.FAILED, RunState.CANCELLED},
    RunState.LOADING: {RunState.EXECUTING, RunState.FAILED, RunState.CANCELLED},
    RunState.EXECUTING: {RunState.COMPLETED, RunState.FAILED, RunState.CANCELLED},
    RunState.COMPLETED: set(),
    RunState.FAILED: set(),
    RunState.CANCELLED: set(),
}


class RunStateMachine:
    """
    Run state machine

    Only forward transitions along the stage order, or into a
    terminal state, are allowed.
    """

    def __init__(self):
        self._state = RunState.IDLE
        self._state_enter_time = time.time()
        self._on_transition: Optional[Callable[[RunState, RunState], None]] = None

    @property
    def state(self) -> RunState:
        """Current state"""
        return self._state

    @property
    def time_in_state(self) -> float:
        """Time in current state (seconds)"""
        return time.time() - self._state_enter_time

    @property
    def is_finished(self) -> bool:
        return self._state in TERMINAL_STATES

    def can_transition_to(self, new_state: RunState) -> bool:
        """Check if transition to new state is valid"""
        return new_state in VALID_TRANSITIONS.get(self._state, set())

    def transition_to(self, new_state: RunState) -> bool:
        """
        Attempt to transition to a new state

        Args:
            new_state: Target state

        Returns:
            True if transition successful
        """
        if not self.can_transition_to(new_state):
            logger.warning(f"Invalid transition: {self._state.name} -> {new_state.name}")
            return False

        old_state = self._state
        self._state = new_state
        self._state_enter_time = time.time()

        logger.debug(f"Run state: {old_state.name} -> {new_state.name}")

        if self._on_transition:
            try:
                self._on_transition(old_state, new_state)
            except Exception as e:
                logger.error(f"Error in transition callback: {e}")

        return True

    def on_transition(self, callback: Callable[[RunState, RunState], None]):
        """Register callback for any state transition"""
        self._on_transition = callback

    def get_status(self) -> dict:
        """Get state machine status"""
        return {
            'state': self._state.name,
            'time_in_state': self.time_in_state,
            'finished': self.is_finished,
        }
