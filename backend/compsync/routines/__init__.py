"""
Routine/Competition store and the routine status state machine.
"""

from .errors import (
    InvalidRoutineTransitionError,
    NoCompetitionLoadedError,
    RoutineError,
    RoutineNotFoundError,
)
from .models import (
    Competition,
    EncodedFile,
    PersistedState,
    Routine,
    RoutineStatus,
    StateSnapshot,
)
from .state import can_transition_routine, validate_routine_transition
from .store import STATE_FILE, RoutineStore

__all__ = [
    # Errors
    "RoutineError",
    "RoutineNotFoundError",
    "NoCompetitionLoadedError",
    "InvalidRoutineTransitionError",
    # Models
    "Competition",
    "EncodedFile",
    "PersistedState",
    "Routine",
    "RoutineStatus",
    "StateSnapshot",
    # State machine
    "can_transition_routine",
    "validate_routine_transition",
    # Store
    "RoutineStore",
    "STATE_FILE",
]
