"""
Routine store errors.
"""


class RoutineError(Exception):
    """Base exception for routine/competition failures."""
    pass


class NoCompetitionLoadedError(RoutineError):
    """Raised when an operation needs a competition and none is loaded."""

    def __init__(self):
        super().__init__("No competition loaded")


class RoutineNotFoundError(RoutineError):
    """Raised when a routine id is not in the loaded competition."""

    def __init__(self, routine_id: str):
        self.routine_id = routine_id
        super().__init__(f"Routine not found: {routine_id}")


class InvalidRoutineTransitionError(RoutineError):
    """Raised when attempting an illegal routine status transition."""

    def __init__(self, routine_id: str, current_state: str, target_state: str):
        self.routine_id = routine_id
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(
            f"Invalid routine state transition for {routine_id}: "
            f"{current_state} -> {target_state}"
        )
