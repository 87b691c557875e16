"""
Recording orchestrator errors.
"""


class RecordingError(Exception):
    """Base exception for recording lifecycle failures."""

    pass


class NavigationBusyError(RecordingError):
    """A next/next-full navigation is already in flight."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"{operation}() rejected: navigation already in progress")
