"""
Routine status transition validation.

Forward path:
    pending -> recording -> recorded -> (queued ->) encoding -> encoded
            -> uploading -> uploaded -> confirmed

Side paths:
    pending <-> skipped
    recorded / queued / encoding -> failed   (never auto-recovered)
    failed / encoded -> queued / encoding   (manual re-encode)
    uploading -> encoded                    (upload abandoned)
    any recorded-or-later status -> recording (operator re-records)

Staying in the same status is always allowed.
"""

from typing import Dict, FrozenSet

from .errors import InvalidRoutineTransitionError
from .models import RoutineStatus

S = RoutineStatus

_ROUTINE_TRANSITIONS: Dict[RoutineStatus, FrozenSet[RoutineStatus]] = {
    S.PENDING: frozenset({S.SKIPPED, S.RECORDING}),
    S.SKIPPED: frozenset({S.PENDING}),
    S.RECORDING: frozenset({S.RECORDED}),
    S.RECORDED: frozenset({S.QUEUED, S.ENCODING, S.FAILED, S.RECORDING}),
    S.QUEUED: frozenset({S.ENCODING, S.FAILED, S.RECORDING}),
    S.ENCODING: frozenset({S.ENCODED, S.FAILED, S.RECORDING}),
    S.ENCODED: frozenset({S.UPLOADING, S.QUEUED, S.ENCODING, S.RECORDING}),
    S.UPLOADING: frozenset({S.UPLOADED, S.ENCODED, S.RECORDING}),
    S.UPLOADED: frozenset({S.CONFIRMED, S.RECORDING}),
    S.CONFIRMED: frozenset({S.RECORDING}),
    S.FAILED: frozenset({S.QUEUED, S.ENCODING, S.RECORDING}),
}


def can_transition_routine(from_status: RoutineStatus, to_status: RoutineStatus) -> bool:
    """Check if a routine status transition is legal."""
    if from_status == to_status:
        return True
    return to_status in _ROUTINE_TRANSITIONS.get(from_status, frozenset())


def validate_routine_transition(
    routine_id: str,
    from_status: RoutineStatus,
    to_status: RoutineStatus,
) -> None:
    """
    Raises:
        InvalidRoutineTransitionError: If the transition is not allowed
    """
    if not can_transition_routine(from_status, to_status):
        raise InvalidRoutineTransitionError(routine_id, from_status.value, to_status.value)
