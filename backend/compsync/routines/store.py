"""
Routine/Competition store.

The in-memory authoritative list of routines plus the cursor.

Cursor model:
- The cursor is the id of the current routine, not an array index.
- Positions are always resolved against the *visible* routines
  (status != skipped), re-derived from the full list on every call.
- If the current routine becomes hidden, the cursor resolves to the first
  visible routine after it in schedule order (or the last visible one).

Persistence: snapshot JSON at ``<state_dir>/compsync-state.json``.
Cursor moves and ordinary status changes are debounced; callers pass
``immediate=True`` for critical transitions (recording start/stop).
"""

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..persistence import DebouncedSaver, LoadError, atomic_write_json, read_json
from .errors import NoCompetitionLoadedError, RoutineError, RoutineNotFoundError
from .models import (
    PERSISTED_ROUTINE_FIELDS,
    Competition,
    PersistedState,
    Routine,
    RoutineStatus,
    StateSnapshot,
)
from .state import validate_routine_transition

logger = logging.getLogger(__name__)

STATE_FILE = "compsync-state.json"

_IMMUTABLE_FIELDS = frozenset({"id"})


class RoutineStore:
    """
    Owns the loaded Competition and the current-routine cursor.

    All returned routines are copies; mutate through the store methods.
    """

    def __init__(self, state_dir: Optional[Path] = None, debounce_seconds: float = 0.5):
        """
        Args:
            state_dir: Directory for the state snapshot (defaults to cwd)
            debounce_seconds: Delay for coalesced writes
        """
        self._state_dir = Path(state_dir) if state_dir else None
        self._competition: Optional[Competition] = None
        self._current_id: Optional[str] = None
        self._lock = threading.RLock()
        self._saver = DebouncedSaver(self._write, debounce_seconds, name="routine state")

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @property
    def state_path(self) -> Path:
        base = self._state_dir if self._state_dir else Path.cwd()
        return base / STATE_FILE

    def set_state_dir(self, state_dir: Optional[Path]) -> None:
        """Point persistence at a new directory (output directory changed)."""
        self._state_dir = Path(state_dir) if state_dir else None

    def save_eventually(self) -> None:
        self._saver.save_eventually()

    def save_now(self) -> None:
        self._saver.save_now()

    def close(self) -> None:
        self._saver.close()

    def _write(self) -> None:
        with self._lock:
            if self._competition is None:
                return
            visible = self._visible()
            state = PersistedState(
                competition=self._competition,
                current_routine_id=self._current_id,
                current_routine_index=self._resolve_index(visible),
                saved_at=datetime.now(),
            )
            data = state.model_dump(mode="json")
        atomic_write_json(self.state_path, data)
        logger.debug(f"[State] Saved to {self.state_path}")

    def load_state(self) -> Optional[PersistedState]:
        """Read the persisted snapshot without applying it."""
        try:
            raw = read_json(self.state_path)
        except LoadError as e:
            logger.error(f"[State] Failed to load state: {e}")
            return None
        if raw is None:
            return None
        try:
            return PersistedState.model_validate(raw)
        except ValidationError as e:
            logger.error(f"[State] Persisted state is invalid, ignoring: {e}")
            return None

    def restore(self) -> bool:
        """
        Replace in-memory state with the persisted snapshot.

        Returns:
            True if a competition was restored
        """
        state = self.load_state()
        if state is None or state.competition is None:
            return False
        with self._lock:
            self._competition = state.competition
            self._current_id = self._restored_cursor(state)
        logger.info(f"[State] State loaded from {self.state_path}")
        return True

    # ------------------------------------------------------------------
    # Competition lifecycle
    # ------------------------------------------------------------------

    def set_competition(self, competition: Competition) -> int:
        """
        Load a (re)parsed schedule.

        If the persisted snapshot is for the same competition, routine state
        is carried forward by id and the cursor restored. Routines whose id
        has no persisted match stay pending.

        Returns:
            Number of routines matched against persisted state
        """
        competition = competition.model_copy(deep=True)
        existing = self.load_state()
        matched = 0
        current_id = competition.routines[0].id if competition.routines else None

        if (
            existing is not None
            and existing.competition is not None
            and existing.competition.competition_id == competition.competition_id
        ):
            persisted = {r.id: r for r in existing.competition.routines}
            for routine in competition.routines:
                old = persisted.get(routine.id)
                if old is None:
                    continue
                for field in PERSISTED_ROUTINE_FIELDS:
                    setattr(routine, field, getattr(old, field))
                matched += 1

            logger.info(
                f"[State] Restored state for {competition.name}, "
                f"{matched}/{len(competition.routines)} routines matched"
            )
            if matched == 0 and existing.competition.routines:
                logger.warning(
                    "[State] No routine IDs matched; routine IDs may have changed. "
                    "All progress reset to pending."
                )
            elif matched < len(competition.routines):
                logger.warning(
                    f"[State] {len(competition.routines) - matched} routines had no "
                    f"persisted state (new or changed IDs)"
                )

        with self._lock:
            self._competition = competition
            self._current_id = current_id
            if existing is not None and matched:
                self._current_id = self._restored_cursor(existing) or current_id

        self.save_now()
        return matched

    def _restored_cursor(self, state: PersistedState) -> Optional[str]:
        """Cursor id from a snapshot; older snapshots only carry an index."""
        comp = self._competition
        if comp is None or not comp.routines:
            return None
        ids = {r.id for r in comp.routines}
        if state.current_routine_id in ids:
            return state.current_routine_id
        visible = self._visible()
        if visible:
            index = min(max(state.current_routine_index, 0), len(visible) - 1)
            return visible[index].id
        return comp.routines[0].id

    @property
    def competition(self) -> Optional[Competition]:
        with self._lock:
            return self._competition.model_copy(deep=True) if self._competition else None

    @property
    def has_competition(self) -> bool:
        with self._lock:
            return self._competition is not None

    # ------------------------------------------------------------------
    # Cursor
    # ------------------------------------------------------------------

    def _visible(self) -> List[Routine]:
        if self._competition is None:
            return []
        return [r for r in self._competition.routines if r.status != RoutineStatus.SKIPPED]

    def _resolve_index(self, visible: List[Routine]) -> int:
        """Index of the cursor within ``visible`` (0 when nothing resolves)."""
        if not visible or self._competition is None:
            return 0
        if self._current_id is not None:
            for i, routine in enumerate(visible):
                if routine.id == self._current_id:
                    return i
            raw_positions = {r.id: i for i, r in enumerate(self._competition.routines)}
            anchor = raw_positions.get(self._current_id)
            if anchor is not None:
                for i, routine in enumerate(visible):
                    if raw_positions[routine.id] > anchor:
                        return i
                return len(visible) - 1
        return 0

    def visible_routines(self) -> List[Routine]:
        with self._lock:
            return [r.model_copy(deep=True) for r in self._visible()]

    def current_index(self) -> int:
        with self._lock:
            return self._resolve_index(self._visible())

    def current_routine(self) -> Optional[Routine]:
        with self._lock:
            visible = self._visible()
            if not visible:
                return None
            return visible[self._resolve_index(visible)].model_copy(deep=True)

    def next_routine(self) -> Optional[Routine]:
        with self._lock:
            visible = self._visible()
            index = self._resolve_index(visible) + 1
            if index < len(visible):
                return visible[index].model_copy(deep=True)
            return None

    def advance_to_next(self) -> Optional[Routine]:
        """
        Move the cursor one visible position forward.

        Returns:
            The new current routine, or None if already at the last one
        """
        with self._lock:
            visible = self._visible()
            index = self._resolve_index(visible)
            if index >= len(visible) - 1:
                return None
            target = visible[index + 1]
            self._current_id = target.id
            result = target.model_copy(deep=True)
        self.save_eventually()
        return result

    def go_to_prev(self) -> Optional[Routine]:
        """
        Move the cursor one visible position back.

        Returns:
            The new current routine, or None if already at the first one
        """
        with self._lock:
            visible = self._visible()
            index = self._resolve_index(visible)
            if index <= 0 or not visible:
                return None
            target = visible[index - 1]
            self._current_id = target.id
            result = target.model_copy(deep=True)
        self.save_eventually()
        return result

    def jump_to(self, routine_id: str) -> Routine:
        """
        Make ``routine_id`` the current routine.

        Raises:
            RoutineNotFoundError: Unknown id
            RoutineError: Routine is skipped (not navigable)
        """
        with self._lock:
            routine = self._find_or_raise(routine_id)
            if routine.status == RoutineStatus.SKIPPED:
                raise RoutineError(f"Cannot jump to skipped routine {routine_id}")
            self._current_id = routine.id
            result = routine.model_copy(deep=True)
        self.save_eventually()
        return result

    # ------------------------------------------------------------------
    # Routine mutation
    # ------------------------------------------------------------------

    def get_routine(self, routine_id: str) -> Optional[Routine]:
        with self._lock:
            routine = self._find(routine_id)
            return routine.model_copy(deep=True) if routine else None

    def get_routine_or_raise(self, routine_id: str) -> Routine:
        with self._lock:
            return self._find_or_raise(routine_id).model_copy(deep=True)

    def update_routine_status(
        self,
        routine_id: str,
        status: RoutineStatus,
        immediate: bool = False,
        **fields: Any,
    ) -> Routine:
        """
        Transition a routine and optionally set extra fields.

        Args:
            routine_id: Routine identifier
            status: Target status (validated against the transition table)
            immediate: Flush synchronously instead of debouncing
            **fields: Additional Routine attributes to set

        Returns:
            Copy of the updated routine

        Raises:
            RoutineNotFoundError / NoCompetitionLoadedError / InvalidRoutineTransitionError
        """
        with self._lock:
            routine = self._find_or_raise(routine_id)
            validate_routine_transition(routine.id, routine.status, status)
            self._apply_fields(routine, fields)
            old_status = routine.status
            routine.status = status
            result = routine.model_copy(deep=True)
        logger.info(
            f"[State] Routine {result.entry_number} \"{result.routine_title}\": "
            f"{old_status.value} -> {status.value}"
        )
        self._persist(immediate)
        return result

    def update_routine(self, routine_id: str, immediate: bool = False, **fields: Any) -> Routine:
        """Set routine attributes without a status change."""
        with self._lock:
            routine = self._find_or_raise(routine_id)
            self._apply_fields(routine, fields)
            result = routine.model_copy(deep=True)
        self._persist(immediate)
        return result

    def skip_routine(self, routine_id: str) -> Routine:
        """
        Hide a pending routine from navigation.

        Skipping the current routine moves the cursor to the routine that
        now resolves in its place.
        """
        with self._lock:
            was_current = self._current_id == routine_id
            routine = self.update_routine_status(routine_id, RoutineStatus.SKIPPED)
            if was_current:
                visible = self._visible()
                if visible:
                    self._current_id = visible[self._resolve_index(visible)].id
        return routine

    def unskip_routine(self, routine_id: str) -> Routine:
        return self.update_routine_status(routine_id, RoutineStatus.PENDING)

    def set_note(self, routine_id: str, note: Optional[str]) -> Routine:
        return self.update_routine(routine_id, notes=note or None)

    def get_filtered_routines(self, day_filter: Optional[str] = None) -> List[Routine]:
        with self._lock:
            if self._competition is None:
                return []
            routines = self._competition.routines
            if day_filter:
                routines = [r for r in routines if r.scheduled_day == day_filter]
            return [r.model_copy(deep=True) for r in routines]

    def snapshot(self) -> StateSnapshot:
        """Full state for broadcast sinks."""
        with self._lock:
            visible = self._visible()
            index = self._resolve_index(visible)
            current = visible[index] if visible else None
            nxt = visible[index + 1] if index + 1 < len(visible) else None
            return StateSnapshot(
                competition=self._competition.model_copy(deep=True) if self._competition else None,
                current_routine=current.model_copy(deep=True) if current else None,
                next_routine=nxt.model_copy(deep=True) if nxt else None,
                current_index=index,
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _persist(self, immediate: bool) -> None:
        if immediate:
            self.save_now()
        else:
            self.save_eventually()

    def _apply_fields(self, routine: Routine, fields: Dict[str, Any]) -> None:
        for name, value in fields.items():
            if name in _IMMUTABLE_FIELDS:
                raise ValueError(f"Routine field '{name}' is immutable")
            if name not in Routine.model_fields or name == "status":
                raise ValueError(f"Unknown routine field '{name}'")
            setattr(routine, name, value)

    def _find(self, routine_id: str) -> Optional[Routine]:
        if self._competition is None:
            return None
        for routine in self._competition.routines:
            if routine.id == routine_id:
                return routine
        return None

    def _find_or_raise(self, routine_id: str) -> Routine:
        if self._competition is None:
            raise NoCompetitionLoadedError()
        routine = self._find(routine_id)
        if routine is None:
            raise RoutineNotFoundError(routine_id)
        return routine
