"""
Control endpoints for explicit operator actions.

Navigation, routine edits, manual encodes and job management. Every
endpoint is a thin adapter over the orchestrator / supervisor / queue.

Error mapping:
    unknown routine or job        -> 404
    illegal transition, busy nav  -> 409
    other routine errors          -> 400
"""

import logging

from fastapi import APIRouter, HTTPException, Request

from ..jobs.errors import JobNotFoundError
from ..jobs.models import JobStatus
from ..recording.errors import NavigationBusyError
from ..routines.errors import (
    InvalidRoutineTransitionError,
    NoCompetitionLoadedError,
    RoutineError,
    RoutineNotFoundError,
)
from ..routines.models import Competition
from .models import (
    JobResponse,
    NoteRequest,
    OperationResponse,
    RoutineRequest,
    RoutineResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/control", tags=["control"])


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, (RoutineNotFoundError, JobNotFoundError)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (InvalidRoutineTransitionError, NavigationBusyError, NoCompetitionLoadedError)):
        return HTTPException(status_code=409, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


def _navigation_response(routine, moved_message: str, end_message: str) -> RoutineResponse:
    if routine is None:
        return RoutineResponse(success=False, message=end_message)
    return RoutineResponse(
        success=True,
        message=f"{moved_message} #{routine.entry_number} \"{routine.routine_title}\"",
        routine=routine,
    )


# ============================================================================
# NAVIGATION
# ============================================================================

@router.post("/next", response_model=RoutineResponse)
def next_endpoint(request: Request):
    """
    Stop recording (if any), advance to the next visible routine and
    auto-record when enabled.

    Raises:
        409: Another navigation is in flight
    """
    try:
        routine = request.app.state.orchestrator.next()
    except (NavigationBusyError, RoutineError) as e:
        raise _http_error(e)
    return _navigation_response(routine, "Advanced to", "No more routines")


@router.post("/next-full", response_model=RoutineResponse)
def next_full_endpoint(request: Request):
    """Like /next but waits for the device to confirm the stop first."""
    try:
        routine = request.app.state.orchestrator.next_full()
    except (NavigationBusyError, RoutineError) as e:
        raise _http_error(e)
    return _navigation_response(routine, "Advanced to", "No more routines")


@router.post("/prev", response_model=RoutineResponse)
def prev_endpoint(request: Request):
    routine = request.app.state.orchestrator.prev()
    return _navigation_response(routine, "Moved back to", "Already at first routine")


@router.post("/jump", response_model=RoutineResponse)
def jump_endpoint(body: RoutineRequest, request: Request):
    try:
        routine = request.app.state.orchestrator.jump_to(body.routine_id)
    except RoutineError as e:
        raise _http_error(e)
    return _navigation_response(routine, "Jumped to", "")


# ============================================================================
# ROUTINE EDITS
# ============================================================================

@router.post("/skip", response_model=RoutineResponse)
def skip_endpoint(body: RoutineRequest, request: Request):
    """
    Hide a pending routine from navigation.

    Raises:
        404: Routine not found
        409: Routine is not pending
    """
    try:
        routine = request.app.state.orchestrator.skip(body.routine_id)
    except RoutineError as e:
        raise _http_error(e)
    logger.info(f"Routine {body.routine_id} skipped via control endpoint")
    return RoutineResponse(success=True, message=f"Routine {body.routine_id} skipped", routine=routine)


@router.post("/unskip", response_model=RoutineResponse)
def unskip_endpoint(body: RoutineRequest, request: Request):
    try:
        routine = request.app.state.orchestrator.unskip(body.routine_id)
    except RoutineError as e:
        raise _http_error(e)
    logger.info(f"Routine {body.routine_id} unskipped via control endpoint")
    return RoutineResponse(success=True, message=f"Routine {body.routine_id} restored", routine=routine)


@router.post("/note", response_model=RoutineResponse)
def note_endpoint(body: NoteRequest, request: Request):
    try:
        routine = request.app.state.orchestrator.set_note(body.routine_id, body.note)
    except RoutineError as e:
        raise _http_error(e)
    return RoutineResponse(success=True, message="Note saved", routine=routine)


# ============================================================================
# ENCODING
# ============================================================================

@router.post("/encode/{routine_id}", response_model=JobResponse)
def encode_routine_endpoint(routine_id: str, request: Request):
    """
    Queue a (re)encode of one routine's raw recording.

    Raises:
        404: Routine not found
        409: Routine cannot be queued in its current status
        400: Routine has no recording
    """
    try:
        job = request.app.state.supervisor.encode_routine(routine_id)
    except RoutineError as e:
        raise _http_error(e)
    logger.info(f"Encode for routine {routine_id} requested via control endpoint (job {job.id})")
    return JobResponse(success=True, message=f"Encode queued for routine {routine_id}", job=job)


@router.post("/encode-all", response_model=OperationResponse)
def encode_all_endpoint(request: Request):
    try:
        queued = request.app.state.supervisor.encode_all()
    except RoutineError as e:
        raise _http_error(e)
    return OperationResponse(success=True, message=f"Queued {queued} routines for encoding")


@router.post("/cancel-current", response_model=OperationResponse)
def cancel_current_endpoint(request: Request):
    cancelled = request.app.state.supervisor.cancel_current()
    if not cancelled:
        return OperationResponse(success=False, message="No encode in progress")
    return OperationResponse(success=True, message="Current encode cancelled")


# ============================================================================
# JOB MANAGEMENT
# ============================================================================

@router.post("/jobs/{job_id}/retry", response_model=OperationResponse)
def retry_job_endpoint(job_id: str, request: Request):
    """
    Manually retry a FAILED job (attempts reset, no backoff).

    Raises:
        404: Job not found
        409: Job is not FAILED
    """
    queue = request.app.state.context.job_queue
    job = queue.get(job_id)
    if job is None:
        raise _http_error(JobNotFoundError(job_id))
    if not queue.retry(job_id):
        raise HTTPException(
            status_code=409,
            detail=f"Job {job_id} is {job.status.value}, only failed jobs can be retried",
        )
    request.app.state.supervisor.kick()
    logger.info(f"Job {job_id} retried via control endpoint")
    return OperationResponse(success=True, message=f"Job {job_id} queued for retry")


@router.delete("/jobs/{job_id}", response_model=OperationResponse)
def remove_job_endpoint(job_id: str, request: Request):
    """
    Remove a job from the queue. Running jobs cannot be removed.

    Raises:
        404: Job not found
        409: Job is running
    """
    queue = request.app.state.context.job_queue
    job = queue.get(job_id)
    if job is None:
        raise _http_error(JobNotFoundError(job_id))
    if job.status == JobStatus.RUNNING or not queue.remove(job_id):
        raise HTTPException(status_code=409, detail=f"Job {job_id} is running and cannot be removed")
    return OperationResponse(success=True, message=f"Job {job_id} removed")


# ============================================================================
# COMPETITION
# ============================================================================

@router.post("/competition", response_model=OperationResponse)
def load_competition_endpoint(body: Competition, request: Request):
    """
    Load a parsed schedule.

    Routines whose id matches the persisted snapshot of the same
    competition keep their status, paths and encoded files.
    """
    matched = request.app.state.context.store.set_competition(body)
    request.app.state.orchestrator.broadcast_full_state()
    logger.info(f"Competition {body.competition_id} loaded via control endpoint")
    return OperationResponse(
        success=True,
        message=f"Loaded {len(body.routines)} routines ({matched} restored from saved state)",
    )
