"""
Monitoring endpoints.

Read-only views of pipeline state for the operator UI and LAN tools.
"""

from fastapi import APIRouter, HTTPException, Request

from .. import __version__
from ..jobs.models import Job, JobStatus
from ..routines.models import StateSnapshot
from .models import HealthResponse, JobListResponse

router = APIRouter(prefix="/monitor", tags=["monitoring"])


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    context = request.app.state.context
    supervisor = request.app.state.supervisor
    device = request.app.state.orchestrator.device
    return HealthResponse(
        version=__version__,
        competition_loaded=context.store.has_competition,
        queue_length=supervisor.get_queue_length(),
        encoder_busy=supervisor.is_busy,
        device_connected=device.is_connected,
        device_recording=device.is_recording,
    )


@router.get("/state", response_model=StateSnapshot)
async def get_state(request: Request):
    """Competition, current routine, next routine and cursor index."""
    return request.app.state.context.store.snapshot()


@router.get("/jobs", response_model=JobListResponse)
async def list_jobs(request: Request):
    jobs = request.app.state.context.job_queue.get_all()

    def count(status: JobStatus) -> int:
        return sum(1 for j in jobs if j.status == status)

    return JobListResponse(
        jobs=jobs,
        pending_count=count(JobStatus.PENDING),
        running_count=count(JobStatus.RUNNING),
        failed_count=count(JobStatus.FAILED),
        done_count=count(JobStatus.DONE),
    )


@router.get("/jobs/{job_id}", response_model=Job)
async def get_job(job_id: str, request: Request):
    job = request.app.state.context.job_queue.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    return job
