"""
CompSync capture backend: pipeline wiring and the FastAPI application.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .context import PipelineContext
from .devices.base import CaptureDevice
from .devices.simulation import SimulatedCaptureDevice
from .encoding.process import PID_FILE_NAME, PidFile
from .encoding.supervisor import EncoderSupervisor, RunnerFactory
from .jobs.queue import QUEUE_FILE, JobQueue
from .recording.orchestrator import RecordingOrchestrator
from .recovery.crash import run_crash_recovery
from .routes import control, monitoring
from .routines.store import RoutineStore
from .services.ports import BroadcastSink, RecordingBroadcastSink, UploadService
from .services.startup import run_startup_checks
from .settings.provider import JsonSettingsProvider, get_app_home

logger = logging.getLogger(__name__)

# DONE jobs older than this are dropped at startup
COMPLETED_JOB_RETENTION_SECONDS = 7 * 24 * 3600


@dataclass
class Pipeline:
    """Fully wired pipeline components."""

    context: PipelineContext
    supervisor: EncoderSupervisor
    orchestrator: RecordingOrchestrator
    pid_file: PidFile

    def shutdown(self) -> None:
        """Stop event dispatch and flush all pending writes."""
        self.orchestrator.stop()
        self.supervisor.shutdown()
        self.context.job_queue.close()
        self.context.store.close()
        logger.info("Pipeline shut down, state flushed")


def build_pipeline(
    home: Optional[Path] = None,
    settings_provider=None,
    device: Optional[CaptureDevice] = None,
    broadcast: Optional[BroadcastSink] = None,
    uploads: Optional[UploadService] = None,
    runner_factory: Optional[RunnerFactory] = None,
    background: bool = True,
) -> Pipeline:
    """
    Construct and load every pipeline component.

    The job queue is loaded (interrupted jobs reset to pending) and the
    routine snapshot restored, but no recovery or encoding runs yet.
    """
    home = Path(home) if home else get_app_home()
    home.mkdir(parents=True, exist_ok=True)
    settings_provider = settings_provider or JsonSettingsProvider(home / "settings.json")
    settings = settings_provider.get_settings()

    state_dir = Path(settings.file_naming.output_directory or home)
    store = RoutineStore(state_dir=state_dir)
    store.restore()

    job_queue = JobQueue(home / QUEUE_FILE)
    job_queue.load()
    job_queue.prune_completed(COMPLETED_JOB_RETENTION_SECONDS)

    context = PipelineContext(
        store=store,
        job_queue=job_queue,
        settings_provider=settings_provider,
        broadcast=broadcast or RecordingBroadcastSink(),
        home=home,
    )
    if uploads is not None:
        context.uploads = uploads

    pid_file = PidFile(home / PID_FILE_NAME)
    supervisor = EncoderSupervisor(
        context,
        runner_factory=runner_factory,
        background=background,
        pid_file=pid_file,
    )
    device = device or SimulatedCaptureDevice(home / "recordings")
    orchestrator = RecordingOrchestrator(context, device, supervisor)
    return Pipeline(context=context, supervisor=supervisor, orchestrator=orchestrator, pid_file=pid_file)


@asynccontextmanager
async def lifespan(app: FastAPI):
    pipeline: Pipeline = app.state.pipeline
    settings = pipeline.context.settings()

    # Orphan re-encode needs an operator decision; the server only reports them
    report = run_crash_recovery(pipeline.supervisor, pipeline.pid_file, confirm=None)
    app.state.startup_report = run_startup_checks(
        settings,
        pipeline.context.job_queue,
        orphaned_files=len(report.orphans),
    )

    pipeline.orchestrator.start()
    pipeline.supervisor.kick()
    try:
        yield
    finally:
        pipeline.shutdown()


def create_app(
    home: Optional[Path] = None,
    settings_provider=None,
    device: Optional[CaptureDevice] = None,
    runner_factory: Optional[RunnerFactory] = None,
    background: bool = True,
) -> FastAPI:
    """Application factory (``uvicorn compsync.main:create_app --factory``)."""
    pipeline = build_pipeline(
        home=home,
        settings_provider=settings_provider,
        device=device,
        runner_factory=runner_factory,
        background=background,
    )

    app = FastAPI(title="CompSync Capture Backend", version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.pipeline = pipeline
    app.state.context = pipeline.context
    app.state.supervisor = pipeline.supervisor
    app.state.orchestrator = pipeline.orchestrator

    app.include_router(monitoring.router)
    app.include_router(control.router)

    @app.get("/")
    async def root():
        return {"service": "compsync-backend", "status": "running"}

    return app
