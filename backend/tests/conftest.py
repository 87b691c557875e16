"""
Shared fixtures for the pipeline test suite.

Unit tests never spawn ffmpeg: FakeRunner records every argument list
and writes a small file for each output path it is asked to produce.
"""

from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from compsync.context import PipelineContext
from compsync.devices.simulation import SimulatedCaptureDevice
from compsync.encoding.supervisor import EncoderSupervisor
from compsync.jobs.queue import JobQueue
from compsync.recording.orchestrator import RecordingOrchestrator
from compsync.routines.models import Competition, Routine
from compsync.routines.store import RoutineStore
from compsync.services.ports import CollectingUploadService, RecordingBroadcastSink
from compsync.settings.models import AppSettings, ProcessingMode
from compsync.settings.provider import StaticSettingsProvider


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests that spawn real subprocesses"
    )


class FakeClock:
    """Manually advanced clock for backoff tests."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 3, 14, 9, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeRunner:
    """
    Stand-in for FFmpegProcessRunner.

    ``fail_on`` maps a 1-based call number to the exception that call
    raises; ``fail_always`` makes every call raise. ``skip_outputs`` lists
    output file names the runner pretends ffmpeg did not produce.
    """

    def __init__(
        self,
        fail_on: Optional[Dict[int, Exception]] = None,
        fail_always: Optional[Exception] = None,
        skip_outputs: Optional[List[str]] = None,
    ):
        self.calls: List[List[str]] = []
        self.fail_on = fail_on or {}
        self.fail_always = fail_always
        self.skip_outputs = set(skip_outputs or [])
        self.cancelled = False

    @staticmethod
    def output_paths(args: List[str]) -> List[Path]:
        return [
            Path(arg)
            for i, arg in enumerate(args)
            if arg.endswith(".mp4") and (i == 0 or args[i - 1] != "-i")
        ]

    def run(self, args: List[str], timeout: Optional[float] = None) -> None:
        self.calls.append(list(args))
        if self.fail_always is not None:
            raise self.fail_always
        error = self.fail_on.get(len(self.calls))
        if error is not None:
            raise error
        for path in self.output_paths(args):
            if path.name in self.skip_outputs:
                continue
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(b"encoded")

    def cancel(self) -> bool:
        self.cancelled = True
        return True


def make_competition(count: int = 4, competition_id: str = "comp-1") -> Competition:
    routines = [
        Routine(
            id=f"r{i}",
            entry_number=str(100 + i),
            routine_title=f"Routine {i}",
            studio_name="Studio Nova",
            studio_code="NOV",
            category="Jazz",
            age_group="Teen",
            size_category="Solo",
            duration_minutes=3,
            scheduled_day="Saturday",
            scheduled_time="10:00",
            position=i,
        )
        for i in range(1, count + 1)
    ]
    return Competition(
        competition_id=competition_id,
        name="Spring Regionals",
        routines=routines,
        days=["Saturday"],
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def output_dir(tmp_path):
    path = tmp_path / "output"
    path.mkdir()
    return path


@pytest.fixture
def settings(output_dir):
    settings = AppSettings()
    settings.file_naming.output_directory = str(output_dir)
    settings.ffmpeg.processing_mode = ProcessingMode.COPY
    settings.competition.judge_count = 2
    return settings


@pytest.fixture
def settings_provider(settings):
    return StaticSettingsProvider(settings)


@pytest.fixture
def job_queue(tmp_path, clock):
    queue = JobQueue(tmp_path / "home" / "job-queue.json", clock=clock, debounce_seconds=0.05)
    yield queue
    queue.close()


@pytest.fixture
def store(tmp_path):
    store = RoutineStore(state_dir=tmp_path / "state", debounce_seconds=0.05)
    yield store
    store.close()


@pytest.fixture
def broadcast():
    return RecordingBroadcastSink()


@pytest.fixture
def uploads():
    return CollectingUploadService()


@pytest.fixture
def context(store, job_queue, settings_provider, broadcast, uploads):
    return PipelineContext(
        store=store,
        job_queue=job_queue,
        settings_provider=settings_provider,
        broadcast=broadcast,
        uploads=uploads,
    )


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def supervisor(context, fake_runner):
    """Inline supervisor: encodes run synchronously in the test thread."""
    return EncoderSupervisor(context, runner_factory=lambda _settings: fake_runner, background=False)


@pytest.fixture
def device(tmp_path, clock):
    return SimulatedCaptureDevice(tmp_path / "raw", clock=clock)


@pytest.fixture
def orchestrator(context, device, supervisor):
    return RecordingOrchestrator(
        context,
        device,
        supervisor,
        stop_confirm_timeout=0.5,
        lock_waiter=lambda path, timeout=None: True,
    )
