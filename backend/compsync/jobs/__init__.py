"""
Durable job queue.

Jobs outlive the process: the queue is a JSON file that self-heals
interrupted RUNNING jobs on load.
"""

from .errors import InvalidJobPayloadError, JobError, JobNotFoundError
from .models import EncodePayload, Job, JobStatus, JobType
from .queue import QUEUE_FILE, JobQueue, backoff_seconds

__all__ = [
    # Errors
    "JobError",
    "JobNotFoundError",
    "InvalidJobPayloadError",
    # Models
    "EncodePayload",
    "Job",
    "JobStatus",
    "JobType",
    # Queue
    "JobQueue",
    "QUEUE_FILE",
    "backoff_seconds",
]
