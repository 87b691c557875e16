"""
Collaborator ports.

Startup checks live in ``compsync.services.startup``; they depend on the
encoder package, which in turn depends on these ports.
"""

from .ports import (
    BroadcastSink,
    CollectingUploadService,
    EncodeProgress,
    NullBroadcastSink,
    NullUploadService,
    RecordingBroadcastSink,
    UploadService,
)

__all__ = [
    "BroadcastSink",
    "CollectingUploadService",
    "EncodeProgress",
    "NullBroadcastSink",
    "NullUploadService",
    "RecordingBroadcastSink",
    "UploadService",
]
