"""
Capture device port, device events and a simulated device.
"""

from .base import CaptureDevice, DeviceError
from .events import DeviceEvent, EventChannel, RecordingStarted, RecordingStopped
from .simulation import SimulatedCaptureDevice

__all__ = [
    "CaptureDevice",
    "DeviceError",
    "DeviceEvent",
    "EventChannel",
    "RecordingStarted",
    "RecordingStopped",
    "SimulatedCaptureDevice",
]
