"""
Vision module - camera discovery, staggered startup and feed lifecycles

Components:
- DeviceEnumerator: two-phase permission / enumeration handshake
- StaggerScheduler: paced admission of devices
- FeedController: per-camera lifecycle, capture and OCR
- CameraGrid: composes the above for up to max_cameras slots
"""

from .media import (
    LOW_BANDWIDTH_PROFILE,
    PROBE_PROFILE,
    DeviceDescriptor,
    MediaBackend,
    MediaDeviceInfo,
    MediaError,
    MediaErrorReason,
    OpenCVBackend,
    StreamHandle,
    StreamProfile,
)
from .enumerator import DeviceEnumerator, EnumerationResult
from .scheduler import ReadinessSet, StaggerScheduler
from .feed import FeedController, FeedState
from .capture import DirectoryExportSink, ExportSink, MemoryExportSink
from .grid import CameraGrid, FeedSlot

__all__ = [
    "LOW_BANDWIDTH_PROFILE",
    "PROBE_PROFILE",
    "DeviceDescriptor",
    "MediaBackend",
    "MediaDeviceInfo",
    "MediaError",
    "MediaErrorReason",
    "OpenCVBackend",
    "StreamHandle",
    "StreamProfile",
    "DeviceEnumerator",
    "EnumerationResult",
    "ReadinessSet",
    "StaggerScheduler",
    "FeedController",
    "FeedState",
    "DirectoryExportSink",
    "ExportSink",
    "MemoryExportSink",
    "CameraGrid",
    "FeedSlot",
]
