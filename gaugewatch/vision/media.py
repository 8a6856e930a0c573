"""
Media capture capability - platform access to USB video devices

Provides:
- Device descriptors and stream profiles
- Abstract MediaBackend (enumerate / acquire / release)
- OpenCV + V4L2 backend with a per-stream capture thread
"""

import asyncio
import glob
import logging
import os
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

import numpy as np

try:
    import cv2
except ImportError:
    cv2 = None


VIDEO_INPUT = "videoinput"
VIDEO_METADATA = "videometadata"

V4L2_SYSFS = "/sys/class/video4linux"
V4L2_BY_ID = "/dev/v4l/by-id"


@dataclass(frozen=True)
class DeviceDescriptor:
    """Discovered camera. Identity is the id."""
    id: str
    label: str


@dataclass(frozen=True)
class MediaDeviceInfo:
    """Raw enumeration entry, before filtering to video inputs."""
    id: str
    label: str
    kind: str = VIDEO_INPUT


@dataclass(frozen=True)
class StreamProfile:
    """Requested capture constraints."""
    width: int
    height: int
    frame_rate: Optional[int] = None


# Many simultaneous low-bandwidth feeds on a shared hub
LOW_BANDWIDTH_PROFILE = StreamProfile(width=320, height=240, frame_rate=15)

# Only used to unlock permission and labels before enumeration
PROBE_PROFILE = StreamProfile(width=1, height=1)


class MediaErrorReason(Enum):
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    NOT_READABLE = "not_readable"
    OVERCONSTRAINED = "overconstrained"
    ABORTED = "aborted"


class MediaError(Exception):
    """Platform-level capture failure tagged with a reason code."""

    def __init__(self, reason: MediaErrorReason, detail: str = ""):
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason.value}: {detail}" if detail else reason.value)


class StreamHandle:
    """Live capture resource, exclusively owned by one feed."""

    def __init__(self, device_id: Optional[str], profile: StreamProfile):
        self.device_id = device_id
        self.profile = profile

    @property
    def is_open(self) -> bool:
        raise NotImplementedError

    def read_frame(self) -> Optional[np.ndarray]:
        """Latest frame (BGR) or None if nothing was captured yet."""
        raise NotImplementedError


class MediaBackend(ABC):
    """Platform media-capture capability."""

    def is_supported(self) -> bool:
        return True

    @abstractmethod
    async def enumerate(self) -> List[MediaDeviceInfo]:
        ...

    @abstractmethod
    async def acquire(self, device_id: Optional[str], profile: StreamProfile) -> StreamHandle:
        """Open a stream; device_id None means any device. Raises MediaError."""

    @abstractmethod
    async def release(self, handle: StreamHandle) -> None:
        ...


# ============================================
# OpenCV / V4L2
# ============================================

class CameraStream(StreamHandle):
    """
    Single OpenCV capture with a background reader thread.

    The thread keeps only the latest frame. A read failure stops the loop;
    there is no reconnect, the operator re-toggles the feed instead.
    """

    def __init__(self, device_id: Optional[str], profile: StreamProfile, cap, name: str = "camera"):
        super().__init__(device_id, profile)
        self.cap = cap
        self.logger = logging.getLogger(f"camera.{name}")

        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

        self._last_frame: Optional[np.ndarray] = None

    def start(self):
        """Start capture thread."""
        if self._running:
            return
        self._running = True
        self._thread = threading.Thread(target=self._capture_loop, daemon=True)
        self._thread.start()
        self.logger.debug("Capture thread started")

    def stop(self):
        """Stop capture and release the device."""
        self._running = False
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=2.0)
        self._thread = None
        if self.cap is not None:
            self.cap.release()
            self.cap = None

    def _capture_loop(self):
        """Main capture loop (runs in separate thread)."""
        while self._running and self.cap is not None:
            ret, frame = self.cap.read()
            if not ret or frame is None:
                self.logger.warning("Frame capture failed, stopping reader")
                self._running = False
                break

            with self._lock:
                self._last_frame = frame

    @property
    def is_open(self) -> bool:
        return self.cap is not None

    def read_frame(self) -> Optional[np.ndarray]:
        with self._lock:
            if self._last_frame is None:
                return None
            return self._last_frame.copy()


class OpenCVBackend(MediaBackend):
    """
    V4L2 devices through OpenCV.

    Ids are stable /dev/v4l/by-id links when udev provides them, otherwise
    /dev/videoN nodes. Metadata nodes (index != 0 in sysfs) are reported with
    kind VIDEO_METADATA so the enumerator drops them.
    """

    def __init__(self, probe_indices: int = 10):
        self.logger = logging.getLogger("camera_backend")
        self.probe_indices = probe_indices

    def is_supported(self) -> bool:
        return cv2 is not None

    # ----------------------------------------
    # Enumeration
    # ----------------------------------------

    async def enumerate(self) -> List[MediaDeviceInfo]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._enumerate_sync)

    def _enumerate_sync(self) -> List[MediaDeviceInfo]:
        nodes = sorted(glob.glob("/dev/video*"), key=self._node_number)
        if not nodes:
            return self._probe_indices()

        stable_ids = self._stable_ids()
        devices = []
        for node in nodes:
            name = os.path.basename(node)
            devices.append(MediaDeviceInfo(
                id=stable_ids.get(os.path.realpath(node), node),
                label=self._read_sysfs(name, "name") or "",
                kind=VIDEO_INPUT if self._read_sysfs(name, "index") in ("", "0") else VIDEO_METADATA,
            ))
        return devices

    def _probe_indices(self) -> List[MediaDeviceInfo]:
        """Fallback for platforms without /dev/video nodes."""
        found = []
        for index in range(self.probe_indices):
            cap = cv2.VideoCapture(index)
            try:
                if cap.isOpened():
                    found.append(MediaDeviceInfo(id=f"index:{index}", label=""))
            finally:
                cap.release()
        return found

    @staticmethod
    def _node_number(node: str) -> int:
        digits = node.replace("/dev/video", "")
        return int(digits) if digits.isdigit() else 1 << 16

    @staticmethod
    def _read_sysfs(node_name: str, attr: str) -> str:
        try:
            with open(os.path.join(V4L2_SYSFS, node_name, attr), "r", encoding="utf-8") as f:
                return f.read().strip()
        except OSError:
            return ""

    @staticmethod
    def _stable_ids() -> dict:
        ids = {}
        for link in sorted(glob.glob(os.path.join(V4L2_BY_ID, "*"))):
            ids.setdefault(os.path.realpath(link), link)
        return ids

    # ----------------------------------------
    # Streams
    # ----------------------------------------

    async def acquire(self, device_id: Optional[str], profile: StreamProfile) -> StreamHandle:
        loop = asyncio.get_running_loop()
        stream = await loop.run_in_executor(None, self._open_sync, device_id, profile)
        # probe streams are never read
        if profile != PROBE_PROFILE:
            stream.start()
        return stream

    async def release(self, handle: StreamHandle) -> None:
        if not isinstance(handle, CameraStream):
            return
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, handle.stop)

    def _resolve_source(self, device_id: Optional[str]):
        if device_id is None:
            nodes = sorted(glob.glob("/dev/video*"), key=self._node_number)
            if nodes:
                return nodes[0]
            return 0
        if device_id.startswith("index:"):
            return int(device_id.split(":", 1)[1])
        return os.path.realpath(device_id)

    def _open_sync(self, device_id: Optional[str], profile: StreamProfile) -> CameraStream:
        if cv2 is None:
            raise MediaError(MediaErrorReason.ABORTED, "OpenCV not installed")

        source = self._resolve_source(device_id)
        if isinstance(source, str):
            if not os.path.exists(source):
                raise MediaError(MediaErrorReason.NOT_FOUND, source)
            if not os.access(source, os.R_OK | os.W_OK):
                raise MediaError(MediaErrorReason.PERMISSION_DENIED, source)
            cap = cv2.VideoCapture(source, cv2.CAP_V4L2)
        else:
            cap = cv2.VideoCapture(source)

        if not cap.isOpened():
            cap.release()
            if isinstance(source, int):
                # nothing answers at this index
                raise MediaError(MediaErrorReason.NOT_FOUND, f"No camera at index {source}")
            raise MediaError(MediaErrorReason.NOT_READABLE, f"Cannot open camera: {source}")

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, profile.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, profile.height)
        if profile.frame_rate:
            cap.set(cv2.CAP_PROP_FPS, profile.frame_rate)
        cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)

        actual_w = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        actual_h = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        actual_fps = cap.get(cv2.CAP_PROP_FPS)
        self.logger.info(f"✅ Opened {source}: {actual_w}x{actual_h} @ {actual_fps:.1f}fps")

        name = os.path.basename(str(source))
        return CameraStream(device_id, profile, cap, name=name)
