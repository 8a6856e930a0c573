"""
Camera Grid - orchestrates discovery, staggered startup and per-feed lifecycles

Flow:
1. DeviceEnumerator (probe + enumerate, probe always released)
2. One FeedController per discovered device, keyed by device id
3. StaggerScheduler admits devices one delay apart
4. Empty positions up to max_cameras render as inert placeholders
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..errors import EnumerationError, UnknownFeed
from .capture import ExportSink
from .enumerator import MAX_CAMERAS, DeviceEnumerator, EnumerationResult
from .feed import FeedController
from .media import LOW_BANDWIDTH_PROFILE, DeviceDescriptor, MediaBackend, StreamProfile
from .scheduler import StaggerScheduler


STAGGER_DELAY = 1.0


@dataclass(frozen=True)
class FeedSlot:
    """Fixed display position, bound to a device or empty."""
    position: int
    device: Optional[DeviceDescriptor] = None

    @property
    def is_empty(self) -> bool:
        return self.device is None


class CameraGrid:
    """
    Owns the device list, the stagger scheduler and the feed controllers.

    Przykład użycia:
        grid = CameraGrid(OpenCVBackend(), recognizer=client)
        await grid.start()
        grid.controller(device_id).toggle()
        await grid.close()
    """

    def __init__(
        self,
        backend: Optional[MediaBackend],
        recognizer=None,
        export_sink: Optional[ExportSink] = None,
        max_cameras: int = MAX_CAMERAS,
        stagger_delay: float = STAGGER_DELAY,
        profile: StreamProfile = LOW_BANDWIDTH_PROFILE,
    ):
        self.logger = logging.getLogger("grid")

        self.backend = backend
        self.recognizer = recognizer
        self.export_sink = export_sink
        self.max_cameras = max_cameras
        self.stagger_delay = stagger_delay
        self.profile = profile

        self.enumerator = DeviceEnumerator(backend, max_devices=max_cameras)
        self.scheduler: Optional[StaggerScheduler] = None

        self.devices: List[DeviceDescriptor] = []
        self.controllers: Dict[str, FeedController] = {}
        self.error: Optional[EnumerationError] = None
        self.detecting = False

        self._start_lock = asyncio.Lock()

    # =========================================
    # LIFECYCLE
    # =========================================

    async def start(self) -> EnumerationResult:
        """Enumerate and bring up the grid."""
        async with self._start_lock:
            return await self._start()

    async def _start(self) -> EnumerationResult:
        if self.scheduler is not None or self.controllers:
            # a repeated start replaces the device list, old streams go first
            await self._teardown()

        self.detecting = True
        self.error = None
        self.logger.info("Detecting cameras...")

        try:
            result = await self.enumerator.discover()
        finally:
            self.detecting = False

        if not result.ok:
            self.error = result.error
            self.logger.error(f"Camera detection failed: {result.error.message}")
            return result

        self.devices = result.devices[: self.max_cameras]
        self.controllers = {
            device.id: FeedController(
                device,
                self.backend,
                profile=self.profile,
                recognizer=self.recognizer,
                export_sink=self.export_sink,
            )
            for device in self.devices
        }

        self.scheduler = StaggerScheduler(self.stagger_delay, on_admit=self._on_admit)
        self.scheduler.schedule([device.id for device in self.devices])

        self.logger.info(f"✅ Grid ready: {len(self.devices)} camera(s), {self.max_cameras - len(self.devices)} empty slot(s)")
        return result

    def _on_admit(self, device_id: str):
        controller = self.controllers.get(device_id)
        if controller is not None:
            controller.mark_ready()

    async def rediscover(self) -> EnumerationResult:
        """Tear everything down and enumerate again."""
        async with self._start_lock:
            await self._teardown()
            return await self._start()

    async def close(self):
        """Release every stream and cancel pending admissions."""
        async with self._start_lock:
            await self._teardown()

    async def _teardown(self):
        # pending admissions go first so nothing starts while feeds close
        if self.scheduler is not None:
            self.scheduler.close()
            self.scheduler = None

        controllers = list(self.controllers.values())
        if controllers:
            self.logger.info(f"Closing {len(controllers)} feed(s)...")
            results = await asyncio.gather(*(c.close() for c in controllers), return_exceptions=True)
            for controller, result in zip(controllers, results):
                if isinstance(result, Exception):
                    self.logger.error(f"Error closing {controller.device.label}: {result}")

            # acquisitions abandoned by close() still hand back a stream to release
            await asyncio.gather(*(c.drain() for c in controllers), return_exceptions=True)

        self.controllers = {}
        self.devices = []

    # =========================================
    # ACCESS
    # =========================================

    def controller(self, device_id: str) -> FeedController:
        try:
            return self.controllers[device_id]
        except KeyError:
            raise UnknownFeed(f"Unknown camera feed: {device_id}")

    def slots(self) -> List[FeedSlot]:
        return [
            FeedSlot(position=i, device=self.devices[i] if i < len(self.devices) else None)
            for i in range(self.max_cameras)
        ]

    def live_handles(self) -> int:
        return sum(1 for c in self.controllers.values() if c.handle is not None)

    def render(self) -> List[Dict[str, Any]]:
        """Per-slot view for the dashboard."""
        view = []
        for slot in self.slots():
            if slot.is_empty:
                view.append({
                    "position": slot.position + 1,
                    "name": f"Camera {slot.position + 1}",
                    "state": "placeholder",
                    "status": "Offline",
                })
                continue
            entry = self.controllers[slot.device.id].snapshot()
            entry["position"] = slot.position + 1
            view.append(entry)
        return view

    def status(self) -> Dict[str, Any]:
        return {
            "detecting": self.detecting,
            "error": self.error.message if self.error else None,
            "error_code": self.error.code if self.error else None,
            "cameras": len(self.devices),
            "max_cameras": self.max_cameras,
            "admitted": len(self.scheduler.readiness) if self.scheduler else 0,
            "live_streams": self.live_handles(),
        }
