"""
Device Enumerator - two-phase permission / enumeration handshake.

A minimal probe stream is held while devices are listed, so labels are
available without opening full-size streams on a shared USB hub.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..errors import (
    AcquisitionFailed,
    EnumerationError,
    NoDevicesFound,
    PermissionDenied,
    UnsupportedEnvironment,
)
from .media import (
    PROBE_PROFILE,
    VIDEO_INPUT,
    DeviceDescriptor,
    MediaBackend,
    MediaError,
    MediaErrorReason,
    StreamHandle,
)


MAX_CAMERAS = 10


@dataclass
class EnumerationResult:
    """Outcome of one discover() call."""
    ok: bool
    devices: List[DeviceDescriptor] = field(default_factory=list)
    error: Optional[EnumerationError] = None

    @classmethod
    def success(cls, devices: List[DeviceDescriptor]) -> "EnumerationResult":
        return cls(ok=True, devices=list(devices))

    @classmethod
    def failure(cls, error: EnumerationError) -> "EnumerationResult":
        return cls(ok=False, error=error)


class DeviceEnumerator:
    """
    Discovers up to max_devices video inputs.

    Every classified error is final for the call; callers re-invoke
    discover() to try again.
    """

    def __init__(self, backend: Optional[MediaBackend], max_devices: int = MAX_CAMERAS):
        self.logger = logging.getLogger("enumerator")
        self.backend = backend
        self.max_devices = max_devices

    async def discover(self) -> EnumerationResult:
        backend = self.backend
        if backend is None or not backend.is_supported():
            self.logger.error("Media capture backend unavailable")
            return EnumerationResult.failure(UnsupportedEnvironment())

        probe: Optional[StreamHandle] = None
        try:
            # Phase 1: permission only
            probe = await backend.acquire(None, PROBE_PROFILE)

            # Phase 2: enumerate while the probe is held
            raw = await backend.enumerate()
            devices = self._select(raw)

            if not devices:
                self.logger.warning("No video input devices found")
                return EnumerationResult.failure(NoDevicesFound())

            self.logger.info(f"✅ Found {len(devices)} camera(s): {', '.join(d.label for d in devices)}")
            return EnumerationResult.success(devices)

        except MediaError as e:
            self.logger.error(f"Error accessing media devices: {e}")
            return EnumerationResult.failure(self._classify(e))
        except Exception as e:
            self.logger.exception(f"Unexpected enumeration error: {e}")
            return EnumerationResult.failure(AcquisitionFailed())
        finally:
            if probe is not None:
                await self._release_probe(backend, probe)

    def _select(self, raw) -> List[DeviceDescriptor]:
        seen = set()
        devices: List[DeviceDescriptor] = []
        for info in raw:
            if info.kind != VIDEO_INPUT or info.id in seen:
                continue
            seen.add(info.id)
            devices.append(DeviceDescriptor(
                id=info.id,
                label=info.label or f"Camera {len(devices) + 1}",
            ))
            if len(devices) >= self.max_devices:
                break
        return devices

    @staticmethod
    def _classify(error: MediaError) -> EnumerationError:
        if error.reason is MediaErrorReason.PERMISSION_DENIED:
            return PermissionDenied()
        if error.reason is MediaErrorReason.NOT_FOUND:
            return NoDevicesFound()
        return AcquisitionFailed()

    async def _release_probe(self, backend: MediaBackend, probe: StreamHandle):
        try:
            await backend.release(probe)
        except Exception as e:
            self.logger.error(f"Failed to release probe stream: {e}")
