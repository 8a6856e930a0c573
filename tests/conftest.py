"""
Shared fakes for camera tests: an in-memory media backend and recognizer.
"""

import asyncio
from typing import List, Optional

import numpy as np
import pytest

from gaugewatch.errors import RecognitionRequestFailed
from gaugewatch.vision.media import (
    MediaBackend,
    MediaDeviceInfo,
    MediaError,
    MediaErrorReason,
    StreamHandle,
    StreamProfile,
)


class FakeHandle(StreamHandle):
    def __init__(self, device_id, profile: StreamProfile):
        super().__init__(device_id, profile)
        self.frame = np.full((max(profile.height, 8), max(profile.width, 8), 3), 127, dtype=np.uint8)
        self.released = False

    @property
    def is_open(self) -> bool:
        return not self.released

    def read_frame(self):
        return None if self.released else self.frame


class FakeBackend(MediaBackend):
    """Records every acquire/release; `gate` holds device acquisitions open."""

    def __init__(
        self,
        devices: List[MediaDeviceInfo] = (),
        fail_ids=(),
        probe_error: Optional[Exception] = None,
        enumerate_error: Optional[Exception] = None,
        supported: bool = True,
    ):
        self.devices = list(devices)
        self.fail_ids = set(fail_ids)
        self.probe_error = probe_error
        self.enumerate_error = enumerate_error
        self.supported = supported
        self.gate: Optional[asyncio.Event] = None

        self.live = set()
        self.acquire_calls = []
        self.released = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.probe_held_during_enumerate: Optional[bool] = None

    def is_supported(self) -> bool:
        return self.supported

    async def enumerate(self):
        self.probe_held_during_enumerate = any(h.device_id is None for h in self.live)
        if self.enumerate_error is not None:
            raise self.enumerate_error
        return list(self.devices)

    async def acquire(self, device_id, profile):
        self.acquire_calls.append((device_id, profile))

        if device_id is None:
            if self.probe_error is not None:
                raise self.probe_error
            handle = FakeHandle(None, profile)
            self.live.add(handle)
            return handle

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)
            if device_id in self.fail_ids:
                raise MediaError(MediaErrorReason.NOT_READABLE, f"{device_id} busy")
            handle = FakeHandle(device_id, profile)
            self.live.add(handle)
            return handle
        finally:
            self.in_flight -= 1

    async def release(self, handle):
        handle.released = True
        self.live.discard(handle)
        self.released.append(handle)

    def live_streams(self) -> int:
        """Live device streams, probe excluded."""
        return sum(1 for h in self.live if h.device_id is not None)

    def device_acquisitions(self, device_id) -> int:
        return sum(1 for d, _ in self.acquire_calls if d == device_id)


class FakeRecognizer:
    """Returns a fixed reading; `gate` holds requests open."""

    def __init__(self, text: str = "412.3 kPa", fail: bool = False):
        self.text = text
        self.fail = fail
        self.gate: Optional[asyncio.Event] = None
        self.calls = 0

    async def recognize(self, png: bytes) -> str:
        assert png.startswith(b"\x89PNG")
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise RecognitionRequestFailed()
        return self.text


def make_devices(n: int, prefix: str = "cam") -> List[MediaDeviceInfo]:
    return [MediaDeviceInfo(id=f"{prefix}-{i}", label=f"USB Camera {i}") for i in range(1, n + 1)]


async def _wait_until(predicate, timeout: float = 2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def devices():
    return make_devices


@pytest.fixture
def make_backend():
    return FakeBackend


@pytest.fixture
def backend():
    return FakeBackend(make_devices(3))


@pytest.fixture
def make_recognizer():
    return FakeRecognizer


@pytest.fixture
def recognizer():
    return FakeRecognizer()


@pytest.fixture
def wait_until():
    return _wait_until
