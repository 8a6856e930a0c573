"""
Feed Lifecycle Controller - one camera slot and its stream

States:
- INITIALIZING: bound to a device, not admitted yet, nothing held
- ACTIVE: stream handle held
- OFF: switched off by the operator, nothing held
- ERROR_STOPPED: acquisition failed, nothing held until the operator retries

All transitions run inside a single reconcile task per controller, so a new
acquisition never starts while a previous one is still settling.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, Optional, Set, Tuple

from ..errors import (
    FeedBusy,
    FeedNotActive,
    GaugewatchError,
    RecognitionRequestFailed,
    StreamAcquisitionFailed,
)
from .capture import ExportSink, export_filename, snapshot_png
from .media import (
    LOW_BANDWIDTH_PROFILE,
    DeviceDescriptor,
    MediaBackend,
    MediaError,
    StreamHandle,
    StreamProfile,
)


class FeedState(Enum):
    INITIALIZING = "initializing"
    ACTIVE = "active"
    OFF = "off"
    ERROR_STOPPED = "error_stopped"


class FeedController:
    """
    Owns the lifecycle of a single camera feed.

    Przykład użycia:
        feed = FeedController(device, backend)
        feed.mark_ready()          # admitted by the stagger scheduler
        await feed.wait_settled()  # -> ACTIVE or ERROR_STOPPED
        feed.toggle()              # -> OFF, stream released
        await feed.close()
    """

    def __init__(
        self,
        device: DeviceDescriptor,
        backend: MediaBackend,
        profile: StreamProfile = LOW_BANDWIDTH_PROFILE,
        recognizer=None,
        export_sink: Optional[ExportSink] = None,
    ):
        self.device = device
        self.logger = logging.getLogger(f"feed.{device.label}")

        self._backend = backend
        self._profile = profile
        self._recognizer = recognizer
        self._export_sink = export_sink

        self._state = FeedState.INITIALIZING
        self._handle: Optional[StreamHandle] = None
        self._ready = False
        self._desired_on = True
        self._closed = False
        self._acquiring = False

        self.last_error: Optional[str] = None
        self.last_captured_text: Optional[str] = None
        self.busy = False

        # bumped on toggle/close, in-flight inspect results from older epochs are dropped
        self._epoch = 0

        self._task: Optional[asyncio.Task] = None
        self._pending_acquire: Optional[asyncio.Future] = None
        self._pending_releases: Set[asyncio.Task] = set()

    # =========================================
    # PROPERTIES
    # =========================================

    @property
    def device_id(self) -> str:
        return self.device.id

    @property
    def state(self) -> FeedState:
        return self._state

    @property
    def handle(self) -> Optional[StreamHandle]:
        return self._handle

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def desired_on(self) -> bool:
        return self._desired_on

    @property
    def acquiring(self) -> bool:
        return self._acquiring

    @property
    def closed(self) -> bool:
        return self._closed

    # =========================================
    # INPUTS
    # =========================================

    def mark_ready(self):
        """Admission from the stagger scheduler."""
        if self._closed or self._ready:
            return
        self._ready = True
        self.logger.debug("Admitted, starting")
        self._kick()

    def toggle(self) -> bool:
        """Flip the desired state. Returns False while not admitted."""
        return self.set_active(not self._desired_on)

    def set_active(self, on: bool) -> bool:
        """
        Set the desired on/off state.

        Clears the error and any recognition result. Switching on from OFF or
        ERROR_STOPPED is the only way to retry an acquisition.
        """
        if self._closed or not self._ready:
            self.logger.debug("Toggle ignored, feed not admitted yet")
            return False

        self._desired_on = on
        self._epoch += 1
        if self._state is FeedState.ERROR_STOPPED:
            self._state = FeedState.OFF
        self.last_error = None
        self.last_captured_text = None
        self.busy = False

        self.logger.info(f"Camera {'on' if on else 'off'} requested")
        self._kick()
        return True

    async def wait_settled(self):
        """Wait until the reconcile task has nothing left to do."""
        while self._task is not None and not self._task.done():
            await asyncio.wait({self._task})

    # =========================================
    # RECONCILE
    # =========================================

    def _kick(self):
        if self._closed:
            return
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._reconcile(), name=f"feed:{self.device_id}")

    async def _reconcile(self):
        while not self._closed:
            if not self._ready:
                self._state = FeedState.INITIALIZING
                return

            if self._desired_on:
                if self._handle is not None:
                    self._state = FeedState.ACTIVE
                    return

                try:
                    handle = await self._acquire()
                except StreamAcquisitionFailed as e:
                    self._state = FeedState.ERROR_STOPPED
                    self._desired_on = False
                    self.last_error = e.message
                    return

                if self._closed or not self._desired_on:
                    # desired state flipped while the device was opening
                    await self._release(handle)
                    continue

                self._handle = handle
                self._state = FeedState.ACTIVE
                self.logger.info("✅ Camera active")
                continue

            if self._handle is not None:
                await self._release_current()
            if self._state is not FeedState.ERROR_STOPPED:
                self._state = FeedState.OFF
            return

    async def _acquire(self) -> StreamHandle:
        self._acquiring = True
        future = asyncio.ensure_future(self._backend.acquire(self.device_id, self._profile))
        self._pending_acquire = future
        try:
            return await asyncio.shield(future)
        except asyncio.CancelledError:
            # controller torn down mid-acquisition, release whatever arrives later
            future.add_done_callback(self._discard_late_handle)
            raise
        except MediaError as e:
            self.logger.error(f"Error accessing camera {self.device_id}: {e}")
            raise StreamAcquisitionFailed()
        except Exception as e:
            self.logger.exception(f"Unexpected error opening camera {self.device_id}: {e}")
            raise StreamAcquisitionFailed()
        finally:
            self._acquiring = False
            if future.done():
                self._pending_acquire = None

    def _discard_late_handle(self, future: asyncio.Future):
        if future.cancelled() or future.exception() is not None:
            return
        self.logger.info("Releasing stream that opened after teardown")
        self._start_release(future.result())

    async def _release_current(self):
        handle = self._handle
        self._handle = None
        if self._state is FeedState.ACTIVE:
            self._state = FeedState.OFF
        if handle is not None:
            await self._release(handle)
            self.logger.info("Camera stopped")

    async def _release(self, handle: StreamHandle):
        # shielded: a cancelled caller must not abandon the device half-closed
        await asyncio.shield(self._start_release(handle))

    def _start_release(self, handle: StreamHandle) -> asyncio.Task:
        task = asyncio.ensure_future(self._release_now(handle))
        self._pending_releases.add(task)
        task.add_done_callback(self._pending_releases.discard)
        return task

    async def _release_now(self, handle: StreamHandle):
        try:
            await self._backend.release(handle)
        except Exception as e:
            self.logger.error(f"Failed to release camera {self.device_id}: {e}")

    async def close(self):
        """Tear down: cancel pending work and release the stream."""
        if self._closed:
            return
        self._closed = True
        self._epoch += 1
        self.busy = False

        task = self._task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self._release_current()
        if self._state is not FeedState.ERROR_STOPPED:
            self._state = FeedState.OFF

        await self._wait_releases()

    async def _wait_releases(self):
        while self._pending_releases:
            await asyncio.gather(*list(self._pending_releases), return_exceptions=True)

    async def drain(self):
        """Wait for an acquisition abandoned by close() and its release."""
        pending = self._pending_acquire
        if pending is not None and not pending.done():
            await asyncio.wait({pending})
            # let the done callback schedule the release
            await asyncio.sleep(0)
        await self._wait_releases()

    # =========================================
    # CAPTURE / INSPECTION
    # =========================================

    def _require_active(self) -> StreamHandle:
        if self._state is not FeedState.ACTIVE or self._handle is None:
            raise FeedNotActive()
        return self._handle

    async def export(self) -> Tuple[str, bytes]:
        """Snapshot the current frame and offer it as a PNG download."""
        handle = self._require_active()
        data = await snapshot_png(handle)
        filename = export_filename(self.device.label)
        if self._export_sink is not None:
            self._export_sink.offer(filename, data)
        return filename, data

    async def inspect(self) -> Optional[str]:
        """
        OCR the current frame.

        Returns the recognized text, or None when the request failed or its
        result was discarded because the feed was toggled or closed meanwhile.
        Raises FeedNotActive when the feed has no stream and
        FeedBusy when a request is already in flight.
        """
        handle = self._require_active()
        if self.busy:
            raise FeedBusy()

        epoch = self._epoch
        self.busy = True
        self.last_error = None
        self.last_captured_text = None

        try:
            if self._recognizer is None:
                raise RecognitionRequestFailed("Recognition is not configured.")
            png = await snapshot_png(handle)
            text = await self._recognizer.recognize(png)
        except GaugewatchError as e:
            if epoch == self._epoch:
                self.logger.error(f"OCR failed: {e.message}")
                self.last_error = e.message
                self.last_captured_text = None
            return None
        except Exception as e:
            if epoch == self._epoch:
                self.logger.exception(f"Unexpected OCR error: {e}")
                self.last_error = RecognitionRequestFailed().message
                self.last_captured_text = None
            return None
        finally:
            if epoch == self._epoch:
                self.busy = False

        if epoch != self._epoch or self._state is not FeedState.ACTIVE:
            self.logger.debug("Discarding OCR result for a feed that changed state")
            return None

        self.last_captured_text = text
        self.logger.info(f"🔎 OCR: {text}")
        return text

    # =========================================
    # VIEW
    # =========================================

    def snapshot(self) -> Dict[str, Any]:
        return {
            "device_id": self.device.id,
            "name": self.device.label,
            "state": self._state.value,
            "ready": self._ready,
            "desired_on": self._desired_on,
            "acquiring": self._acquiring,
            "busy": self.busy,
            "error": self.last_error,
            "ocr_result": self.last_captured_text,
        }
