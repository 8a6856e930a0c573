"""
Tests for FeedController lifecycle, capture and OCR
"""

import asyncio

import pytest

from gaugewatch.errors import FeedBusy, FeedNotActive, StreamAcquisitionFailed
from gaugewatch.vision.capture import MemoryExportSink
from gaugewatch.vision.feed import FeedController, FeedState
from gaugewatch.vision.media import LOW_BANDWIDTH_PROFILE, DeviceDescriptor


DEVICE = DeviceDescriptor(id="cam-1", label="USB Camera 1")


@pytest.fixture
def feed(backend, recognizer):
    return FeedController(DEVICE, backend, recognizer=recognizer, export_sink=MemoryExportSink())


async def start(feed):
    feed.mark_ready()
    await feed.wait_settled()


class TestLifecycle:
    """State transitions and handle ownership."""

    @pytest.mark.asyncio
    async def test_initializing_until_admitted(self, feed, backend):
        assert feed.state is FeedState.INITIALIZING

        assert feed.toggle() is False
        await asyncio.sleep(0.01)

        assert feed.state is FeedState.INITIALIZING
        assert feed.desired_on is True
        assert backend.acquire_calls == []

    @pytest.mark.asyncio
    async def test_active_holds_handle(self, feed, backend):
        await start(feed)

        assert feed.state is FeedState.ACTIVE
        assert feed.handle is not None
        assert backend.live_streams() == 1
        assert backend.acquire_calls == [("cam-1", LOW_BANDWIDTH_PROFILE)]

    @pytest.mark.asyncio
    async def test_toggle_off_releases(self, feed, backend):
        await start(feed)

        assert feed.toggle() is True
        await feed.wait_settled()

        assert feed.state is FeedState.OFF
        assert feed.handle is None
        assert backend.live_streams() == 0

    @pytest.mark.asyncio
    async def test_toggle_back_on(self, feed, backend):
        await start(feed)
        feed.toggle()
        await feed.wait_settled()

        feed.toggle()
        await feed.wait_settled()

        assert feed.state is FeedState.ACTIVE
        assert backend.live_streams() == 1

    @pytest.mark.asyncio
    async def test_rapid_toggles_single_acquisition(self, feed, backend):
        backend.gate = asyncio.Event()
        feed.mark_ready()
        await asyncio.sleep(0)

        for _ in range(5):
            feed.toggle()
        backend.gate.set()
        await feed.wait_settled()

        # odd number of flips from "on" ends off
        assert feed.state is FeedState.OFF
        assert backend.max_in_flight == 1
        assert backend.device_acquisitions("cam-1") == 1
        assert backend.live_streams() == 0

    @pytest.mark.asyncio
    async def test_rapid_toggles_ending_on(self, feed, backend):
        backend.gate = asyncio.Event()
        feed.mark_ready()
        await asyncio.sleep(0)

        for _ in range(4):
            feed.toggle()
        backend.gate.set()
        await feed.wait_settled()

        assert feed.state is FeedState.ACTIVE
        assert backend.max_in_flight == 1
        assert backend.live_streams() == 1


class TestFailure:
    """Acquisition failures stay local to the feed."""

    @pytest.mark.asyncio
    async def test_error_stopped(self, make_backend, devices):
        backend = make_backend(devices(1), fail_ids={"cam-1"})
        feed = FeedController(DEVICE, backend)

        await start(feed)

        assert feed.state is FeedState.ERROR_STOPPED
        assert feed.handle is None
        assert feed.desired_on is False
        assert feed.last_error == StreamAcquisitionFailed.default_message

    @pytest.mark.asyncio
    async def test_retry_by_toggling(self, make_backend, devices):
        backend = make_backend(devices(1), fail_ids={"cam-1"})
        feed = FeedController(DEVICE, backend)
        await start(feed)

        backend.fail_ids.clear()
        feed.toggle()
        await feed.wait_settled()

        assert feed.state is FeedState.ACTIVE
        assert feed.last_error is None

    @pytest.mark.asyncio
    async def test_error_stopped_toggle_off_goes_off(self, make_backend, devices):
        backend = make_backend(devices(1), fail_ids={"cam-1"})
        feed = FeedController(DEVICE, backend)
        await start(feed)

        feed.toggle()
        feed.toggle()
        await feed.wait_settled()

        assert feed.state is FeedState.OFF
        assert feed.last_error is None


class TestTeardown:
    """No stream survives close()."""

    @pytest.mark.asyncio
    async def test_close_active(self, feed, backend):
        await start(feed)

        await feed.close()

        assert feed.state is FeedState.OFF
        assert backend.live_streams() == 0

    @pytest.mark.asyncio
    async def test_close_initializing(self, feed, backend):
        await feed.close()

        assert backend.acquire_calls == []
        feed.mark_ready()
        await asyncio.sleep(0.01)
        assert backend.acquire_calls == []

    @pytest.mark.asyncio
    async def test_handle_arriving_after_close_is_released(self, feed, backend):
        backend.gate = asyncio.Event()
        feed.mark_ready()
        await asyncio.sleep(0)
        assert feed.acquiring

        await feed.close()
        backend.gate.set()
        await feed.drain()

        assert feed.handle is None
        assert backend.live_streams() == 0
        assert len(backend.released) == 1


class TestInspection:
    """Capture export and OCR."""

    @pytest.mark.asyncio
    async def test_inspect_stores_reading(self, feed, recognizer):
        await start(feed)

        text = await feed.inspect()

        assert text == "412.3 kPa"
        assert feed.last_captured_text == "412.3 kPa"
        assert feed.busy is False
        assert recognizer.calls == 1

    @pytest.mark.asyncio
    async def test_toggle_clears_reading(self, feed):
        await start(feed)
        await feed.inspect()

        feed.toggle()
        await feed.wait_settled()

        assert feed.last_captured_text is None
        assert feed.snapshot()["ocr_result"] is None

    @pytest.mark.asyncio
    async def test_inspect_requires_active(self, feed):
        with pytest.raises(FeedNotActive):
            await feed.inspect()

    @pytest.mark.asyncio
    async def test_inspect_busy(self, feed, recognizer, wait_until):
        await start(feed)
        recognizer.gate = asyncio.Event()

        first = asyncio.create_task(feed.inspect())
        await wait_until(lambda: recognizer.calls == 1)

        with pytest.raises(FeedBusy):
            await feed.inspect()

        recognizer.gate.set()
        assert await first == "412.3 kPa"

    @pytest.mark.asyncio
    async def test_result_after_toggle_off_is_discarded(self, feed, recognizer, wait_until):
        await start(feed)
        recognizer.gate = asyncio.Event()

        pending = asyncio.create_task(feed.inspect())
        await wait_until(lambda: recognizer.calls == 1)
        feed.toggle()
        await feed.wait_settled()
        recognizer.gate.set()

        assert await pending is None
        assert feed.last_captured_text is None
        assert feed.state is FeedState.OFF

    @pytest.mark.asyncio
    async def test_recognition_failure_sets_error(self, make_backend, make_recognizer, devices):
        backend = make_backend(devices(1))
        feed = FeedController(DEVICE, backend, recognizer=make_recognizer(fail=True))
        await start(feed)

        assert await feed.inspect() is None
        assert feed.last_error == "Failed to get OCR result."
        assert feed.busy is False
        assert feed.state is FeedState.ACTIVE

    @pytest.mark.asyncio
    async def test_unexpected_recognizer_error_sets_error(self, feed, recognizer):
        await start(feed)

        async def broken(png):
            raise RuntimeError("decoder crashed")

        recognizer.recognize = broken

        assert await feed.inspect() is None
        assert feed.last_error == "Failed to get OCR result."
        assert feed.last_captured_text is None
        assert feed.busy is False

    @pytest.mark.asyncio
    async def test_export_png(self, feed):
        await start(feed)

        filename, data = await feed.export()

        assert filename == "USB_Camera_1_capture.png"
        assert data.startswith(b"\x89PNG")
        assert feed._export_sink.latest() == (filename, data)

    @pytest.mark.asyncio
    async def test_export_requires_active(self, feed):
        with pytest.raises(FeedNotActive):
            await feed.export()
