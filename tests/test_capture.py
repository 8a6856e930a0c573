"""
Tests for frame encoding and export sinks
"""

import numpy as np
import pytest

from gaugewatch.errors import FrameUnavailable
from gaugewatch.vision.capture import (
    DirectoryExportSink,
    MemoryExportSink,
    encode_png,
    export_filename,
    snapshot_png,
)
from gaugewatch.vision.media import LOW_BANDWIDTH_PROFILE


class TestEncoding:

    def test_encode_png(self):
        frame = np.zeros((240, 320, 3), dtype=np.uint8)

        data = encode_png(frame)

        assert data[:8] == b"\x89PNG\r\n\x1a\n"

    def test_empty_frame(self):
        with pytest.raises(FrameUnavailable):
            encode_png(np.zeros((0, 0, 3), dtype=np.uint8))

    @pytest.mark.asyncio
    async def test_snapshot_without_handle(self):
        with pytest.raises(FrameUnavailable) as exc:
            await snapshot_png(None)
        assert exc.value.message == "Video feed not ready."

    @pytest.mark.asyncio
    async def test_snapshot_before_first_frame(self, make_backend):
        backend = make_backend()
        handle = await backend.acquire("cam-1", LOW_BANDWIDTH_PROFILE)
        handle.frame = None

        with pytest.raises(FrameUnavailable):
            await snapshot_png(handle)

    @pytest.mark.asyncio
    async def test_snapshot_released_handle(self, make_backend):
        backend = make_backend()
        handle = await backend.acquire("cam-1", LOW_BANDWIDTH_PROFILE)
        await backend.release(handle)

        with pytest.raises(FrameUnavailable):
            await snapshot_png(handle)


class TestExportFilename:

    @pytest.mark.parametrize("label,expected", [
        ("Boiler Gauge", "Boiler_Gauge_capture.png"),
        ("USB  Camera\t2", "USB__Camera_2_capture.png"),
        ("cam", "cam_capture.png"),
    ])
    def test_whitespace_replaced(self, label, expected):
        assert export_filename(label) == expected


class TestSinks:

    def test_memory_sink_keeps_latest(self):
        sink = MemoryExportSink(max_items=2)

        for i in range(3):
            sink.offer(f"{i}.png", bytes([i]))

        assert [name for name, _ in sink.items] == ["1.png", "2.png"]
        assert sink.latest() == ("2.png", b"\x02")

    def test_directory_sink_writes(self, tmp_path):
        sink = DirectoryExportSink(str(tmp_path / "captures"))

        sink.offer("Boiler_capture.png", b"png-bytes")

        path = tmp_path / "captures" / "Boiler_capture.png"
        assert path.read_bytes() == b"png-bytes"
        assert sink.written["Boiler_capture.png"] == path

    def test_directory_sink_swallows_write_errors(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        sink = DirectoryExportSink(str(blocker))

        sink.offer("a.png", b"data")

        assert sink.written == {}
