"""
Capture / inspection bridge helpers.

Still frames are PNG-encoded with OpenCV off the event loop. Export sinks
take the encoded bytes as a named artifact.
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np

try:
    import cv2
except ImportError:
    cv2 = None

from ..errors import FrameUnavailable
from .media import StreamHandle


logger = logging.getLogger("capture")

PNG_MIME = "image/png"


def encode_png(frame: np.ndarray) -> bytes:
    """Encode a BGR (or grayscale) frame as PNG."""
    if cv2 is None:
        raise FrameUnavailable("OpenCV not installed")
    if frame is None or frame.size == 0:
        raise FrameUnavailable()

    ok, buffer = cv2.imencode(".png", frame)
    if not ok:
        raise FrameUnavailable("Could not encode frame")
    return buffer.tobytes()


async def snapshot_png(handle: Optional[StreamHandle]) -> bytes:
    """Grab the latest frame from a live stream and encode it."""
    if handle is None or not handle.is_open:
        raise FrameUnavailable()

    frame = handle.read_frame()
    if frame is None:
        raise FrameUnavailable()

    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, encode_png, frame)


def export_filename(label: str) -> str:
    stem = re.sub(r"\s", "_", label)
    return f"{stem}_capture.png"


# ============================================
# Export sinks
# ============================================

class ExportSink:
    """Accepts a named downloadable artifact. Fire-and-forget."""

    def offer(self, filename: str, data: bytes) -> None:
        raise NotImplementedError


class MemoryExportSink(ExportSink):
    """Keeps artifacts in memory (most recent last)."""

    def __init__(self, max_items: int = 20):
        self.max_items = max_items
        self.items: List[Tuple[str, bytes]] = []

    def offer(self, filename: str, data: bytes) -> None:
        self.items.append((filename, data))
        del self.items[:-self.max_items]

    def latest(self) -> Optional[Tuple[str, bytes]]:
        return self.items[-1] if self.items else None


class DirectoryExportSink(ExportSink):
    """Writes artifacts under a directory, overwriting same-named files."""

    def __init__(self, directory: str):
        self.directory = Path(directory)
        self.written: Dict[str, Path] = {}

    def offer(self, filename: str, data: bytes) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            path = self.directory / filename
            path.write_bytes(data)
            self.written[filename] = path
            logger.info(f"📷 Saved capture {path}")
        except OSError as e:
            logger.error(f"Cannot write capture {filename}: {e}")
