"""
Error taxonomy for the camera grid.

Enumeration errors are terminal for the whole grid and are shown as a single
dashboard message. Feed errors stay inside the controller that raised them.
"""

from typing import Optional


class GaugewatchError(Exception):
    """Base error carrying a user-facing message."""

    default_message = "Unexpected error."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return type(self).__name__


# ============================================
# ENUMERATION
# ============================================

class EnumerationError(GaugewatchError):
    """Discovery failed; the grid shows this instead of any slots."""


class PermissionDenied(EnumerationError):
    default_message = (
        "Camera access denied. Please grant permission to the video devices "
        "and refresh the dashboard."
    )


class NoDevicesFound(EnumerationError):
    default_message = (
        "No cameras found. Please ensure your cameras are connected and not "
        "in use by another application."
    )


class UnsupportedEnvironment(EnumerationError):
    default_message = "Media capture is not supported in this environment."


class AcquisitionFailed(EnumerationError):
    default_message = (
        "Could not access cameras. Please check connections and ensure they "
        "are not in use by another program."
    )


# ============================================
# PER FEED
# ============================================

class StreamAcquisitionFailed(GaugewatchError):
    default_message = (
        "Camera failed to start. This may be due to a hardware issue or "
        "insufficient USB bandwidth for multiple streams."
    )


class RecognitionRequestFailed(GaugewatchError):
    default_message = "Failed to get OCR result."


class FrameUnavailable(GaugewatchError):
    default_message = "Video feed not ready."


class FeedNotActive(GaugewatchError):
    default_message = "Camera is not active."


class UnknownFeed(GaugewatchError):
    default_message = "Unknown camera feed."


class FeedBusy(GaugewatchError):
    default_message = "OCR already in progress."
