"""Camera capture adapter."""

from prismhud.capture.service import (
    CaptureAdapter,
    CaptureBackend,
    CaptureHandle,
    Facing,
    Frame,
    ImageFileCaptureBackend,
    MockCaptureBackend,
    OpenCVCaptureBackend,
)

__all__ = [
    "CaptureAdapter",
    "CaptureBackend",
    "CaptureHandle",
    "Facing",
    "Frame",
    "ImageFileCaptureBackend",
    "MockCaptureBackend",
    "OpenCVCaptureBackend",
]
