"""Camera capture adapter implementation."""

from __future__ import annotations

import asyncio
import io
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import numpy as np
from PIL import Image

from prismhud.common import DeviceError, NotReadyError, get_logger
from prismhud.common.events import Event, EventBus, get_event_bus
from prismhud.config import Config


class Facing(str, Enum):
    """Camera facing mode."""

    FRONT = "FRONT"
    BACK = "BACK"

    @property
    def media_name(self) -> str:
        """Facing name as used by media capture APIs."""
        return "user" if self is Facing.FRONT else "environment"

    def flipped(self) -> Facing:
        return Facing.BACK if self is Facing.FRONT else Facing.FRONT


@dataclass
class Frame:
    """Captured frame, owned by a single analysis cycle."""

    frame_id: str
    image: Image.Image
    facing: Facing
    timestamp: float
    metadata: dict = field(default_factory=dict)

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    def encode(self, format: str = "JPEG", quality: int = 85) -> bytes:
        """Encode the frame to image bytes (blocking)."""
        buffer = io.BytesIO()
        self.image.save(buffer, format=format, quality=quality)
        return buffer.getvalue()


@dataclass
class CaptureHandle:
    """Handle to an acquired camera stream."""

    handle_id: str
    facing: Facing
    acquired_at: float
    live: bool = True


class CaptureBackend:
    """Abstract camera backend."""

    async def open(self, facing: Facing) -> None:
        """Open the camera for the given facing mode."""
        raise NotImplementedError

    async def close(self) -> None:
        """Stop all tracks and close the device."""
        raise NotImplementedError

    async def read(self) -> Image.Image | None:
        """Read the latest frame, or None while the device is warming up."""
        raise NotImplementedError


class MockCaptureBackend(CaptureBackend):
    """Synthetic camera producing deterministic gradient frames."""

    def __init__(
        self,
        width: int = 1280,
        height: int = 720,
        warmup_reads: int = 0,
        fail_open: bool = False,
    ) -> None:
        self.width = width
        self.height = height
        self.warmup_reads = warmup_reads
        self.fail_open = fail_open
        self.is_open = False
        self.open_count = 0
        self.facing: Facing | None = None
        self._reads = 0

    async def open(self, facing: Facing) -> None:
        if self.fail_open:
            raise DeviceError("Mock camera refused to open")
        if self.is_open:
            raise DeviceError("Mock camera opened while already live")
        self.is_open = True
        self.open_count += 1
        self.facing = facing
        self._reads = 0

    async def close(self) -> None:
        self.is_open = False

    async def read(self) -> Image.Image | None:
        if not self.is_open:
            return None
        self._reads += 1
        if self._reads <= self.warmup_reads:
            return None

        xs = np.linspace(0, 255, self.width, dtype=np.uint8)
        ys = np.linspace(0, 255, self.height, dtype=np.uint8)
        pixels = np.zeros((self.height, self.width, 3), dtype=np.uint8)
        pixels[..., 0] = xs[np.newaxis, :]
        pixels[..., 1] = ys[:, np.newaxis]
        pixels[..., 2] = 137 if self.facing is Facing.BACK else 40
        return Image.fromarray(pixels)


class ImageFileCaptureBackend(CaptureBackend):
    """Serves a still image from disk as the camera feed."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._image: Image.Image | None = None

    async def open(self, facing: Facing) -> None:
        try:
            with Image.open(self.path) as img:
                self._image = img.convert("RGB")
        except OSError as e:
            raise DeviceError(f"Cannot open image {self.path}: {e}") from e

    async def close(self) -> None:
        self._image = None

    async def read(self) -> Image.Image | None:
        return self._image.copy() if self._image is not None else None


class OpenCVCaptureBackend(CaptureBackend):
    """Webcam backend using OpenCV; one device index per facing mode."""

    def __init__(self, config: Config) -> None:
        self.config = config
        self._capture = None
        self.logger = get_logger("opencv_capture_backend")

    async def open(self, facing: Facing) -> None:
        try:
            import cv2
        except ImportError as e:
            raise DeviceError("opencv-python is not installed") from e

        index = (
            self.config.capture.front_device_index
            if facing is Facing.FRONT
            else self.config.capture.back_device_index
        )
        width, height = self.config.capture.resolution

        def _open():
            capture = cv2.VideoCapture(index)
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, width)
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
            return capture

        capture = await asyncio.to_thread(_open)
        if not capture.isOpened():
            capture.release()
            raise DeviceError(f"Camera {index} unavailable or permission denied")

        self._capture = capture
        self.logger.info("opencv_camera_opened", index=index, facing=facing.value)

    async def close(self) -> None:
        if self._capture is not None:
            capture, self._capture = self._capture, None
            await asyncio.to_thread(capture.release)

    async def read(self) -> Image.Image | None:
        if self._capture is None:
            return None

        import cv2

        ok, bgr = await asyncio.to_thread(self._capture.read)
        if not ok or bgr is None:
            return None
        return Image.fromarray(cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB))


class CaptureAdapter:
    """Capture adapter.

    Responsibilities:
    - Exclusive ownership of the camera handle
    - Two-phase facing switch (release, settle, acquire)
    - Frame snapshots scaled to the analysis width
    """

    def __init__(
        self,
        config: Config,
        backend: CaptureBackend | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.config = config
        if backend is None:
            if config.mock_mode:
                backend = MockCaptureBackend(warmup_reads=config.capture.warmup_reads)
            else:
                backend = OpenCVCaptureBackend(config)
        self._backend = backend
        self._event_bus = event_bus or get_event_bus()
        self._handle: CaptureHandle | None = None
        self._lock = asyncio.Lock()
        self.logger = get_logger("capture")

    @property
    def handle(self) -> CaptureHandle | None:
        """Currently live handle, if any."""
        return self._handle

    async def acquire(self, facing: Facing) -> CaptureHandle:
        """Acquire the camera, releasing any live handle first.

        Raises:
            DeviceError: The device is unavailable or permission was denied.
        """
        async with self._lock:
            if self._handle is not None:
                await self._release_locked(self._handle)
                await self._settle()
            return await self._acquire_locked(facing)

    async def release(self, handle: CaptureHandle) -> None:
        """Release a handle. Releasing a dead handle is a no-op."""
        async with self._lock:
            await self._release_locked(handle)

    async def switch_facing(self, facing: Facing) -> CaptureHandle:
        """Switch facing mode: full release, settle delay, then acquire."""
        async with self._lock:
            if self._handle is not None:
                await self._release_locked(self._handle)
            await self._settle()
            return await self._acquire_locked(facing)

    async def snapshot(self, handle: CaptureHandle) -> Frame:
        """Capture a frame from a live handle.

        Raises:
            NotReadyError: The handle is stale or the device has not delivered a frame yet.
        """
        async with self._lock:
            if not handle.live or handle is not self._handle:
                raise NotReadyError("Capture handle is not live")

            image = await self._backend.read()
            if image is None:
                raise NotReadyError("Camera has not delivered a frame yet")

        image = await asyncio.to_thread(self._scale_to_target, image)
        frame = Frame(
            frame_id=str(uuid.uuid4()),
            image=image,
            facing=handle.facing,
            timestamp=time.time(),
            metadata={"handle_id": handle.handle_id},
        )

        await self._event_bus.publish(
            Event(
                topic="capture.snapshot",
                data={"frame_id": frame.frame_id, "width": frame.width, "height": frame.height},
                source="capture",
            )
        )
        return frame

    def _scale_to_target(self, image: Image.Image) -> Image.Image:
        image = image.convert("RGB")
        target_width = self.config.capture.target_width
        if image.width <= target_width:
            return image
        height = round(image.height * target_width / image.width)
        return image.resize((target_width, height), Image.Resampling.BILINEAR)

    async def _acquire_locked(self, facing: Facing) -> CaptureHandle:
        try:
            await self._backend.open(facing)
        except DeviceError:
            self.logger.warning("camera_acquire_failed", facing=facing.value)
            raise
        except Exception as e:
            self.logger.exception("camera_acquire_failed", facing=facing.value, error=str(e))
            raise DeviceError(str(e)) from e

        self._handle = CaptureHandle(
            handle_id=str(uuid.uuid4()),
            facing=facing,
            acquired_at=time.time(),
        )
        self.logger.info("camera_acquired", facing=facing.value, handle_id=self._handle.handle_id)
        await self._event_bus.publish(
            Event(topic="capture.acquired", data={"facing": facing.value}, source="capture")
        )
        return self._handle

    async def _release_locked(self, handle: CaptureHandle) -> None:
        if not handle.live:
            return

        handle.live = False
        if handle is self._handle:
            self._handle = None
            await self._backend.close()

        self.logger.info("camera_released", facing=handle.facing.value, handle_id=handle.handle_id)
        await self._event_bus.publish(
            Event(topic="capture.released", data={"facing": handle.facing.value}, source="capture")
        )

    async def _settle(self) -> None:
        delay = self.config.capture.settle_delay_seconds
        if delay > 0:
            self.logger.debug("camera_settle_delay", seconds=delay)
            await asyncio.sleep(delay)
