"""ROI thumbnail generation."""

from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Sequence

from PIL import Image

from prismhud.analysis.models import ROI
from prismhud.capture import Frame


@dataclass(frozen=True)
class CropBox:
    """Square crop region in frame pixels."""

    left: int
    top: int
    side: int

    @property
    def box(self) -> tuple[int, int, int, int]:
        return (self.left, self.top, self.left + self.side, self.top + self.side)


def crop_box(frame_w: int, frame_h: int, x: float, y: float, fraction: float) -> CropBox:
    """Square of ``fraction * min(w, h)`` centered on the percentage point, clamped inside the frame."""
    if not 0 < fraction <= 1:
        raise ValueError(f"fraction must be in (0, 1], got {fraction}")

    side = max(1, round(fraction * min(frame_w, frame_h)))
    left = round(x / 100 * frame_w - side / 2)
    top = round(y / 100 * frame_h - side / 2)
    return CropBox(
        left=min(max(left, 0), frame_w - side),
        top=min(max(top, 0), frame_h - side),
        side=side,
    )


def _encode_crop(image: Image.Image, box: CropBox, output_size: int, quality: int) -> bytes:
    thumb = image.resize((output_size, output_size), Image.Resampling.BILINEAR, box=box.box)
    buffer = io.BytesIO()
    thumb.save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


def generate_crops(
    frame: Frame,
    rois: Sequence[ROI],
    fraction: float = 0.35,
    output_size: int = 512,
    quality: int = 90,
) -> list[ROI]:
    """Attach a JPEG thumbnail to each ROI, preserving order.

    Blocking; run it in a worker thread.
    """
    return [
        roi.with_thumbnail(
            _encode_crop(
                frame.image,
                crop_box(frame.width, frame.height, roi.x, roi.y, fraction),
                output_size,
                quality,
            )
        )
        for roi in rois
    ]
