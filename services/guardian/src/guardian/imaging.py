"""Frame transforms and detection overlays."""

from __future__ import annotations

from io import BytesIO
from typing import Iterable, Tuple

from PIL import Image, ImageDraw, UnidentifiedImageError

from .detection import BoundingBox, Detection
from .errors import ImageProcessingError

BOX_COLOR = (255, 255, 0)
BOX_THICKNESS = 3
JPEG_QUALITY = 90


def _open(data: bytes) -> Image.Image:
    if not data:
        raise ImageProcessingError("Image payload is empty")
    try:
        image = Image.open(BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise ImageProcessingError(f"Failed to decode image: {exc}") from exc
    return image


def _encode(image: Image.Image, fmt: str) -> bytes:
    buffer = BytesIO()
    if fmt == "JPEG":
        if image.mode not in ("RGB", "L"):
            image = image.convert("RGB")
        image.save(buffer, format=fmt, quality=JPEG_QUALITY)
    else:
        image.save(buffer, format=fmt)
    return buffer.getvalue()


def transform(data: bytes, flip: bool = False) -> bytes:
    """Apply the configured camera correction.

    With ``flip`` unset the input bytes are returned untouched. Otherwise the
    frame is mirrored top-to-bottom and re-encoded in its source format.
    """
    if not flip:
        return data

    image = _open(data)
    fmt = image.format or "JPEG"
    flipped = image.transpose(Image.Transpose.FLIP_TOP_BOTTOM)
    return _encode(flipped, fmt)


def pixel_box(bbox: BoundingBox, width: int, height: int) -> Tuple[int, int, int, int]:
    """Convert a normalized center box into clamped ``(x0, y0, x1, y1)`` pixels."""
    center_x = bbox.center_x * width
    center_y = bbox.center_y * height
    box_w = bbox.width * width
    box_h = bbox.height * height

    x0 = max(0, int(center_x - box_w / 2))
    y0 = max(0, int(center_y - box_h / 2))
    x1 = min(width - 1, int(center_x + box_w / 2))
    y1 = min(height - 1, int(center_y + box_h / 2))
    return x0, y0, max(x0, x1), max(y0, y1)


def annotate(data: bytes, detections: Iterable[Detection]) -> bytes:
    """Draw a yellow box and confidence label for every detection; returns JPEG."""
    image = _open(data).convert("RGB")
    draw = ImageDraw.Draw(image)
    width, height = image.size

    for detection in detections:
        x0, y0, x1, y1 = pixel_box(detection.bbox, width, height)
        draw.rectangle((x0, y0, x1, y1), outline=BOX_COLOR, width=BOX_THICKNESS)
        caption = f"{detection.label} {detection.confidence_percent:.0f}%"
        draw.text((x0 + BOX_THICKNESS + 1, y0 + BOX_THICKNESS + 1), caption, fill=BOX_COLOR)

    return _encode(image, "JPEG")


__all__ = ["annotate", "pixel_box", "transform"]
