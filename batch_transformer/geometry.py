from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np

from .buffer import PixelBuffer, ensure_not_empty


@dataclass(frozen=True)
class ContentBox:
    """Inclusive bounding box of non-transparent pixels."""

    min_x: int
    min_y: int
    max_x: int
    max_y: int

    @property
    def width(self) -> int:
        return self.max_x - self.min_x + 1

    @property
    def height(self) -> int:
        return self.max_y - self.min_y + 1


def find_content_box(buffer: PixelBuffer) -> Optional[ContentBox]:
    """
    Bounding box of every pixel with alpha > 0 (any visible pixel is content,
    regardless of colour). None for a fully transparent image.
    """
    ys, xs = np.nonzero(buffer.pixels[..., 3])
    if ys.size == 0:
        return None
    return ContentBox(min_x=int(xs.min()), min_y=int(ys.min()), max_x=int(xs.max()), max_y=int(ys.max()))


def auto_crop(buffer: PixelBuffer, margin: int) -> PixelBuffer:
    """
    Re-frame the canvas tightly around its content plus a transparent margin.

    No content, or a canvas that already has exactly that framing, is returned
    as-is.
    """
    ensure_not_empty(buffer, "auto_crop")
    if margin < 0:
        raise ValueError(f"margin must be >= 0, got {margin}")

    box = find_content_box(buffer)
    if box is None:
        return buffer

    new_w = box.width + 2 * margin
    new_h = box.height + 2 * margin
    if (new_w, new_h) == buffer.size and box.min_x == 0 and box.min_y == 0:
        return buffer

    canvas = np.zeros((new_h, new_w, 4), dtype=np.uint8)
    canvas[margin : margin + box.height, margin : margin + box.width] = buffer.pixels[
        box.min_y : box.max_y + 1, box.min_x : box.max_x + 1
    ]
    return PixelBuffer(canvas)


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def compute_target_size(
    width: int,
    height: int,
    target_width: Optional[int],
    target_height: Optional[int],
    keep_aspect_ratio: bool,
) -> Tuple[int, int]:
    """
    Missing or non-positive targets fall back to the current size on that axis.
    With keep_aspect_ratio both axes use min(tw/w, th/h) and never drop below 1.
    """
    tw = target_width if target_width is not None and target_width > 0 else width
    th = target_height if target_height is not None and target_height > 0 else height

    if not keep_aspect_ratio:
        return int(tw), int(th)

    ratio = min(tw / float(width), th / float(height))
    new_w = max(1, _round_half_up(width * ratio))
    new_h = max(1, _round_half_up(height * ratio))
    return new_w, new_h


def _resample_rgba(pixels: np.ndarray, new_w: int, new_h: int) -> np.ndarray:
    """
    Resample on premultiplied colour so fully transparent pixels do not bleed
    their (meaningless) RGB into visible edges.
    """
    h, w = pixels.shape[:2]
    shrinking = new_w * new_h < w * h
    interpolation = cv2.INTER_AREA if shrinking else cv2.INTER_CUBIC

    f = pixels.astype(np.float32)
    alpha = f[..., 3:4] / 255.0
    premul = np.concatenate([f[..., :3] * alpha, f[..., 3:4]], axis=-1)

    resized = cv2.resize(premul, (new_w, new_h), interpolation=interpolation)
    resized = np.clip(resized, 0.0, 255.0)

    a = resized[..., 3:4]
    safe = np.where(a > 0, a / 255.0, 1.0)
    rgb = np.where(a > 0, resized[..., :3] / safe, 0.0)

    out = np.empty((new_h, new_w, 4), dtype=np.uint8)
    out[..., :3] = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)
    out[..., 3] = np.rint(a[..., 0]).astype(np.uint8)
    return out


def resize(
    buffer: PixelBuffer,
    target_width: Optional[int],
    target_height: Optional[int],
    keep_aspect_ratio: bool = True,
) -> PixelBuffer:
    ensure_not_empty(buffer, "resize")
    new_w, new_h = compute_target_size(buffer.width, buffer.height, target_width, target_height, keep_aspect_ratio)
    if (new_w, new_h) == buffer.size:
        return buffer
    return PixelBuffer(_resample_rgba(buffer.pixels, new_w, new_h))
