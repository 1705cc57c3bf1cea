from __future__ import annotations

import cv2
import numpy as np
from PIL import Image

from .buffer import PixelBuffer, ensure_not_empty
from .config import FLATTEN_COLOR


def resample_alpha(mask: PixelBuffer, width: int, height: int) -> np.ndarray:
    """
    Bilinear resample of the mask alpha to (width, height).
    """
    alpha = mask.pixels[..., 3]
    if (mask.width, mask.height) == (width, height):
        return alpha.copy()
    return cv2.resize(alpha, (int(width), int(height)), interpolation=cv2.INTER_LINEAR)


def apply_mask(original: PixelBuffer, mask: PixelBuffer) -> PixelBuffer:
    """
    "destination-in" at source resolution: the original keeps its colour and
    size exactly, its alpha is multiplied by the (resampled) mask alpha.
    """
    ensure_not_empty(original, "composite")
    ensure_not_empty(mask, "composite")

    m = resample_alpha(mask, original.width, original.height).astype(np.uint32)
    out = original.pixels.copy()
    a = out[..., 3].astype(np.uint32)
    out[..., 3] = ((a * m + 127) // 255).astype(np.uint8)
    return PixelBuffer(out)


def flatten(buffer: PixelBuffer, color: tuple[int, int, int] = FLATTEN_COLOR) -> PixelBuffer:
    """
    Source-over composite onto an opaque background of the same size.
    Used for containers without alpha (JPEG).
    """
    ensure_not_empty(buffer, "flatten")
    bg = Image.new("RGBA", buffer.size, (*color, 255))
    comp = Image.alpha_composite(bg, buffer.to_pil())
    return PixelBuffer.from_pil(comp)
