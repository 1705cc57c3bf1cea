from __future__ import annotations

import numpy as np

from .buffer import PixelBuffer, ensure_not_empty


def blend_grayscale(buffer: PixelBuffer, intensity_percent: int) -> PixelBuffer:
    """
    Move every visible pixel toward its channel mean:

      c' = c * (1 - f) + avg * f,   f = intensity / 100

    Results are stored like an 8-bit clamped array (nearest, ties to even).
    Fully transparent pixels are left untouched.
    """
    ensure_not_empty(buffer, "grayscale")
    out = buffer.pixels.copy()
    if intensity_percent <= 0:
        return PixelBuffer(out)

    f = float(intensity_percent) / 100.0
    visible = out[..., 3] > 0

    rgb = out[..., :3][visible].astype(np.float64)
    avg = rgb.sum(axis=-1, keepdims=True) / 3.0
    blended = rgb * (1.0 - f) + avg * f
    out[..., :3][visible] = np.clip(np.rint(blended), 0, 255).astype(np.uint8)
    return PixelBuffer(out)
