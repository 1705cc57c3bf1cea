from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

from .buffer import PixelBuffer, ensure_not_empty
from .config import FAKE_TRANSPARENCY_MIN_AVG, MATCHED_BG_RESULT_MAX_ALPHA, MATCHED_BG_SOURCE_MIN_ALPHA


def remove_fake_transparency(buffer: PixelBuffer, tolerance: int) -> PixelBuffer:
    """
    Drop near-white / gray pixels (checkerboard bleed) that survived segmentation.

    A visible pixel is removed when its channel spread is below `tolerance`
    and its mean brightness is above FAKE_TRANSPARENCY_MIN_AVG.
    """
    ensure_not_empty(buffer, "fake_transparency")
    out = buffer.pixels.copy()
    rgb = out[..., :3].astype(np.int16)

    spread = rgb.max(axis=-1) - rgb.min(axis=-1)
    # avg > 150  <=>  r+g+b > 450, kept in integers
    bright = rgb.sum(axis=-1) > 3 * FAKE_TRANSPARENCY_MIN_AVG
    hit = (out[..., 3] > 0) & (spread < int(tolerance)) & bright

    out[..., 3][hit] = 0
    return PixelBuffer(out)


def estimate_removed_background(
    original: PixelBuffer, current: PixelBuffer
) -> Optional[Tuple[float, float, float]]:
    """
    Mean source colour of pixels that were opaque in the original and are
    background after segmentation. None when there are no such pixels.
    """
    if original.size != current.size:
        raise ValueError(f"Buffer size mismatch: original={original.size} current={current.size}")

    removed = (original.pixels[..., 3] > MATCHED_BG_SOURCE_MIN_ALPHA) & (
        current.pixels[..., 3] < MATCHED_BG_RESULT_MAX_ALPHA
    )
    count = int(removed.sum())
    if count == 0:
        return None

    colors = original.pixels[..., :3][removed].astype(np.float64)
    r, g, b = colors.sum(axis=0) / count
    return float(r), float(g), float(b)


def remove_matched_background(original: PixelBuffer, current: PixelBuffer, tolerance: int) -> PixelBuffer:
    """
    Remove background-coloured islands the segmentation kept.

    Both buffers are read-only inputs. If nothing was classified as removed
    background the result is an identical copy of `current`.
    """
    ensure_not_empty(current, "matched_background")
    out = current.pixels.copy()

    mean = estimate_removed_background(original, current)
    if mean is None:
        return PixelBuffer(out)

    diff = out[..., :3].astype(np.float64) - np.asarray(mean, dtype=np.float64)
    dist_sq = (diff * diff).sum(axis=-1)
    tol = float(tolerance)
    hit = (out[..., 3] > 0) & (dist_sq < tol * tol)

    out[..., 3][hit] = 0
    return PixelBuffer(out)
