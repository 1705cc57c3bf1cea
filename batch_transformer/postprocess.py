from __future__ import annotations

from dataclasses import dataclass

import cv2
import numpy as np

from .buffer import PixelBuffer, SegmentationMask
from .config import DEFAULT_BG_THRESHOLD, DEFAULT_ERODE_RADIUS, DEFAULT_FG_THRESHOLD
from .contracts import BackgroundRemovalOptions


@dataclass(frozen=True)
class MaskParams:
    """Effective mask cleanup parameters after resolving detail-mode toggles."""

    use_alpha: bool
    fg_threshold: int
    bg_threshold: int
    erode_radius: int


def resolve_mask_params(opts: BackgroundRemovalOptions) -> MaskParams:
    """
    Outside detail mode the fixed defaults always apply. In detail mode each
    threshold is either overridden or left on "auto" (the default).
    """
    detail = opts.detail_mode
    return MaskParams(
        use_alpha=opts.alpha_matting if detail else True,
        fg_threshold=opts.fg_threshold.value if detail and opts.fg_threshold.enabled else DEFAULT_FG_THRESHOLD,
        bg_threshold=opts.bg_threshold.value if detail and opts.bg_threshold.enabled else DEFAULT_BG_THRESHOLD,
        erode_radius=opts.erode_radius.value if detail and opts.erode_radius.enabled else DEFAULT_ERODE_RADIUS,
    )


def normalize_mask_channels(mask: SegmentationMask) -> np.ndarray:
    """
    Single-channel masks are replicated into R, G, B and A so alpha carries
    the saliency value. Four-channel masks are used as-is.
    """
    if mask.channels == 1:
        v = mask.values
        return np.ascontiguousarray(np.stack([v, v, v, v], axis=-1))
    return mask.values.copy()


def threshold_alpha(alpha: np.ndarray, fg_threshold: int, bg_threshold: int) -> np.ndarray:
    """
    Hard-clamp confident pixels, linearly stretch the uncertain band.

      a >= fg -> 255
      a <= bg -> 0
      else    -> round((a - bg) / (fg - bg) * 255)

    When fg == bg the stretch is skipped and mid values are left unchanged.
    """
    a = alpha.astype(np.float64)
    fg, bg = int(fg_threshold), int(bg_threshold)

    out = alpha.copy()
    span = fg - bg
    if span > 0:
        # Math.round semantics (half up), not numpy's banker's rounding.
        stretched = np.floor((a - bg) / span * 255.0 + 0.5)
        out = np.clip(stretched, 0, 255).astype(np.uint8)
    # Foreground test takes precedence when the two ranges overlap.
    out[alpha <= bg] = 0
    out[alpha >= fg] = 255
    return out


def erode_alpha(alpha: np.ndarray, radius: int) -> np.ndarray:
    """
    Square min-filter of side 2*radius+1 over a snapshot of the alpha.

    Neighbours outside the image count as 0, so content touching the border
    is eroded inward from it as well.
    """
    r = int(radius)
    if r <= 0:
        return alpha.copy()
    k = 2 * r + 1
    kernel = np.ones((k, k), np.uint8)
    return cv2.erode(alpha, kernel, iterations=1, borderType=cv2.BORDER_CONSTANT, borderValue=0)


def postprocess_mask(mask: SegmentationMask, opts: BackgroundRemovalOptions) -> PixelBuffer:
    """
    Full mask cleanup:
      - normalize channels to RGBA
      - threshold alpha (alpha path only)
      - force RGB to white
      - erode (alpha path only)

    Output keeps the mask's own resolution; the compositor resamples it.
    """
    params = resolve_mask_params(opts)
    rgba = normalize_mask_channels(mask)

    if params.use_alpha:
        alpha = threshold_alpha(rgba[..., 3], params.fg_threshold, params.bg_threshold)
        rgba[..., :3] = 255
        if params.erode_radius > 0:
            alpha = erode_alpha(alpha, params.erode_radius)
        rgba[..., 3] = alpha

    return PixelBuffer(rgba)
