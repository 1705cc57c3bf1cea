from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Union

import numpy as np
from PIL import Image

from .errors import EmptyImage, InvalidMaskFormat


@dataclass(frozen=True, eq=False)
class PixelBuffer:
    """
    Owned RGBA pixels: uint8 ndarray of shape (H, W, 4), straight alpha.

    Stages never mutate a buffer they were given; they return a new one.
    """

    pixels: np.ndarray

    def __post_init__(self) -> None:
        p = self.pixels
        if not isinstance(p, np.ndarray) or p.ndim != 3 or p.shape[2] != 4:
            raise ValueError(f"Expected RGBA pixels (H,W,4), got {getattr(p, 'shape', type(p))}")
        if p.dtype != np.uint8:
            raise ValueError(f"Expected uint8 pixels, got dtype={p.dtype}")
        if not p.flags["C_CONTIGUOUS"]:
            object.__setattr__(self, "pixels", np.ascontiguousarray(p))

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    @classmethod
    def blank(cls, width: int, height: int) -> "PixelBuffer":
        """Fully transparent canvas."""
        return cls(np.zeros((int(height), int(width), 4), dtype=np.uint8))

    @classmethod
    def from_pil(cls, img: Image.Image) -> "PixelBuffer":
        if img.mode != "RGBA":
            img = img.convert("RGBA")
        return cls(np.array(img, dtype=np.uint8))

    def to_pil(self) -> Image.Image:
        return Image.fromarray(self.pixels)


def ensure_not_empty(buffer: PixelBuffer, stage: str) -> None:
    if buffer.width <= 0 or buffer.height <= 0:
        raise EmptyImage(f"{stage}: empty image ({buffer.width}x{buffer.height})")


@dataclass(frozen=True, eq=False)
class SegmentationMask:
    """
    Saliency output of the segmentation collaborator.

    values: uint8 ndarray, either (H, W) single-channel or (H, W, 4).
    Resolution may differ from the source image.
    """

    values: np.ndarray

    def __post_init__(self) -> None:
        v = self.values
        if not isinstance(v, np.ndarray) or v.dtype != np.uint8:
            raise InvalidMaskFormat(f"Mask must be a uint8 ndarray, got {getattr(v, 'dtype', type(v))}")
        if not (v.ndim == 2 or (v.ndim == 3 and v.shape[2] == 4)):
            raise InvalidMaskFormat(f"Unsupported mask shape={v.shape}; expected (H,W) or (H,W,4)")
        if v.shape[0] <= 0 or v.shape[1] <= 0:
            raise EmptyImage(f"Empty mask shape={v.shape}")

    @property
    def channels(self) -> int:
        return 1 if self.values.ndim == 2 else 4

    @property
    def width(self) -> int:
        return int(self.values.shape[1])

    @property
    def height(self) -> int:
        return int(self.values.shape[0])

    @classmethod
    def from_raw(cls, data: bytes, width: int, height: int, channels: int) -> "SegmentationMask":
        """Build from a flat byte payload (1 or 4 interleaved channels)."""
        if channels not in (1, 4):
            raise InvalidMaskFormat(f"Unsupported mask channel count: {channels}")
        expected = int(width) * int(height) * int(channels)
        if len(data) != expected:
            raise InvalidMaskFormat(
                f"Mask payload has {len(data)} bytes, expected {expected} for {width}x{height}x{channels}"
            )
        arr = np.frombuffer(data, dtype=np.uint8).copy()
        shape = (int(height), int(width)) if channels == 1 else (int(height), int(width), 4)
        return cls(arr.reshape(shape))

    @classmethod
    def coerce(cls, mask: Any) -> "SegmentationMask":
        """
        Accept whatever a segmenter hands back:
          - SegmentationMask
          - PIL image in mode L or RGBA
          - ndarray (H,W), (H,W,1) or (H,W,4); uint8, or float in [0,1]
        """
        if isinstance(mask, SegmentationMask):
            return mask
        if isinstance(mask, PixelBuffer):
            return cls(mask.pixels)
        if isinstance(mask, Image.Image):
            if mask.mode in ("L", "RGBA"):
                return cls(np.array(mask, dtype=np.uint8))
            raise InvalidMaskFormat(f"Unsupported mask image mode: {mask.mode}")
        if not isinstance(mask, np.ndarray):
            raise InvalidMaskFormat(f"Unsupported mask type: {type(mask).__name__}")

        arr = mask
        if arr.ndim == 3 and arr.shape[2] == 1:
            arr = arr[..., 0]
        if np.issubdtype(arr.dtype, np.floating):
            if not np.isfinite(arr).all():
                raise InvalidMaskFormat("Mask contains NaN or infinite values")
            arr = np.floor(np.clip(arr, 0.0, 1.0) * 255.0 + 0.5).astype(np.uint8)
        elif arr.dtype != np.uint8:
            raise InvalidMaskFormat(f"Unsupported mask dtype: {arr.dtype}")
        return cls(np.ascontiguousarray(arr))


MaskLike = Union[SegmentationMask, np.ndarray, Image.Image]

# Anything that maps an image to a saliency mask. The pipeline only depends on this.
Segmenter = Callable[[PixelBuffer], MaskLike]
