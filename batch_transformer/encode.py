from __future__ import annotations

import io
import logging
from dataclasses import dataclass

from PIL import Image

from .buffer import PixelBuffer, ensure_not_empty
from .config import INTERMEDIATE_QUALITY, MAX_PALETTE_COLORS, MIN_PALETTE_COLORS
from .contracts import CompressOptions, OutputFormat

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EncodedImage:
    data: bytes
    mime_type: str
    compressed: bool

    @property
    def size(self) -> int:
        return len(self.data)


def _save(img: Image.Image, fmt: OutputFormat, **params) -> bytes:
    buf = io.BytesIO()
    if fmt is OutputFormat.JPEG and img.mode != "RGB":
        img = img.convert("RGB")
    img.save(buf, format=fmt.value, **params)
    return buf.getvalue()


def palette_size(quality: int) -> int:
    """Colour budget used to emulate a quality knob on palette/lossless containers."""
    n = round(MAX_PALETTE_COLORS * quality / 100.0)
    return max(MIN_PALETTE_COLORS, min(MAX_PALETTE_COLORS, int(n)))


def encode_lossless(buffer: PixelBuffer, fmt: OutputFormat) -> bytes:
    """
    Phase one: maximum-fidelity encode into the target container.
    JPEG callers must flatten first; alpha is dropped otherwise.
    """
    ensure_not_empty(buffer, "encode")
    img = buffer.to_pil()
    if fmt in (OutputFormat.PNG, OutputFormat.GIF):
        return _save(img, fmt)
    return _save(img, fmt, quality=INTERMEDIATE_QUALITY)


def encode_lossy(data: bytes, fmt: OutputFormat, quality: int) -> bytes:
    """
    Phase two: re-encode an intermediate at `quality` (1-100) in the same format.
    """
    with Image.open(io.BytesIO(data)) as src:
        src.load()
        img = src.convert("RGBA")

    if fmt in (OutputFormat.JPEG, OutputFormat.WEBP):
        return _save(img, fmt, quality=int(quality))

    q = img.quantize(colors=palette_size(quality), method=Image.Quantize.FASTOCTREE)
    if fmt is OutputFormat.PNG:
        return _save(q, fmt, optimize=True)
    return _save(q.convert("RGBA"), fmt)


def encode_image(buffer: PixelBuffer, fmt: OutputFormat, compress: CompressOptions) -> EncodedImage:
    """
    Two-phase encode. Compression is best-effort: a failing or non-shrinking
    lossy pass falls back to the phase-one bytes.
    """
    intermediate = encode_lossless(buffer, fmt)
    if not compress.enabled:
        return EncodedImage(data=intermediate, mime_type=fmt.mime_type, compressed=False)

    try:
        lossy = encode_lossy(intermediate, fmt, compress.quality)
    except Exception as e:  # noqa: BLE001 - compression must never fail the image
        logger.warning("Lossy %s encode failed, keeping intermediate: %s", fmt.value, e)
        return EncodedImage(data=intermediate, mime_type=fmt.mime_type, compressed=False)

    if len(lossy) >= len(intermediate):
        logger.debug("Lossy %s encode did not shrink output (%d >= %d bytes)", fmt.value, len(lossy), len(intermediate))
        return EncodedImage(data=intermediate, mime_type=fmt.mime_type, compressed=False)
    return EncodedImage(data=lossy, mime_type=fmt.mime_type, compressed=True)
