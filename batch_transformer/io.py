from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Any, Dict, Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from .buffer import PixelBuffer
from .config import FILE_EXTENSIONS, MIME_ALIASES, MIME_TYPES
from .contracts import OutputFormat, PipelineConfig
from .errors import ImageDecodeError

# PIL format name -> MIME type for sniffing
_PIL_MIME = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "MPO": "image/jpeg",
    "WEBP": "image/webp",
    "GIF": "image/gif",
    "BMP": "image/bmp",
    "TIFF": "image/tiff",
}

_FORMAT_BY_MIME = {mime: OutputFormat(name) for name, mime in MIME_TYPES.items()}


def normalize_mime(mime: Optional[str]) -> str:
    m = (mime or "").strip().lower()
    return MIME_ALIASES.get(m, m)


def sniff_mime(data: bytes) -> str:
    """MIME type from the encoded bytes themselves ("" when unknown)."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return _PIL_MIME.get(img.format or "", "")
    except (UnidentifiedImageError, OSError):
        return ""


def decode_image(data: bytes) -> PixelBuffer:
    """
    Decode bytes into an RGBA buffer. EXIF orientation is applied so the
    pixels match what a viewer shows; animated images use their first frame.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            img = ImageOps.exif_transpose(img)
            return PixelBuffer.from_pil(img.convert("RGBA"))
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ImageDecodeError(f"Could not decode image: {e}") from e


def resolve_output_format(config: PipelineConfig, source_mime: str) -> OutputFormat:
    """
    Explicit override wins; otherwise keep the source container when we can
    write it, else PNG.
    """
    if config.output_format is not None:
        return config.output_format
    return _FORMAT_BY_MIME.get(normalize_mime(source_mime), OutputFormat.PNG)


def download_filename(original_name: str, mime_type: str) -> str:
    """`photo.jpeg` + image/webp -> `photo.webp`; unknown MIME keeps the original extension."""
    p = Path(original_name)
    ext = FILE_EXTENSIONS.get(normalize_mime(mime_type)) or p.suffix.lstrip(".") or "png"
    return f"{p.stem}.{ext}"


def unique_filename(filename: str, counts: Dict[str, int]) -> str:
    """
    De-duplicate names within one batch: a, a_1, a_2, ...
    `counts` is updated in place and also records every name handed out, so a
    suffixed name never collides with a file that is literally called `a_1`.
    """
    if filename not in counts:
        counts[filename] = 1
        return filename
    p = Path(filename)
    n = counts[filename]
    candidate = f"{p.stem}_{n}{p.suffix}"
    while candidate in counts:
        n += 1
        candidate = f"{p.stem}_{n}{p.suffix}"
    counts[filename] = n + 1
    counts[candidate] = 1
    return candidate


def load_config(path: str) -> PipelineConfig:
    """
    Load a PipelineConfig from JSON. Both the nested layout
    ({"autoCrop": {"enabled": true, "marginPx": 10}, ...}) and the flat
    settings record exported by the web front-end are accepted.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")
    data: Dict[str, Any] = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Config must be a JSON object: {p}")
    if any(k.startswith("enable") for k in data):
        return PipelineConfig.from_app_options(data)
    return PipelineConfig.model_validate(data)


def write_bytes(path: str, data: bytes) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_bytes(data)
