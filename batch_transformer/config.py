"""
Centralized configuration constants for the image transform pipeline.

Ground rules:
- 8-bit RGBA, straight (non-premultiplied) alpha
- One image at a time
"""

# Mask post-processing defaults ("auto" values outside detail mode).
DEFAULT_FG_THRESHOLD = 240
DEFAULT_BG_THRESHOLD = 5
DEFAULT_ERODE_RADIUS = 5

# Fake transparency: only bright pixels can be checkerboard bleed.
FAKE_TRANSPARENCY_MIN_AVG = 150

# Matched background: "was opaque in the source, now removed by segmentation".
MATCHED_BG_SOURCE_MIN_ALPHA = 200
MATCHED_BG_RESULT_MAX_ALPHA = 50

FLATTEN_COLOR = (255, 255, 255)

# Phase-one encode quality for lossy containers (maximum fidelity).
INTERMEDIATE_QUALITY = 100

# Palette size bounds used when "compressing" PNG / GIF via quantization.
MIN_PALETTE_COLORS = 2
MAX_PALETTE_COLORS = 256

MIME_TYPES = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "WEBP": "image/webp",
    "GIF": "image/gif",
}

# Browsers report both spellings for JPEG.
MIME_ALIASES = {
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
    "image/x-png": "image/png",
}

FILE_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}

INPUT_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp", ".tif", ".tiff"}

# Segmentation collaborator.
DEFAULT_SEGMENTATION_MODEL = "hf:briaai/RMBG-1.4"
SEGMENTATION_INPUT_SIZE = 1024
SEGMENTATION_MEAN = [0.5, 0.5, 0.5]
SEGMENTATION_STD = [1.0, 1.0, 1.0]
