from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .adjust import blend_grayscale
from .buffer import PixelBuffer, SegmentationMask, Segmenter, ensure_not_empty
from .cleanup import remove_fake_transparency, remove_matched_background
from .composite import apply_mask, flatten
from .contracts import ImageJob, JobStatus, OutputFormat, PipelineConfig
from .encode import encode_image
from .errors import PipelineError
from .geometry import auto_crop, resize
from .io import decode_image, normalize_mime, resolve_output_format, sniff_mime
from .postprocess import postprocess_mask

logger = logging.getLogger(__name__)


@dataclass
class StageTimings:
    """Seconds spent per stage; stages that were skipped are absent."""

    stages: Dict[str, float] = field(default_factory=dict)

    @property
    def total_s(self) -> float:
        return sum(self.stages.values())


class _Timer:
    def __init__(self, timings: StageTimings, name: str):
        self.timings = timings
        self.name = name

    def __enter__(self) -> "_Timer":
        self.t0 = time.perf_counter()
        return self

    def __exit__(self, *exc) -> None:
        self.timings.stages[self.name] = time.perf_counter() - self.t0


@dataclass(frozen=True)
class PipelineResult:
    data: bytes
    mime_type: str
    original_size: int
    width: int
    height: int
    compressed: bool
    timings: StageTimings

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def size_delta(self) -> int:
        return self.size - self.original_size


def remove_background(
    original: PixelBuffer, segment: Segmenter, config: PipelineConfig, timings: StageTimings
) -> PixelBuffer:
    """
    Segment, clean the mask, composite at source resolution, then run the
    enabled cleanup passes. `original` is only read.
    """
    opts = config.background_removal

    with _Timer(timings, "segment"):
        mask = SegmentationMask.coerce(segment(original))

    with _Timer(timings, "mask"):
        clean_mask = postprocess_mask(mask, opts)

    with _Timer(timings, "composite"):
        current = apply_mask(original, clean_mask)

    if config.fake_transparency_cleanup.enabled:
        with _Timer(timings, "fake_transparency"):
            current = remove_fake_transparency(current, config.fake_transparency_cleanup.tolerance_percent)

    if config.matched_background_cleanup.enabled:
        with _Timer(timings, "matched_background"):
            current = remove_matched_background(original, current, config.matched_background_cleanup.tolerance)

    return current


def _decode(data: bytes, timings: StageTimings) -> PixelBuffer:
    with _Timer(timings, "decode"):
        return decode_image(data)


def transform_buffer(
    buffer: PixelBuffer,
    config: PipelineConfig,
    fmt: OutputFormat,
    segment: Optional[Segmenter] = None,
    timings: Optional[StageTimings] = None,
) -> PixelBuffer:
    """
    Pixel stages in fixed order; disabled stages are skipped entirely.
    Returns the final buffer ready for encoding (flattened for JPEG).
    """
    if timings is None:
        timings = StageTimings()
    ensure_not_empty(buffer, "pipeline")
    current = buffer

    if config.background_removal.enabled:
        if segment is None:
            raise PipelineError("Background removal is enabled but no segmenter was provided")
        current = remove_background(buffer, segment, config, timings)
    # From here on nothing holds the pre-segmentation pixels.
    del buffer

    if config.grayscale.enabled and config.grayscale.intensity_percent > 0:
        with _Timer(timings, "grayscale"):
            current = blend_grayscale(current, config.grayscale.intensity_percent)

    if config.auto_crop.enabled:
        with _Timer(timings, "auto_crop"):
            current = auto_crop(current, config.auto_crop.margin_px)

    if config.resize.enabled:
        r = config.resize
        with _Timer(timings, "resize"):
            current = resize(current, r.target_width, r.target_height, r.keep_aspect_ratio)

    if not fmt.supports_alpha:
        with _Timer(timings, "flatten"):
            current = flatten(current)

    return current


def transform_image(
    data: bytes,
    mime_type: Optional[str],
    config: PipelineConfig,
    segment: Optional[Segmenter] = None,
) -> PipelineResult:
    """
    Decode -> pixel stages -> encode for one image.

    `mime_type` is the declared type; when it is missing or generic the bytes
    are sniffed. The output keeps the source container unless the config
    overrides it.
    """
    timings = StageTimings()

    mime = normalize_mime(mime_type)
    if not mime.startswith("image/"):
        mime = sniff_mime(data)
    fmt = resolve_output_format(config, mime)

    final = transform_buffer(_decode(data, timings), config, fmt, segment=segment, timings=timings)

    with _Timer(timings, "encode"):
        encoded = encode_image(final, fmt, config.compress)

    return PipelineResult(
        data=encoded.data,
        mime_type=encoded.mime_type,
        original_size=len(data),
        width=final.width,
        height=final.height,
        compressed=encoded.compressed,
        timings=timings,
    )


def process_job(job: ImageJob, config: PipelineConfig, segment: Optional[Segmenter] = None) -> ImageJob:
    """
    Run one job through pending -> processing -> done | error.
    Failures are recorded on the job and never raised.
    """
    job.status = JobStatus.PROCESSING
    try:
        result = transform_image(job.source, job.mime_type, config, segment=segment)
    except Exception as e:  # noqa: BLE001 - one bad image must not abort the batch
        logger.error("Image %s (%s) failed: %s", job.id, job.name or "<unnamed>", e)
        job.status = JobStatus.ERROR
        job.error = f"{type(e).__name__}: {e}"
        return job

    job.result = result.data
    job.result_size = result.size
    job.result_mime_type = result.mime_type
    job.timings = dict(result.timings.stages)
    job.error = ""
    job.status = JobStatus.DONE
    return job


def process_batch(
    jobs: Iterable[ImageJob], config: PipelineConfig, segment: Optional[Segmenter] = None
) -> List[ImageJob]:
    """
    Process pending jobs strictly one after another. Jobs that are not
    pending are left untouched.
    """
    out: List[ImageJob] = []
    for job in jobs:
        if job.status is JobStatus.PENDING:
            process_job(job, config, segment=segment)
        out.append(job)
    return out
