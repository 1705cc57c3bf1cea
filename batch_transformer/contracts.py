from __future__ import annotations

import uuid
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .config import DEFAULT_BG_THRESHOLD, DEFAULT_ERODE_RADIUS, DEFAULT_FG_THRESHOLD, MIME_TYPES


class OutputFormat(str, Enum):
    PNG = "PNG"
    JPEG = "JPEG"
    WEBP = "WEBP"
    GIF = "GIF"

    @property
    def mime_type(self) -> str:
        return MIME_TYPES[self.value]

    @property
    def supports_alpha(self) -> bool:
        return self is not OutputFormat.JPEG

    @classmethod
    def parse(cls, value: str) -> "OutputFormat":
        v = value.strip().upper()
        if v == "JPG":
            v = "JPEG"
        return cls(v)


class _Options(BaseModel):
    """Immutable option group; accepts snake_case or camelCase keys."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True, extra="ignore")


class AutoCropOptions(_Options):
    enabled: bool = False
    margin_px: int = Field(default=0, ge=0)


class CompressOptions(_Options):
    enabled: bool = True
    quality: int = Field(default=60, ge=1, le=100)


class ResizeOptions(_Options):
    enabled: bool = True
    target_width: Optional[int] = 200
    target_height: Optional[int] = None
    keep_aspect_ratio: bool = True

    @field_validator("target_width", "target_height", mode="before")
    @classmethod
    def _parse_dimension(cls, v: Any) -> Optional[int]:
        # Text inputs: "" means auto, anything non-numeric is treated as auto too.
        if v is None:
            return None
        if isinstance(v, str):
            v = v.strip()
            if not v.isdigit():
                return None
            return int(v)
        return v


class GrayscaleOptions(_Options):
    enabled: bool = False
    intensity_percent: int = Field(default=50, ge=0, le=100)


class ToggleValue(_Options):
    """A value that is either overridden (enabled) or left on "auto"."""

    enabled: bool = False
    value: int


class BackgroundRemovalOptions(_Options):
    enabled: bool = False
    detail_mode: bool = False
    alpha_matting: bool = True
    fg_threshold: ToggleValue = ToggleValue(value=DEFAULT_FG_THRESHOLD)
    bg_threshold: ToggleValue = ToggleValue(value=DEFAULT_BG_THRESHOLD)
    erode_radius: ToggleValue = ToggleValue(value=DEFAULT_ERODE_RADIUS)

    @field_validator("fg_threshold")
    @classmethod
    def _fg_range(cls, v: ToggleValue) -> ToggleValue:
        if not 0 <= v.value <= 255:
            raise ValueError(f"fg_threshold must be in [0, 255], got {v.value}")
        return v

    @field_validator("bg_threshold")
    @classmethod
    def _bg_range(cls, v: ToggleValue) -> ToggleValue:
        if not 0 <= v.value <= 50:
            raise ValueError(f"bg_threshold must be in [0, 50], got {v.value}")
        return v

    @field_validator("erode_radius")
    @classmethod
    def _erode_range(cls, v: ToggleValue) -> ToggleValue:
        if not 0 <= v.value <= 20:
            raise ValueError(f"erode_radius must be in [0, 20], got {v.value}")
        return v


class FakeTransparencyOptions(_Options):
    enabled: bool = False
    tolerance_percent: int = Field(default=20, ge=0, le=100)


class MatchedBackgroundOptions(_Options):
    enabled: bool = False
    tolerance: int = Field(default=30, ge=0, le=100)


class PipelineConfig(_Options):
    auto_crop: AutoCropOptions = AutoCropOptions()
    compress: CompressOptions = CompressOptions()
    resize: ResizeOptions = ResizeOptions()
    grayscale: GrayscaleOptions = GrayscaleOptions()
    background_removal: BackgroundRemovalOptions = BackgroundRemovalOptions()
    fake_transparency_cleanup: FakeTransparencyOptions = FakeTransparencyOptions()
    matched_background_cleanup: MatchedBackgroundOptions = MatchedBackgroundOptions()
    # None: keep the source format.
    output_format: Optional[OutputFormat] = None

    @field_validator("output_format", mode="before")
    @classmethod
    def _parse_format(cls, v: Any) -> Any:
        if isinstance(v, str):
            return OutputFormat.parse(v)
        return v

    @classmethod
    def from_app_options(cls, options: Dict[str, Any]) -> "PipelineConfig":
        """
        Build from the flat settings record exported by the web front-end
        (enableAutoCrop, autoCropMargin, quality, ...). Missing keys keep defaults.

        The record always carries `outputFormat` (WEBP by default) but the
        front-end never applies it; images keep their source format, so it is
        not mapped to an override here. Use the nested layout or `--format`
        to force a container.
        """
        o = options
        d = cls()

        def pick(key: str, default: Any) -> Any:
            return o.get(key, default)

        bgr = d.background_removal
        return cls(
            auto_crop=AutoCropOptions(
                enabled=pick("enableAutoCrop", d.auto_crop.enabled),
                margin_px=pick("autoCropMargin", d.auto_crop.margin_px),
            ),
            compress=CompressOptions(
                enabled=pick("enableCompress", d.compress.enabled),
                quality=pick("quality", d.compress.quality),
            ),
            resize=ResizeOptions(
                enabled=pick("enableResize", d.resize.enabled),
                target_width=pick("resizeWidth", d.resize.target_width),
                target_height=pick("resizeHeight", d.resize.target_height),
                keep_aspect_ratio=pick("keepRatio", d.resize.keep_aspect_ratio),
            ),
            grayscale=GrayscaleOptions(
                enabled=pick("enableGrayscale", d.grayscale.enabled),
                intensity_percent=pick("grayscale", d.grayscale.intensity_percent),
            ),
            background_removal=BackgroundRemovalOptions(
                enabled=pick("enableBgRemoval", bgr.enabled),
                detail_mode=pick("detailRemoval", bgr.detail_mode),
                alpha_matting=pick("alphaMatting", bgr.alpha_matting),
                fg_threshold=ToggleValue(
                    enabled=pick("enableFgThreshold", False), value=pick("fgThreshold", bgr.fg_threshold.value)
                ),
                bg_threshold=ToggleValue(
                    enabled=pick("enableBgThreshold", False), value=pick("bgThreshold", bgr.bg_threshold.value)
                ),
                erode_radius=ToggleValue(
                    enabled=pick("enableErodeSize", False), value=pick("erodeSize", bgr.erode_radius.value)
                ),
            ),
            fake_transparency_cleanup=FakeTransparencyOptions(
                enabled=pick("fakeTransRemoval", False),
                tolerance_percent=pick("fakeTransTolerance", d.fake_transparency_cleanup.tolerance_percent),
            ),
            matched_background_cleanup=MatchedBackgroundOptions(
                enabled=pick("removeMatchBg", False),
                tolerance=pick("removeMatchBgTolerance", d.matched_background_cleanup.tolerance),
            ),
        )


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


class ImageJob(BaseModel):
    """One accepted file and its processing outcome. Owned by the caller."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    name: str = ""
    source: bytes
    mime_type: str = ""
    status: JobStatus = JobStatus.PENDING
    original_size: int = 0
    result: Optional[bytes] = None
    result_size: Optional[int] = None
    result_mime_type: Optional[str] = None
    timings: Dict[str, float] = Field(default_factory=dict)
    error: str = ""

    def model_post_init(self, __context: Any) -> None:
        if not self.original_size:
            self.original_size = len(self.source)

    @property
    def size_delta(self) -> Optional[int]:
        if self.result_size is None:
            return None
        return self.result_size - self.original_size

