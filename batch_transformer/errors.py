from __future__ import annotations


class PipelineError(ValueError):
    """Base class for conditions raised by the transform pipeline itself."""


class InvalidMaskFormat(PipelineError):
    """Segmentation output has a shape, channel count or dtype we cannot use."""


class EmptyImage(PipelineError):
    """A stage was handed a buffer with zero width or height."""


class ImageDecodeError(PipelineError):
    """Source bytes could not be decoded into pixels."""
