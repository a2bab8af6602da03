from __future__ import annotations


class SkinDetectionError(RuntimeError):
    """Base class for failures surfaced by the detection pipeline."""


class NotInitialized(SkinDetectionError):
    """Segmentation model setup never completed (or the adapter was disposed)."""


class SegmentationUnavailable(SkinDetectionError):
    """The person segmenter returned no usable mask."""


class ProcessingFailure(SkinDetectionError):
    """Unexpected failure during HSV conversion, flood fill or hull computation."""
