from __future__ import annotations

from pathlib import Path
import numpy as np
import mediapipe as mp

from ..util.download import download_if_missing
from ..util.repo import default_models_dir
from .person_segmentation import ResultCallback, SegmenterConfig

SELFIE_SEG_URL_SQUARE = "https://storage.googleapis.com/mediapipe-models/image_segmenter/selfie_segmenter/float16/latest/selfie_segmenter.tflite"
SELFIE_SEG_URL_LANDSCAPE = "https://storage.googleapis.com/mediapipe-models/image_segmenter/selfie_segmenter_landscape/float16/latest/selfie_segmenter_landscape.tflite"

MODEL_URLS = {
    "selfie_segmenter.tflite": SELFIE_SEG_URL_SQUARE,
    "selfie_segmenter_landscape.tflite": SELFIE_SEG_URL_LANDSCAPE,
}

class MediaPipeSegmenterBackend:
    """MediaPipe Tasks ImageSegmenter running the selfie (person) model."""

    def __init__(self, cfg: SegmenterConfig | None = None, result_callback: ResultCallback | None = None, repo_root: Path | None = None):
        self.cfg = cfg or SegmenterConfig()
        models_dir = self.cfg.models_dir or default_models_dir(repo_root)
        seg_path = models_dir / self.cfg.model_file
        download_if_missing(MODEL_URLS[self.cfg.model_file], seg_path)

        BaseOptions = mp.tasks.BaseOptions
        vision = mp.tasks.vision

        if self.cfg.live_stream:
            if result_callback is None:
                raise ValueError("LIVE_STREAM mode needs a result_callback")
            running_mode = vision.RunningMode.LIVE_STREAM
            extra = {"result_callback": result_callback}
        else:
            running_mode = vision.RunningMode.IMAGE
            extra = {}

        seg_opts = vision.ImageSegmenterOptions(
            base_options=BaseOptions(model_asset_path=str(seg_path)),
            running_mode=running_mode,
            output_category_mask=True,
            output_confidence_masks=True,
            **extra,
        )
        self._seg = vision.ImageSegmenter.create_from_options(seg_opts)

    @staticmethod
    def _to_mp_image(rgb: np.ndarray) -> mp.Image:
        return mp.Image(image_format=mp.ImageFormat.SRGB, data=np.ascontiguousarray(rgb))

    def segment_person(self, rgb: np.ndarray):
        return self._seg.segment(self._to_mp_image(rgb))

    def segment_person_async(self, rgb: np.ndarray, timestamp_ms: int) -> None:
        self._seg.segment_async(self._to_mp_image(rgb), timestamp_ms)

    def close(self) -> None:
        self._seg.close()
