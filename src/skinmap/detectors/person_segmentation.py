from __future__ import annotations

from concurrent.futures import Future, InvalidStateError, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from pathlib import Path
import threading
import time
from typing import Any, Callable, Optional, Protocol

import cv2
import numpy as np
from rich.console import Console

from ..errors import NotInitialized, SegmentationUnavailable

console = Console(stderr=True)

@dataclass(frozen=True)
class SegmenterConfig:
    MODEL_PRESETS = {
        "general": "selfie_segmenter.tflite",
        "landscape": "selfie_segmenter_landscape.tflite",
    }
    RUNNING_MODES = ("image", "live_stream")

    model: str = "landscape"
    running_mode: str = "image"
    timeout_seconds: float = 10.0
    models_dir: Path | None = None

    def __post_init__(self):
        model_key = self.model.strip().lower()
        if model_key not in self.MODEL_PRESETS:
            raise ValueError(f"Unknown segmenter model '{self.model}' (expected one of: {', '.join(self.MODEL_PRESETS)})")
        mode_key = self.running_mode.strip().lower()
        if mode_key not in self.RUNNING_MODES:
            raise ValueError(f"Unknown running mode '{self.running_mode}' (expected one of: {', '.join(self.RUNNING_MODES)})")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        object.__setattr__(self, "model", model_key)
        object.__setattr__(self, "running_mode", mode_key)

    @property
    def model_file(self) -> str:
        return self.MODEL_PRESETS[self.model]

    @property
    def live_stream(self) -> bool:
        return self.running_mode == "live_stream"

class SegmenterBackend(Protocol):
    def segment_person(self, rgb: np.ndarray) -> Any: ...
    def segment_person_async(self, rgb: np.ndarray, timestamp_ms: int) -> None: ...
    def close(self) -> None: ...

ResultCallback = Callable[[Any, Any, int], None]
BackendFactory = Callable[[SegmenterConfig, Optional[ResultCallback]], SegmenterBackend]

def _resolve(fut: Future, *, value: Any = None, exc: BaseException | None = None) -> None:
    try:
        if exc is not None:
            fut.set_exception(exc)
        else:
            fut.set_result(value)
    except InvalidStateError:
        # Already resolved (e.g. failed by dispose()).
        pass

def _default_backend_factory(cfg: SegmenterConfig, result_callback: ResultCallback | None) -> SegmenterBackend:
    # Deferred so that importing the adapter does not load MediaPipe.
    from .mediapipe_segmenter import MediaPipeSegmenterBackend
    return MediaPipeSegmenterBackend(cfg, result_callback=result_callback)

@dataclass
class RawSegmentation:
    """Masks copied out of a segmenter result; safe to keep after the callback returns."""
    category_mask: np.ndarray | None = None
    confidence_masks: list[np.ndarray] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return self.category_mask is None and not self.confidence_masks

def _to_array(mask: Any) -> np.ndarray:
    view = getattr(mask, "numpy_view", None)
    arr = view() if callable(view) else mask
    return np.array(arr, copy=True)

def snapshot_result(result: Any) -> RawSegmentation:
    if result is None:
        return RawSegmentation()
    cat = getattr(result, "category_mask", None)
    confs = getattr(result, "confidence_masks", None) or []
    return RawSegmentation(
        category_mask=_to_array(cat) if cat is not None else None,
        confidence_masks=[_to_array(m) for m in confs],
    )

def _squeeze_2d(mask: np.ndarray) -> np.ndarray:
    mask = np.asarray(mask)
    if mask.ndim == 3:
        # HxWx1 from the tasks API, or an RGBA drawable whose R channel holds the value.
        mask = mask[:, :, 0]
    elif mask.ndim != 2:
        mask = np.squeeze(mask)
    if mask.ndim != 2 or mask.size == 0:
        raise ValueError(f"Unexpected segmentation mask shape: {mask.shape}")
    if not (np.issubdtype(mask.dtype, np.number) or mask.dtype == np.bool_):
        raise ValueError(f"Unexpected segmentation mask dtype: {mask.dtype}")
    return mask

def choose_foreground_from_category_mask(mask: np.ndarray) -> np.ndarray:
    """Pick which side of a binary CATEGORY_MASK is the person.

    The person label is not the non-zero index for every selfie model build.
    Person pixels usually cover less of the frame than background, so the
    smaller candidate wins unless it is implausibly tiny.
    """
    mask = _squeeze_2d(mask)
    m0 = (mask == 0)
    m1 = (mask != 0)
    r0 = float(m0.mean())
    r1 = float(m1.mean())

    MIN_R, MAX_R = 0.01, 0.98
    if MIN_R <= min(r0, r1) <= MAX_R:
        return m0 if r0 <= r1 else m1
    return m0 if r0 > r1 else m1

def _confidence_to_u8(mask: np.ndarray) -> np.ndarray:
    if mask.dtype == np.bool_:
        return mask.astype(np.uint8) * 255
    if np.issubdtype(mask.dtype, np.floating):
        return (np.clip(mask, 0.0, 1.0) * 255.0).astype(np.uint8)
    return np.clip(mask, 0, 255).astype(np.uint8)

def normalize_person_mask(raw: RawSegmentation | None, width: int, height: int) -> np.ndarray:
    """Turn whatever the segmenter produced into an HxW uint8 person mask.

    Confidence masks are preferred over category masks. A mask that is present
    but cannot be interpreted degrades to an all-person mask.
    """
    if raw is None or raw.empty:
        raise SegmentationUnavailable("Failed to detect person in image")

    try:
        if raw.confidence_masks:
            # Single-output models give one person mask; two-class builds list background first.
            mask_u8 = _confidence_to_u8(_squeeze_2d(raw.confidence_masks[-1]))
        else:
            fg = choose_foreground_from_category_mask(raw.category_mask)
            mask_u8 = fg.astype(np.uint8) * 255
        if mask_u8.shape != (height, width):
            mask_u8 = cv2.resize(mask_u8, (width, height), interpolation=cv2.INTER_LINEAR)
    except (ValueError, TypeError, cv2.error) as e:
        console.log(f"[yellow]Unusable segmentation mask ({type(e).__name__}: {e}); assuming the whole frame is person[/yellow]")
        return np.full((height, width), 255, dtype=np.uint8)
    return np.ascontiguousarray(mask_u8, dtype=np.uint8)

class PersonSegmentationAdapter:
    """Owns one segmenter instance and turns its results into person masks.

    In IMAGE mode calls are serialized. In LIVE_STREAM mode every request gets
    its own timestamp and Future; the result callback resolves only the Future
    registered under the timestamp it reports, so overlapping calls can never
    receive each other's masks.
    """

    def __init__(self, cfg: SegmenterConfig | None = None, backend_factory: BackendFactory | None = None):
        self.cfg = cfg or SegmenterConfig()
        self._backend_factory = backend_factory or _default_backend_factory
        self._backend: SegmenterBackend | None = None
        self._lock = threading.Lock()
        self._call_lock = threading.Lock()
        self._pending: dict[int, Future] = {}
        self._last_ts = 0

    @property
    def is_initialized(self) -> bool:
        return self._backend is not None

    def initialize(self) -> None:
        with self._lock:
            if self._backend is not None:
                return
            callback = self._on_result if self.cfg.live_stream else None
            try:
                self._backend = self._backend_factory(self.cfg, callback)
            except Exception as e:
                raise NotInitialized(f"Person segmenter setup failed: {type(e).__name__}: {e}") from e

    def segment(self, rgb: np.ndarray) -> np.ndarray:
        backend = self._backend
        if backend is None:
            raise NotInitialized("Skin detection not initialized")
        height, width = rgb.shape[:2]
        if self.cfg.live_stream:
            raw = self._segment_live(backend, rgb)
        else:
            with self._call_lock:
                raw = snapshot_result(backend.segment_person(rgb))
        return normalize_person_mask(raw, width, height)

    def _next_timestamp(self) -> int:
        # MediaPipe requires strictly increasing timestamps per segmenter.
        ts = max(self._last_ts + 1, int(time.monotonic() * 1000))
        self._last_ts = ts
        return ts

    def _segment_live(self, backend: SegmenterBackend, rgb: np.ndarray) -> RawSegmentation:
        fut: Future = Future()
        with self._lock:
            ts = self._next_timestamp()
            self._pending[ts] = fut
        try:
            backend.segment_person_async(rgb, ts)
            return fut.result(timeout=self.cfg.timeout_seconds)
        except FutureTimeout as e:
            raise SegmentationUnavailable(f"Segmentation timed out after {self.cfg.timeout_seconds:.1f}s") from e
        finally:
            with self._lock:
                self._pending.pop(ts, None)

    def _on_result(self, result: Any, output_image: Any, timestamp_ms: int) -> None:
        with self._lock:
            fut = self._pending.get(int(timestamp_ms))
        if fut is None:
            console.log(f"[yellow]Dropping segmentation result for unknown request {timestamp_ms}[/yellow]")
            return
        # Copy now: MediaPipe reuses the result buffers once the callback returns.
        try:
            raw = snapshot_result(result)
        except Exception as e:
            _resolve(fut, exc=e)
        else:
            _resolve(fut, value=raw)

    def dispose(self) -> None:
        with self._lock:
            backend, self._backend = self._backend, None
            pending = list(self._pending.values())
            self._pending.clear()
        for fut in pending:
            _resolve(fut, exc=NotInitialized("Segmenter disposed while a request was pending"))
        if backend is not None:
            backend.close()
