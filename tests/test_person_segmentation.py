import threading
import time
from types import SimpleNamespace

import numpy as np
import pytest

from skinmap.detectors.person_segmentation import (
    PersonSegmentationAdapter,
    RawSegmentation,
    SegmenterConfig,
    choose_foreground_from_category_mask,
    normalize_person_mask,
    snapshot_result,
)
from skinmap.errors import NotInitialized, SegmentationUnavailable

from conftest import FakeImage, FakeImageBackend, FakeLiveBackend


def test_config_validates_and_normalizes():
    cfg = SegmenterConfig(model=" General ", running_mode="LIVE_STREAM")
    assert cfg.model == "general"
    assert cfg.model_file == "selfie_segmenter.tflite"
    assert cfg.live_stream
    assert SegmenterConfig().model_file == "selfie_segmenter_landscape.tflite"
    with pytest.raises(ValueError):
        SegmenterConfig(model="multiclass")
    with pytest.raises(ValueError):
        SegmenterConfig(running_mode="video")


def test_confidence_mask_is_scaled_to_u8():
    conf = np.array([[0.0, 0.5], [1.0, 2.0]], dtype=np.float32)
    out = normalize_person_mask(RawSegmentation(confidence_masks=[conf]), 2, 2)
    assert out.dtype == np.uint8
    assert out.tolist() == [[0, 127], [255, 255]]


def test_confidence_preferred_over_category():
    raw = RawSegmentation(
        category_mask=np.zeros((3, 3), dtype=np.uint8),
        confidence_masks=[np.ones((3, 3), dtype=np.float32)],
    )
    assert (normalize_person_mask(raw, 3, 3) == 255).all()


def test_category_mask_picks_smaller_side_as_person():
    cat = np.zeros((10, 10), dtype=np.uint8)
    cat[2:5, 2:5] = 1
    fg = choose_foreground_from_category_mask(cat)
    assert fg.dtype == np.bool_
    assert fg.tolist() == (cat != 0).tolist()
    out = normalize_person_mask(RawSegmentation(category_mask=cat), 10, 10)
    assert int((out == 255).sum()) == 9
    assert out[3, 3] == 255 and out[0, 0] == 0


def test_category_mask_ignores_implausibly_tiny_side():
    cat = np.zeros((100, 100), dtype=np.uint8)
    cat[0, 0] = 1
    fg = choose_foreground_from_category_mask(cat)
    assert int(fg.sum()) == 9999
    assert not fg[0, 0]


def test_drawable_surface_reads_first_channel():
    rgba = np.zeros((4, 4, 4), dtype=np.uint8)
    rgba[:2, :, 0] = 255
    rgba[..., 3] = 255
    out = normalize_person_mask(RawSegmentation(confidence_masks=[rgba]), 4, 4)
    assert out[:2].min() == 255 and out[2:].max() == 0


def test_mask_is_resized_to_image():
    conf = np.ones((8, 8), dtype=np.float32)
    out = normalize_person_mask(RawSegmentation(confidence_masks=[conf]), 20, 10)
    assert out.shape == (10, 20)
    assert (out == 255).all()


def test_unusable_mask_falls_back_to_all_person():
    weird = np.zeros((2, 2, 2, 2), dtype=np.float32)
    out = normalize_person_mask(RawSegmentation(confidence_masks=[weird]), 5, 3)
    assert out.shape == (3, 5)
    assert (out == 255).all()


def test_missing_masks_are_unavailable():
    with pytest.raises(SegmentationUnavailable):
        normalize_person_mask(None, 4, 4)
    with pytest.raises(SegmentationUnavailable):
        normalize_person_mask(snapshot_result(SimpleNamespace(category_mask=None, confidence_masks=[])), 4, 4)


def test_snapshot_copies_out_of_result_buffers():
    buf = np.ones((2, 2), dtype=np.float32)
    raw = snapshot_result(SimpleNamespace(category_mask=FakeImage(buf), confidence_masks=[FakeImage(buf)]))
    buf[:] = 0
    assert raw.category_mask.sum() == 4
    assert raw.confidence_masks[0].sum() == 4


def test_initialize_is_idempotent_and_dispose_resets():
    backend = FakeImageBackend()
    created = []

    def factory(cfg, callback):
        created.append(callback)
        return backend

    adapter = PersonSegmentationAdapter(backend_factory=factory)
    assert not adapter.is_initialized
    adapter.initialize()
    adapter.initialize()
    assert created == [None]
    assert adapter.segment(np.zeros((3, 4, 3), dtype=np.uint8)).shape == (3, 4)

    adapter.dispose()
    assert backend.closed
    assert not adapter.is_initialized
    with pytest.raises(NotInitialized):
        adapter.segment(np.zeros((3, 4, 3), dtype=np.uint8))

    adapter.initialize()
    assert len(created) == 2


def test_segment_before_initialize_fails():
    adapter = PersonSegmentationAdapter(backend_factory=lambda cfg, cb: FakeImageBackend())
    with pytest.raises(NotInitialized):
        adapter.segment(np.zeros((2, 2, 3), dtype=np.uint8))


def test_failed_setup_raises_not_initialized():
    def factory(cfg, callback):
        raise OSError("model file missing")

    adapter = PersonSegmentationAdapter(backend_factory=factory)
    with pytest.raises(NotInitialized, match="model file missing"):
        adapter.initialize()
    assert not adapter.is_initialized


def _live_adapter(delays=None, timeout=5.0, delay_for=None):
    holder = {}

    def factory(cfg, callback):
        holder["backend"] = FakeLiveBackend(callback, delays=delays, delay_for=delay_for)
        return holder["backend"]

    adapter = PersonSegmentationAdapter(SegmenterConfig(running_mode="live_stream", timeout_seconds=timeout), backend_factory=factory)
    adapter.initialize()
    return adapter, holder["backend"]


def test_live_stream_single_request():
    adapter, backend = _live_adapter()
    out = adapter.segment(np.full((4, 4, 3), 200, dtype=np.uint8))
    assert (out == 255).all()
    assert len(backend.timestamps) == 1


def test_live_stream_timestamps_strictly_increase():
    adapter, backend = _live_adapter()
    for _ in range(5):
        adapter.segment(np.zeros((2, 2, 3), dtype=np.uint8))
    ts = backend.timestamps
    assert all(b > a for a, b in zip(ts, ts[1:]))


def test_live_stream_results_reach_their_own_caller():
    # The bright request is issued first but completes last; each caller must
    # still get the mask computed for its own frame.
    adapter, backend = _live_adapter(delay_for=lambda rgb: 0.3 if rgb[0, 0, 0] > 127 else 0.0)
    results = {}

    def run(name, value):
        results[name] = adapter.segment(np.full((3, 3, 3), value, dtype=np.uint8))

    t1 = threading.Thread(target=run, args=("bright", 255))
    t1.start()
    deadline = time.monotonic() + 2.0
    while not backend.timestamps and time.monotonic() < deadline:
        time.sleep(0.005)
    t2 = threading.Thread(target=run, args=("dark", 0))
    t2.start()
    t1.join(5)
    t2.join(5)

    assert len(backend.timestamps) == 2
    assert (results["bright"] == 255).all()
    assert (results["dark"] == 0).all()


def test_live_stream_ignores_unknown_request_ids():
    adapter, _ = _live_adapter()
    adapter._on_result(SimpleNamespace(category_mask=None, confidence_masks=[]), None, 999999999)
    assert adapter.segment(np.full((2, 2, 3), 255, dtype=np.uint8)).min() == 255


def test_live_stream_timeout_is_unavailable():
    adapter, _ = _live_adapter(delays=[2.0], timeout=0.1)
    with pytest.raises(SegmentationUnavailable):
        adapter.segment(np.zeros((2, 2, 3), dtype=np.uint8))
    adapter.dispose()
