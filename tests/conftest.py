import sys
import threading
from pathlib import Path
from types import SimpleNamespace

import numpy as np

ROOT = Path(__file__).resolve().parents[1]
SRC = (ROOT / "src").resolve()

if SRC not in (Path(p).resolve() for p in sys.path):
    sys.path.insert(0, str(SRC))

# (204, 128, 102) -> h~15.3, s=0.5, v=0.8: inside the "light" skin range.
SKIN_RGB = (204, 128, 102)


class FakeImage:
    """Mimics mediapipe.Image: masks are read through numpy_view()."""

    def __init__(self, arr):
        self._arr = np.asarray(arr)

    def numpy_view(self):
        return self._arr


def confidence_result(mask):
    return SimpleNamespace(category_mask=None, confidence_masks=[FakeImage(mask)])


class FakeImageBackend:
    """IMAGE-mode stand-in: every pixel is person unless a mask is given."""

    def __init__(self, mask_fn=None):
        self.mask_fn = mask_fn or (lambda rgb: np.ones(rgb.shape[:2], dtype=np.float32))
        self.calls = 0
        self.closed = False

    def segment_person(self, rgb):
        self.calls += 1
        return confidence_result(self.mask_fn(rgb))

    def close(self):
        self.closed = True


class FakeLiveBackend:
    """LIVE_STREAM stand-in that answers each request on a timer thread.

    `delays` is consumed per request, so later requests can be made to
    finish before earlier ones.
    """

    def __init__(self, callback, delays=None, delay_for=None):
        self.callback = callback
        self.delays = list(delays or [])
        self.delay_for = delay_for
        self.timestamps = []
        self.closed = False
        self._timers = []

    def segment_person_async(self, rgb, timestamp_ms):
        self.timestamps.append(timestamp_ms)
        # Encode the caller's image in its mask so results can be told apart.
        value = 1.0 if rgb[0, 0, 0] > 127 else 0.0
        mask = np.full(rgb.shape[:2], value, dtype=np.float32)
        if self.delay_for is not None:
            delay = self.delay_for(rgb)
        else:
            delay = self.delays.pop(0) if self.delays else 0.0
        t = threading.Timer(delay, self.callback, args=(confidence_result(mask), None, timestamp_ms))
        self._timers.append(t)
        t.start()

    def close(self):
        self.closed = True
        for t in self._timers:
            t.cancel()


def make_image(width, height, squares=(), rgb=SKIN_RGB):
    """Black RGB frame with filled skin-coloured rectangles (x, y, w, h)."""
    img = np.zeros((height, width, 3), dtype=np.uint8)
    for x, y, w, h in squares:
        img[y:y + h, x:x + w] = rgb
    return img


def make_mask(width, height, squares=()):
    mask = np.zeros((height, width), dtype=np.uint8)
    for x, y, w, h in squares:
        mask[y:y + h, x:x + w] = 255
    return mask
