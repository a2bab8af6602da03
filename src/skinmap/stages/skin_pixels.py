from __future__ import annotations

from dataclasses import dataclass

import numpy as np

PERSON_MASK_THRESHOLD = 128

@dataclass(frozen=True)
class HsvRange:
    h_min: float
    h_max: float
    s_min: float
    s_max: float
    v_min: float
    v_max: float

    def contains(self, h: float, s: float, v: float) -> bool:
        return (self.h_min <= h <= self.h_max) and (self.s_min <= s <= self.s_max) and (self.v_min <= v <= self.v_max)

# Hue in degrees, saturation/value in [0, 1]. Bounds are inclusive.
SKIN_RANGES: dict[str, HsvRange] = {
    "light": HsvRange(0, 20, 0.2, 0.7, 0.4, 1.0),
    "medium": HsvRange(5, 25, 0.3, 0.8, 0.3, 0.9),
    "dark": HsvRange(10, 30, 0.2, 0.6, 0.2, 0.7),
    # Wraps around the top of the hue circle.
    "reddish": HsvRange(340, 360, 0.2, 0.7, 0.4, 1.0),
}

def rgb_to_hsv(r: int, g: int, b: int) -> tuple[float, float, float]:
    """Convert 8-bit RGB to (h in [0, 360), s in [0, 1], v in [0, 1])."""
    rf, gf, bf = r / 255.0, g / 255.0, b / 255.0
    mx = max(rf, gf, bf)
    mn = min(rf, gf, bf)
    diff = mx - mn

    h = 0.0
    if diff != 0:
        if mx == rf:
            h = (60.0 * ((gf - bf) / diff) + 360.0) % 360.0
        elif mx == gf:
            h = (60.0 * ((bf - rf) / diff) + 120.0) % 360.0
        else:
            h = (60.0 * ((rf - gf) / diff) + 240.0) % 360.0

    s = 0.0 if mx == 0 else diff / mx
    return h, s, mx

def is_skin_color(r: int, g: int, b: int) -> bool:
    h, s, v = rgb_to_hsv(r, g, b)
    return any(rng.contains(h, s, v) for rng in SKIN_RANGES.values())

def rgb_to_hsv_array(rgb: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Vectorized `rgb_to_hsv` over an HxWx3 uint8 array (float64 outputs)."""
    px = np.asarray(rgb, dtype=np.float64) / 255.0
    r, g, b = px[..., 0], px[..., 1], px[..., 2]
    mx = px[..., :3].max(axis=-1)
    mn = px[..., :3].min(axis=-1)
    diff = mx - mn

    safe = np.where(diff == 0, 1.0, diff)
    h_r = np.mod(60.0 * ((g - b) / safe) + 360.0, 360.0)
    h_g = np.mod(60.0 * ((b - r) / safe) + 120.0, 360.0)
    h_b = np.mod(60.0 * ((r - g) / safe) + 240.0, 360.0)
    # Branch order matters when two channels share the max: r wins, then g.
    h = np.where(mx == r, h_r, np.where(mx == g, h_g, h_b))
    h = np.where(diff == 0, 0.0, h)

    s = np.where(mx == 0, 0.0, diff / np.where(mx == 0, 1.0, mx))
    return h, s, mx

def classify_skin(pixels: np.ndarray, person_mask: np.ndarray) -> np.ndarray:
    """Binary skin mask (uint8 0/255) for pixels inside the person mask.

    pixels: HxWx3 (RGB) or HxWx4 (RGBA) uint8. Alpha is ignored.
    person_mask: HxW, 0..255; a pixel counts as person when strictly above 128.
    """
    pixels = np.asarray(pixels)
    person_mask = np.asarray(person_mask)
    if pixels.ndim != 3 or pixels.shape[2] < 3:
        raise ValueError(f"Expected HxWx3 or HxWx4 pixels, got shape {pixels.shape}")
    if person_mask.shape != pixels.shape[:2]:
        raise ValueError(f"Person mask shape {person_mask.shape} does not match image {pixels.shape[:2]}")

    h, s, v = rgb_to_hsv_array(pixels[..., :3])
    matched = np.zeros(person_mask.shape, dtype=bool)
    for rng in SKIN_RANGES.values():
        matched |= (
            (h >= rng.h_min) & (h <= rng.h_max)
            & (s >= rng.s_min) & (s <= rng.s_max)
            & (v >= rng.v_min) & (v <= rng.v_max)
        )

    skin = matched & (person_mask > PERSON_MASK_THRESHOLD)
    return skin.astype(np.uint8) * 255
