from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

MIN_REGION_AREA = 100
FULL_CONFIDENCE_AREA = 1000.0

@dataclass
class RawRegion:
    """One connected component of the skin mask, before polygon/body-part labelling."""
    pixels: list[tuple[int, int]] = field(default_factory=list)
    min_x: int = 0
    min_y: int = 0
    max_x: int = 0
    max_y: int = 0

    @property
    def area(self) -> int:
        return len(self.pixels)

    @property
    def bbox_xywh(self) -> tuple[int, int, int, int]:
        return self.min_x, self.min_y, self.max_x - self.min_x, self.max_y - self.min_y

    @property
    def center(self) -> tuple[float, float]:
        # Bounding-box midpoint, not the pixel centroid.
        return (self.min_x + self.max_x) / 2.0, (self.min_y + self.max_y) / 2.0

    @property
    def confidence(self) -> float:
        return min(1.0, self.area / FULL_CONFIDENCE_AREA)

def _as_2d_mask(mask: np.ndarray) -> np.ndarray:
    mask = np.asarray(mask)
    if mask.ndim == 3:
        # Drawable-style HxWxC: the first channel carries the value.
        mask = mask[:, :, 0]
    if mask.ndim != 2:
        raise ValueError(f"Expected a 2D mask, got shape {mask.shape}")
    return mask

def flood_fill_region(on: list[bool], visited: bytearray, width: int, height: int, start_x: int, start_y: int) -> RawRegion:
    """Iterative 4-connected flood fill from (start_x, start_y).

    `on` and `visited` are flat row-major buffers of length width*height.
    Every pixel is marked visited at most once, so repeated calls over a mask
    do O(pixel count) work in total.
    """
    region = RawRegion(min_x=start_x, min_y=start_y, max_x=start_x, max_y=start_y)
    stack = [(start_x, start_y)]
    while stack:
        x, y = stack.pop()
        if x < 0 or x >= width or y < 0 or y >= height:
            continue
        idx = y * width + x
        if visited[idx] or not on[idx]:
            continue
        visited[idx] = 1
        region.pixels.append((x, y))

        if x < region.min_x:
            region.min_x = x
        elif x > region.max_x:
            region.max_x = x
        if y < region.min_y:
            region.min_y = y
        elif y > region.max_y:
            region.max_y = y

        stack.append((x + 1, y))
        stack.append((x - 1, y))
        stack.append((x, y + 1))
        stack.append((x, y - 1))
    return region

def extract_regions(skin_mask: np.ndarray, *, min_area: int = MIN_REGION_AREA) -> list[RawRegion]:
    """Connected skin components in discovery (raster) order.

    Components smaller than `min_area` pixels are dropped as noise.
    """
    mask = _as_2d_mask(skin_mask)
    height, width = mask.shape
    on = (mask > 0).ravel()
    visited = bytearray(width * height)
    on_list = on.tolist()

    regions: list[RawRegion] = []
    # Only "on" pixels can seed a component; flatnonzero keeps raster order.
    for idx in np.flatnonzero(on).tolist():
        if visited[idx]:
            continue
        y, x = divmod(idx, width)
        region = flood_fill_region(on_list, visited, width, height, x, y)
        if region.area >= min_area:
            regions.append(region)
    return regions
