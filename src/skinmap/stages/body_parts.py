from __future__ import annotations

import math

from ..schemas.detection import SkinRegion
from .regions import RawRegion

def _geometry(region: RawRegion | SkinRegion) -> tuple[float, float, int, int, int]:
    if isinstance(region, SkinRegion):
        bb = region.bounding_box
        return region.center_point.x, region.center_point.y, bb.width, bb.height, region.area
    cx, cy = region.center
    _, _, w, h = region.bbox_xywh
    return cx, cy, w, h, region.area

def aspect_ratio(width: float, height: float) -> float:
    if height == 0:
        # Flat single-row regions; nan compares false against every rule.
        return math.inf if width > 0 else math.nan
    return width / height

def classify_body_part(region: RawRegion | SkinRegion, image_width: int, image_height: int) -> str:
    """Label a region from its position and shape relative to the image.

    Rules overlap (a thin region near the edge is both an arm and a hand
    candidate); the first matching rule wins.
    """
    cx, cy, bw, bh, area = _geometry(region)
    rel_x = cx / image_width
    rel_y = cy / image_height
    aspect = aspect_ratio(bw, bh)

    if rel_y < 0.4 and 0.2 < rel_x < 0.8 and 0.7 < aspect < 1.3:
        return "face"
    if 0.3 < rel_y < 0.6 and 0.35 < rel_x < 0.65 and aspect < 0.5:
        return "neck"
    if (rel_x < 0.3 or rel_x > 0.7) and aspect < 0.4:
        return "arm"
    if area < 2000 and (rel_x < 0.2 or rel_x > 0.8):
        return "hand"
    if 0.3 < rel_x < 0.7 and 0.4 < rel_y < 0.8 and area > 5000:
        return "torso"
    if rel_y > 0.6 and aspect < 0.6:
        return "leg"
    return "unknown"
