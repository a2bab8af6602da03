from __future__ import annotations

from typing import Iterable, Sequence

import numpy as np
from rich.console import Console

from ..detectors.person_segmentation import PersonSegmentationAdapter, SegmenterConfig
from ..errors import NotInitialized, ProcessingFailure, SegmentationUnavailable, SkinDetectionError
from ..schemas.detection import BoundingBox, Point, PointMembership, SkinDetectionResult, SkinRegion
from ..util.image_io import as_rgb
from .body_parts import classify_body_part
from .polygons import point_in_polygon, simplify_polygon
from .regions import MIN_REGION_AREA, RawRegion, extract_regions
from .skin_pixels import classify_skin

console = Console(stderr=True)

def build_skin_region(raw: RawRegion, index: int, image_width: int, image_height: int) -> SkinRegion:
    x, y, w, h = raw.bbox_xywh
    cx, cy = raw.center
    return SkinRegion(
        id=f"skin_region_{index}",
        body_part=classify_body_part(raw, image_width, image_height),
        polygon=[Point(x=px, y=py) for px, py in simplify_polygon(raw.pixels)],
        bounding_box=BoundingBox(x=x, y=y, width=w, height=h),
        area=raw.area,
        confidence=raw.confidence,
        center_point=Point(x=cx, y=cy),
    )

def find_skin_regions(skin_mask: np.ndarray, *, min_area: int = MIN_REGION_AREA) -> list[SkinRegion]:
    """Labelled skin regions, largest first (ties keep discovery order)."""
    height, width = np.asarray(skin_mask).shape[:2]
    regions = [
        build_skin_region(raw, i, width, height)
        for i, raw in enumerate(extract_regions(skin_mask, min_area=min_area))
    ]
    # sorted() is stable, reverse=True included.
    return sorted(regions, key=lambda r: r.area, reverse=True)

def _failure(message: str, error: Exception | None = None, *, total_image_area: int = 0) -> SkinDetectionResult:
    return SkinDetectionResult(
        success=False,
        total_image_area=total_image_area,
        message=message,
        error_kind=type(error).__name__ if error is not None else None,
    )

def analyze_skin_mask(
    skin_mask: np.ndarray,
    *,
    person_mask: np.ndarray | None = None,
    keep_masks: bool = True,
    min_area: int = MIN_REGION_AREA,
) -> SkinDetectionResult:
    """Regions and coverage statistics for an already-computed skin mask."""
    height, width = np.asarray(skin_mask).shape[:2]
    regions = find_skin_regions(skin_mask, min_area=min_area)
    total_skin_area = sum(r.area for r in regions)
    total_image_area = width * height
    coverage = (total_skin_area / total_image_area) * 100.0 if total_image_area else 0.0
    return SkinDetectionResult(
        success=True,
        regions=regions,
        total_skin_area=total_skin_area,
        total_image_area=total_image_area,
        skin_coverage_percentage=coverage,
        person_mask=person_mask if keep_masks else None,
        skin_mask=skin_mask if keep_masks else None,
        message=f"Detected {len(regions)} skin regions covering {coverage:.1f}% of image",
    )

def is_point_in_skin_area(point: Point | tuple[float, float], regions: Iterable[SkinRegion]) -> PointMembership:
    """First region (in the given order) whose polygon contains `point`."""
    x, y = (point.x, point.y) if isinstance(point, Point) else point
    for region in regions:
        polygon = [(p.x, p.y) for p in region.polygon]
        if point_in_polygon(x, y, polygon):
            return PointMembership(in_skin=True, region=region)
    return PointMembership(in_skin=False)

class SkinDetector:
    """Person segmentation -> skin pixels -> regions -> polygons -> body parts.

    `detect_skin_areas` never raises; failures come back as a result with
    success=False and a readable message.
    """

    def __init__(
        self,
        cfg: SegmenterConfig | None = None,
        adapter: PersonSegmentationAdapter | None = None,
        *,
        keep_masks: bool = True,
        min_area: int = MIN_REGION_AREA,
    ):
        self.adapter = adapter or PersonSegmentationAdapter(cfg)
        self.keep_masks = keep_masks
        self.min_area = min_area

    def initialize(self) -> None:
        self.adapter.initialize()

    def detect_skin_areas(self, image: np.ndarray) -> SkinDetectionResult:
        try:
            if not self.adapter.is_initialized:
                self.initialize()
        except NotInitialized as e:
            console.log(f"[red]Skin detection setup failed[/red]: {e}")
            return _failure(f"Skin detection not initialized: {e}", e)

        try:
            rgb = as_rgb(image)
            height, width = rgb.shape[:2]
            try:
                person_mask = self.adapter.segment(rgb)
            except SegmentationUnavailable as e:
                return _failure(str(e) or "Failed to detect person in image", e, total_image_area=width * height)

            skin_mask = classify_skin(rgb, person_mask)
            return analyze_skin_mask(skin_mask, person_mask=person_mask, keep_masks=self.keep_masks, min_area=self.min_area)
        except SkinDetectionError as e:
            return _failure(f"Skin detection failed: {e}", e)
        except Exception as e:
            err = ProcessingFailure(f"{type(e).__name__}: {e}")
            console.log(f"[red]Skin detection error[/red]: {err}")
            return _failure(f"Skin detection failed: {err}", err)

    def is_point_in_skin_area(self, point: Point | tuple[float, float], regions: Sequence[SkinRegion]) -> PointMembership:
        return is_point_in_skin_area(point, regions)

    def dispose(self) -> None:
        self.adapter.dispose()

    def __enter__(self) -> "SkinDetector":
        self.initialize()
        return self

    def __exit__(self, *exc) -> None:
        self.dispose()
