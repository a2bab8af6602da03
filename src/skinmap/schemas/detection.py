from __future__ import annotations
from typing import Any, Literal

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

BodyPart = Literal["face", "neck", "arm", "hand", "torso", "leg", "foot", "unknown"]

class Point(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float
    y: float

class BoundingBox(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: int
    y: int
    # Inclusive extents: max_x - min_x, so a single-pixel region has width 0.
    width: int = Field(ge=0)
    height: int = Field(ge=0)

    def contains(self, x: float, y: float) -> bool:
        return (self.x <= x <= self.x + self.width) and (self.y <= y <= self.y + self.height)

class SkinRegion(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    body_part: BodyPart = "unknown"
    polygon: list[Point] = Field(default_factory=list)
    bounding_box: BoundingBox
    area: int = Field(ge=0)
    confidence: float = Field(ge=0.0, le=1.0)
    center_point: Point

class PointMembership(BaseModel):
    in_skin: bool
    region: SkinRegion | None = None

class SkinDetectionResult(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    success: bool
    regions: list[SkinRegion] = Field(default_factory=list)
    total_skin_area: int = 0
    total_image_area: int = 0
    skin_coverage_percentage: float = 0.0
    # HxW uint8 masks; kept in memory only, never serialized.
    person_mask: np.ndarray | None = Field(default=None, exclude=True, repr=False)
    skin_mask: np.ndarray | None = Field(default=None, exclude=True, repr=False)
    message: str = ""
    error_kind: str | None = None

    @property
    def visible_body_parts(self) -> list[str]:
        """Distinct body parts in region order (largest region first)."""
        seen: list[str] = []
        for region in self.regions:
            if region.body_part not in seen:
                seen.append(region.body_part)
        return seen

class Status(BaseModel):
    ok: bool
    errors: list[str] = Field(default_factory=list)

class DetectionRecord(BaseModel):
    schema_version: str = "1.0"
    image_id: str
    rel_image_path: str
    width: int
    height: int
    status: Status
    result: SkinDetectionResult | None = None
    meta: dict[str, Any] = Field(default_factory=dict)
