from __future__ import annotations

import math
from typing import Sequence

XY = tuple[float, float]

def cross_product(o: XY, a: XY, b: XY) -> float:
    return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])

def convex_hull(points: Sequence[XY]) -> list[XY]:
    """Graham-scan convex hull.

    Anchor is the point with the largest y (smallest x on ties); the rest are
    swept by polar angle around it, nearest first when angles are equal.
    Vertices come out with a positive turn at every corner (counter-clockwise
    in y-up coordinates).
    """
    pts = list(points)
    if len(pts) < 3:
        return pts

    anchor_i = 0
    for i, p in enumerate(pts):
        a = pts[anchor_i]
        if p[1] > a[1] or (p[1] == a[1] and p[0] < a[0]):
            anchor_i = i
    ax, ay = pts[anchor_i]

    rest = pts[:anchor_i] + pts[anchor_i + 1:]
    rest.sort(key=lambda p: (math.atan2(p[1] - ay, p[0] - ax), (p[0] - ax) ** 2 + (p[1] - ay) ** 2))

    hull: list[XY] = [(ax, ay)]
    for p in rest:
        while len(hull) > 1 and cross_product(hull[-2], hull[-1], p) <= 0:
            hull.pop()
        hull.append(p)
    return hull

def simplify_polygon(pixels: Sequence[XY]) -> list[XY]:
    """Reduce a region's pixel set to its convex hull.

    Concave outlines are approximated by their hull; degenerate inputs
    (fewer than 3 pixels) are returned as-is.
    """
    if len(pixels) < 3:
        return list(pixels)
    return convex_hull(pixels)

def point_in_polygon(x: float, y: float, polygon: Sequence[XY]) -> bool:
    """Ray-casting test: odd number of edge crossings means inside."""
    inside = False
    n = len(polygon)
    j = n - 1
    for i in range(n):
        xi, yi = polygon[i]
        xj, yj = polygon[j]
        if (yi > y) != (yj > y) and x < (xj - xi) * (y - yi) / (yj - yi) + xi:
            inside = not inside
        j = i
    return inside
