from __future__ import annotations

import math
from collections.abc import Sequence

import cv2
import numpy as np

from rectangle_eval.detectors.base import Point

PolygonLike = Sequence[Point]

# largest side of an auto-sized canvas; geometry beyond it is clipped
MAX_AUTO_CANVAS_SIDE = 8192


def _vertices(polygon: PolygonLike) -> np.ndarray:
    if len(polygon) == 0:
        return np.zeros((0, 2), dtype=np.float64)
    pts = np.asarray(polygon, dtype=np.float64).reshape(-1, 2)
    if not np.all(np.isfinite(pts)):
        raise ValueError("polygon coordinates must be finite")
    return pts


def rasterize(polygon: PolygonLike, *, canvas_size: tuple[int, int], offset: Point = (0.0, 0.0)) -> np.ndarray:
    """
    Fills `polygon` into a uint8 mask of `canvas_size` (width, height).

    Vertices are shifted by `-offset` and rounded to the nearest pixel; anything outside
    the canvas is clipped. Polygons with fewer than 3 vertices produce an empty mask.
    """
    width, height = canvas_size
    mask = np.zeros((height, width), dtype=np.uint8)
    pts = _vertices(polygon)
    if len(pts) < 3:
        return mask

    shifted = np.rint(pts - np.asarray(offset, dtype=np.float64)).astype(np.int32)
    cv2.fillPoly(mask, [shifted.reshape(-1, 1, 2)], 255)
    return mask


def _auto_canvas(*polygons: np.ndarray) -> tuple[tuple[int, int], Point]:
    filled = [p for p in polygons if len(p) >= 3]
    if not filled:
        return (1, 1), (0.0, 0.0)
    stacked = np.rint(np.vstack(filled))
    min_x, min_y = stacked.min(axis=0)
    max_x, max_y = stacked.max(axis=0)
    width = min(int(max_x - min_x) + 1, MAX_AUTO_CANVAS_SIDE)
    height = min(int(max_y - min_y) + 1, MAX_AUTO_CANVAS_SIDE)
    return (width, height), (float(min_x), float(min_y))


def polygon_iou(a: PolygonLike, b: PolygonLike, *, canvas_size: tuple[int, int] | None = None) -> float:
    """
    Intersection over union of two simple polygons, measured in filled pixels.

    With `canvas_size=None` the canvas covers the joint extent of both polygons, up to
    `MAX_AUTO_CANVAS_SIDE` pixels per side from their minimum corner. A fixed
    `(width, height)` canvas clips at its borders and uses raw pixel coordinates.
    Returns 0.0 when the union is empty (both polygons degenerate).
    """
    pts_a = _vertices(a)
    pts_b = _vertices(b)

    if canvas_size is None:
        canvas_size, offset = _auto_canvas(pts_a, pts_b)
    else:
        offset = (0.0, 0.0)

    mask_a = rasterize(pts_a, canvas_size=canvas_size, offset=offset) > 0
    mask_b = rasterize(pts_b, canvas_size=canvas_size, offset=offset) > 0

    intersection = int(np.count_nonzero(np.logical_and(mask_a, mask_b)))
    union = int(np.count_nonzero(np.logical_or(mask_a, mask_b)))
    if union == 0:
        return 0.0
    iou = intersection / union
    return iou if math.isfinite(iou) else 0.0


def best_iou(
    candidate: PolygonLike,
    polygons: Sequence[PolygonLike],
    *,
    canvas_size: tuple[int, int] | None = None,
) -> tuple[float, int | None]:
    """
    Best IoU of `candidate` against any of `polygons`, with the index of that polygon.
    Ties keep the earliest polygon; an empty `polygons` gives (0.0, None).
    """
    best_score = 0.0
    best_index: int | None = None
    for i, polygon in enumerate(polygons):
        score = polygon_iou(candidate, polygon, canvas_size=canvas_size)
        if best_index is None or score > best_score:
            best_score = score
            best_index = i
    return best_score, best_index
