from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import numpy as np

Point = tuple[float, float]
Polygon = tuple[Point, ...]


@dataclass(frozen=True, slots=True)
class Detection:
    corners: Polygon  # 4 corners in cv2.boxPoints order, not normalized to start top-left
    center: Point
    size: tuple[float, float]  # width, height of the rotated rectangle (pixels)
    angle: float  # degrees, as reported by cv2.minAreaRect

    @property
    def area(self) -> float:
        return float(self.size[0] * self.size[1])


class RectangleDetector(Protocol):
    def detect(self, image: np.ndarray) -> Detection | None:
        ...
