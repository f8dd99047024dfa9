from __future__ import annotations

import logging

import cv2
import numpy as np

from rectangle_eval.config import DetectorConfig
from rectangle_eval.detectors.base import Detection
from rectangle_eval.image_utils import to_gray

LOGGER = logging.getLogger(__name__)


class ContourRectangleDetector:
    """
    Finds the dominant rectangle in an image with a fixed, non-adaptive pipeline:
    grayscale -> Gaussian blur -> Canny -> external contours -> minimum-area rotated box.

    The contour whose rotated box has the largest width*height wins. Ties keep the
    first contour in the order returned by `cv2.findContours`, which is an OpenCV
    implementation detail and may change between releases.
    """

    def __init__(self, config: DetectorConfig | None = None) -> None:
        self._config = config or DetectorConfig()

    def detect(self, image: np.ndarray) -> Detection | None:
        edges = self.edge_map(image)
        contours, _ = cv2.findContours(edges, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

        best_rect = None
        best_area = 0.0
        for contour in contours:
            rect = cv2.minAreaRect(contour)
            (_, _), (w, h), _ = rect
            area = float(w) * float(h)
            if area > best_area:
                best_area = area
                best_rect = rect

        LOGGER.debug("contours=%d best_area=%.1f", len(contours), best_area)
        if best_rect is None:
            return None

        (cx, cy), (w, h), angle = best_rect
        corners = cv2.boxPoints(best_rect)
        return Detection(
            corners=tuple((float(x), float(y)) for x, y in corners),
            center=(float(cx), float(cy)),
            size=(float(w), float(h)),
            angle=float(angle),
        )

    def edge_map(self, image: np.ndarray) -> np.ndarray:
        gray = to_gray(image)
        k = self._config.blur_kernel_size
        blurred = cv2.GaussianBlur(gray, (k, k), 0)
        return cv2.Canny(blurred, self._config.canny_low, self._config.canny_high)
