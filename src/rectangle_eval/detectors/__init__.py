from rectangle_eval.detectors.base import Detection, Point, Polygon, RectangleDetector
from rectangle_eval.detectors.contour import ContourRectangleDetector

__all__ = ["ContourRectangleDetector", "Detection", "Point", "Polygon", "RectangleDetector"]
