from __future__ import annotations

import logging
from pathlib import Path

import cv2
import numpy as np
from PIL import Image, ImageDraw

from rectangle_eval.config import VisualizationConfig
from rectangle_eval.detectors.base import Polygon
from rectangle_eval.evaluation import RecordHook
from rectangle_eval.paths import map_output_path
from rectangle_eval.records import EvaluationRecord, EvaluationStatus

LOGGER = logging.getLogger(__name__)


def _outline(draw: ImageDraw.ImageDraw, polygon: Polygon, *, color: tuple[int, int, int], width: int) -> None:
    points = [(float(x), float(y)) for x, y in polygon]
    draw.line([*points, points[0]], fill=color, width=width, joint="curve")


def render_overlay(*, image_path: Path, record: EvaluationRecord, config: VisualizationConfig) -> Image.Image:
    """
    Draws the detected rectangle (detection color) and the ground-truth polygon
    (ground-truth color) on top of the image.
    """
    with Image.open(image_path) as im:
        im = im.convert("RGB")
    draw = ImageDraw.Draw(im)
    width = int(config.line_width)

    if record.detection is not None:
        _outline(draw, record.detection.corners, color=config.detection_color, width=width)
    if record.ground_truth is not None:
        _outline(draw, record.ground_truth, color=config.ground_truth_color, width=width)
    if record.status is EvaluationStatus.OK:
        draw.text((4, 4), f"IoU {record.iou:.3f}", fill=config.detection_color)
    return im


class PreviewWindow:
    """
    Shows overlays in an OpenCV window. `delay_ms=0` blocks until a key is pressed;
    any positive delay only pumps the GUI event loop.
    """

    def __init__(self, *, name: str = "Detected", delay_ms: int = 1) -> None:
        self.name = name
        self.delay_ms = delay_ms

    def show(self, image: Image.Image) -> None:
        bgr = cv2.cvtColor(np.asarray(image), cv2.COLOR_RGB2BGR)
        cv2.imshow(self.name, bgr)
        cv2.waitKey(self.delay_ms)

    def close(self) -> None:
        cv2.destroyWindow(self.name)


def build_visualization_hook(
    config: VisualizationConfig, *, image_dir: Path, preview: PreviewWindow | None = None
) -> RecordHook | None:
    if not config.enabled and not config.interactive:
        return None
    if config.interactive and preview is None:
        preview = PreviewWindow(delay_ms=config.preview_delay_ms)

    def hook(record: EvaluationRecord) -> None:
        if record.status is EvaluationStatus.LOAD_FAILED:
            return
        overlay = render_overlay(image_path=record.image_path, record=record, config=config)
        if config.enabled:
            out_path = map_output_path(
                output_dir=config.dir,
                input_dir=image_dir,
                image_path=record.image_path,
                suffix=".png",
            )
            out_path.parent.mkdir(parents=True, exist_ok=True)
            overlay.save(out_path)
        if preview is not None:
            preview.show(overlay)

    return hook
