from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from rectangle_eval.detectors.base import Detection, Polygon


class EvaluationStatus(str, Enum):
    OK = "ok"
    NO_GROUND_TRUTH = "no_ground_truth"
    NO_RECTANGLE = "no_rectangle"
    LOAD_FAILED = "load_failed"
    DETECTION_FAILED = "detection_failed"
    SCORING_FAILED = "scoring_failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True, slots=True)
class EvaluationRecord:
    image_path: Path
    key: str
    iou: float
    status: EvaluationStatus
    detection: Detection | None = None
    ground_truth: Polygon | None = None
    note: str = ""


@dataclass(slots=True)
class EvaluationSummary:
    images: int = 0
    counts: dict[EvaluationStatus, int] = field(default_factory=lambda: {s: 0 for s in EvaluationStatus})
    iou_sum: float = 0.0

    def add(self, record: EvaluationRecord) -> None:
        self.images += 1
        self.counts[record.status] += 1
        if record.status is EvaluationStatus.OK:
            self.iou_sum += record.iou

    @property
    def scored(self) -> int:
        return self.counts[EvaluationStatus.OK]

    @property
    def mean_iou(self) -> float:
        """Mean IoU over images that had both a detection and a ground truth."""
        return self.iou_sum / self.scored if self.scored else 0.0
