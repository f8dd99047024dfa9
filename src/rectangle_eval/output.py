from __future__ import annotations

import json
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Protocol, TextIO

from rectangle_eval.records import EvaluationRecord, EvaluationStatus, EvaluationSummary


class ReportSink(Protocol):
    def write(self, record: EvaluationRecord) -> None:
        ...


def format_report_line(record: EvaluationRecord) -> str:
    path = str(record.image_path)
    status = record.status
    if status is EvaluationStatus.OK:
        return f"Image: {path}, IoU: {record.iou:g}"
    if status is EvaluationStatus.NO_GROUND_TRUTH:
        return f"Image: {path}, IoU: {record.iou:g} (no ground truth)"
    if status is EvaluationStatus.NO_RECTANGLE:
        return f"No rectangle found for: {path}"
    if status is EvaluationStatus.LOAD_FAILED:
        return f"Cannot load image: {path}"
    if status is EvaluationStatus.DETECTION_FAILED:
        return f"Detection failed for: {path}"
    if status is EvaluationStatus.SCORING_FAILED:
        return f"Scoring failed for: {path}"
    if status is EvaluationStatus.TIMED_OUT:
        return f"Timed out: {path}"
    raise ValueError(f"unknown status: {status}")


class TextReportSink:
    """Writes one line per record to a text stream, flushing after each line."""

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream

    def write(self, record: EvaluationRecord) -> None:
        self._stream.write(format_report_line(record) + "\n")
        self._stream.flush()


class MemoryReportSink:
    def __init__(self) -> None:
        self.records: list[EvaluationRecord] = []

    def write(self, record: EvaluationRecord) -> None:
        self.records.append(record)

    @property
    def lines(self) -> list[str]:
        return [format_report_line(r) for r in self.records]


def _polygon_payload(points: Sequence[tuple[float, float]] | None) -> list[list[float]] | None:
    if points is None:
        return None
    return [[float(x), float(y)] for x, y in points]


def write_summary_json(
    *,
    output_path: Path,
    records: Sequence[EvaluationRecord],
    summary: EvaluationSummary,
    extra: dict[str, Any] | None = None,
) -> None:
    payload: dict[str, Any] = {
        "format_version": "1.0",
        "summary": {
            "images": summary.images,
            "scored": summary.scored,
            "mean_iou": float(summary.mean_iou),
            "counts": {status.value: count for status, count in summary.counts.items()},
        },
        "images": [
            {
                "path": str(r.image_path).replace("\\", "/"),
                "key": r.key,
                "status": r.status.value,
                "iou": float(r.iou),
                "detection": _polygon_payload(r.detection.corners if r.detection else None),
                "ground_truth": _polygon_payload(r.ground_truth),
            }
            for r in records
        ],
    }

    if extra:
        payload["extra"] = extra

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
