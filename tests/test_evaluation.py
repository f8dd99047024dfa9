from __future__ import annotations

import logging
import time
from dataclasses import replace
from pathlib import Path

import cv2
import numpy as np
import pytest

from rectangle_eval.annotations import build_annotations, empty_annotations
from rectangle_eval.config import AppConfig, EvaluationConfig, default_config
from rectangle_eval.detectors import ContourRectangleDetector, Detection
from rectangle_eval.evaluation import evaluate_image, run_evaluation
from rectangle_eval.output import MemoryReportSink
from rectangle_eval.records import EvaluationStatus

SQUARE = ((10.0, 10.0), (10.0, 50.0), (50.0, 50.0), (50.0, 10.0))
FAR = ((70.0, 70.0), (90.0, 70.0), (90.0, 90.0), (70.0, 90.0))


def _write_square(path: Path, polygon=SQUARE, size: int = 100) -> None:
    image = np.zeros((size, size, 3), dtype=np.uint8)
    cv2.fillPoly(image, [np.asarray(polygon, dtype=np.int32)], (255, 255, 255))
    assert cv2.imwrite(str(path), image, [cv2.IMWRITE_JPEG_QUALITY, 100])


def _config(**evaluation) -> AppConfig:
    return replace(default_config(), evaluation=EvaluationConfig(**{"progress": False, **evaluation}))


def _run(image_dir: Path, annotations, **evaluation) -> MemoryReportSink:
    sink = MemoryReportSink()
    run_evaluation(
        image_dir=image_dir,
        annotations=annotations,
        sink=sink,
        detector=ContourRectangleDetector(),
        config=_config(**evaluation),
    )
    return sink


def test_end_to_end_report(tmp_path: Path) -> None:
    _write_square(tmp_path / "img1.jpg")
    _write_square(tmp_path / "other.png")
    (tmp_path / "broken.jpg").write_bytes(b"this is not an image")
    cv2.imwrite(str(tmp_path / "zz_blank.png"), np.zeros((64, 64, 3), dtype=np.uint8))
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")

    annotations = build_annotations([("img1.jpg", [SQUARE])])
    sink = _run(tmp_path, annotations)

    statuses = [(r.image_path.name, r.status) for r in sink.records]
    assert statuses == [
        ("broken.jpg", EvaluationStatus.LOAD_FAILED),
        ("img1.jpg", EvaluationStatus.OK),
        ("other.png", EvaluationStatus.NO_GROUND_TRUTH),
        ("zz_blank.png", EvaluationStatus.NO_RECTANGLE),
    ]

    scored = sink.records[1]
    assert scored.iou >= 0.9
    assert scored.ground_truth == SQUARE

    lines = sink.lines
    assert lines[0] == f"Cannot load image: {tmp_path / 'broken.jpg'}"
    assert lines[1].startswith(f"Image: {tmp_path / 'img1.jpg'}, IoU: ")
    assert float(lines[1].rsplit("IoU: ", 1)[1]) >= 0.9
    assert lines[2] == f"Image: {tmp_path / 'other.png'}, IoU: 0 (no ground truth)"
    assert lines[3] == f"No rectangle found for: {tmp_path / 'zz_blank.png'}"


def test_summary_counts(tmp_path: Path) -> None:
    _write_square(tmp_path / "a.jpg")
    _write_square(tmp_path / "b.jpg")
    (tmp_path / "c.jpg").write_bytes(b"")

    summary = run_evaluation(
        image_dir=tmp_path,
        annotations=build_annotations([("a.jpg", [SQUARE]), ("b.jpg", [SQUARE])]),
        sink=MemoryReportSink(),
        detector=ContourRectangleDetector(),
        config=_config(),
    )

    assert summary.images == 3
    assert summary.scored == 2
    assert summary.counts[EvaluationStatus.LOAD_FAILED] == 1
    assert summary.mean_iou >= 0.9


def test_first_region_versus_best_region(tmp_path: Path) -> None:
    _write_square(tmp_path / "img1.jpg")
    annotations = build_annotations([("img1.jpg", [FAR, SQUARE])])

    first = _run(tmp_path, annotations, match="first").records[0]
    best = _run(tmp_path, annotations, match="best").records[0]

    assert first.iou < 0.1
    assert first.ground_truth == FAR
    assert best.iou >= 0.9
    assert best.ground_truth == SQUARE


def test_thread_pool_keeps_enumeration_order(tmp_path: Path) -> None:
    for i in range(6):
        _write_square(tmp_path / f"img{i}.jpg")
    annotations = build_annotations([(f"img{i}.jpg", [SQUARE]) for i in range(0, 6, 2)])

    sequential = _run(tmp_path, annotations).lines
    threaded = _run(tmp_path, annotations, workers=3).lines

    assert threaded == sequential
    assert len(threaded) == 6


def test_no_annotations_scores_zero(tmp_path: Path) -> None:
    _write_square(tmp_path / "img1.jpg")
    record = _run(tmp_path, empty_annotations()).records[0]
    assert record.status is EvaluationStatus.NO_GROUND_TRUTH
    assert record.iou == 0.0


class _FailingDetector:
    def detect(self, image: np.ndarray) -> Detection | None:
        raise cv2.error("synthetic failure")


class _SlowDetector:
    def detect(self, image: np.ndarray) -> Detection | None:
        time.sleep(1.0)
        return None


def test_detector_error_is_isolated(tmp_path: Path) -> None:
    _write_square(tmp_path / "img1.jpg")
    record = evaluate_image(
        tmp_path / "img1.jpg",
        annotations=empty_annotations(),
        detector=_FailingDetector(),
        config=_config(),
    )
    assert record.status is EvaluationStatus.DETECTION_FAILED
    assert record.iou == 0.0


def test_timeout_is_recorded(tmp_path: Path) -> None:
    _write_square(tmp_path / "img1.jpg")
    sink = MemoryReportSink()
    run_evaluation(
        image_dir=tmp_path,
        annotations=empty_annotations(),
        sink=sink,
        detector=_SlowDetector(),
        config=_config(timeout_seconds=0.05),
    )
    assert [r.status for r in sink.records] == [EvaluationStatus.TIMED_OUT]
    assert sink.lines == [f"Timed out: {tmp_path / 'img1.jpg'}"]


def test_hook_failure_does_not_stop_batch(tmp_path: Path) -> None:
    _write_square(tmp_path / "a.jpg")
    _write_square(tmp_path / "b.jpg")
    sink = MemoryReportSink()

    def hook(record) -> None:
        raise RuntimeError("display unavailable")

    summary = run_evaluation(
        image_dir=tmp_path,
        annotations=empty_annotations(),
        sink=sink,
        detector=ContourRectangleDetector(),
        config=_config(),
        on_record=hook,
    )
    assert summary.images == 2
    assert len(sink.records) == 2


def test_missing_directory_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        _run(tmp_path / "missing", empty_annotations())


def test_scoring_error_is_isolated(tmp_path: Path) -> None:
    _write_square(tmp_path / "a.jpg")
    _write_square(tmp_path / "b.jpg")
    bad = ((10.0, 10.0), (float("nan"), 50.0), (50.0, 50.0))
    annotations = build_annotations([("a.jpg", [bad]), ("b.jpg", [SQUARE])])

    sink = _run(tmp_path, annotations)

    assert [r.status for r in sink.records] == [EvaluationStatus.SCORING_FAILED, EvaluationStatus.OK]
    assert sink.lines[0] == f"Scoring failed for: {tmp_path / 'a.jpg'}"
    assert sink.records[1].iou >= 0.9


def test_ground_truth_outside_image_is_clipped(tmp_path: Path) -> None:
    _write_square(tmp_path / "img1.jpg")
    stray = ((10.0, 10.0), (10.0, 50.0), (500000.0, 500000.0), (50.0, 10.0))

    record = _run(tmp_path, build_annotations([("img1.jpg", [stray])])).records[0]

    assert record.status is EvaluationStatus.OK
    assert 0.0 <= record.iou <= 1.0


def test_missing_ground_truth_is_a_warning(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    _write_square(tmp_path / "img1.jpg")

    with caplog.at_level(logging.WARNING, logger="rectangle_eval.evaluation"):
        _run(tmp_path, empty_annotations())

    assert any(
        r.levelno == logging.WARNING and "No ground truth for: img1.jpg" in r.getMessage()
        for r in caplog.records
    )
