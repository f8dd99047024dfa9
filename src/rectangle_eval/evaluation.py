from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from pathlib import Path

import cv2
from tqdm import tqdm

from rectangle_eval.annotations import Annotations
from rectangle_eval.config import AppConfig, default_config
from rectangle_eval.detectors.base import RectangleDetector
from rectangle_eval.geometry import best_iou, polygon_iou
from rectangle_eval.image_utils import ImageLoadError, load_image
from rectangle_eval.output import ReportSink
from rectangle_eval.paths import image_key, iter_image_files
from rectangle_eval.records import EvaluationRecord, EvaluationStatus, EvaluationSummary

LOGGER = logging.getLogger(__name__)

RecordHook = Callable[[EvaluationRecord], None]


def evaluate_image(
    image_path: Path,
    *,
    annotations: Annotations,
    detector: RectangleDetector,
    config: AppConfig,
) -> EvaluationRecord:
    """
    Loads, detects and scores one image. Per-image failures become records, never exceptions.
    """
    key = image_key(image_path, config.input.extensions)

    try:
        image = load_image(image_path)
    except ImageLoadError as e:
        LOGGER.warning("Cannot load image: %s (%s)", image_path, e)
        return EvaluationRecord(
            image_path=image_path, key=key, iou=0.0, status=EvaluationStatus.LOAD_FAILED, note=str(e)
        )

    try:
        detection = detector.detect(image)
    except cv2.error as e:
        LOGGER.exception("Detection failed for: %s", image_path)
        return EvaluationRecord(
            image_path=image_path, key=key, iou=0.0, status=EvaluationStatus.DETECTION_FAILED, note=str(e)
        )

    polygons = annotations.get(key, ())
    if detection is None:
        return EvaluationRecord(
            image_path=image_path,
            key=key,
            iou=0.0,
            status=EvaluationStatus.NO_RECTANGLE,
            ground_truth=polygons[0] if polygons else None,
        )

    if not polygons:
        LOGGER.warning("No ground truth for: %s", key)
        return EvaluationRecord(
            image_path=image_path,
            key=key,
            iou=0.0,
            status=EvaluationStatus.NO_GROUND_TRUTH,
            detection=detection,
        )

    # both polygons live in image pixel space, so the image bounds the canvas
    canvas_size = config.metric.canvas_size or (int(image.shape[1]), int(image.shape[0]))
    try:
        if config.evaluation.match == "best":
            iou, index = best_iou(detection.corners, polygons, canvas_size=canvas_size)
            ground_truth = polygons[index if index is not None else 0]
        else:
            ground_truth = polygons[0]
            iou = polygon_iou(detection.corners, ground_truth, canvas_size=canvas_size)
    except (ValueError, MemoryError) as e:
        LOGGER.exception("Scoring failed for: %s", image_path)
        return EvaluationRecord(
            image_path=image_path,
            key=key,
            iou=0.0,
            status=EvaluationStatus.SCORING_FAILED,
            detection=detection,
            note=str(e),
        )

    LOGGER.debug("%s: IoU=%.4f", image_path, iou)
    return EvaluationRecord(
        image_path=image_path,
        key=key,
        iou=iou,
        status=EvaluationStatus.OK,
        detection=detection,
        ground_truth=ground_truth,
    )


def _timed_out(image_path: Path, config: AppConfig) -> EvaluationRecord:
    LOGGER.warning(
        "Timed out after %.1fs: %s", config.evaluation.timeout_seconds or 0.0, image_path
    )
    return EvaluationRecord(
        image_path=image_path,
        key=image_key(image_path, config.input.extensions),
        iou=0.0,
        status=EvaluationStatus.TIMED_OUT,
    )


def _iter_with_executor(
    images: Sequence[Path],
    *,
    annotations: Annotations,
    detector: RectangleDetector,
    config: AppConfig,
) -> Iterator[EvaluationRecord]:
    executor = ThreadPoolExecutor(max_workers=config.evaluation.workers, thread_name_prefix="evaluate")
    try:
        futures: list[Future[EvaluationRecord]] = [
            executor.submit(
                evaluate_image, image_path, annotations=annotations, detector=detector, config=config
            )
            for image_path in images
        ]
        # results are collected in submission order so the report stays deterministic
        for image_path, future in zip(images, futures, strict=True):
            try:
                yield future.result(timeout=config.evaluation.timeout_seconds)
            except FutureTimeoutError:
                future.cancel()
                yield _timed_out(image_path, config)
    finally:
        # a stuck worker thread cannot be interrupted; do not wait for it
        executor.shutdown(wait=False, cancel_futures=True)


def iter_evaluations(
    images: Sequence[Path],
    *,
    annotations: Annotations,
    detector: RectangleDetector,
    config: AppConfig,
) -> Iterator[EvaluationRecord]:
    """
    Yields one record per image, in the order of `images`.

    Runs inline unless `evaluation.workers > 1` or a timeout is configured, in which case
    images are processed on a thread pool.
    """
    if config.evaluation.workers > 1 or config.evaluation.timeout_seconds is not None:
        yield from _iter_with_executor(images, annotations=annotations, detector=detector, config=config)
        return

    for image_path in images:
        yield evaluate_image(image_path, annotations=annotations, detector=detector, config=config)


def run_evaluation(
    *,
    image_dir: Path,
    annotations: Annotations,
    sink: ReportSink,
    detector: RectangleDetector,
    config: AppConfig | None = None,
    on_record: RecordHook | None = None,
) -> EvaluationSummary:
    config = config or default_config()
    if not image_dir.is_dir():
        raise FileNotFoundError(f"Directory not found: {image_dir}")

    images = iter_image_files(
        input_dir=image_dir,
        recursive=config.input.recursive,
        extensions=config.input.extensions,
    )
    LOGGER.info("Found %d images under %s", len(images), image_dir)

    summary = EvaluationSummary()
    records = iter_evaluations(images, annotations=annotations, detector=detector, config=config)
    for record in tqdm(records, total=len(images), desc="evaluate", disable=not config.evaluation.progress):
        sink.write(record)
        summary.add(record)
        if on_record is not None:
            try:
                on_record(record)
            except Exception:
                LOGGER.exception("Record hook failed for: %s", record.image_path)

    LOGGER.info(
        "Evaluated %d images: %d scored, mean IoU %.4f",
        summary.images,
        summary.scored,
        summary.mean_iou,
    )
    return summary
