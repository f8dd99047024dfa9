from __future__ import annotations

import argparse
import logging
from collections.abc import Sequence
from pathlib import Path

from rectangle_eval.annotations import AnnotationSourceError, empty_annotations, load_annotations
from rectangle_eval.config import MATCH_POLICIES, AppConfig, default_config, load_config, with_overrides
from rectangle_eval.detectors import ContourRectangleDetector
from rectangle_eval.evaluation import run_evaluation
from rectangle_eval.output import TextReportSink, write_summary_json
from rectangle_eval.records import EvaluationRecord
from rectangle_eval.visualize import build_visualization_hook

LOGGER = logging.getLogger("rectangle_eval")

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "config.toml"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rectangle-eval",
        description="Score edge-based rectangle detection against VIA polygon annotations (IoU).",
    )
    parser.add_argument("annotations", type=Path, help="Path to the VIA annotation JSON file.")
    parser.add_argument("image_dir", type=Path, help="Directory containing the images.")
    parser.add_argument("report", type=Path, help="Path of the text report to write.")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config TOML (default: config/config.toml when present).",
    )
    parser.add_argument("--workers", type=int, default=None, help="Number of worker threads.")
    parser.add_argument("--timeout", type=float, default=None, help="Per-image timeout in seconds.")
    parser.add_argument(
        "--match",
        choices=MATCH_POLICIES,
        default=None,
        help="Score against the first ground-truth region or the best-matching one.",
    )
    parser.add_argument("--vis-dir", type=Path, default=None, help="Save overlay images into this directory.")
    parser.add_argument("--show", action="store_true", help="Preview overlays in a window.")
    parser.add_argument("--json", type=Path, default=None, help="Also write a JSON summary here.")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO).")
    return parser


def _load_app_config(path: Path | None) -> AppConfig:
    if path is not None:
        return load_config(path.expanduser().resolve())
    # an installed package has no repo config next to it
    if DEFAULT_CONFIG_PATH.exists():
        return load_config(DEFAULT_CONFIG_PATH)
    return default_config()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = _load_app_config(args.config)
        config = with_overrides(
            config,
            workers=args.workers,
            timeout_seconds=args.timeout,
            match=args.match,
            vis_dir=args.vis_dir,
            interactive=args.show,
        )
    except (FileNotFoundError, TypeError, ValueError) as e:
        LOGGER.error("Invalid configuration: %s", e)
        return 1

    image_dir: Path = args.image_dir
    if not image_dir.is_dir():
        LOGGER.error("Directory not found: %s", image_dir)
        return 1

    try:
        annotations = load_annotations(args.annotations).annotations
    except AnnotationSourceError as e:
        LOGGER.warning("%s; continuing without ground truth", e)
        annotations = empty_annotations()

    try:
        report_file = args.report.open("w", encoding="utf-8")
    except OSError as e:
        LOGGER.error("Cannot open file for writing: %s (%s)", args.report, e)
        return 1

    records: list[EvaluationRecord] = []
    vis_hook = build_visualization_hook(config.visualization, image_dir=image_dir)

    def on_record(record: EvaluationRecord) -> None:
        records.append(record)
        if vis_hook is not None:
            vis_hook(record)

    with report_file:
        summary = run_evaluation(
            image_dir=image_dir,
            annotations=annotations,
            sink=TextReportSink(report_file),
            detector=ContourRectangleDetector(config.detector),
            config=config,
            on_record=on_record,
        )

    if args.json is not None:
        write_summary_json(output_path=args.json, records=records, summary=summary)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
