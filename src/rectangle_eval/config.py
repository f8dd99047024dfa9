from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

DEFAULT_INPUT_EXTENSIONS: tuple[str, ...] = (".jpg", ".jpeg", ".png", ".bmp", ".tif", ".tiff")
DEFAULT_DETECTION_COLOR: tuple[int, int, int] = (0, 255, 0)
DEFAULT_GROUND_TRUTH_COLOR: tuple[int, int, int] = (255, 0, 0)
MATCH_POLICIES: tuple[str, ...] = ("first", "best")


@dataclass(frozen=True, slots=True)
class InputConfig:
    recursive: bool = False
    extensions: tuple[str, ...] = DEFAULT_INPUT_EXTENSIONS


@dataclass(frozen=True, slots=True)
class DetectorConfig:
    blur_kernel_size: int = 5
    canny_low: float = 50.0
    canny_high: float = 150.0


@dataclass(frozen=True, slots=True)
class MetricConfig:
    canvas_width: int | None = None
    canvas_height: int | None = None

    @property
    def canvas_size(self) -> tuple[int, int] | None:
        if self.canvas_width is None or self.canvas_height is None:
            return None
        return (self.canvas_width, self.canvas_height)


@dataclass(frozen=True, slots=True)
class EvaluationConfig:
    match: str = "first"
    workers: int = 1
    timeout_seconds: float | None = None
    progress: bool = True


@dataclass(frozen=True, slots=True)
class VisualizationConfig:
    enabled: bool = False
    dir: Path = Path("visual_output")
    detection_color: tuple[int, int, int] = DEFAULT_DETECTION_COLOR
    ground_truth_color: tuple[int, int, int] = DEFAULT_GROUND_TRUTH_COLOR
    line_width: int = 2
    interactive: bool = False
    preview_delay_ms: int = 1


@dataclass(frozen=True, slots=True)
class AppConfig:
    input: InputConfig
    detector: DetectorConfig
    metric: MetricConfig
    evaluation: EvaluationConfig
    visualization: VisualizationConfig


def default_config() -> AppConfig:
    return AppConfig(
        input=InputConfig(),
        detector=DetectorConfig(),
        metric=MetricConfig(),
        evaluation=EvaluationConfig(),
        visualization=VisualizationConfig(),
    )


def _as_dict_table(value: Any, name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise TypeError(f"config: [{name}] must be a TOML table")
    return value


def _require_path(value: Any, name: str) -> Path:
    if not isinstance(value, str) or not value.strip():
        raise TypeError(f"config: {name} must be a non-empty string path")
    return Path(value)


def _get_bool(table: dict[str, Any], key: str, default: bool) -> bool:
    value = table.get(key, default)
    if not isinstance(value, bool):
        raise TypeError(f"config: {key} must be a bool")
    return value


def _get_int(table: dict[str, Any], key: str, default: int) -> int:
    value = table.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"config: {key} must be an int")
    return value


def _get_optional_int(table: dict[str, Any], key: str) -> int | None:
    if table.get(key) is None:
        return None
    return _get_int(table, key, 0)


def _get_float(table: dict[str, Any], key: str, default: float) -> float:
    value = table.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"config: {key} must be a number")
    return float(value)


def _get_optional_float(table: dict[str, Any], key: str) -> float | None:
    if table.get(key) is None:
        return None
    return _get_float(table, key, 0.0)


def _get_str(table: dict[str, Any], key: str, default: str) -> str:
    value = table.get(key, default)
    if not isinstance(value, str):
        raise TypeError(f"config: {key} must be a string")
    return value


def _get_str_list(table: dict[str, Any], key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = table.get(key)
    if value is None:
        return default
    if not isinstance(value, list) or not all(isinstance(x, str) for x in value):
        raise TypeError(f"config: {key} must be a list of strings")
    return tuple(value)


def _get_rgb(table: dict[str, Any], key: str, default: tuple[int, int, int]) -> tuple[int, int, int]:
    value = table.get(key)
    if value is None:
        return default
    if (
        not isinstance(value, list)
        or len(value) != 3
        or not all(isinstance(x, int) for x in value)
        or not all(0 <= x <= 255 for x in value)
    ):
        raise TypeError(f"config: {key} must be [r,g,b] ints in 0..255")
    return (value[0], value[1], value[2])


def validate_config(config: AppConfig) -> None:
    if not config.input.extensions:
        raise ValueError("config: input.extensions must not be empty")
    if not all(ext.startswith(".") for ext in config.input.extensions):
        raise ValueError("config: input.extensions must start with '.'")
    kernel = config.detector.blur_kernel_size
    if kernel <= 0 or kernel % 2 == 0:
        raise ValueError("config: detector.blur_kernel_size must be a positive odd int")
    if config.detector.canny_low < 0 or config.detector.canny_high < 0:
        raise ValueError("config: detector.canny_low/canny_high must be >= 0")
    if config.detector.canny_low > config.detector.canny_high:
        raise ValueError("config: detector.canny_low must be <= detector.canny_high")
    if (config.metric.canvas_width is None) != (config.metric.canvas_height is None):
        raise ValueError("config: metric.canvas_width and metric.canvas_height must be set together")
    if config.metric.canvas_size is not None and min(config.metric.canvas_size) <= 0:
        raise ValueError("config: metric.canvas_width/canvas_height must be > 0")
    if config.evaluation.match not in MATCH_POLICIES:
        raise ValueError(f"config: evaluation.match must be one of {', '.join(MATCH_POLICIES)}")
    if config.evaluation.workers <= 0:
        raise ValueError("config: evaluation.workers must be > 0")
    if config.evaluation.timeout_seconds is not None and config.evaluation.timeout_seconds <= 0:
        raise ValueError("config: evaluation.timeout_seconds must be > 0")
    if config.visualization.line_width <= 0:
        raise ValueError("config: visualization.line_width must be > 0")
    if config.visualization.preview_delay_ms < 0:
        raise ValueError("config: visualization.preview_delay_ms must be >= 0")


def load_config(path: Path) -> AppConfig:
    if not path.exists():
        raise FileNotFoundError(f"config not found: {path}")

    import tomllib

    data = tomllib.loads(path.read_text(encoding="utf-8"))

    input_table = _as_dict_table(data.get("input"), "input")
    detector_table = _as_dict_table(data.get("detector"), "detector")
    metric_table = _as_dict_table(data.get("metric"), "metric")
    eval_table = _as_dict_table(data.get("evaluation"), "evaluation")
    vis_table = _as_dict_table(data.get("visualization"), "visualization")

    config = AppConfig(
        input=InputConfig(
            recursive=_get_bool(input_table, "recursive", False),
            extensions=_get_str_list(input_table, "extensions", DEFAULT_INPUT_EXTENSIONS),
        ),
        detector=DetectorConfig(
            blur_kernel_size=_get_int(detector_table, "blur_kernel_size", 5),
            canny_low=_get_float(detector_table, "canny_low", 50.0),
            canny_high=_get_float(detector_table, "canny_high", 150.0),
        ),
        metric=MetricConfig(
            canvas_width=_get_optional_int(metric_table, "canvas_width"),
            canvas_height=_get_optional_int(metric_table, "canvas_height"),
        ),
        evaluation=EvaluationConfig(
            match=_get_str(eval_table, "match", "first"),
            workers=_get_int(eval_table, "workers", 1),
            timeout_seconds=_get_optional_float(eval_table, "timeout_seconds"),
            progress=_get_bool(eval_table, "progress", True),
        ),
        visualization=VisualizationConfig(
            enabled=_get_bool(vis_table, "enabled", False),
            dir=_require_path(vis_table.get("dir", "visual_output"), "visualization.dir"),
            detection_color=_get_rgb(vis_table, "detection_color", DEFAULT_DETECTION_COLOR),
            ground_truth_color=_get_rgb(vis_table, "ground_truth_color", DEFAULT_GROUND_TRUTH_COLOR),
            line_width=_get_int(vis_table, "line_width", 2),
            interactive=_get_bool(vis_table, "interactive", False),
            preview_delay_ms=_get_int(vis_table, "preview_delay_ms", 1),
        ),
    )

    validate_config(config)
    return config


def with_overrides(
    config: AppConfig,
    *,
    workers: int | None = None,
    timeout_seconds: float | None = None,
    match: str | None = None,
    vis_dir: Path | None = None,
    interactive: bool = False,
) -> AppConfig:
    """
    Apply command-line overrides on top of a loaded config and re-validate.
    """
    evaluation = config.evaluation
    if workers is not None:
        evaluation = replace(evaluation, workers=workers)
    if timeout_seconds is not None:
        evaluation = replace(evaluation, timeout_seconds=timeout_seconds)
    if match is not None:
        evaluation = replace(evaluation, match=match)

    visualization = config.visualization
    if vis_dir is not None:
        visualization = replace(visualization, enabled=True, dir=vis_dir)
    if interactive:
        visualization = replace(visualization, interactive=True)

    updated = replace(config, evaluation=evaluation, visualization=visualization)
    validate_config(updated)
    return updated
