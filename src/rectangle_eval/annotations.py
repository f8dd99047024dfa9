from __future__ import annotations

import json
import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

from rectangle_eval.detectors.base import Polygon

LOGGER = logging.getLogger(__name__)

Annotations = Mapping[str, tuple[Polygon, ...]]

_VIA_PROJECT_KEY = "_via_img_metadata"
_SHAPE_KEYS = ("shape_attributes", "shape")


class AnnotationSourceError(RuntimeError):
    """Raised when the annotation file cannot be opened or parsed as JSON."""


class MalformedRegionError(ValueError):
    pass


@dataclass(slots=True)
class AnnotationLoadReport:
    entries: int = 0
    regions: int = 0
    skipped_entries: list[str] = field(default_factory=list)
    skipped_regions: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class AnnotationLoadResult:
    annotations: Annotations
    report: AnnotationLoadReport


def empty_annotations() -> Annotations:
    return MappingProxyType({})


def build_annotations(items: Iterable[tuple[str, Iterable[Polygon]]]) -> Annotations:
    """
    Builds a read-only annotation mapping. Repeated keys append their polygons in order.
    """
    table: dict[str, list[Polygon]] = {}
    for key, polygons in items:
        table.setdefault(key, []).extend(tuple(tuple(pt) for pt in poly) for poly in polygons)
    return MappingProxyType({key: tuple(polys) for key, polys in table.items()})


def parse_region(region: Any) -> Polygon:
    """
    Converts one VIA region into a polygon by zipping `all_points_x` with `all_points_y`.
    """
    if not isinstance(region, dict):
        raise MalformedRegionError("region must be an object")

    shape = None
    for key in _SHAPE_KEYS:
        if isinstance(region.get(key), dict):
            shape = region[key]
            break
    if shape is None:
        raise MalformedRegionError("region has no shape_attributes")

    xs = shape.get("all_points_x")
    ys = shape.get("all_points_y")
    if not isinstance(xs, list) or not isinstance(ys, list):
        raise MalformedRegionError("shape needs all_points_x and all_points_y lists")
    if len(xs) != len(ys):
        raise MalformedRegionError(f"all_points_x has {len(xs)} values, all_points_y has {len(ys)}")
    if len(xs) < 3:
        raise MalformedRegionError(f"polygon needs at least 3 points, got {len(xs)}")
    for v in (*xs, *ys):
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise MalformedRegionError(f"non-numeric coordinate: {v!r}")
        try:
            finite = math.isfinite(v)
        except OverflowError:
            finite = False
        if not finite:
            raise MalformedRegionError(f"non-finite coordinate: {v!r}")

    return tuple((float(x), float(y)) for x, y in zip(xs, ys, strict=True))


def _iter_entries(data: Any) -> list[Any]:
    if isinstance(data, dict) and isinstance(data.get(_VIA_PROJECT_KEY), dict):
        data = data[_VIA_PROJECT_KEY]
    if isinstance(data, dict):
        return list(data.values())
    if isinstance(data, list):
        return data
    raise AnnotationSourceError("annotation JSON must be an object or a list of entries")


def _iter_regions(regions: Any) -> list[Any]:
    # VIA 1.x stores regions as {"0": {...}, "1": {...}}
    if isinstance(regions, dict):
        return list(regions.values())
    if isinstance(regions, list):
        return regions
    return []


def parse_annotations(data: Any) -> AnnotationLoadResult:
    """
    Parses decoded VIA JSON into a filename -> polygons mapping.

    Malformed entries and regions are skipped and logged, never fatal.
    """
    report = AnnotationLoadReport()
    table: dict[str, list[Polygon]] = {}

    for index, entry in enumerate(_iter_entries(data)):
        filename = entry.get("filename") if isinstance(entry, dict) else None
        if not isinstance(filename, str) or not filename:
            LOGGER.warning("Skipping annotation entry #%d: missing filename", index)
            report.skipped_entries.append(f"#{index}")
            continue
        report.entries += 1

        for region_index, region in enumerate(_iter_regions(entry.get("regions"))):
            try:
                polygon = parse_region(region)
            except MalformedRegionError as e:
                LOGGER.warning("Skipping region %d of %s: %s", region_index, filename, e)
                report.skipped_regions.append(f"{filename}#{region_index}")
                continue
            table.setdefault(filename, []).append(polygon)
            report.regions += 1

    annotations = MappingProxyType({key: tuple(polys) for key, polys in table.items()})
    return AnnotationLoadResult(annotations=annotations, report=report)


def load_annotations(path: Path) -> AnnotationLoadResult:
    try:
        text = path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as e:
        raise AnnotationSourceError(f"unable to open the annotation file: {path}") from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise AnnotationSourceError(f"annotation file is not valid JSON: {path} ({e})") from e

    result = parse_annotations(data)
    LOGGER.info(
        "Loaded %d polygons for %d images from %s",
        result.report.regions,
        len(result.annotations),
        path,
    )
    return result
