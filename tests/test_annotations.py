from __future__ import annotations

import json
from pathlib import Path

import pytest

from rectangle_eval.annotations import (
    AnnotationSourceError,
    build_annotations,
    empty_annotations,
    load_annotations,
    parse_annotations,
)


def _region(xs: list[int], ys: list[int], key: str = "shape_attributes") -> dict:
    return {key: {"name": "polygon", "all_points_x": xs, "all_points_y": ys}, "region_attributes": {}}


def test_load_via_export(tmp_path: Path) -> None:
    path = tmp_path / "annotation.json"
    path.write_text(
        json.dumps(
            {
                "img1.jpg52341": {
                    "filename": "img1.jpg",
                    "size": 52341,
                    "regions": [_region([10, 10, 50, 50], [10, 50, 50, 10])],
                    "file_attributes": {},
                }
            }
        ),
        encoding="utf-8",
    )

    result = load_annotations(path)
    assert list(result.annotations) == ["img1.jpg"]
    assert result.annotations["img1.jpg"] == (
        ((10.0, 10.0), (10.0, 50.0), (50.0, 50.0), (50.0, 10.0)),
    )
    assert result.report.entries == 1
    assert result.report.regions == 1


def test_vertex_order_and_region_order_preserved() -> None:
    data = [
        {"filename": "a.jpg", "regions": [_region([3, 1, 2], [9, 7, 8], key="shape")]},
        {"filename": "b.jpg", "regions": []},
        {"filename": "a.jpg", "regions": [_region([0, 5, 5, 0], [0, 0, 5, 5])]},
    ]
    annotations = parse_annotations(data).annotations
    assert annotations["a.jpg"] == (
        ((3.0, 9.0), (1.0, 7.0), (2.0, 8.0)),
        ((0.0, 0.0), (5.0, 0.0), (5.0, 5.0), (0.0, 5.0)),
    )
    assert "b.jpg" not in annotations


def test_via_project_and_dict_regions() -> None:
    data = {
        "_via_settings": {},
        "_via_img_metadata": {
            "x.png100": {
                "filename": "x.png",
                "regions": {"1": _region([1, 2, 3], [4, 5, 6]), "0": _region([0, 1, 0], [0, 0, 1])},
            }
        },
    }
    annotations = parse_annotations(data).annotations
    assert len(annotations["x.png"]) == 2
    assert annotations["x.png"][0] == ((1.0, 4.0), (2.0, 5.0), (3.0, 6.0))


def test_malformed_regions_are_skipped() -> None:
    data = [
        {
            "filename": "a.jpg",
            "regions": [
                _region([1, 2, 3], [1, 2]),
                {"region_attributes": {}},
                _region([1, 2, "x"], [1, 2, 3]),
                _region([1, 2], [1, 2]),
                _region([0, 4, 4], [0, 0, 4]),
            ],
        },
        {"regions": [_region([0, 1, 1], [0, 0, 1])]},
        {"filename": "only_bad.jpg", "regions": [_region([1], [1, 2])]},
    ]
    result = parse_annotations(data)
    assert result.annotations["a.jpg"] == (((0.0, 0.0), (4.0, 0.0), (4.0, 4.0)),)
    assert "only_bad.jpg" not in result.annotations
    assert len(result.report.skipped_regions) == 5
    assert result.report.skipped_entries == ["#1"]


def test_missing_file_is_source_error(tmp_path: Path) -> None:
    with pytest.raises(AnnotationSourceError):
        load_annotations(tmp_path / "missing.json")


def test_invalid_json_is_source_error(tmp_path: Path) -> None:
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(AnnotationSourceError):
        load_annotations(path)


def test_scalar_json_is_source_error(tmp_path: Path) -> None:
    path = tmp_path / "scalar.json"
    path.write_text("42", encoding="utf-8")
    with pytest.raises(AnnotationSourceError):
        load_annotations(path)


def test_annotations_are_read_only() -> None:
    annotations = build_annotations([("a.jpg", [[(0, 0), (1, 0), (1, 1)]])])
    assert annotations["a.jpg"] == (((0, 0), (1, 0), (1, 1)),)
    with pytest.raises(TypeError):
        annotations["b.jpg"] = ()  # type: ignore[index]
    assert len(empty_annotations()) == 0


def test_non_finite_coordinates_are_skipped(tmp_path: Path) -> None:
    path = tmp_path / "annotation.json"
    path.write_text(
        '[{"filename": "a.jpg", "regions": ['
        '{"shape_attributes": {"all_points_x": [10, NaN, 50], "all_points_y": [10, 50, 50]}},'
        '{"shape_attributes": {"all_points_x": [0, 4, Infinity], "all_points_y": [0, 0, 4]}},'
        '{"shape_attributes": {"all_points_x": [0, 4, 4], "all_points_y": [0, 0, 4]}}]}]',
        encoding="utf-8",
    )

    result = load_annotations(path)

    assert result.annotations["a.jpg"] == (((0.0, 0.0), (4.0, 0.0), (4.0, 4.0)),)
    assert result.report.skipped_regions == ["a.jpg#0", "a.jpg#1"]
