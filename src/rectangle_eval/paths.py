from __future__ import annotations

from pathlib import Path


def iter_image_files(*, input_dir: Path, recursive: bool, extensions: tuple[str, ...]) -> list[Path]:
    """
    Image files under `input_dir` whose suffix is one of `extensions` (case-insensitive),
    sorted by path so reports come out in the same order on every filesystem.
    """
    exts = {x.lower() for x in extensions}
    candidates = input_dir.rglob("*") if recursive else input_dir.iterdir()
    return sorted(p for p in candidates if p.suffix.lower() in exts and p.is_file())


def image_key(image_path: Path, extensions: tuple[str, ...]) -> str:
    """
    Annotation lookup key for an image: its file name, cut right after the first
    recognized extension (`scan.jpg123` -> `scan.jpg`).
    """
    name = image_path.name
    lowered = name.lower()
    matches = []
    for ext in extensions:
        pos = lowered.find(ext.lower())
        if pos > 0:
            matches.append((pos, -len(ext)))
    if not matches:
        return name
    # earliest match; the longer extension wins at the same position (.tiff over .tif)
    pos, neg_len = min(matches)
    return name[: pos - neg_len]


def map_output_path(*, output_dir: Path, input_dir: Path, image_path: Path, suffix: str) -> Path:
    rel = image_path.relative_to(input_dir)
    return (output_dir / rel).with_suffix(suffix)
