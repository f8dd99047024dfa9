from __future__ import annotations

from pathlib import Path

import cv2
import numpy as np


class ImageLoadError(RuntimeError):
    """Raised when an image file cannot be read or decoded."""


def load_image(path: Path) -> np.ndarray:
    """
    Reads an image as a BGR (or grayscale) array with OpenCV.

    `cv2.imread` returns None instead of raising for missing, unreadable or corrupt files;
    that case is turned into `ImageLoadError`.
    """
    if not path.is_file():
        raise ImageLoadError(f"not a file: {path}")

    # np.fromfile + imdecode copes with non-ASCII paths on every platform.
    try:
        buffer = np.fromfile(str(path), dtype=np.uint8)
    except OSError as e:
        raise ImageLoadError(f"cannot read image: {path}") from e
    image = cv2.imdecode(buffer, cv2.IMREAD_COLOR) if buffer.size else None
    if image is None or image.size == 0:
        raise ImageLoadError(f"cannot decode image: {path}")
    return image


def to_gray(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return image
    channels = image.shape[2]
    if channels == 1:
        return image[:, :, 0]
    if channels == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    if channels == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    raise ValueError(f"unsupported channel count: {channels}")
