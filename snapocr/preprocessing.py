"""
Image preprocessing pipeline for short-code recognition.
Turns an arbitrary color bitmap into a clean binary image with ink = 0.
"""

import math
import time
from typing import Optional, Tuple, Union

import numpy as np
import structlog
from PIL import Image

from .types import BACKGROUND, INK, RecognitionError

logger = structlog.get_logger(__name__)

Bitmap = Union[Image.Image, np.ndarray]

LUMA_WEIGHTS = (0.299, 0.587, 0.114)
MIN_WINDOW = 15
MAX_WINDOW = 45
LOCAL_OFFSET = 10
GLOBAL_FLOOR = 0.6


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def to_rgba_array(bitmap: Bitmap) -> np.ndarray:
    """Coerce a PIL image or numpy array into an (H, W, 4) uint8 array."""
    if isinstance(bitmap, Image.Image):
        array = np.asarray(bitmap.convert("RGBA"), dtype=np.uint8)
    elif isinstance(bitmap, np.ndarray):
        array = bitmap
        if array.ndim == 2:
            array = np.stack([array, array, array], axis=-1)
        if array.ndim != 3 or array.shape[2] not in (3, 4):
            raise RecognitionError(
                f"Unsupported bitmap shape {bitmap.shape}", stage="preprocessing"
            )
        if array.shape[2] == 3:
            alpha = np.full(array.shape[:2] + (1,), 255, dtype=array.dtype)
            array = np.concatenate([array, alpha], axis=-1)
        array = np.clip(array, 0, 255).astype(np.uint8)
    else:
        raise RecognitionError(
            f"Unsupported bitmap type {type(bitmap).__name__}", stage="preprocessing"
        )

    if array.shape[0] == 0 or array.shape[1] == 0:
        raise RecognitionError("Bitmap has zero size", stage="preprocessing")
    return array


def scale_nearest(rgba: np.ndarray, factor: float) -> np.ndarray:
    """Resize with nearest-neighbour sampling so glyph edges stay sharp."""
    if factor == 1.0:
        return rgba
    height, width = rgba.shape[:2]
    new_w = max(1, int(width * factor))
    new_h = max(1, int(height * factor))
    image = Image.fromarray(np.ascontiguousarray(rgba))
    return np.asarray(image.resize((new_w, new_h), Image.NEAREST), dtype=np.uint8)


def to_grayscale(rgba: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Luma conversion plus the 256-bucket intensity histogram."""
    rgb = rgba[..., :3].astype(np.float64)
    luma = (
        LUMA_WEIGHTS[0] * rgb[..., 0]
        + LUMA_WEIGHTS[1] * rgb[..., 1]
        + LUMA_WEIGHTS[2] * rgb[..., 2]
    )
    gray = np.clip(np.floor(luma + 0.5), 0, 255).astype(np.uint8)
    histogram = np.bincount(gray.ravel(), minlength=256)
    return gray, histogram


def otsu_threshold(histogram: np.ndarray) -> int:
    """Global threshold maximizing between-class variance.

    Ties keep the lowest threshold; an empty or single-valued histogram
    falls back to 128.
    """
    total = int(np.sum(histogram))
    weighted_total = float(np.dot(np.arange(256), histogram))

    sum_background = 0.0
    weight_background = 0
    max_variance = 0.0
    threshold = 128

    for t in range(256):
        count = int(histogram[t])
        weight_background += count
        if weight_background == 0:
            continue
        weight_foreground = total - weight_background
        if weight_foreground == 0:
            break
        sum_background += t * count
        mean_background = sum_background / weight_background
        mean_foreground = (weighted_total - sum_background) / weight_foreground
        variance = (
            weight_background
            * weight_foreground
            * (mean_background - mean_foreground) ** 2
        )
        if variance > max_variance:
            max_variance = variance
            threshold = t

    return threshold


def adaptive_window_size(width: int, height: int) -> int:
    """Odd window size around a tenth of the short side, clamped to [15, 45]."""
    window = max(MIN_WINDOW, min(MAX_WINDOW, round_half_up(min(width, height) / 10)))
    if window % 2 == 0:
        window += 1
    return window


def integral_image(gray: np.ndarray) -> np.ndarray:
    """Summed-area table with a zero row and column prepended."""
    height, width = gray.shape
    table = np.zeros((height + 1, width + 1), dtype=np.int64)
    table[1:, 1:] = np.cumsum(np.cumsum(gray.astype(np.int64), axis=0), axis=1)
    return table


def rect_sum(table: np.ndarray, x1: int, y1: int, x2: int, y2: int) -> int:
    """Sum over the inclusive rectangle [x1, x2] x [y1, y2]."""
    return int(
        table[y2 + 1, x2 + 1] - table[y1, x2 + 1] - table[y2 + 1, x1] + table[y1, x1]
    )


def local_adaptive_threshold(
    gray: np.ndarray, table: np.ndarray, window: int, global_threshold: int
) -> np.ndarray:
    """Binarize against max(0.6 * global, local mean - 10)."""
    height, width = gray.shape
    half = window // 2

    ys = np.arange(height)
    xs = np.arange(width)
    y1 = np.maximum(0, ys - half)
    y2 = np.minimum(height - 1, ys + half)
    x1 = np.maximum(0, xs - half)
    x2 = np.minimum(width - 1, xs + half)

    sums = (
        table[np.ix_(y2 + 1, x2 + 1)]
        - table[np.ix_(y1, x2 + 1)]
        - table[np.ix_(y2 + 1, x1)]
        + table[np.ix_(y1, x1)]
    )
    counts = np.outer(y2 - y1 + 1, x2 - x1 + 1)
    means = sums / counts

    thresholds = np.maximum(global_threshold * GLOBAL_FLOOR, means - LOCAL_OFFSET)
    return np.where(gray <= thresholds, INK, BACKGROUND).astype(np.uint8)


def invert(binary: np.ndarray) -> np.ndarray:
    return np.where(binary == INK, BACKGROUND, INK).astype(np.uint8)


def normalize_polarity(binary: np.ndarray) -> Tuple[np.ndarray, bool]:
    """Invert when ink is the majority class, so background dominates."""
    if np.count_nonzero(binary == INK) > binary.size * 0.5:
        return invert(binary), True
    return binary, False


def _neighbour_count(mask: np.ndarray, radius: int = 1) -> np.ndarray:
    """Number of true cells in the (2r+1)^2 window, centre excluded."""
    height, width = mask.shape
    padded = np.pad(mask.astype(np.int32), radius)
    counts = np.zeros((height, width), dtype=np.int32)
    for dy in range(-radius, radius + 1):
        for dx in range(-radius, radius + 1):
            if dx == 0 and dy == 0:
                continue
            counts += padded[
                radius + dy : radius + dy + height, radius + dx : radius + dx + width
            ]
    return counts


def remove_isolated_noise(binary: np.ndarray) -> np.ndarray:
    """Clear interior ink pixels with at most one 8-connected ink neighbour."""
    ink = binary == INK
    isolated = ink & (_neighbour_count(ink) <= 1)
    # Border pixels are left untouched.
    isolated[0, :] = False
    isolated[-1, :] = False
    isolated[:, 0] = False
    isolated[:, -1] = False
    out = binary.copy()
    out[isolated] = BACKGROUND
    return out


def erode(binary: np.ndarray, radius: int = 1) -> np.ndarray:
    """Ink survives only if its whole window is in-bounds ink."""
    height, width = binary.shape
    padded = np.pad(binary == INK, radius, constant_values=False)
    keep = np.ones((height, width), dtype=bool)
    for dy in range(-radius, radius + 1):
        for dx in range(-radius, radius + 1):
            keep &= padded[
                radius + dy : radius + dy + height, radius + dx : radius + dx + width
            ]
    return np.where(keep, INK, BACKGROUND).astype(np.uint8)


def dilate(binary: np.ndarray, radius: int = 1) -> np.ndarray:
    """A pixel becomes ink if any in-bounds pixel of its window is ink."""
    height, width = binary.shape
    padded = np.pad(binary == INK, radius, constant_values=False)
    grow = np.zeros((height, width), dtype=bool)
    for dy in range(-radius, radius + 1):
        for dx in range(-radius, radius + 1):
            grow |= padded[
                radius + dy : radius + dy + height, radius + dx : radius + dx + width
            ]
    return np.where(grow, INK, BACKGROUND).astype(np.uint8)


def morphological_open(binary: np.ndarray, radius: int = 1) -> np.ndarray:
    return dilate(erode(binary, radius), radius)


def morphological_close(binary: np.ndarray, radius: int = 1) -> np.ndarray:
    return erode(dilate(binary, radius), radius)


class ImagePreprocessor:
    """
    Binarization pipeline shared by template construction and recognition.

    Combines an Otsu global floor with a local mean threshold, normalizes
    polarity so that ink is the minority class, then cleans speckle and
    thin spurs.
    """

    def __init__(self, morphology_radius: int = 1):
        self.morphology_radius = morphology_radius
        self.logger = logger.bind(component="ImagePreprocessor")

    def process(self, bitmap: Bitmap) -> np.ndarray:
        """
        Convert a color bitmap to a binary image.

        Args:
            bitmap: PIL image or (H, W[, C]) uint8 array

        Returns:
            (H, W) uint8 array with ink = 0 and background = 255

        Raises:
            RecognitionError: If the bitmap cannot be interpreted
        """
        start_time = time.time()
        rgba = to_rgba_array(bitmap)
        return self.process_rgba(rgba, start_time=start_time)

    def process_rgba(self, rgba: np.ndarray, start_time: Optional[float] = None) -> np.ndarray:
        if start_time is None:
            start_time = time.time()
        height, width = rgba.shape[:2]

        gray, histogram = to_grayscale(rgba)
        global_threshold = otsu_threshold(histogram)
        window = adaptive_window_size(width, height)
        table = integral_image(gray)
        binary = local_adaptive_threshold(gray, table, window, global_threshold)

        binary, inverted = normalize_polarity(binary)

        binary = remove_isolated_noise(binary)
        binary = morphological_open(binary, self.morphology_radius)

        self.logger.debug(
            "Image binarized",
            width=width,
            height=height,
            global_threshold=global_threshold,
            window=window,
            inverted=inverted,
            processing_time=time.time() - start_time,
        )
        return binary
