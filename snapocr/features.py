"""
Glyph descriptors shared by the template library and the matcher.
"""

from collections import deque
from typing import Tuple

import numpy as np

from .preprocessing import morphological_close
from .types import BACKGROUND, INK

TEMPLATE_SIZE = 32
FIT_MARGIN = 0.85


def resize_glyph(glyph: np.ndarray, size: int = TEMPLATE_SIZE) -> np.ndarray:
    """
    Fit a glyph into a size x size canvas.

    Aspect ratio is preserved, the glyph is scaled to 85% of the canvas and
    centred using nearest-neighbour sampling. Uncovered pixels stay
    background.
    """
    height, width = glyph.shape
    result = np.full((size, size), BACKGROUND, dtype=np.uint8)

    scale = min(size / width, size / height) * FIT_MARGIN
    new_w = max(1, int(width * scale))
    new_h = max(1, int(height * scale))
    off_x = (size - new_w) // 2
    off_y = (size - new_h) // 2

    src_x = np.minimum((np.arange(new_w) / scale).astype(np.int64), width - 1)
    src_y = np.minimum((np.arange(new_h) / scale).astype(np.int64), height - 1)
    result[off_y : off_y + new_h, off_x : off_x + new_w] = glyph[np.ix_(src_y, src_x)]
    return result


def ink_density(pixels: np.ndarray) -> float:
    return float(np.count_nonzero(pixels < 128)) / pixels.size


def horizontal_profile(pixels: np.ndarray) -> np.ndarray:
    """Ink fraction per row."""
    return np.count_nonzero(pixels < 128, axis=1) / pixels.shape[1]


def vertical_profile(pixels: np.ndarray) -> np.ndarray:
    """Ink fraction per column."""
    return np.count_nonzero(pixels < 128, axis=0) / pixels.shape[0]


def count_holes(pixels: np.ndarray) -> int:
    """Number of 4-connected background regions that do not touch the border."""
    height, width = pixels.shape
    background = (pixels == BACKGROUND).tolist()
    visited = [[False] * width for _ in range(height)]
    holes = 0

    for sy in range(height):
        for sx in range(width):
            if visited[sy][sx] or not background[sy][sx]:
                continue
            touches_border = False
            visited[sy][sx] = True
            queue = deque([(sx, sy)])
            while queue:
                x, y = queue.popleft()
                if x == 0 or y == 0 or x == width - 1 or y == height - 1:
                    touches_border = True
                for nx, ny in ((x + 1, y), (x - 1, y), (x, y + 1), (x, y - 1)):
                    if nx < 0 or ny < 0 or nx >= width or ny >= height:
                        continue
                    if visited[ny][nx] or not background[ny][nx]:
                        continue
                    visited[ny][nx] = True
                    queue.append((nx, ny))
            if not touches_border:
                holes += 1

    return holes


def glyph_holes(pixels: np.ndarray) -> int:
    """Hole count after a radius-1 closing bridges thin stroke gaps."""
    return count_holes(morphological_close(pixels, 1))


def describe(pixels: np.ndarray) -> Tuple[float, np.ndarray, np.ndarray, int]:
    """Density, horizontal profile, vertical profile and hole count."""
    return (
        ink_density(pixels),
        horizontal_profile(pixels),
        vertical_profile(pixels),
        glyph_holes(pixels),
    )


def render_ascii(pixels: np.ndarray) -> str:
    """Two characters per pixel: '##' for ink, '..' for background."""
    return "\n".join(
        "".join("##" if value == INK else ".." for value in row) for row in pixels
    )
