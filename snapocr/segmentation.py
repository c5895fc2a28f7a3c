"""
Character segmentation for binarized short-code images.

Two independent strategies are provided, a column-projection splitter and a
connected-component labeller, plus a selection policy that picks whichever
one better separates touching glyphs. Every function is pure: it reads an
immutable binary image and returns new ``Segment`` values.
"""

from collections import deque
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
import structlog

from .preprocessing import round_half_up
from .types import INK, Segment

logger = structlog.get_logger(__name__)

Block = Tuple[int, int]

MAX_SPLIT_DEPTH = 6
WIDE_FACTOR = 1.35
MIN_CUT_FRACTION = 0.35
BALANCE_WEIGHT = 5.0
BROKEN_PIECE_FRACTION = 0.4
BROKEN_GAP_FRACTION = 0.15
RELATIVE_AREA_FRACTION = 0.12
TINY_FRAGMENT_AREA = 24
MIN_VERTICAL_OVERLAP = 0.35
FORCED_CUT_ASPECT = 1.8
GLYPH_ASPECT = 0.7
MIN_SEGMENT_SIZE = 2


@dataclass(frozen=True)
class Component:
    """Bounding box and pixel count of one 8-connected ink region."""

    box: Segment
    area: int

    def merge(self, other: "Component") -> "Component":
        return Component(self.box.union(other.box), self.area + other.area)


def vertical_projection(
    binary: np.ndarray, segment: Optional[Segment] = None
) -> np.ndarray:
    """Ink pixels per column, optionally restricted to a segment."""
    if segment is None:
        region = binary
    else:
        region = binary[segment.top : segment.bottom + 1, segment.left : segment.right + 1]
    return np.count_nonzero(region == INK, axis=0)


def find_projection_blocks(projection: Sequence[int], active_threshold: int = 0) -> List[Block]:
    """Maximal runs of columns whose projection exceeds the threshold."""
    blocks = []
    start = None
    for x, value in enumerate(projection):
        active = value > active_threshold
        if active and start is None:
            start = x
        elif not active and start is not None:
            blocks.append((start, x - 1))
            start = None
    if start is not None:
        blocks.append((start, len(projection) - 1))
    return blocks


def merge_close_blocks(blocks: List[Block], max_gap: int) -> List[Block]:
    if not blocks:
        return []
    merged = [blocks[0]]
    for left, right in blocks[1:]:
        last_left, last_right = merged[-1]
        if left - last_right - 1 <= max_gap:
            merged[-1] = (last_left, right)
        else:
            merged.append((left, right))
    return merged


def trim_vertical(binary: np.ndarray, left: int, right: int) -> Optional[Tuple[int, int]]:
    """Tight top/bottom rows of ink within columns [left, right]."""
    rows = np.flatnonzero(np.any(binary[:, left : right + 1] == INK, axis=1))
    if rows.size == 0:
        return None
    return int(rows[0]), int(rows[-1])


def split_touching(
    binary: np.ndarray, segment: Segment, avg_width: float, depth: int = 0
) -> List[Segment]:
    """
    Recursively cut a too-wide segment at its best low-ink column.

    A segment is wide when it is at least 1.35x the reference width and at
    least as wide as it is tall. The cut column must have low ink and is
    chosen to balance the widths of the two halves.
    """
    wide_threshold = max(avg_width * WIDE_FACTOR, segment.height * 1.0)
    if depth >= MAX_SPLIT_DEPTH or segment.width < wide_threshold:
        return [segment]

    projection = vertical_projection(binary, segment)
    length = projection.size
    margin = max(2, int(avg_width * MIN_CUT_FRACTION))
    if length - margin <= margin:
        return [segment]

    local_mean = float(projection.sum()) / max(1, length)
    low_threshold = max(1, int(min(segment.height * 0.08, local_mean * 0.55)))

    columns = np.arange(margin, length - margin)
    values = projection[margin : length - margin]
    balance = np.abs(columns - (length - columns)) / length
    scores = np.where(values <= low_threshold, values + balance * BALANCE_WEIGHT, np.inf)
    if not np.isfinite(scores).any():
        return [segment]
    cut = int(columns[int(np.argmin(scores))])
    if cut <= 0:
        return [segment]

    left_seg = Segment(segment.left, segment.left + cut - 1, segment.top, segment.bottom)
    right_seg = Segment(segment.left + cut, segment.right, segment.top, segment.bottom)
    left_trim = trim_vertical(binary, left_seg.left, left_seg.right)
    right_trim = trim_vertical(binary, right_seg.left, right_seg.right)
    if left_trim is None or right_trim is None:
        return [segment]

    left_seg = left_seg.with_vertical(*left_trim)
    right_seg = right_seg.with_vertical(*right_trim)
    if left_seg.width < MIN_SEGMENT_SIZE or right_seg.width < MIN_SEGMENT_SIZE:
        return [segment]

    return split_touching(binary, left_seg, avg_width, depth + 1) + split_touching(
        binary, right_seg, avg_width, depth + 1
    )


def merge_broken_segments(segments: List[Segment], avg_width: float) -> List[Segment]:
    """Re-join adjacent slivers that a split or a broken stroke produced."""
    if not segments:
        return []
    min_piece = max(2, int(avg_width * BROKEN_PIECE_FRACTION))
    max_gap = max(1, int(avg_width * BROKEN_GAP_FRACTION))

    merged = [segments[0]]
    for current in segments[1:]:
        last = merged[-1]
        gap = current.left - last.right - 1
        merged_width = current.right - last.left + 1
        should_merge = (
            gap <= max_gap
            and last.width <= min_piece
            and current.width <= min_piece
            and merged_width <= max(avg_width * 1.2, max(last.width, current.width) * 1.6)
        )
        if should_merge:
            merged[-1] = Segment(
                last.left,
                current.right,
                min(last.top, current.top),
                max(last.bottom, current.bottom),
            )
        else:
            merged.append(current)
    return merged


def _keep_sized(segments: List[Segment]) -> List[Segment]:
    return [
        s for s in segments if s.width >= MIN_SEGMENT_SIZE and s.height >= MIN_SEGMENT_SIZE
    ]


def segment_by_projection(binary: np.ndarray) -> List[Segment]:
    """Projection path: column runs, trimmed, split when wide, slivers re-merged."""
    blocks = merge_close_blocks(find_projection_blocks(vertical_projection(binary)), 0)

    prepared = []
    for left, right in blocks:
        trimmed = trim_vertical(binary, left, right)
        if trimmed is None:
            continue
        prepared.append(Segment(left, right, *trimmed))
    if not prepared:
        return []

    avg_width = sum(s.width for s in prepared) / len(prepared)
    pieces = []
    for segment in prepared:
        pieces.extend(split_touching(binary, segment, avg_width))
    pieces.sort(key=lambda s: s.left)

    return _keep_sized(merge_broken_segments(pieces, avg_width))


def connected_components(binary: np.ndarray) -> List[Component]:
    """Label 8-connected ink regions by breadth-first flood fill."""
    height, width = binary.shape
    ink = (binary == INK).tolist()
    visited = [[False] * width for _ in range(height)]
    min_area = max(4, int(width * height * 0.0002))
    components = []

    for y in range(height):
        ink_row = ink[y]
        for x in range(width):
            if visited[y][x] or not ink_row[x]:
                continue

            left = right = x
            top = bottom = y
            area = 0
            visited[y][x] = True
            queue = deque([(x, y)])

            while queue:
                cx, cy = queue.popleft()
                area += 1
                if cx < left:
                    left = cx
                if cx > right:
                    right = cx
                if cy > bottom:
                    bottom = cy
                if cy < top:
                    top = cy

                for ny in (cy - 1, cy, cy + 1):
                    if ny < 0 or ny >= height:
                        continue
                    for nx in (cx - 1, cx, cx + 1):
                        if nx < 0 or nx >= width or (nx == cx and ny == cy):
                            continue
                        if visited[ny][nx] or not ink[ny][nx]:
                            continue
                        visited[ny][nx] = True
                        queue.append((nx, ny))

            if area >= min_area and right > left and bottom > top:
                components.append(Component(Segment(left, right, top, bottom), area))

    components.sort(key=lambda c: c.box.left)
    return components


def merge_component_fragments(components: List[Component]) -> List[Component]:
    """Reattach broken strokes and dots to the glyph they overlap vertically."""
    if not components:
        return []
    merged = [components[0]]
    for current in components[1:]:
        last = merged[-1]
        gap = current.box.left - last.box.right - 1
        overlap_top = max(last.box.top, current.box.top)
        overlap_bottom = min(last.box.bottom, current.box.bottom)
        overlap = max(0, overlap_bottom - overlap_top + 1)
        overlap_ratio = overlap / max(1, min(last.box.height, current.box.height))
        tiny = current.area <= TINY_FRAGMENT_AREA or last.area <= TINY_FRAGMENT_AREA

        if gap <= 1 and (overlap_ratio >= MIN_VERTICAL_OVERLAP or tiny):
            merged[-1] = last.merge(current)
        else:
            merged.append(current)
    return merged


def segment_by_components(binary: np.ndarray) -> List[Segment]:
    """Connected-component path: label, drop specks, merge fragments, split wide."""
    components = connected_components(binary)
    if not components:
        return []

    height, width = binary.shape
    min_area = max(4, int(width * height * 0.0002))
    max_area = max(c.area for c in components)
    area_threshold = max(min_area, int(max_area * RELATIVE_AREA_FRACTION))
    filtered = [c for c in components if c.area >= area_threshold] or components

    expanded = []
    for component in merge_component_fragments(filtered):
        box = component.box
        if box.width <= max(10, box.height * WIDE_FACTOR):
            expanded.append(box)
            continue
        reference_width = max(2, int(box.height * 0.6))
        expanded.extend(split_touching(binary, box, reference_width))

    return _keep_sized(expanded)


def estimate_glyph_count(width: int, height: int) -> int:
    return max(2, min(8, round_half_up(width / max(1.0, height * GLYPH_ASPECT))))


def segment_by_forced_cuts(binary: np.ndarray) -> List[Segment]:
    """Cut a wide image at low-ink columns near evenly spaced boundaries."""
    height, width = binary.shape
    if width / max(1, height) < FORCED_CUT_ASPECT:
        return []

    projection = vertical_projection(binary)
    if int(projection.sum()) <= 0:
        return []

    count = estimate_glyph_count(width, height)
    search = max(2, width // (count * 3))

    cuts = []
    for k in range(1, count):
        target = (k * width) // count
        lo = max(1, target - search)
        hi = min(width - 2, target + search)
        if hi < lo:
            continue
        best = lo + int(np.argmin(projection[lo : hi + 1]))
        if best > 0:
            cuts.append(best)
    if not cuts:
        return []
    cuts.sort()

    spans = []
    left = 0
    for cut in cuts:
        if cut - left < MIN_SEGMENT_SIZE:
            continue
        spans.append((left, cut - 1))
        left = cut
    if width - left >= MIN_SEGMENT_SIZE:
        spans.append((left, width - 1))
    if len(spans) <= 1:
        return []

    segments = []
    for span_left, span_right in spans:
        trimmed = trim_vertical(binary, span_left, span_right)
        if trimmed is None:
            continue
        segments.append(Segment(span_left, span_right, *trimmed))
    return _keep_sized(segments)


def select_segments(
    projection_segments: List[Segment], component_segments: List[Segment]
) -> List[Segment]:
    """Prefer components where projection under-segments touching glyphs."""
    projected = len(projection_segments)
    labelled = len(component_segments)

    if not projected:
        return component_segments
    if not labelled:
        return projection_segments
    if projected <= 1 and 1 < labelled <= 8:
        return component_segments
    if projected < labelled <= 24 and labelled <= projected * 1.8:
        return component_segments
    return projection_segments


def robust_segments(binary: np.ndarray) -> Tuple[List[Segment], str]:
    """
    Run both strategies and apply the selection policy.

    Returns:
        Tuple of (segments, strategy name)
    """
    projection_segments = segment_by_projection(binary)
    component_segments = segment_by_components(binary)
    chosen = select_segments(projection_segments, component_segments)
    strategy = "projection" if chosen is projection_segments else "components"

    if len(chosen) <= 1:
        forced = segment_by_forced_cuts(binary)
        if len(forced) > len(chosen):
            return forced, "forced_cuts"
    return chosen, strategy


def crop(binary: np.ndarray, segment: Segment) -> np.ndarray:
    return binary[segment.top : segment.bottom + 1, segment.left : segment.right + 1].copy()


class CharacterSegmenter:
    """Partitions a binary image into left-to-right glyph sub-images."""

    def __init__(self):
        self.logger = logger.bind(component="CharacterSegmenter")

    def segment(self, binary: np.ndarray) -> List[Segment]:
        segments, strategy = robust_segments(binary)
        self.logger.debug(
            "Segmentation completed", strategy=strategy, segment_count=len(segments)
        )
        return segments

    def segment_images(self, binary: np.ndarray) -> List[np.ndarray]:
        return [crop(binary, s) for s in self.segment(binary)]
