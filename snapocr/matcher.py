"""
Template matching and confusion-pair disambiguation for single glyphs.
"""

import math
from typing import Iterable, Optional

import numpy as np
import structlog

from .features import describe, resize_glyph
from .templates import TemplateLibrary
from .types import UNKNOWN_CHAR, CharacterTemplate, MatchResult

logger = structlog.get_logger(__name__)

SHIFTS = (0, -1, 1, -2, 2)
EARLY_EXIT_MISMATCH = 0.05

ALIGNMENT_WEIGHT = 0.30
HORIZONTAL_WEIGHT = 0.24
VERTICAL_WEIGHT = 0.24
HOLE_WEIGHT = 0.22


def alignment_mismatch(pixels: np.ndarray, template: np.ndarray) -> float:
    """
    Smallest pixel mismatch fraction over small translations of the template.

    Only the overlapping area is compared for each shift; the search stops
    as soon as a shift falls below 5% mismatch.
    """
    size = pixels.shape[0]
    best = math.inf
    for dy in SHIFTS:
        for dx in SHIFTS:
            y0, y1 = max(0, -dy), min(size, size - dy)
            x0, x1 = max(0, -dx), min(size, size - dx)
            window = pixels[y0:y1, x0:x1]
            shifted = template[y0 + dy : y1 + dy, x0 + dx : x1 + dx]
            if window.size == 0:
                score = 1.0
            else:
                score = np.count_nonzero(window != shifted) / window.size
            if score < best:
                best = score
            if best < EARLY_EXIT_MISMATCH:
                return best
    return best


class GlyphMatcher:
    """
    Scores a glyph against every template of the candidate characters.

    The fused distance combines pixel alignment, row and column ink
    profiles and hole topology. Only the two lowest scores are kept.
    """

    def __init__(self, library: TemplateLibrary, density_reject: float = 0.45):
        self.library = library
        self.density_reject = density_reject
        self.logger = logger.bind(component="GlyphMatcher")

    def match(self, glyph: np.ndarray, candidates: Iterable[str], index: int = 0) -> MatchResult:
        """
        Match one cropped binary glyph.

        Args:
            glyph: Cropped binary sub-image (ink = 0)
            candidates: Characters allowed in the result
            index: Position of the glyph, for logging

        Returns:
            MatchResult with best and second-best hypotheses
        """
        size = self.library.size
        pixels = resize_glyph(glyph, size)
        density, h_profile, v_profile, holes = describe(pixels)

        best_char, best_score = UNKNOWN_CHAR, math.inf
        second_char, second_score = UNKNOWN_CHAR, math.inf

        for char in dict.fromkeys(candidates):
            for template in self.library.templates_for(char):
                if abs(density - template.density) > self.density_reject:
                    continue
                score = self._score(pixels, h_profile, v_profile, holes, template)

                if score < best_score:
                    second_char, second_score = best_char, best_score
                    best_char, best_score = char, score
                elif score < second_score:
                    second_char, second_score = char, score

        self.logger.debug(
            "Glyph matched",
            index=index,
            best=best_char,
            score=round(best_score, 3) if math.isfinite(best_score) else None,
            second=second_char,
            holes=holes,
        )
        return MatchResult(best_char, best_score, second_char, second_score, holes)

    @staticmethod
    def _score(
        pixels: np.ndarray,
        h_profile: np.ndarray,
        v_profile: np.ndarray,
        holes: int,
        template: CharacterTemplate,
    ) -> float:
        alignment = alignment_mismatch(pixels, template.pixels)
        h_distance = float(np.mean(np.abs(h_profile - template.horizontal_profile)))
        v_distance = float(np.mean(np.abs(v_profile - template.vertical_profile)))
        hole_distance = abs(holes - template.holes)
        return (
            alignment * ALIGNMENT_WEIGHT
            + h_distance * HORIZONTAL_WEIGHT
            + v_distance * VERTICAL_WEIGHT
            + hole_distance * HOLE_WEIGHT
        )


class AmbiguityResolver:
    """Settles close calls between look-alike glyphs using hole counts."""

    def __init__(self, margin: float = 0.08):
        self.margin = margin

    def resolve(self, match: MatchResult, allowed: Optional[str] = None) -> str:
        """
        Pick the final character for a match.

        Args:
            match: Matcher output
            allowed: Candidate set; a correction outside it is ignored

        Returns:
            The resolved character
        """
        chosen = self.refine(
            match.char, match.second_char, match.score, match.second_score, match.holes
        )
        if allowed is not None and chosen not in allowed:
            return match.char
        return chosen

    def refine(
        self, best: str, second: str, best_score: float, second_score: float, holes: int
    ) -> str:
        if best == UNKNOWN_CHAR:
            return best
        gap = second_score - best_score
        if not math.isfinite(gap) or gap > self.margin:
            return best

        if holes >= 2 and best in ("3", "B", "0"):
            if second == "8" or best == "3":
                return "8"
        if holes == 1 and best == "8" and second in ("0", "B"):
            return second
        if holes == 0 and best == "8":
            return "3" if second == "3" else best
        return best
