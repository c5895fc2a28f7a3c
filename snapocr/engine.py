"""
Recognition service: preprocessing, segmentation, matching, disambiguation
and postprocessing of a cropped screen region.
"""

import time
from typing import List, Optional

import numpy as np
import structlog

from .config import RecognizerConfig
from .matcher import AmbiguityResolver, GlyphMatcher
from .postprocessing import postprocess
from .preprocessing import Bitmap, ImagePreprocessor, scale_nearest, to_rgba_array
from .segmentation import CharacterSegmenter, crop
from .similarity import sequence_similarity
from .templates import TemplateLibrary
from .types import (
    EMPTY_RESULT,
    UNKNOWN_CHAR,
    MatchResult,
    RecognitionError,
    RecognitionOutput,
)

logger = structlog.get_logger(__name__)


class SnapOCREngine:
    """
    Offline recognizer for short alphanumeric codes.

    The template library is built once (or injected) and is never mutated;
    recognition calls only write ``last_segments``, which exists purely for
    debug display.
    """

    def __init__(
        self,
        library: Optional[TemplateLibrary] = None,
        config: Optional[RecognizerConfig] = None,
    ):
        """
        Initialize the engine.

        Args:
            library: Prebuilt template library; built from config when omitted
            config: Recognizer configuration
        """
        self.config = config or RecognizerConfig()
        self.logger = logger.bind(component="SnapOCREngine")

        self.preprocessor = ImagePreprocessor(self.config.morphology_radius)
        self.segmenter = CharacterSegmenter()
        self.library = library or TemplateLibrary.build(self.config, self.preprocessor)
        self.matcher = GlyphMatcher(self.library, self.config.density_reject)
        self.resolver = AmbiguityResolver(self.config.ambiguity_margin)

        self.last_segments: List[np.ndarray] = []

    def recognize(self, bitmap: Bitmap) -> str:
        """
        Recognize the text in a bitmap.

        Never raises: pipeline faults yield "?", an empty image yields " ".
        """
        try:
            return self.recognize_detailed(bitmap).text
        except Exception as e:
            self.logger.error("Recognition pipeline failed", error=str(e), exc_info=True)
            return UNKNOWN_CHAR

    def recognize_with_candidates(self, bitmap: Bitmap, candidates: str) -> str:
        """
        Recognize against a restricted character set.

        Never raises: pipeline faults yield "?", an empty image yields " ".
        """
        try:
            glyphs = self._segment(bitmap)
            if not glyphs:
                return EMPTY_RESULT
            text, _ = self._match_constrained(glyphs, candidates)
            return text
        except Exception as e:
            self.logger.error(
                "Constrained recognition failed",
                candidates=candidates,
                error=str(e),
                exc_info=True,
            )
            return UNKNOWN_CHAR

    def recognize_detailed(self, bitmap: Bitmap) -> RecognitionOutput:
        """
        Run the full pipeline and keep the intermediate results.

        Raises:
            RecognitionError: If the bitmap cannot be processed
        """
        start_time = time.time()
        glyphs = self._segment(bitmap)
        if not glyphs:
            self.logger.info("No glyphs found")
            return RecognitionOutput(text=EMPTY_RESULT)

        matches = [
            self.matcher.match(glyph, self.config.charset, index=i)
            for i, glyph in enumerate(glyphs)
        ]
        raw = "".join(
            self.resolver.resolve(m) if m.is_accepted(self.config.accept_threshold) else UNKNOWN_CHAR
            for m in matches
        )

        used_candidates = None
        card = self.config.reference_card
        if card and len(glyphs) == len(card):
            constrained, constrained_matches = self._match_constrained(glyphs, card)
            if sequence_similarity(constrained, card) >= sequence_similarity(raw.upper(), card):
                raw, matches, used_candidates = constrained, constrained_matches, card

        text = postprocess(raw) or EMPTY_RESULT
        self.logger.info(
            "Recognition completed",
            glyphs=len(glyphs),
            raw=raw,
            text=text,
            reference_card_used=used_candidates is not None,
            processing_time=round(time.time() - start_time, 3),
        )
        return RecognitionOutput(
            text=text,
            segments=glyphs,
            raw_text=raw,
            matches=matches,
            used_candidate_set=used_candidates,
        )

    def _segment(self, bitmap: Bitmap) -> List[np.ndarray]:
        try:
            rgba = scale_nearest(to_rgba_array(bitmap), self.config.upscale_factor)
            binary = self.preprocessor.process_rgba(rgba)
            segments = self.segmenter.segment(binary)
        except RecognitionError:
            raise
        except Exception as e:
            raise RecognitionError(f"Segmentation failed: {e}", stage="segmentation") from e

        glyphs = [crop(binary, s) for s in segments]
        self.last_segments = glyphs
        return glyphs

    def _match_constrained(self, glyphs: List[np.ndarray], candidates: str):
        matches: List[MatchResult] = []
        chars = []
        for i, glyph in enumerate(glyphs):
            match = self.matcher.match(glyph, candidates, index=i)
            matches.append(match)
            if match.is_accepted(self.config.constrained_accept_threshold):
                chars.append(self.resolver.resolve(match, allowed=candidates))
            else:
                chars.append(UNKNOWN_CHAR)
        return "".join(chars), matches
