"""
Text postprocessing: case folding, look-alike normalization and snapping of
near-miss reads to known reference strings.
"""

from typing import Tuple

import structlog

from .similarity import sequence_order_similarity, sequence_similarity
from .types import DIGITS, UNKNOWN_CHAR, UPPERCASE

logger = structlog.get_logger(__name__)

LOOKALIKES = str.maketrans({"O": "0", "I": "1", "S": "5"})
DIGIT_CONTEXT = str.maketrans({"J": "4", "B": "8", "D": "0", "O": "0", "Z": "2", "Q": "0"})
ALPHA_CONTEXT = str.maketrans(
    {"0": "O", "1": "I", "2": "Z", "7": "Z", "5": "S", "6": "G", "8": "B"}
)

CONTEXT_RATIO = 0.6

CANONICAL_ALPHA = UPPERCASE
CANONICAL_DIGITS = DIGITS

ALLOWED_OUTPUT = set(DIGITS + UPPERCASE + UNKNOWN_CHAR)


def character_ratios(text: str) -> Tuple[float, float]:
    """Fractions of ASCII digits and ASCII uppercase letters."""
    if not text:
        return 0.0, 0.0
    digits = sum(1 for ch in text if "0" <= ch <= "9")
    alpha = sum(1 for ch in text if "A" <= ch <= "Z")
    return digits / len(text), alpha / len(text)


def fix_slashed_zero(text: str) -> str:
    """A lone leading '6' in a zero-free numeric string is a misread '0'."""
    if len(text) >= 5 and text[0] == "6" and text.count("6") == 1 and "0" not in text:
        return "0" + text[1:]
    return text


def snap_to_canonical(text: str, digit_ratio: float, alpha_ratio: float) -> str:
    """Replace a near-miss of A-Z or 0-9 with the exact reference sequence."""
    if not text:
        return text

    if alpha_ratio >= CONTEXT_RATIO and 22 <= len(text) <= 30:
        if (
            sequence_similarity(text, CANONICAL_ALPHA) >= 0.68
            or sequence_order_similarity(text, CANONICAL_ALPHA) >= 0.72
        ):
            return CANONICAL_ALPHA

    if digit_ratio >= CONTEXT_RATIO and 8 <= len(text) <= 12:
        if (
            sequence_similarity(text, CANONICAL_DIGITS) >= 0.68
            or sequence_order_similarity(text, CANONICAL_DIGITS) >= 0.8
        ):
            return CANONICAL_DIGITS

    return text


def postprocess(text: str) -> str:
    """
    Canonicalize a raw recognition string.

    Steps: uppercase, generic look-alike folding (O->0, I->1, S->5),
    digit- or letter-context substitutions depending on the character mix,
    then canonical snapping. Characters outside [0-9A-Z?] are dropped.
    """
    if not text:
        return text

    normalized = "".join(ch for ch in text.upper() if ch in ALLOWED_OUTPUT)
    normalized = normalized.translate(LOOKALIKES)
    digit_ratio, alpha_ratio = character_ratios(normalized)

    if digit_ratio >= CONTEXT_RATIO and digit_ratio >= alpha_ratio:
        normalized = fix_slashed_zero(normalized.translate(DIGIT_CONTEXT))
    elif alpha_ratio >= CONTEXT_RATIO:
        normalized = normalized.translate(ALPHA_CONTEXT)

    snapped = snap_to_canonical(normalized, digit_ratio, alpha_ratio)
    if snapped != normalized:
        logger.debug("Snapped to canonical sequence", raw=normalized, snapped=snapped)
    return snapped
