"""
Type definitions for glyph recognition.
"""

from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

# Binary images use one byte per pixel; downstream of the preprocessor
# ink is always 0 and background is always 255.
INK = 0
BACKGROUND = 255

DIGITS = "0123456789"
UPPERCASE = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
LOWERCASE = "abcdefghijklmnopqrstuvwxyz"
DEFAULT_CHARSET = DIGITS + UPPERCASE + LOWERCASE

UNKNOWN_CHAR = "?"
EMPTY_RESULT = " "


class RecognitionError(Exception):
    """Base exception for recognition pipeline errors."""

    def __init__(self, message: str, stage: Optional[str] = None):
        self.stage = stage
        super().__init__(message)


class ConfigurationError(RecognitionError):
    """Raised for invalid recognizer configuration."""

    def __init__(self, message: str):
        super().__init__(message, stage="config")


class TemplateLibraryError(RecognitionError):
    """Raised when no character template could be built."""

    def __init__(self, message: str):
        super().__init__(message, stage="templates")


@dataclass(frozen=True)
class Segment:
    """Inclusive bounding box of one candidate glyph in a binary image."""

    left: int
    right: int
    top: int
    bottom: int

    def __post_init__(self):
        if self.right < self.left or self.bottom < self.top:
            raise ValueError(
                f"Invalid segment bounds: left={self.left} right={self.right} "
                f"top={self.top} bottom={self.bottom}"
            )

    @property
    def width(self) -> int:
        return self.right - self.left + 1

    @property
    def height(self) -> int:
        return self.bottom - self.top + 1

    @property
    def area(self) -> int:
        return self.width * self.height

    def with_vertical(self, top: int, bottom: int) -> "Segment":
        return Segment(self.left, self.right, top, bottom)

    def union(self, other: "Segment") -> "Segment":
        return Segment(
            left=min(self.left, other.left),
            right=max(self.right, other.right),
            top=min(self.top, other.top),
            bottom=max(self.bottom, other.bottom),
        )


@dataclass(frozen=True)
class CharacterTemplate:
    """Reference descriptor for one (character, font variant) pair."""

    char: str
    variant: str
    pixels: np.ndarray  # (size, size) uint8, INK/BACKGROUND
    density: float
    horizontal_profile: np.ndarray  # ink fraction per row
    vertical_profile: np.ndarray  # ink fraction per column
    holes: int

    @property
    def size(self) -> int:
        return self.pixels.shape[0]


@dataclass
class MatchResult:
    """Best and second-best hypotheses for a single glyph."""

    char: str
    score: float
    second_char: str
    second_score: float
    holes: int

    def is_accepted(self, threshold: float) -> bool:
        """Check if the best score clears the acceptance threshold."""
        return self.score < threshold


@dataclass
class RecognitionOutput:
    """Final recognized string plus the diagnostics behind it."""

    text: str
    segments: List[np.ndarray] = field(default_factory=list)
    raw_text: str = ""
    matches: List[MatchResult] = field(default_factory=list)
    used_candidate_set: Optional[str] = None

    @property
    def segment_count(self) -> int:
        return len(self.segments)

    @property
    def has_unknown(self) -> bool:
        """True when any glyph fell below the acceptance threshold."""
        return UNKNOWN_CHAR in self.text
