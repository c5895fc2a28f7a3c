"""
Offline recognition of short alphanumeric codes from small bitmaps.

Classical pipeline: adaptive binarization, projection and connected-component
segmentation, multi-feature template matching and context-aware text cleanup.
"""

from .config import EngineSettings, FontVariant, RecognizerConfig, get_settings
from .engine import SnapOCREngine
from .matcher import AmbiguityResolver, GlyphMatcher
from .postprocessing import postprocess
from .preprocessing import ImagePreprocessor
from .segmentation import CharacterSegmenter
from .similarity import edit_distance, sequence_similarity
from .templates import TemplateLibrary
from .types import (
    BACKGROUND,
    INK,
    CharacterTemplate,
    ConfigurationError,
    MatchResult,
    RecognitionError,
    RecognitionOutput,
    Segment,
    TemplateLibraryError,
)

__version__ = "0.1.0"

__all__ = [
    # Service
    "SnapOCREngine",
    # Components
    "ImagePreprocessor",
    "CharacterSegmenter",
    "TemplateLibrary",
    "GlyphMatcher",
    "AmbiguityResolver",
    "postprocess",
    "edit_distance",
    "sequence_similarity",
    # Configuration
    "RecognizerConfig",
    "FontVariant",
    "EngineSettings",
    "get_settings",
    # Data types
    "Segment",
    "CharacterTemplate",
    "MatchResult",
    "RecognitionOutput",
    "INK",
    "BACKGROUND",
    # Exceptions
    "RecognitionError",
    "ConfigurationError",
    "TemplateLibraryError",
]
