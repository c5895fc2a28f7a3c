"""
Configuration for the recognition engine.

``RecognizerConfig`` holds the tunable pipeline parameters and can be loaded
from YAML; ``EngineSettings`` holds process-level settings read from the
environment (prefix ``SNAPOCR_``) or a ``.env`` file.
"""

from dataclasses import asdict, dataclass, field, fields
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

from .types import DEFAULT_CHARSET, ConfigurationError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class FontVariant:
    """One rendering style; the first loadable file wins."""

    name: str
    files: List[str]
    size: int = 32


def default_font_variants() -> List[FontVariant]:
    return [
        FontVariant("sans", ["arial.ttf", "Arial.ttf", "LiberationSans-Regular.ttf", "DejaVuSans.ttf"]),
        FontVariant("sans-bold", ["arialbd.ttf", "Arial Bold.ttf", "LiberationSans-Bold.ttf", "DejaVuSans-Bold.ttf"]),
        FontVariant("humanist", ["segoeui.ttf", "NotoSans-Regular.ttf", "OpenSans-Regular.ttf"]),
        FontVariant("humanist-bold", ["segoeuib.ttf", "NotoSans-Bold.ttf", "OpenSans-Bold.ttf"]),
        FontVariant("wide", ["verdana.ttf", "Verdana.ttf", "DejaVuSansCondensed.ttf"]),
        FontVariant("wide-bold", ["verdanab.ttf", "Verdana Bold.ttf", "DejaVuSansCondensed-Bold.ttf"]),
        FontVariant("mono", ["cour.ttf", "Courier New.ttf", "LiberationMono-Regular.ttf", "DejaVuSansMono.ttf"]),
        FontVariant("mono-bold", ["courbd.ttf", "Courier New Bold.ttf", "LiberationMono-Bold.ttf", "DejaVuSansMono-Bold.ttf"]),
        FontVariant("serif", ["times.ttf", "Times New Roman.ttf", "LiberationSerif-Regular.ttf", "DejaVuSerif.ttf"]),
        FontVariant("serif-bold", ["timesbd.ttf", "Times New Roman Bold.ttf", "LiberationSerif-Bold.ttf", "DejaVuSerif-Bold.ttf"]),
    ]


@dataclass
class RecognizerConfig:
    """Tunable parameters of the recognition pipeline."""

    # Preprocessing
    upscale_factor: float = 1.5
    morphology_radius: int = 1

    # Templates
    charset: str = DEFAULT_CHARSET
    template_size: int = 32
    canvas_size: int = 64
    include_default_font: bool = True
    font_variants: List[FontVariant] = field(default_factory=default_font_variants)

    # Matching
    accept_threshold: float = 0.48
    constrained_accept_threshold: float = 0.65
    density_reject: float = 0.45
    ambiguity_margin: float = 0.08

    # Short test-card fallback; empty disables it
    reference_card: str = "ABCD"

    def __post_init__(self):
        self.font_variants = [
            v if isinstance(v, FontVariant) else FontVariant(**v) for v in self.font_variants
        ]
        self.validate()

    def validate(self):
        if self.upscale_factor <= 0:
            raise ConfigurationError("upscale_factor must be positive")
        if self.template_size < 8:
            raise ConfigurationError("template_size must be at least 8")
        if self.canvas_size < self.template_size:
            raise ConfigurationError("canvas_size must not be smaller than template_size")
        if not self.charset:
            raise ConfigurationError("charset must not be empty")
        for name in ("accept_threshold", "constrained_accept_threshold", "density_reject"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        if self.ambiguity_margin < 0:
            raise ConfigurationError("ambiguity_margin must not be negative")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecognizerConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown recognizer options: {', '.join(unknown)}")
        try:
            return cls(**data)
        except TypeError as e:
            raise ConfigurationError(f"Invalid recognizer options: {e}")

    @classmethod
    def from_yaml(cls, config_path: Path) -> "RecognizerConfig":
        """Load configuration from a YAML file."""
        try:
            with open(config_path, "r") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read recognizer config {config_path}: {e}")

        if not isinstance(data, dict):
            raise ConfigurationError(f"Recognizer config {config_path} must be a mapping")

        logger.info("Loaded recognizer config", config_path=str(config_path))
        return cls.from_dict(data.get("recognizer", data))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class EngineSettings(BaseSettings):
    # Logging
    log_level: str = "INFO"
    log_format: str = "console"

    # Optional YAML file holding a RecognizerConfig
    config_file: Optional[Path] = None

    # Extra directories searched for template font files
    font_dirs: List[Path] = []

    model_config = SettingsConfigDict(env_prefix="SNAPOCR_", env_file=".env", extra="ignore")

    def recognizer_config(self) -> RecognizerConfig:
        if self.config_file is None:
            return RecognizerConfig()
        return RecognizerConfig.from_yaml(self.config_file)


@lru_cache()
def get_settings() -> EngineSettings:
    return EngineSettings()
