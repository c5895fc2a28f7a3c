"""
Character template library.

Every supported character is rendered once per font variant, pushed through
the same preprocessing and segmentation used at recognition time, and
reduced to a fixed-size descriptor. The library is built once and is
read-only afterwards, so a single instance can be shared between threads.
"""

import time
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import structlog
from PIL import Image, ImageDraw, ImageFont

from .config import FontVariant, RecognizerConfig
from .features import describe, resize_glyph
from .preprocessing import ImagePreprocessor, to_rgba_array
from .segmentation import crop, segment_by_projection
from .types import CharacterTemplate, TemplateLibraryError

logger = structlog.get_logger(__name__)

DEFAULT_VARIANT = "default"


def load_font(
    variant: FontVariant, font_dirs: Sequence[Path] = ()
) -> Optional[ImageFont.FreeTypeFont]:
    """Load the first available font file of a variant, or None."""
    for filename in variant.files:
        candidates = [Path(d) / filename for d in font_dirs if (Path(d) / filename).is_file()]
        candidates.append(filename)
        for candidate in candidates:
            try:
                return ImageFont.truetype(str(candidate), variant.size)
            except OSError:
                continue
    return None


def load_default_font(size: int) -> Optional[ImageFont.FreeTypeFont]:
    """Pillow's bundled scalable font; None when FreeType is unavailable."""
    font = ImageFont.load_default(size=size)
    if isinstance(font, ImageFont.FreeTypeFont):
        return font
    return None


def render_glyph(char: str, font: ImageFont.FreeTypeFont, canvas_size: int = 64) -> Image.Image:
    """Black glyph centred on a white square canvas."""
    image = Image.new("RGB", (canvas_size, canvas_size), "white")
    draw = ImageDraw.Draw(image)
    center = canvas_size // 2
    draw.text((center, center), char, fill="black", font=font, anchor="mm")
    return image


def render_text(
    text: str,
    font: ImageFont.FreeTypeFont,
    padding: int = 12,
    spacing: int = 0,
    background: str = "white",
    foreground: str = "black",
) -> Image.Image:
    """Render a single line of text, optionally with extra inter-glyph spacing."""
    advances = [font.getlength(ch) for ch in text]
    ascent, descent = font.getmetrics()
    width = int(sum(advances) + spacing * max(0, len(text) - 1)) + 2 * padding
    height = ascent + descent + 2 * padding

    image = Image.new("RGB", (max(1, width), max(1, height)), background)
    draw = ImageDraw.Draw(image)
    x = float(padding)
    for ch, advance in zip(text, advances):
        draw.text((x, padding), ch, fill=foreground, font=font)
        x += advance + spacing
    return image


class TemplateLibrary:
    """
    Immutable collection of character templates keyed by character.

    Build with ``TemplateLibrary.build``; characters for which no variant
    could be segmented simply have no templates and are never matched.
    """

    def __init__(self, templates: Mapping[str, Sequence[CharacterTemplate]], size: int = 32):
        self._templates = MappingProxyType(
            {char: tuple(items) for char, items in templates.items() if items}
        )
        self.size = size

    @classmethod
    def build(
        cls,
        config: Optional[RecognizerConfig] = None,
        preprocessor: Optional[ImagePreprocessor] = None,
        font_dirs: Iterable[Path] = (),
    ) -> "TemplateLibrary":
        """
        Render, binarize and describe every (character, variant) pair.

        Raises:
            TemplateLibraryError: If no template at all could be built
        """
        config = config or RecognizerConfig()
        preprocessor = preprocessor or ImagePreprocessor(config.morphology_radius)
        log = logger.bind(component="TemplateLibrary")
        start_time = time.time()

        fonts = cls._load_fonts(config, list(font_dirs), log)
        templates: Dict[str, List[CharacterTemplate]] = {char: [] for char in config.charset}
        skipped = 0

        for char in config.charset:
            for variant_name, font in fonts:
                template = cls._build_template(
                    char, variant_name, font, preprocessor, config
                )
                if template is None:
                    skipped += 1
                    continue
                templates[char].append(template)

        library = cls(templates, size=config.template_size)
        if not library.template_count:
            raise TemplateLibraryError("No character template could be built")

        log.info(
            "Template library built",
            characters=len(library.characters),
            templates=library.template_count,
            variants=[name for name, _ in fonts],
            skipped=skipped,
            build_time=round(time.time() - start_time, 3),
        )
        return library

    @staticmethod
    def _load_fonts(
        config: RecognizerConfig, font_dirs: List[Path], log
    ) -> List[Tuple[str, ImageFont.FreeTypeFont]]:
        fonts = []
        seen_paths = set()
        for variant in config.font_variants:
            font = load_font(variant, font_dirs)
            if font is None:
                log.debug("Font variant unavailable", variant=variant.name)
                continue
            if font.path in seen_paths:
                continue
            seen_paths.add(font.path)
            fonts.append((variant.name, font))

        if config.include_default_font:
            size = config.font_variants[0].size if config.font_variants else 32
            font = load_default_font(size)
            if font is not None:
                fonts.append((DEFAULT_VARIANT, font))

        if not fonts:
            raise TemplateLibraryError("No usable font found for template rendering")
        return fonts

    @staticmethod
    def _build_template(
        char: str,
        variant: str,
        font: ImageFont.FreeTypeFont,
        preprocessor: ImagePreprocessor,
        config: RecognizerConfig,
    ) -> Optional[CharacterTemplate]:
        rendered = render_glyph(char, font, config.canvas_size)
        binary = preprocessor.process_rgba(to_rgba_array(rendered))
        segments = segment_by_projection(binary)
        if not segments:
            return None

        largest = segments[0]
        for segment in segments[1:]:
            if segment.area > largest.area:
                largest = segment

        pixels = resize_glyph(crop(binary, largest), config.template_size)
        density, h_profile, v_profile, holes = describe(pixels)
        for array in (pixels, h_profile, v_profile):
            array.setflags(write=False)

        return CharacterTemplate(
            char=char,
            variant=variant,
            pixels=pixels,
            density=density,
            horizontal_profile=h_profile,
            vertical_profile=v_profile,
            holes=holes,
        )

    @property
    def characters(self) -> Tuple[str, ...]:
        return tuple(self._templates)

    @property
    def template_count(self) -> int:
        return sum(len(items) for items in self._templates.values())

    def templates_for(self, char: str) -> Tuple[CharacterTemplate, ...]:
        return self._templates.get(char, ())

    def counts(self) -> Dict[str, int]:
        return {char: len(items) for char, items in self._templates.items()}

    def __contains__(self, char: str) -> bool:
        return char in self._templates

    def __len__(self) -> int:
        return len(self._templates)
