from typing import Generator

import numpy as np
import pytest
from PIL import Image, ImageFont

from snapocr import RecognizerConfig, SnapOCREngine, TemplateLibrary
from snapocr.config import default_font_variants
from snapocr.templates import load_default_font, load_font, render_text
from snapocr.types import BACKGROUND, INK, TemplateLibraryError


def _glyph_font(size: int = 32) -> ImageFont.FreeTypeFont:
    """The first font the template library would load for its sans variant."""
    variant = default_font_variants()[0]
    font = load_font(variant)
    if font is None:
        font = load_default_font(size)
    if font is None:
        pytest.skip("No scalable font available for rendering")
    return font


@pytest.fixture(scope="session")
def glyph_font() -> ImageFont.FreeTypeFont:
    return _glyph_font()


@pytest.fixture(scope="session")
def template_library() -> TemplateLibrary:
    """Template library shared by every test in the session."""
    try:
        return TemplateLibrary.build(RecognizerConfig())
    except TemplateLibraryError as e:
        pytest.skip(f"Template library unavailable: {e}")


@pytest.fixture(scope="session")
def engine(template_library) -> SnapOCREngine:
    return SnapOCREngine(library=template_library)


@pytest.fixture
def render_card(glyph_font):
    """Render black-on-white text with a few pixels between glyphs."""

    def _render(text: str, spacing: int = 6, **kwargs) -> Image.Image:
        return render_text(text, glyph_font, spacing=spacing, **kwargs)

    return _render


@pytest.fixture
def blank_binary() -> Generator[np.ndarray, None, None]:
    yield np.full((24, 48), BACKGROUND, dtype=np.uint8)


def _draw_ring(binary: np.ndarray, left: int, top: int, width: int, height: int, stroke: int):
    """Hollow rectangle with the given stroke width."""
    binary[top : top + height, left : left + width] = INK
    binary[top + stroke : top + height - stroke, left + stroke : left + width - stroke] = BACKGROUND


def _draw_disk(size: int, cy: float, cx: float, outer: float, inner: float = 0.0) -> np.ndarray:
    """Ink annulus (or disk when inner is 0) on a background square."""
    yy, xx = np.mgrid[0:size, 0:size]
    dist = np.sqrt((yy - cy) ** 2 + (xx - cx) ** 2)
    mask = (dist <= outer) & (dist > inner) if inner else dist <= outer
    return np.where(mask, INK, BACKGROUND).astype(np.uint8)


@pytest.fixture
def draw_ring():
    return _draw_ring


@pytest.fixture
def draw_disk():
    return _draw_disk


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")
