"""
Tests for template rendering and the template library.
"""

import numpy as np
import pytest

from snapocr.config import FontVariant, RecognizerConfig
from snapocr.templates import TemplateLibrary, load_font, render_glyph, render_text
from snapocr.types import DIGITS, UPPERCASE, TemplateLibraryError

pytestmark = pytest.mark.unit


class TestRendering:
    def test_render_glyph_is_centred_black_on_white(self, glyph_font):
        image = np.asarray(render_glyph("H", glyph_font, 64).convert("L"))

        dark = np.argwhere(image < 128)
        assert image.shape == (64, 64)
        assert image[0, 0] == 255
        centre_y, centre_x = dark.mean(axis=0)
        assert abs(centre_x - 32) < 4
        assert abs(centre_y - 32) < 6

    def test_render_text_widens_with_spacing(self, glyph_font):
        tight = render_text("ABC", glyph_font, spacing=0)
        loose = render_text("ABC", glyph_font, spacing=10)

        assert loose.size[0] == tight.size[0] + 20
        assert loose.size[1] == tight.size[1]

    def test_missing_font_returns_none(self):
        assert load_font(FontVariant("none", ["no-such-font-file.ttf"])) is None


class TestLibraryContainer:
    def test_empty_characters_dropped(self):
        library = TemplateLibrary({"A": [], "B": []})

        assert len(library) == 0
        assert "A" not in library
        assert library.templates_for("A") == ()
        assert library.template_count == 0

    def test_build_without_fonts_fails(self):
        config = RecognizerConfig(font_variants=[], include_default_font=False)

        with pytest.raises(TemplateLibraryError):
            TemplateLibrary.build(config)


@pytest.mark.slow
class TestBuiltLibrary:
    """Test the library built from the default configuration."""

    def test_every_digit_and_capital_has_templates(self, template_library):
        for char in DIGITS + UPPERCASE:
            assert template_library.templates_for(char), char

    def test_templates_are_fixed_size_and_read_only(self, template_library):
        for template in template_library.templates_for("A"):
            assert template.pixels.shape == (32, 32)
            assert len(template.horizontal_profile) == 32
            assert len(template.vertical_profile) == 32
            assert 0 < template.density < 1
            assert not template.pixels.flags.writeable

    def test_topology_of_reference_glyphs(self, template_library):
        assert any(t.holes == 2 for t in template_library.templates_for("8"))
        assert any(t.holes == 1 for t in template_library.templates_for("0"))
        assert all(t.holes == 0 for t in template_library.templates_for("1"))

    def test_rebuild_is_idempotent(self, template_library):
        rebuilt = TemplateLibrary.build(RecognizerConfig())

        assert rebuilt.counts() == template_library.counts()
        first = template_library.templates_for("Q")[0]
        again = rebuilt.templates_for("Q")[0]
        assert np.array_equal(first.pixels, again.pixels)
        assert first.holes == again.holes
