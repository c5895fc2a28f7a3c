"""
Tests for glyph descriptors: resizing, density, profiles and hole topology.
"""

import numpy as np
import pytest

from snapocr.features import (
    count_holes,
    describe,
    glyph_holes,
    horizontal_profile,
    ink_density,
    render_ascii,
    resize_glyph,
    vertical_profile,
)
from snapocr.types import BACKGROUND, INK

pytestmark = pytest.mark.unit


class TestHoleCount:
    """Hole count depends only on topology, not on rendering details."""

    @pytest.mark.parametrize("size,outer,inner", [(32, 12, 6), (32, 9, 3), (48, 20, 14)])
    def test_ring_has_one_hole(self, draw_disk, size, outer, inner):
        ring = draw_disk(size, size / 2, size / 2, outer, inner)

        assert count_holes(ring) == 1

    @pytest.mark.parametrize("outer", [5, 10, 14])
    def test_solid_disk_has_no_holes(self, draw_disk, outer):
        disk = draw_disk(32, 16, 16, outer)

        assert count_holes(disk) == 0

    def test_figure_eight_has_two_holes(self, draw_disk):
        upper = draw_disk(32, 9, 16, 7, 3)
        lower = draw_disk(32, 23, 16, 7, 3)
        eight = np.where((upper == INK) | (lower == INK), INK, BACKGROUND).astype(np.uint8)

        assert count_holes(eight) == 2

    def test_region_touching_border_is_not_a_hole(self):
        cup = np.full((10, 10), BACKGROUND, dtype=np.uint8)
        cup[2:9, 2] = INK
        cup[2:9, 7] = INK
        cup[8, 2:8] = INK

        assert count_holes(cup) == 0

    def test_closing_bridges_thin_gap(self, draw_ring):
        ring = np.full((32, 32), BACKGROUND, dtype=np.uint8)
        draw_ring(ring, 6, 4, 20, 24, 4)
        ring[4:8, 15] = BACKGROUND

        assert count_holes(ring) == 0
        assert glyph_holes(ring) == 1


class TestResize:
    def test_aspect_preserved_and_centred(self):
        glyph = np.full((20, 10), INK, dtype=np.uint8)

        resized = resize_glyph(glyph, 32)

        # scale = min(3.2, 1.6) * 0.85 = 1.36 -> 13 x 27
        assert resized.shape == (32, 32)
        assert np.count_nonzero(resized == INK) == 13 * 27
        rows = np.flatnonzero(np.any(resized == INK, axis=1))
        cols = np.flatnonzero(np.any(resized == INK, axis=0))
        assert (rows[0], rows[-1]) == (2, 28)
        assert (cols[0], cols[-1]) == (9, 21)

    def test_single_pixel_glyph(self):
        resized = resize_glyph(np.array([[INK]], dtype=np.uint8), 32)

        assert np.count_nonzero(resized == INK) == 27 * 27

    def test_border_stays_background(self):
        resized = resize_glyph(np.full((5, 40), INK, dtype=np.uint8), 32)

        assert np.all(resized[0] == BACKGROUND)
        assert np.all(resized[:, 0] == BACKGROUND)


class TestProfiles:
    def test_density_and_profiles(self):
        pixels = np.full((4, 4), BACKGROUND, dtype=np.uint8)
        pixels[0, :] = INK
        pixels[:, 1] = INK

        assert ink_density(pixels) == pytest.approx(7 / 16)
        assert horizontal_profile(pixels).tolist() == [1.0, 0.25, 0.25, 0.25]
        assert vertical_profile(pixels).tolist() == [0.25, 1.0, 0.25, 0.25]

    def test_describe_lengths(self, draw_disk):
        density, h_profile, v_profile, holes = describe(draw_disk(32, 16, 16, 12, 6))

        assert 0 < density < 1
        assert len(h_profile) == 32
        assert len(v_profile) == 32
        assert holes == 1


def test_render_ascii():
    pixels = np.array([[INK, BACKGROUND], [BACKGROUND, INK]], dtype=np.uint8)

    assert render_ascii(pixels) == "##..\n..##"
