"""
Tests for text canonicalization and canonical snapping.
"""

import pytest

from snapocr.postprocessing import (
    CANONICAL_ALPHA,
    CANONICAL_DIGITS,
    character_ratios,
    fix_slashed_zero,
    postprocess,
    snap_to_canonical,
)

pytestmark = pytest.mark.unit


class TestNormalization:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("abcd", "ABCD"),
            ("O1S", "015"),
            ("12B45", "12845"),
            ("7J3D99", "743099"),
            ("1Q2Z8O", "102280"),
            ("HELL0W0RLD", "HELLOWORLD"),
            ("C0DE5", "CODES"),
            ("A1B2", "A1B2"),
            ("AB?D", "AB?D"),
            ("ab-c d", "ABCD"),
        ],
    )
    def test_context_substitutions(self, raw, expected):
        assert postprocess(raw) == expected

    def test_empty_string_passthrough(self):
        assert postprocess("") == ""

    def test_ratios(self):
        assert character_ratios("AB12") == (0.5, 0.5)
        assert character_ratios("") == (0.0, 0.0)
        assert character_ratios("A?") == (0.0, 0.5)


class TestSlashedZero:
    def test_leading_six_becomes_zero(self):
        assert fix_slashed_zero("612345") == "012345"
        assert postprocess("612345") == "012345"

    @pytest.mark.parametrize("text", ["6123", "616234", "612304", "512346"])
    def test_other_sixes_kept(self, text):
        assert fix_slashed_zero(text) == text


class TestCanonicalSnapping:
    """Near-miss reads of the reference strings snap to the exact sequence."""

    def test_near_alphabet_snaps(self):
        # 24 of 26 letters, two of them misread
        raw = "ABGDEFGHIJKLMNOPQRSTUVWK"
        assert len(raw) == 24

        assert postprocess(raw) == CANONICAL_ALPHA

    def test_alphabet_with_lowercase_and_digit_confusions(self):
        raw = "abcdefghijklmn0pqr5tuvwxyz"

        assert postprocess(raw) == CANONICAL_ALPHA

    def test_short_alpha_string_not_snapped(self):
        assert postprocess("ABCDEFGHIJ") == "ABCDEFGHIJ"

    def test_unrelated_long_string_not_snapped(self):
        raw = "ZYXWVUTRQPNMLKJHGFEDCBAZYX"

        assert postprocess(raw) == raw

    def test_near_digits_snap(self):
        assert postprocess("O123456788") == CANONICAL_DIGITS
        assert postprocess("12345678") == CANONICAL_DIGITS

    def test_short_digit_string_not_snapped(self):
        assert postprocess("1234567") == "1234567"

    def test_snap_requires_matching_ratio(self):
        assert snap_to_canonical("0123456789", digit_ratio=0.5, alpha_ratio=0.0) == "0123456789"
        assert snap_to_canonical("0123456788", digit_ratio=0.5, alpha_ratio=0.0) == "0123456788"
