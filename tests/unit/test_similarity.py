"""
Tests for edit distance and subsequence similarity.
"""

import random
import string

import pytest

from snapocr.similarity import (
    edit_distance,
    lcs_length,
    sequence_order_similarity,
    sequence_similarity,
)

pytestmark = pytest.mark.unit


def _random_strings(count: int, seed: int = 11):
    rng = random.Random(seed)
    alphabet = "ABC01"
    return ["".join(rng.choice(alphabet) for _ in range(rng.randint(0, 8))) for _ in range(count)]


class TestEditDistance:
    @pytest.mark.parametrize(
        "a,b,expected",
        [("", "", 0), ("", "ABC", 3), ("kitten", "sitting", 3), ("ABCD", "ABDC", 2), ("flaw", "lawn", 2)],
    )
    def test_known_distances(self, a, b, expected):
        assert edit_distance(a, b) == expected

    def test_identity(self):
        for a in _random_strings(30) + [string.ascii_uppercase]:
            assert edit_distance(a, a) == 0

    def test_symmetry(self):
        strings = _random_strings(20)
        for a in strings:
            for b in strings:
                assert edit_distance(a, b) == edit_distance(b, a)

    def test_triangle_inequality(self):
        strings = _random_strings(12, seed=3)
        for a in strings:
            for b in strings:
                for c in strings:
                    assert edit_distance(a, c) <= edit_distance(a, b) + edit_distance(b, c)


class TestSubsequence:
    def test_lcs_length(self):
        assert lcs_length("ABCBDAB", "BDCABA") == 4
        assert lcs_length("", "ABC") == 0
        assert lcs_length("ABC", "ABC") == 3


class TestSimilarity:
    def test_sequence_similarity(self):
        assert sequence_similarity("", "") == 1.0
        assert sequence_similarity("ABCD", "ABCD") == 1.0
        assert sequence_similarity("ABCD", "ABCE") == pytest.approx(0.75)
        assert sequence_similarity("AB", "ABCD") == pytest.approx(0.5)

    def test_order_similarity(self):
        assert sequence_order_similarity("", "") == 0.0
        assert sequence_order_similarity("ACE", "ABCDE") == pytest.approx(0.6)

    def test_lcs_matches_edit_distance_bound(self):
        # Without substitutions, distance = len(a) + len(b) - 2 * lcs.
        for a in _random_strings(10, seed=5):
            for b in _random_strings(10, seed=6):
                assert edit_distance(a, b) <= len(a) + len(b) - 2 * lcs_length(a, b)
