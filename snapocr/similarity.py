"""
String similarity measures used to reconcile recognized text.
"""

from rapidfuzz.distance import LCSseq, Levenshtein


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance with unit insert, delete and substitute costs."""
    return Levenshtein.distance(a, b)


def lcs_length(a: str, b: str) -> int:
    """Length of the longest common subsequence."""
    return LCSseq.similarity(a, b)


def sequence_similarity(a: str, b: str) -> float:
    """1 - edit distance normalized by the longer string."""
    return 1 - edit_distance(a, b) / max(len(a), len(b), 1)


def sequence_order_similarity(a: str, b: str) -> float:
    """LCS length normalized by the longer string."""
    return lcs_length(a, b) / max(len(a), len(b), 1)
