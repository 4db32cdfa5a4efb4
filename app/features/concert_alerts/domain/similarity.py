"""
Bigram similarity used to reject loose artist-search results.
"""

from app.utils.hashing import normalize_name


def dice_coefficient(first: str, second: str) -> float:
    """
    Dice coefficient over character bigrams:
    2 * shared / (len(first) + len(second) - 2).

    Bigrams of the first string are a set; every bigram of the second string
    found in it counts, so repeated bigrams can push the score past 1.0.
    """
    if first == second:
        return 1.0
    if len(first) < 2 or len(second) < 2:
        return 0.0

    bigrams = {first[i : i + 2] for i in range(len(first) - 1)}
    shared = sum(1 for i in range(len(second) - 1) if second[i : i + 2] in bigrams)
    return (2 * shared) / (len(first) + len(second) - 2)


def name_similarity(queried: str, candidate: str) -> float:
    """Case-insensitive Dice score between two artist names."""
    return dice_coefficient(normalize_name(queried), normalize_name(candidate))


def is_acceptable_match(queried: str, candidate: str, threshold: float) -> bool:
    return name_similarity(queried, candidate) >= threshold
