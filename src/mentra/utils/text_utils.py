"""Text processing utilities.

Common text manipulation functions used across modules.
"""

import hashlib
import math
import re

WORDS_PER_MINUTE = 200

_PUNCTUATION = re.compile(r"[^\w\s]")


def count_words(text: str) -> int:
    """Count whitespace-separated words."""
    return len(text.split())


def reading_time_minutes(text: str) -> int:
    """Estimated reading time at 200 words per minute, at least 1 minute."""
    return max(1, math.ceil(count_words(text) / WORDS_PER_MINUTE))


def content_hash(text: str) -> str:
    """SHA-256 hex digest of the text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def normalize_words(text: str) -> list[str]:
    """Lowercase, strip punctuation and split into words."""
    cleaned = _PUNCTUATION.sub("", text.lower())
    return [w for w in cleaned.split() if w]


def word_overlap_similarity(response: str, expected: str) -> float:
    """Word overlap between a response and an expected answer.

    Counts the response words that also occur in the expected answer
    (repeats included) and divides by the size of the combined vocabulary.

    Returns:
        Similarity in [0, 1]; 0 when both texts are empty.
    """
    words1 = normalize_words(response)
    words2 = normalize_words(expected)
    expected_set = set(words2)

    common = [w for w in words1 if w in expected_set]
    union = set(words1) | expected_set
    if not union:
        return 0.0
    return min(1.0, len(common) / len(union))
