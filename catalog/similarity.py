"""Tiered title similarity used by the offline catalog search."""
from __future__ import annotations

from typing import Optional, Sequence, Tuple

from rapidfuzz.distance import Levenshtein

from .entries import CatalogEntry

MIN_SCORE = 60.0
EDIT_DISTANCE_MAX_LEN = 50


def _words_overlap(a_word: str, b_word: str) -> bool:
    if a_word == b_word:
        return True
    if len(a_word) >= 3 and a_word in b_word:
        return True
    if len(b_word) >= 3 and b_word in a_word:
        return True
    return False


def string_similarity(a: str, b: str) -> float:
    """Score how well query *a* matches candidate *b* on a 0-100 scale.

    Both inputs are expected lowercased. Prefix and containment tiers come
    first, then word overlap; a normalized edit distance is only the last
    resort for short strings.
    """

    if a == b:
        return 100.0
    if not a or not b:
        return 0.0

    if b.startswith(a):
        return 90.0 + (len(a) / len(b)) * 10.0
    if a.startswith(b):
        return 75.0 + (len(b) / len(a)) * 15.0

    if a in b:
        ratio = len(a) / len(b)
        if ratio > 0.5:
            return 80.0 + ratio * 15.0
        if ratio > 0.3:
            return 60.0 + ratio * 20.0
        return 30.0 + ratio * 30.0

    if b in a:
        ratio = len(b) / len(a)
        if ratio > 0.5:
            return 70.0 + ratio * 15.0
        return 40.0 + ratio * 20.0

    a_words = a.split()
    b_words = b.split()
    if a_words and b_words:
        matching = sum(1 for aw in a_words if any(_words_overlap(aw, bw) for bw in b_words))
        word_ratio = matching / len(a_words)
        if word_ratio > 0.8:
            return 70.0 + word_ratio * 20.0
        if word_ratio > 0.5:
            return 50.0 + word_ratio * 30.0

    if len(a) < EDIT_DISTANCE_MAX_LEN and len(b) < EDIT_DISTANCE_MAX_LEN:
        distance = Levenshtein.distance(a, b)
        return (1.0 - distance / max(len(a), len(b))) * 50.0

    return 0.0


def _best_title(query: str, entry: CatalogEntry) -> Tuple[float, Optional[str]]:
    best_score = 0.0
    matched: Optional[str] = None
    for candidate in (entry.title, *entry.synonyms):
        score = string_similarity(query, candidate.lower())
        if score > best_score:
            best_score = score
            matched = candidate
    return best_score, matched


def calculate_match_score(
    query: str,
    query_words: Sequence[str],
    entry: CatalogEntry,
    year: Optional[int],
) -> float:
    """Combine title similarity with word, year and short-query adjustments."""

    score, matched = _best_title(query, entry)

    if matched is not None and query_words:
        title_words = matched.lower().split()
        if all(any(qw in tw or tw in qw for tw in title_words) for qw in query_words):
            score += 20.0

    if year is not None:
        if entry.year is not None:
            diff = abs(entry.year - year)
            if diff == 0:
                score += 15.0
            elif diff <= 1:
                score += 10.0
            elif diff <= 2:
                score += 5.0
    elif entry.year is not None:
        score += 2.0

    # short acronyms should not ride a prefix hit onto long titles
    if len(query) <= 3 and matched is not None and len(matched) > 10 and score < 95.0:
        score *= 0.3

    return score


__all__ = ["MIN_SCORE", "calculate_match_score", "string_similarity"]
