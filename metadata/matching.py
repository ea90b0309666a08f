"""Title acceptance checks shared by the remote gateways."""
from __future__ import annotations

import re
from typing import Iterable, Optional

_NON_ALNUM = re.compile(r"[^\w\s]+")
_SPACES = re.compile(r"\s+")


def clean_query(title: str) -> str:
    """Lowercase and strip a trailing ``(2019)`` style year group."""

    text = title.strip().lower()
    stripped = text.rstrip(")").rstrip("0123456789").rstrip("( ")
    return stripped or text


def clean_title(title: str) -> str:
    """Keep letters, digits and whitespace; collapse runs of whitespace."""

    text = _NON_ALNUM.sub("", title.lower())
    return _SPACES.sub(" ", text).strip()


def _words(text: str) -> set[str]:
    return {word for word in text.split() if word}


def title_matches(query: str, candidate: Optional[str]) -> bool:
    """Return True when *candidate* is a plausible match for *query*.

    Both sides are cleaned with :func:`clean_query`. A match is an exact
    equality, a containment where the shorter side covers more than 40% of
    the longer, or a word overlap of at least 60% of the smaller word set
    (40% when two or more words are shared).
    """

    if not candidate:
        return False
    left = clean_query(query)
    right = clean_query(candidate)
    if not left or not right:
        return False
    if left == right:
        return True
    if left in right or right in left:
        shorter, longer = sorted((len(left), len(right)))
        if longer and shorter / longer > 0.4:
            return True
    left_words = _words(left)
    right_words = _words(right)
    if not left_words or not right_words:
        return False
    common = len(left_words & right_words)
    ratio = common / min(len(left_words), len(right_words))
    return ratio >= 0.6 or (common >= 2 and ratio >= 0.4)


def any_title_matches(query: str, candidates: Iterable[Optional[str]]) -> bool:
    return any(title_matches(query, candidate) for candidate in candidates)


__all__ = ["any_title_matches", "clean_query", "clean_title", "title_matches"]
