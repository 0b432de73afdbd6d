from __future__ import annotations

"""Containment / prefix matching used to join track and horse names.

There is no edit-distance scoring here. When several candidates satisfy the
predicate the first one in iteration order wins; callers that care get the
number of matching candidates back from ``find_first`` and report ambiguity.
"""

from typing import Callable, Iterable, Optional, Tuple, TypeVar

from .models import MatchConfidence, MatchResult
from .normalise import compact, lookup_key, normalize_horse_name, normalize_track_name

MIN_LEN = 5

T = TypeVar("T")
Normaliser = Callable[[Optional[str]], str]


def _partial_match(na: str, nb: str, min_len: int) -> bool:
    if min(len(na), len(nb)) < min_len:
        return False
    if na in nb or nb in na:
        return True
    # Space-free prefix catches "MooneeValley" vs "Moonee Valley".
    ca, cb = compact(na), compact(nb)
    if min(len(ca), len(cb)) < min_len:
        return False
    return ca.startswith(cb) or cb.startswith(ca)


def names_match(
    a: Optional[str],
    b: Optional[str],
    normalise: Normaliser = normalize_track_name,
    min_len: int = MIN_LEN,
) -> bool:
    """True when ``a`` and ``b`` name the same thing.

    1. equal after normalisation, else
    2. one contains the other, both at least ``min_len`` characters, else
    3. one is a prefix of the other once spaces are removed, same guard.
    """
    na, nb = normalise(a), normalise(b)
    if not na or not nb:
        return False
    if na == nb:
        return True
    return _partial_match(na, nb, min_len)


def horse_names_match(a: Optional[str], b: Optional[str], min_len: int = MIN_LEN) -> bool:
    return names_match(a, b, normalise=normalize_horse_name, min_len=min_len)


def match_tier(a: Optional[str], b: Optional[str], normalise: Normaliser = normalize_track_name) -> MatchConfidence:
    if not a or not b:
        return "none"
    if lookup_key(a) == lookup_key(b):
        return "exact"
    na, nb = normalise(a), normalise(b)
    if na and na == nb:
        return "normalized"
    if na and nb and _partial_match(na, nb, MIN_LEN):
        return "fuzzy"
    return "none"


def match_name(
    name: Optional[str],
    candidates: Iterable[str],
    normalise: Normaliser = normalize_track_name,
) -> MatchResult:
    for candidate in candidates:
        tier = match_tier(name, candidate, normalise)
        if tier != "none":
            return MatchResult(confidence=tier, matched_name=candidate)
    return MatchResult()


def find_first(
    name: Optional[str],
    items: Iterable[T],
    key: Callable[[T], Optional[str]],
    normalise: Normaliser = normalize_track_name,
) -> Tuple[Optional[T], int]:
    """First item whose key matches ``name`` plus the total number of matches."""
    first: Optional[T] = None
    count = 0
    for item in items:
        if names_match(name, key(item), normalise=normalise):
            count += 1
            if first is None:
                first = item
    return first, count
