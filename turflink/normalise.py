import re
import unicodedata
from typing import Optional

# Trailing words that providers append or drop at will.
VENUE_SUFFIXES = (
    "racecourse",
    "gardens",
    "hillside",
    "lakeside",
    "park",
    "course",
    "track",
    "racing",
    "raceway",
)

_SUFFIX_RE = re.compile(r"\s+(?:%s)$" % "|".join(VENUE_SUFFIXES))
_COUNTRY_PAREN_RE = re.compile(r"\(\s*[a-z]{2,3}\s*\)\s*$")


def norm_spaces(s: str) -> str:
    return re.sub(r"\s+", " ", s).strip()


def remove_accents(s: str) -> str:
    return "".join(c for c in unicodedata.normalize("NFKD", s) if not unicodedata.combining(c))


def lookup_key(name: Optional[str]) -> str:
    if not name:
        return ""
    return name.lower().strip()


def normalize_track_name(name: Optional[str]) -> str:
    """Normalise a track name for comparison.

    Lowercases, strips trailing venue suffix words ("Rosehill Gardens" ->
    "rosehill"), replaces punctuation with spaces and collapses whitespace.
    A name made only of suffix words ("Park") normalises to "".
    """
    if not name:
        return ""
    s = remove_accents(name).lower().replace("-", " ")
    s = re.sub(r"[^a-z0-9\s]", " ", s)
    s = norm_spaces(s)
    # Strip repeatedly so the result is a fixed point ("x park racecourse").
    while True:
        stripped = _SUFFIX_RE.sub("", s)
        if stripped == s:
            break
        s = stripped
    if s in VENUE_SUFFIXES:
        return ""
    return s


def normalize_horse_name(name: Optional[str]) -> str:
    """Normalise a horse name for matching across providers.

    "BLACK CAVIAR (AUS)" and "Black Caviar" both give "black caviar".
    Apostrophes and full stops are dropped rather than spaced so that
    "O'Brien" matches "OBrien". Venue suffixes are left alone.
    """
    if not name:
        return ""
    s = remove_accents(name).lower()
    s = s.replace("'", "").replace("’", "").replace(".", "")
    s = norm_spaces(s)
    s = _COUNTRY_PAREN_RE.sub("", s)
    return norm_spaces(re.sub(r"[^a-z0-9\s]", " ", s))


def compact(s: str) -> str:
    return s.replace(" ", "")
