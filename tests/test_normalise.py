from __future__ import annotations

import pytest

from turflink.normalise import (
    compact,
    lookup_key,
    norm_spaces,
    normalize_horse_name,
    normalize_track_name,
    remove_accents,
)

TRACK_SAMPLES = [
    "Rosehill Gardens",
    "Sandown-Hillside",
    "Moonee Valley Racecourse",
    "Canterbury Park",
    "Park Racecourse",
    "  ROYAL   Randwick ",
    "Murray Bridge GH",
    "Te Aroha",
    "",
]


class TestNormalizeTrackName:
    def test_strips_venue_suffix(self) -> None:
        assert normalize_track_name("Rosehill Gardens") == "rosehill"
        assert normalize_track_name("Canterbury Park") == "canterbury"
        assert normalize_track_name("Moonee Valley Racecourse") == "moonee valley"

    def test_hyphen_and_punctuation_become_spaces(self) -> None:
        assert normalize_track_name("Sandown-Hillside") == "sandown"
        assert normalize_track_name("St. Arnaud") == "st arnaud"

    def test_collapses_whitespace_and_case(self) -> None:
        assert normalize_track_name("  ROYAL   Randwick ") == "royal randwick"

    def test_suffix_only_name_is_empty(self) -> None:
        """A name made only of suffix words never normalises to a usable key."""
        assert normalize_track_name("Park") == ""
        assert normalize_track_name("Park Racecourse") == ""

    def test_none_and_empty(self) -> None:
        assert normalize_track_name(None) == ""
        assert normalize_track_name("") == ""

    @pytest.mark.parametrize("name", TRACK_SAMPLES)
    def test_idempotent(self, name: str) -> None:
        once = normalize_track_name(name)
        assert normalize_track_name(once) == once


class TestNormalizeHorseName:
    def test_country_suffix_dropped(self) -> None:
        assert normalize_horse_name("BLACK CAVIAR (AUS)") == "black caviar"
        assert normalize_horse_name("Black Caviar") == "black caviar"

    def test_apostrophes_removed_not_spaced(self) -> None:
        assert normalize_horse_name("O'Brien's Pride") == "obriens pride"

    def test_venue_words_kept(self) -> None:
        assert normalize_horse_name("Lakeside Park") == "lakeside park"

    def test_idempotent(self) -> None:
        for name in ["Sunline (NZ)", "Might And Power", "Mr. Brightside"]:
            once = normalize_horse_name(name)
            assert normalize_horse_name(once) == once


def test_lookup_key_and_compact() -> None:
    assert lookup_key("  Sandown Hillside ") == "sandown hillside"
    assert lookup_key(None) == ""
    assert compact("moonee valley") == "mooneevalley"


def test_text_helpers() -> None:
    assert norm_spaces("  Eagle   Farm\t") == "Eagle Farm"
    assert remove_accents("Élan Vital") == "Elan Vital"
    assert normalize_track_name("Kembla_Grange!") == "kembla grange"
