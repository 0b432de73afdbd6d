from __future__ import annotations

from pathlib import Path

import pytest

from turflink.aliases import build_alias_table, build_default_registry, load_alias_table, surface_kind
from turflink.errors import ConfigurationError
from turflink.models import StateTracks, TrackEntry, TrackRegistry


@pytest.fixture(scope="module")
def table():
    return load_alias_table()


class TestSurfaceVariants:
    def test_synthetic_hint_puts_beaumont_first(self, table) -> None:
        assert table.canonical_to_variants("Newcastle", "synthetic") == ["Beaumont", "Newcastle"]

    def test_turf_hint_and_no_hint(self, table) -> None:
        assert table.canonical_to_variants("Newcastle", "turf") == ["Newcastle", "Beaumont"]
        assert table.canonical_to_variants("Newcastle") == ["Newcastle", "Beaumont"]

    def test_surface_name(self, table) -> None:
        assert table.surface_name("Newcastle", "Synthetic") == "Beaumont"
        assert table.surface_name("Beaumont", None, target="ratings") == "Newcastle"
        assert table.surface_name("Randwick", "synthetic") is None

    def test_surface_kind(self) -> None:
        assert surface_kind("Polytrack") == "synthetic"
        assert surface_kind("Grass") == "turf"
        assert surface_kind(None) is None


class TestLookups:
    def test_variant_to_canonical(self, table) -> None:
        assert table.variant_to_canonical("Royal Randwick") == "Randwick"
        assert table.variant_to_canonical("The Valley") == "Moonee Valley"
        assert table.variant_to_canonical("Beaumont") == "Newcastle"
        assert table.variant_to_canonical("Nowhere") is None

    def test_unknown_names_fail_open(self, table) -> None:
        assert table.canonical_to_variants("Nowhere Downs") == ["Nowhere Downs"]
        assert table.all_matches("Nowhere Downs") == {"ratings": ["Nowhere Downs"], "feed": ["Nowhere Downs"]}
        assert table.ratings_name("Nowhere Downs") == "Nowhere Downs"

    def test_sandown_variants(self, table) -> None:
        matches = table.all_matches("Sandown")
        assert matches["ratings"] == ["Sandown"]
        assert matches["feed"] == ["Sandown", "Sandown Hillside", "Sandown Lakeside"]

    def test_ratings_name(self, table) -> None:
        assert table.ratings_name("Rosehill Gardens") == "Rosehill"
        assert table.ratings_name("Flemington") == "Flemington"

    def test_timezone(self, table) -> None:
        assert table.timezone_for("Ascot") == "Australia/Perth"
        assert table.timezone_for("Ellerslie") == "Pacific/Auckland"
        assert table.timezone_for("Nowhere", "Australia/Sydney") == "Australia/Sydney"

    def test_state(self, table) -> None:
        assert table.state_for("Royal Randwick") == "NSW"
        assert table.state_for("Ellerslie") is None
        assert table.state_for("Nowhere") is None

    def test_nz_identity(self, table) -> None:
        identity = table.identity_for("Riccarton Park")
        assert identity.canonical == "Riccarton"
        assert identity.country == "NZ"


class TestTableBuild:
    def test_first_registration_owns_collisions(self, table) -> None:
        """Hillside and Lakeside both normalise to 'sandown'; Hillside is registered first."""
        assert table.identity_for("sandown").canonical == "Sandown Hillside"
        assert table.identity_for("Sandown Lakeside").canonical == "Sandown Lakeside"

    def test_cache_entries_keep_synthetic_names(self, table) -> None:
        entries = list(table.cache_entries())
        first = {}
        for key, canonical in entries:
            first.setdefault(key, canonical)
        assert first["beaumont"] == "Beaumont"
        assert first["rosehill"] == "Rosehill Gardens"

    def test_registry_round_trip(self, tmp_path: Path) -> None:
        registry = build_default_registry()
        path = tmp_path / "registry.json"
        path.write_text(registry.model_dump_json(indent=2))
        loaded = load_alias_table(path)
        assert len(loaded) == len(build_alias_table(registry))

    def test_missing_registry_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            load_alias_table(tmp_path / "missing.json")

    def test_invalid_registry_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.json"
        path.write_text('{"shape_id": "something.else", "version": "1", "states": {}}')
        with pytest.raises(ConfigurationError, match="Invalid track registry"):
            load_alias_table(path)

    def test_empty_registry_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.json"
        path.write_text(TrackRegistry(version="0", states={}).model_dump_json())
        with pytest.raises(ConfigurationError, match="no tracks"):
            load_alias_table(path)

    def test_custom_registry(self) -> None:
        registry = TrackRegistry(
            version="test",
            states={"WA": StateTracks(tracks=[TrackEntry(canonical="Pinjarra Park", aliases=["Pinjarra"])])},
        )
        table = build_alias_table(registry)
        assert table.variant_to_canonical("pinjarra") == "Pinjarra Park"
        assert table.timezone_for("Pinjarra") == "Australia/Perth"
