from __future__ import annotations

"""Tests for the canonical track-name cache.

These tests verify:
1. Rebuild from the three-day window with alias layering
2. Determinism across stores
3. Resilience when upstream fetches fail
4. TTL, retry interval and non-blocking rebuilds
5. Standardisation tiers, suggestions and surface handling
"""

import datetime as dt
import logging
from typing import Dict, List, Set
from zoneinfo import ZoneInfo

import pytest

from turflink.aliases import load_alias_table
from turflink.cache import CacheStore
from turflink.errors import UnresolvedNameError, UpstreamFetchError
from turflink.feeds import IdentityFeed
from turflink.models import Meeting

SYDNEY = ZoneInfo("Australia/Sydney")
NOON_5_FEB = dt.datetime(2026, 2, 5, 12, 0, tzinfo=SYDNEY).timestamp()


class FakeClock:
    def __init__(self, now: float = NOON_5_FEB):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeIdentityFeed(IdentityFeed):
    def __init__(self, tracks_by_date: Dict[str, List[str]], failing: Set[str] = frozenset()):
        self.tracks_by_date = tracks_by_date
        self.failing = set(failing)
        self.calls: List[str] = []

    def fetch_meetings(self, date_local: str) -> List[Meeting]:
        self.calls.append(date_local)
        if date_local in self.failing:
            raise UpstreamFetchError("fake", f"no meetings for {date_local}")
        return [
            Meeting(meeting_id=f"{date_local}-{i}", track=track, meeting_date=date_local)
            for i, track in enumerate(self.tracks_by_date.get(date_local, []))
        ]


WINDOW = {
    "2026-02-04": ["Flemington"],
    "2026-02-05": ["Sandown Hillside", "Rosehill Gardens", "Beaumont"],
    "2026-02-06": ["Eagle Farm"],
}


@pytest.fixture(scope="module")
def alias_table():
    return load_alias_table()


def make_store(alias_table, feed=None, clock=None, **kwargs) -> CacheStore:
    return CacheStore(feed or FakeIdentityFeed(WINDOW), alias_table, clock=clock or FakeClock(), **kwargs)


class TestRebuild:
    def test_fetches_yesterday_today_tomorrow(self, alias_table) -> None:
        feed = FakeIdentityFeed(WINDOW)
        store = make_store(alias_table, feed)
        store.get_mapping()
        assert feed.calls == ["2026-02-04", "2026-02-05", "2026-02-06"]
        assert store.snapshot.dates == ("2026-02-04", "2026-02-05", "2026-02-06")

    def test_feed_keys_and_alias_layering(self, alias_table) -> None:
        store = make_store(alias_table)
        mapping = store.get_mapping()
        assert mapping["sandown hillside"] == "Sandown Hillside"
        assert mapping["sandown"] == "Sandown Hillside"
        assert mapping["beaumont"] == "Beaumont"
        # Static-only tracks still resolve.
        assert mapping["royal randwick"] == "Randwick"

    def test_live_entries_not_overwritten_by_aliases(self, alias_table) -> None:
        feed = FakeIdentityFeed({"2026-02-05": ["Sandown Lakeside"]})
        store = make_store(alias_table, feed)
        assert store.get_mapping()["sandown"] == "Sandown Lakeside"
        assert store.snapshot.sources["sandown"] == "feed-normalized"

    def test_deterministic_across_stores(self, alias_table) -> None:
        a = make_store(alias_table).get_mapping()
        b = make_store(alias_table).get_mapping()
        assert list(a.items()) == list(b.items())

    def test_mapping_is_read_only(self, alias_table) -> None:
        mapping = make_store(alias_table).get_mapping()
        with pytest.raises(TypeError):
            mapping["new"] = "value"  # type: ignore[index]


class TestResilience:
    def test_one_failed_date_is_skipped(self, alias_table, caplog: pytest.LogCaptureFixture) -> None:
        feed = FakeIdentityFeed(WINDOW, failing={"2026-02-06"})
        store = make_store(alias_table, feed)
        with caplog.at_level(logging.WARNING, logger="turflink.cache"):
            mapping = store.get_mapping()
        assert mapping["sandown hillside"] == "Sandown Hillside"
        assert store.snapshot.dates == ("2026-02-04", "2026-02-05")
        assert "2026-02-06" in caplog.text

    def test_forced_refresh_with_all_failures_keeps_snapshot(self, alias_table) -> None:
        feed = FakeIdentityFeed(WINDOW)
        store = make_store(alias_table, feed)
        before = dict(store.get_mapping())
        built_at = store.snapshot.built_at

        feed.failing = set(WINDOW)
        after = store.get_mapping(force_refresh=True)

        assert dict(after) == before
        assert store.snapshot.built_at == built_at

    def test_cold_start_failure_serves_aliases(self, alias_table) -> None:
        feed = FakeIdentityFeed(WINDOW, failing=set(WINDOW))
        store = make_store(alias_table, feed)
        resolution = store.standardize("Rosehill")
        assert resolution.canonical == "Rosehill Gardens"
        assert resolution.confidence == "alias"
        assert store.snapshot.built_at is None

    def test_failed_rebuild_waits_for_retry_interval(self, alias_table) -> None:
        clock = FakeClock()
        feed = FakeIdentityFeed(WINDOW, failing=set(WINDOW))
        store = make_store(alias_table, feed, clock, retry_seconds=300)
        store.get_mapping()
        assert len(feed.calls) == 3

        clock.now += 60
        store.get_mapping()
        assert len(feed.calls) == 3

        feed.failing = set()
        clock.now += 300
        mapping = store.get_mapping()
        assert len(feed.calls) == 6
        assert mapping["sandown hillside"] == "Sandown Hillside"

    def test_unexpected_error_keeps_snapshot(self, alias_table) -> None:
        feed = FakeIdentityFeed(WINDOW)
        store = make_store(alias_table, feed)
        before = store.get_mapping()

        def boom(date_local: str):
            raise RuntimeError("parser bug")

        feed.fetch_meetings = boom  # type: ignore[method-assign]
        assert store.get_mapping(force_refresh=True) is before


class TestRefreshPolicy:
    def test_ttl(self, alias_table) -> None:
        clock = FakeClock()
        feed = FakeIdentityFeed(WINDOW)
        store = make_store(alias_table, feed, clock, ttl_seconds=3600)
        store.get_mapping()
        clock.now += 1800
        store.get_mapping()
        assert len(feed.calls) == 3
        clock.now += 1800
        store.get_mapping()
        assert len(feed.calls) == 6

    def test_readers_do_not_wait_for_rebuild(self, alias_table) -> None:
        feed = FakeIdentityFeed(WINDOW)
        store = make_store(alias_table, feed)
        snapshot = store.refresh(force=True)
        calls = len(feed.calls)

        assert store._rebuild_lock.acquire(blocking=False)
        try:
            assert store.refresh(force=True) is snapshot
            assert len(feed.calls) == calls
        finally:
            store._rebuild_lock.release()

    def test_clear(self, alias_table) -> None:
        store = make_store(alias_table)
        store.get_mapping()
        store.clear()
        assert store.snapshot.empty


class TestStandardize:
    def test_tiers(self, alias_table) -> None:
        store = make_store(alias_table)
        assert store.standardize("SANDOWN HILLSIDE").confidence == "exact"
        assert store.standardize("Sandown").confidence == "normalized"
        assert store.standardize("Royal Randwick").confidence == "alias"
        fuzzy = store.standardize("Eagle Farm Racecourse Brisbane")
        assert fuzzy.confidence == "fuzzy"
        assert fuzzy.canonical == "Eagle Farm"

    def test_unresolved_passes_through(self, alias_table) -> None:
        store = make_store(alias_table)
        resolution = store.standardize("Atlantis Downs")
        assert not resolution.resolved
        assert resolution.canonical == "Atlantis Downs"
        assert store.standardize_name("Atlantis Downs") == "Atlantis Downs"
        with pytest.raises(UnresolvedNameError):
            store.standardize_name("Atlantis Downs", throw_on_missing=True)

    def test_suggestion_is_advisory(self, alias_table) -> None:
        store = make_store(alias_table)
        resolution = store.standardize("Randwik")
        assert resolution.confidence == "none"
        assert resolution.canonical == "Randwik"
        assert resolution.suggestion == "Randwick"

    def test_empty_name(self, alias_table) -> None:
        store = make_store(alias_table)
        assert store.standardize("").confidence == "none"
        assert store.standardize(None).canonical == ""

    def test_surface(self, alias_table) -> None:
        store = make_store(alias_table)
        assert store.standardize_with_surface("Newcastle", "synthetic") == "Beaumont"
        assert store.standardize_with_surface("Beaumont", target="ratings") == "Newcastle"
        assert store.standardize_with_surface("Rosehill Gardens", target="ratings") == "Rosehill"
        assert store.standardize_with_surface("Sandown") == "Sandown Hillside"

    def test_validate(self, alias_table) -> None:
        store = make_store(alias_table)
        assert store.validate("Rosehill").valid
        assert store.validate("Rosehill").canonical == "Rosehill Gardens"
        invalid = store.validate("Randwik")
        assert not invalid.valid
        assert invalid.suggestion == "Randwick"

    def test_canonical_names_and_identities(self, alias_table) -> None:
        store = make_store(alias_table)
        names = store.canonical_names()
        assert names == sorted(names)
        assert "Beaumont" in names
        identity = store.identities()["Sandown Hillside"]
        assert identity.state == "VIC"
        assert identity.timezone == "Australia/Melbourne"
