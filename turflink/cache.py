from __future__ import annotations

"""Canonical track-name cache.

The cache maps lowercased and normalised track names to the spelling used by
the authoritative form feed. It is rebuilt from a three-day window of that
feed (yesterday, today, tomorrow) layered with the static alias table, and
published by swapping in a new immutable snapshot. Readers never wait for a
rebuild: while one is running they keep seeing the last published snapshot,
and a rebuild that fails leaves that snapshot in place.
"""

import datetime as dt
import logging
import threading
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Callable, Dict, List, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo

from rapidfuzz import fuzz, process

from .aliases import STATE_TIMEZONES, AliasTable
from .errors import UpstreamFetchError
from .matcher import names_match
from .models import MatchConfidence, Meeting, NameResolution, TrackIdentity, TrackValidation
from .normalise import lookup_key, normalize_track_name

if TYPE_CHECKING:
    from .feeds import IdentityFeed

logger = logging.getLogger(__name__)

SYDNEY_TZ = ZoneInfo("Australia/Sydney")
DEFAULT_TTL_SECONDS = 24 * 60 * 60
DEFAULT_RETRY_SECONDS = 5 * 60
SUGGESTION_CUTOFF = 75.0

# Where a key came from decides the confidence tier of a hit on it.
SOURCE_TIERS: Dict[str, MatchConfidence] = {
    "feed": "exact",
    "feed-normalized": "normalized",
    "alias": "alias",
}


@dataclass(frozen=True)
class CacheSnapshot:
    mapping: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    sources: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    identities: Mapping[str, TrackIdentity] = field(default_factory=lambda: MappingProxyType({}))
    built_at: Optional[float] = None
    dates: Tuple[str, ...] = ()

    @property
    def empty(self) -> bool:
        return not self.mapping


EMPTY_SNAPSHOT = CacheSnapshot()


class CacheStore:
    """Owns the canonical-name snapshot and its refresh policy.

    One instance is shared by every pipeline run in the process.
    """

    def __init__(
        self,
        identity_feed: "IdentityFeed",
        alias_table: AliasTable,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        retry_seconds: float = DEFAULT_RETRY_SECONDS,
        tz: ZoneInfo = SYDNEY_TZ,
        clock: Callable[[], float] = time.time,
    ):
        self.identity_feed = identity_feed
        self.alias_table = alias_table
        self.ttl_seconds = ttl_seconds
        self.retry_seconds = retry_seconds
        self.tz = tz
        self._clock = clock
        self._snapshot: CacheSnapshot = EMPTY_SNAPSHOT
        self._last_failure: Optional[float] = None
        self._rebuild_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Snapshot lifecycle
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> CacheSnapshot:
        return self._snapshot

    def is_stale(self) -> bool:
        now = self._clock()
        if self._last_failure is not None and now - self._last_failure < self.retry_seconds:
            return False
        built_at = self._snapshot.built_at
        return built_at is None or now - built_at >= self.ttl_seconds

    def get_mapping(self, force_refresh: bool = False) -> Mapping[str, str]:
        return self._current(force_refresh).mapping

    def refresh(self, force: bool = False) -> CacheSnapshot:
        """Rebuild and swap in a new snapshot.

        Returns immediately with the current snapshot when another rebuild is
        already running.
        """
        if not self._rebuild_lock.acquire(blocking=False):
            logger.debug("Track name cache rebuild in progress, serving last snapshot")
            return self._snapshot
        try:
            if not force and not self.is_stale():
                return self._snapshot
            logger.debug("Rebuilding track name cache")
            try:
                snapshot = self._build()
            except Exception:
                logger.exception("Track name cache rebuild failed, keeping previous snapshot")
                snapshot = None

            if snapshot is not None:
                self._snapshot = snapshot
                self._last_failure = None
            else:
                self._last_failure = self._clock()
                if self._snapshot.empty:
                    # Cold start with no feed: serve the static aliases until a retry succeeds.
                    self._snapshot = self._layer_aliases({}, {}, {}, built_at=None, dates=())
            return self._snapshot
        finally:
            self._rebuild_lock.release()

    def clear(self) -> None:
        self._snapshot = EMPTY_SNAPSHOT
        self._last_failure = None
        logger.debug("Track name cache cleared")

    def _current(self, force_refresh: bool = False) -> CacheSnapshot:
        if force_refresh or self.is_stale():
            return self.refresh(force=force_refresh)
        return self._snapshot

    def _window(self) -> List[str]:
        today = dt.datetime.fromtimestamp(self._clock(), self.tz).date()
        return [(today + dt.timedelta(days=offset)).isoformat() for offset in (-1, 0, 1)]

    def _build(self) -> Optional[CacheSnapshot]:
        mapping: Dict[str, str] = {}
        sources: Dict[str, str] = {}
        identities: Dict[str, TrackIdentity] = {}
        fetched: List[str] = []

        for date_local in self._window():
            try:
                meetings = self.identity_feed.fetch_meetings(date_local)
            except UpstreamFetchError as e:
                logger.warning("Failed to fetch meetings for %s: %s", date_local, e)
                continue
            fetched.append(date_local)
            for meeting in meetings:
                canonical = meeting.track.strip()
                if not canonical:
                    continue
                for key, source in ((lookup_key(canonical), "feed"), (normalize_track_name(canonical), "feed-normalized")):
                    if key and key not in mapping:
                        mapping[key] = canonical
                        sources[key] = source
                identities.setdefault(canonical, self._identity_from_meeting(meeting))

        if not fetched:
            logger.error("Could not fetch any meetings for %s", ", ".join(self._window()))
            return None

        snapshot = self._layer_aliases(mapping, sources, identities, built_at=self._clock(), dates=tuple(fetched))
        logger.info(
            "Track name cache rebuilt: %d keys, %d tracks from %d day(s)",
            len(snapshot.mapping), len(snapshot.identities), len(fetched),
        )
        return snapshot

    def _layer_aliases(
        self,
        mapping: Dict[str, str],
        sources: Dict[str, str],
        identities: Dict[str, TrackIdentity],
        *,
        built_at: Optional[float],
        dates: Tuple[str, ...],
    ) -> CacheSnapshot:
        # Live feed entries are never overwritten by static ones.
        for key, canonical in self.alias_table.cache_entries():
            if key and key not in mapping:
                mapping[key] = canonical
                sources[key] = "alias"
                identity = self.alias_table.identity_for(canonical)
                if identity is not None:
                    identities.setdefault(canonical, identity)
        return CacheSnapshot(
            mapping=MappingProxyType(mapping),
            sources=MappingProxyType(sources),
            identities=MappingProxyType(identities),
            built_at=built_at,
            dates=dates,
        )

    def _identity_from_meeting(self, meeting: Meeting) -> TrackIdentity:
        known = self.alias_table.identity_for(meeting.track)
        state = meeting.state or (known.state if known else None)
        timezone = STATE_TIMEZONES.get(state or "") or (known.timezone if known else None)
        if meeting.country == "NZ" and not timezone:
            timezone = STATE_TIMEZONES["NZ"]
        return TrackIdentity(
            canonical=meeting.track.strip(),
            aliases=known.aliases | {known.canonical} if known else frozenset(),
            surface=known.surface if known else None,
            state=state,
            country=meeting.country or (known.country if known else None),
            timezone=timezone,
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def standardize(self, name: Optional[str], force_refresh: bool = False) -> NameResolution:
        """Resolve ``name`` to its canonical spelling.

        Tries the lowercased name, then the normalised name, then a linear
        containment scan over every key and canonical name in snapshot order.
        Unresolved names come back unchanged with confidence ``none``.
        """
        if not name:
            return NameResolution(input=name or "", canonical=name or "", confidence="none")

        snap = self._current(force_refresh)
        for key in (lookup_key(name), normalize_track_name(name)):
            if key and key in snap.mapping:
                canonical = snap.mapping[key]
                tier = SOURCE_TIERS.get(snap.sources.get(key, ""), "normalized")
                logger.debug("Standardized track name %r -> %r (%s)", name, canonical, tier)
                return NameResolution(input=name, canonical=canonical, confidence=tier)

        for key, canonical in snap.mapping.items():
            if names_match(name, key) or names_match(name, canonical):
                logger.debug("Standardized track name %r -> %r (fuzzy)", name, canonical)
                return NameResolution(input=name, canonical=canonical, confidence="fuzzy")

        suggestion = self._suggest(name, snap)
        logger.warning("No canonical track name found for %r", name)
        return NameResolution(input=name, canonical=name, confidence="none", suggestion=suggestion)

    def standardize_name(self, name: str, force_refresh: bool = False, throw_on_missing: bool = False) -> str:
        resolution = self.standardize(name, force_refresh=force_refresh)
        if throw_on_missing:
            return resolution.require()
        return resolution.canonical

    def standardize_with_surface(self, name: str, surface: Optional[str] = None, target: str = "feed") -> str:
        """Surface-aware standardisation.

        ("Newcastle", "synthetic") gives "Beaumont"; ("Beaumont", target="ratings")
        gives "Newcastle". Anything else falls back to ``standardize``.
        """
        if not name:
            return name
        surface_name = self.alias_table.surface_name(name, surface, target=target)
        if surface_name:
            return surface_name
        if target == "ratings":
            return self.alias_table.ratings_name(name)
        return self.standardize(name).canonical

    def validate(self, name: str) -> TrackValidation:
        if not name:
            return TrackValidation(valid=False)
        snap = self._current()
        for key in (lookup_key(name), normalize_track_name(name)):
            if key and key in snap.mapping:
                return TrackValidation(valid=True, canonical=snap.mapping[key])
        for key, canonical in snap.mapping.items():
            if names_match(name, key) or names_match(name, canonical):
                return TrackValidation(valid=False, canonical=canonical, suggestion=canonical)
        return TrackValidation(valid=False, suggestion=self._suggest(name, snap))

    def suggest(self, name: str) -> Optional[str]:
        return self._suggest(name, self._current())

    def _suggest(self, name: str, snap: CacheSnapshot) -> Optional[str]:
        # Advisory only: never used to resolve a name.
        choices = sorted(set(snap.mapping.values()))
        if not choices:
            return None
        best = process.extractOne(
            name,
            choices,
            scorer=fuzz.ratio,
            processor=normalize_track_name,
            score_cutoff=SUGGESTION_CUTOFF,
        )
        return best[0] if best else None

    def canonical_names(self) -> List[str]:
        return sorted(set(self._current().mapping.values()))

    def identities(self) -> Mapping[str, TrackIdentity]:
        return self._current().identities
