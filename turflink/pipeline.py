from __future__ import annotations

"""End-to-end reconciliation for one race day.

This module orchestrates:
1. Validate configuration before any fetch
2. Warm the canonical track-name cache
3. Fetch identity meetings and their fields (bounded fan-out)
4. Build the canonical race set
5. Fetch ratings rows, standardise their track names and align them
6. Fetch odds per jurisdiction and align odds races
7. Fetch scratchings per jurisdiction and track conditions
8. Reconcile runners per aligned race and annotate conditions
9. Return sorted records, unmatched rows, diagnostics and counters

A run has no side effects beyond populating the cache, so running it twice
over the same feed data gives the same result.
"""

import logging
from collections import Counter, defaultdict
from typing import Callable, Dict, List, Optional, Tuple, TypeVar

from .cache import CacheStore
from .config import TurflinkConfig
from .errors import ConfigurationError, UpstreamFetchError
from .fanout import gather_bounded
from .feeds import JURISDICTIONS, Feeds
from .matcher import names_match
from .models import (
    AlignmentResult,
    CanonicalRace,
    DateLike,
    Diagnostic,
    MatchConfidence,
    Meeting,
    OddsRunner,
    RatingRow,
    ReconciliationResult,
    RunnerRecord,
    Scratching,
    TrackCondition,
    UnmatchedRating,
)
from .races import RaceAligner, build_race_index, civil_date
from .runners import RunnerReconciler, annotate_condition

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Strongest first.
CONFIDENCE_ORDER: Tuple[MatchConfidence, ...] = ("exact", "normalized", "alias", "fuzzy", "none")


def weakest(*tiers: MatchConfidence) -> MatchConfidence:
    return max(tiers, key=CONFIDENCE_ORDER.index)


def record_sort_key(record: RunnerRecord) -> tuple:
    tab = record.tab_number if record.tab_number is not None else 10_000
    return (record.race.date, record.race.track, record.race.race_number, tab, record.horse_name.lower())


class ReconciliationPipeline:
    def __init__(
        self,
        feeds: Feeds,
        cache: CacheStore,
        config: Optional[TurflinkConfig] = None,
    ):
        self.feeds = feeds
        self.cache = cache
        self.config = config or TurflinkConfig()
        self.aligner = RaceAligner(cache.alias_table, tz=self.config.tz)
        self.reconciler = RunnerReconciler()

    def validate(self) -> None:
        if self.feeds.identity is None or self.feeds.ratings is None:
            raise ConfigurationError("An identity feed and a ratings feed are required")
        if self.cache.alias_table is None or not len(self.cache.alias_table):
            raise ConfigurationError("Alias table is missing or empty")
        if self.config.max_concurrency < 1:
            raise ConfigurationError("max_concurrency must be at least 1")

    # ------------------------------------------------------------------

    def run(self, date: DateLike) -> ReconciliationResult:
        self.validate()
        tz = self.config.tz
        date_local = civil_date(date, tz)
        diagnostics: List[Diagnostic] = []
        counters: Counter = Counter()

        self.cache.get_mapping()

        # Canonical race set
        meetings = self._fetch("identity", lambda: self.feeds.identity.fetch_meetings(date_local), diagnostics, [])
        meetings = self._with_fields(meetings, diagnostics)
        races = build_race_index(meetings, tz)
        counters["meetings"] = len(meetings)
        counters["races"] = len(races)

        # Provider data
        odds_by_race = self._odds_by_race(date_local, races, diagnostics, counters)
        scratchings_by_race = self._scratchings_by_race(date_local, races, diagnostics)
        conditions = self._conditions(date_local, diagnostics)

        ratings = self._fetch("ratings", lambda: self.feeds.ratings.fetch_ratings(date_local), diagnostics, [])
        counters["rating_rows"] = len(ratings)

        records: List[RunnerRecord] = []
        unmatched: List[UnmatchedRating] = []
        for row in ratings:
            record = self._reconcile_row(row, races, odds_by_race, scratchings_by_race, conditions,
                                         unmatched, diagnostics, counters)
            if record is not None:
                records.append(record)

        records.sort(key=record_sort_key)
        counters["matched"] = len(records)
        counters["unmatched"] = len(unmatched)
        counters["scratched"] = sum(1 for r in records if r.is_scratched)
        counters["upstream_failures"] = sum(1 for d in diagnostics if d.kind == "upstream-fetch")

        logger.info(
            "Reconciled %s: %d matched, %d unmatched, %d diagnostics",
            date_local, len(records), len(unmatched), len(diagnostics),
        )
        return ReconciliationResult(
            date=date_local,
            records=records,
            unmatched=unmatched,
            diagnostics=diagnostics,
            counters=dict(sorted(counters.items())),
        )

    # ------------------------------------------------------------------
    # Fetch helpers
    # ------------------------------------------------------------------

    def _fetch(self, what: str, call: Callable[[], T], diagnostics: List[Diagnostic], default: T) -> T:
        try:
            return call()
        except UpstreamFetchError as e:
            logger.warning("%s fetch failed: %s", what, e)
            diagnostics.append(Diagnostic(kind="upstream-fetch", message=f"{what}: {e}"))
            return default

    def _fan_out(self, what: str, func: Callable, items: list, diagnostics: List[Diagnostic]) -> list:
        """Bounded fan-out; failed items become diagnostics and (item, None) pairs."""
        pairs = []
        for outcome in gather_bounded(func, items, self.config.max_concurrency):
            if not outcome.ok:
                diagnostics.append(Diagnostic(kind="upstream-fetch", message=f"{what} {outcome.item}: {outcome.error}"))
            pairs.append((outcome.item, outcome.value))
        return pairs

    def _with_fields(self, meetings: List[Meeting], diagnostics: List[Diagnostic]) -> List[Meeting]:
        if not meetings:
            return []
        pairs = self._fan_out("fields", self.feeds.identity.fetch_fields, meetings, diagnostics)
        # A meeting whose fields failed keeps whatever races it already had.
        return [value if value is not None else meeting for meeting, value in pairs]

    def _by_jurisdiction(self, what: str, func: Callable[[str], list], diagnostics: List[Diagnostic]) -> list:
        rows: list = []
        for _, value in self._fan_out(what, func, list(JURISDICTIONS), diagnostics):
            rows.extend(value or [])
        return rows

    def _odds_by_race(
        self, date_local: str, races: List[CanonicalRace], diagnostics: List[Diagnostic], counters: Counter
    ) -> Dict[tuple, List[OddsRunner]]:
        odds_by_race: Dict[tuple, List[OddsRunner]] = defaultdict(list)
        if self.feeds.odds is None:
            return odds_by_race
        odds_races = self._by_jurisdiction(
            "odds", lambda j: self.feeds.odds.fetch_odds(date_local, j), diagnostics
        )
        counters["odds_races"] = len(odds_races)
        for odds_race in odds_races:
            try:
                result = self.aligner.align_odds(odds_race, races)
            except ValueError as e:
                logger.warning("Unusable date on odds race %s R%s: %s", odds_race.meeting_name, odds_race.race_number, e)
                result = AlignmentResult(reason="date-mismatch")
            if not result.aligned:
                counters["odds_unaligned"] += 1
                diagnostics.append(Diagnostic(
                    kind="unmatched-odds",
                    message=f"Odds race not aligned ({result.reason})",
                    track=odds_race.meeting_name,
                    race_number=odds_race.race_number,
                ))
                continue
            odds_by_race[result.race.race.key].extend(odds_race.runners)
        return odds_by_race

    def _scratchings_by_race(
        self, date_local: str, races: List[CanonicalRace], diagnostics: List[Diagnostic]
    ) -> Dict[tuple, List[Scratching]]:
        by_race: Dict[tuple, List[Scratching]] = defaultdict(list)
        if self.feeds.scratchings is None:
            return by_race
        scratchings = self._by_jurisdiction(
            "scratchings", lambda j: self.feeds.scratchings.fetch_scratchings(date_local, j), diagnostics
        )
        by_meeting = {(r.meeting_id, r.race.race_number): r for r in races if r.meeting_id}
        for s in scratchings:
            race = by_meeting.get((s.meeting_id, s.race_number)) if s.meeting_id else None
            if race is None and s.track:
                result = self.aligner.align_key(date_local, s.track, s.race_number, races)
                race = result.race
            if race is None:
                logger.debug("Scratching %s R%s %s not aligned", s.track, s.race_number, s.horse_name)
                continue
            by_race[race.race.key].append(s)
        return by_race

    def _conditions(self, date_local: str, diagnostics: List[Diagnostic]) -> List[TrackCondition]:
        if self.feeds.conditions is None:
            return []
        return self._by_jurisdiction(
            "conditions", lambda j: self.feeds.conditions.fetch_conditions(date_local, j), diagnostics
        )

    # ------------------------------------------------------------------
    # Per-row reconciliation
    # ------------------------------------------------------------------

    def _condition_for(self, race: CanonicalRace, conditions: List[TrackCondition]) -> Optional[TrackCondition]:
        for c in conditions:
            if race.meeting_id and c.meeting_id == race.meeting_id:
                return c
        for c in conditions:
            if names_match(c.track, race.race.track):
                return c
        return None

    def _reconcile_row(
        self,
        row: RatingRow,
        races: List[CanonicalRace],
        odds_by_race: Dict[tuple, List[OddsRunner]],
        scratchings_by_race: Dict[tuple, List[Scratching]],
        conditions: List[TrackCondition],
        unmatched: List[UnmatchedRating],
        diagnostics: List[Diagnostic],
        counters: Counter,
    ) -> Optional[RunnerRecord]:
        resolution = self.cache.standardize(row.track)
        if not resolution.resolved:
            counters["unresolved_names"] += 1
            hint = f", did you mean {resolution.suggestion!r}?" if resolution.suggestion else ""
            diagnostics.append(Diagnostic(
                kind="unresolved-name",
                message=f"No canonical track name for {row.track!r}{hint}",
                track=row.track,
                race_number=row.race_number,
                horse_name=row.horse_name,
            ))

        try:
            result = self.aligner.align_key(row.date, resolution.canonical, row.race_number, races)
        except ValueError as e:
            logger.warning("Unusable date on rating row %r: %s", row, e)
            result = None
        if result is None or not result.aligned:
            reason = result.reason if result is not None else "date-mismatch"
            counters[reason] += 1
            unmatched.append(UnmatchedRating(row=row, reason=reason, track_resolved=resolution.canonical))
            diagnostics.append(Diagnostic(
                kind=reason,
                message=f"{row.track} R{row.race_number} {row.horse_name} not aligned",
                track=row.track,
                race_number=row.race_number,
                horse_name=row.horse_name,
            ))
            return None

        race = result.race
        if result.ambiguous:
            counters["ambiguous"] += 1
            diagnostics.append(Diagnostic(
                kind="ambiguous-match",
                message=f"{result.candidates_matched} canonical races matched, took {race.race.track}",
                track=row.track,
                race_number=row.race_number,
                horse_name=row.horse_name,
            ))

        confidence = result.confidence
        if resolution.resolved:
            confidence = weakest(resolution.confidence, result.confidence)
        reconciled = self.reconciler.reconcile(
            row,
            race,
            odds_by_race.get(race.race.key, []),
            scratchings_by_race.get(race.race.key, []),
            confidence=confidence,
        )
        for d in reconciled.diagnostics:
            counters["ambiguous"] += 1
            diagnostics.append(d)
        counters[f"confidence_{confidence}"] += 1
        return annotate_condition(reconciled.record, self._condition_for(race, conditions))
