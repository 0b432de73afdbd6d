from __future__ import annotations

"""Runner reconciliation and field-precedence merge.

Identity fields (horse name, tab number) come from the ratings row, odds from
the odds feed, scratching status from the scratchings feed. A merge step only
ever applies values that are present, so a later feed that lacks a field never
clears what an earlier one supplied.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .matcher import find_first, match_tier
from .models import (
    CanonicalRace,
    Diagnostic,
    FieldRunner,
    MatchConfidence,
    OddsRunner,
    RatingRow,
    RunnerRecord,
    Scratching,
    TrackCondition,
)
from .normalise import normalize_horse_name

logger = logging.getLogger(__name__)

# (record field, odds runner field)
_ODDS_FIELDS = (
    ("odds_win", "fixed_win_price"),
    ("odds_place", "fixed_place_price"),
    ("odds_win_time", "fixed_win_timestamp"),
    ("odds_place_time", "fixed_place_timestamp"),
)


def merge_odds(record: RunnerRecord, odds: Optional[OddsRunner]) -> RunnerRecord:
    if odds is None:
        return record
    updates = {}
    for record_field, odds_field in _ODDS_FIELDS:
        value = getattr(odds, odds_field)
        if value is not None:
            updates[record_field] = value
    return record.model_copy(update=updates) if updates else record


def apply_scratching(record: RunnerRecord, scratching: Optional[Scratching]) -> RunnerRecord:
    if scratching is None:
        return record
    return record.model_copy(update={
        "is_scratched": True,
        "scratch_reason": scratching.reason or record.scratch_reason,
        "scratch_time": scratching.timestamp or record.scratch_time,
    })


def annotate_condition(record: RunnerRecord, condition: Optional[TrackCondition]) -> RunnerRecord:
    if condition is None:
        return record
    updates = {}
    if condition.track_condition is not None:
        updates["track_condition"] = condition.track_condition
    if condition.rail_position is not None:
        updates["rail_position"] = condition.rail_position
    return record.model_copy(update=updates) if updates else record


@dataclass(frozen=True)
class ReconciledRunner:
    record: RunnerRecord
    diagnostics: Tuple[Diagnostic, ...] = ()


class RunnerReconciler:
    def reconcile(
        self,
        rating_row: RatingRow,
        race: CanonicalRace,
        odds_runners: Sequence[OddsRunner] = (),
        scratchings: Sequence[Scratching] = (),
        field_runners: Optional[Sequence[FieldRunner]] = None,
        *,
        confidence: MatchConfidence = "exact",
    ) -> ReconciledRunner:
        """Build one runner record for ``rating_row`` within the aligned ``race``.

        ``field_runners`` defaults to the authoritative field on ``race``.
        ``confidence`` is the race alignment tier carried onto the record.
        """
        diagnostics: List[Diagnostic] = []
        identity = race.race
        if field_runners is None:
            field_runners = race.runners

        def ambiguous(what: str, count: int) -> None:
            diagnostics.append(Diagnostic(
                kind="ambiguous-match",
                message=f"{count} {what} matched {rating_row.horse_name!r}, took the first",
                track=identity.track,
                race_number=identity.race_number,
                horse_name=rating_row.horse_name,
            ))

        field_runner, count = find_first(
            rating_row.horse_name, field_runners, key=lambda r: r.horse_name, normalise=normalize_horse_name
        )
        if count > 1:
            ambiguous("field runners", count)

        tab_number = rating_row.tab_number
        if tab_number is None and field_runner is not None:
            tab_number = field_runner.tab_number

        record = RunnerRecord(
            race=identity,
            horse_name=rating_row.horse_name,
            tab_number=tab_number,
            rating=rating_row.rating,
            price=rating_row.price,
            match_confidence=confidence,
        )

        odds, count = find_first(
            rating_row.horse_name, odds_runners, key=lambda r: r.horse_name, normalise=normalize_horse_name
        )
        if count > 1:
            ambiguous("odds runners", count)
        if odds is None and tab_number is not None:
            odds = next((o for o in odds_runners if o.runner_number == tab_number), None)
        record = merge_odds(record, odds)

        runner_id = field_runner.runner_id if field_runner is not None else None
        scratching = self.find_scratching(record, scratchings, runner_id=runner_id)
        if scratching is not None:
            logger.debug("%s scratched from %s R%d", record.horse_name, identity.track, identity.race_number)
        record = apply_scratching(record, scratching)

        return ReconciledRunner(record=record, diagnostics=tuple(diagnostics))

    def find_scratching(
        self,
        record: RunnerRecord,
        scratchings: Sequence[Scratching],
        *,
        runner_id: Optional[str] = None,
    ) -> Optional[Scratching]:
        """Runner id first, then tab number within the race, then normalised horse name."""
        in_race = [s for s in scratchings if s.race_number == record.race.race_number]
        if runner_id:
            for s in in_race:
                if s.runner_id and s.runner_id == runner_id:
                    return s
        if record.tab_number is not None:
            for s in in_race:
                if s.tab_number is not None and s.tab_number == record.tab_number:
                    return s
        # Names must be equal once normalised, not merely contained.
        for s in in_race:
            if match_tier(s.horse_name, record.horse_name, normalize_horse_name) in ("exact", "normalized"):
                return s
        return None
