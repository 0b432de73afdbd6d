from __future__ import annotations

import datetime as dt
from typing import Dict, FrozenSet, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from .errors import UnresolvedNameError

MatchConfidence = Literal["exact", "normalized", "alias", "fuzzy", "none"]
AlignmentReason = Literal["date-mismatch", "track-mismatch", "race-number-mismatch", "no-candidates"]
DiagnosticKind = Literal[
    "upstream-fetch",
    "ambiguous-match",
    "unresolved-name",
    "date-mismatch",
    "track-mismatch",
    "race-number-mismatch",
    "no-candidates",
    "unmatched-odds",
]
DateLike = Union[dt.datetime, dt.date, str]


class _FeedRow(BaseModel):
    # Unknown upstream fields are dropped at the ingestion boundary.
    model_config = ConfigDict(extra="ignore", frozen=True, alias_generator=to_camel, populate_by_name=True)


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# --- Track identity ---

class SurfaceVariant(_Frozen):
    turf_name: str
    synthetic_name: str
    location: Optional[str] = None


class TrackEntry(BaseModel):
    canonical: str
    code: Optional[str] = None
    aliases: List[str] = Field(default_factory=list)
    variants: List[str] = Field(default_factory=list)
    ratings_name: Optional[str] = None
    surface: Optional[SurfaceVariant] = None


class StateTracks(BaseModel):
    country: str = "AUS"
    tracks: List[TrackEntry]


class TrackRegistry(BaseModel):
    shape_id: Literal["turflink.track_registry.v1"] = "turflink.track_registry.v1"
    version: str
    states: Dict[str, StateTracks]


class TrackIdentity(_Frozen):
    canonical: str
    aliases: FrozenSet[str] = frozenset()
    surface: Optional[SurfaceVariant] = None
    state: Optional[str] = None
    country: Optional[str] = None
    timezone: Optional[str] = None


class MatchResult(_Frozen):
    confidence: MatchConfidence = "none"
    matched_name: Optional[str] = None

    @property
    def matched(self) -> bool:
        return self.confidence != "none"


class NameResolution(_Frozen):
    """Outcome of standardising a name against the canonical cache."""

    input: str
    canonical: str
    confidence: MatchConfidence
    suggestion: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.confidence != "none"

    def require(self) -> str:
        if not self.resolved:
            raise UnresolvedNameError(self.input)
        return self.canonical


class TrackValidation(_Frozen):
    valid: bool
    canonical: Optional[str] = None
    suggestion: Optional[str] = None


# --- Feed rows ---

class RatingRow(_FeedRow):
    date: DateLike
    track: str
    race_number: int
    horse_name: str
    rating: Optional[float] = None
    price: Optional[float] = None
    tab_number: Optional[int] = None


class FieldRunner(_FeedRow):
    horse_name: str
    tab_number: Optional[int] = None
    runner_id: Optional[str] = None


class FieldRace(_FeedRow):
    race_number: int
    runners: List[FieldRunner] = Field(default_factory=list)


class Meeting(_FeedRow):
    meeting_id: str
    track: str
    meeting_date: DateLike
    surface: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    races: List[FieldRace] = Field(default_factory=list)


class OddsRunner(_FeedRow):
    horse_name: Optional[str] = None
    runner_number: Optional[int] = None
    fixed_win_price: Optional[float] = None
    fixed_place_price: Optional[float] = None
    fixed_win_timestamp: Optional[str] = None
    fixed_place_timestamp: Optional[str] = None


class OddsRace(_FeedRow):
    meeting_date: DateLike
    meeting_name: str
    race_number: int
    runners: List[OddsRunner] = Field(default_factory=list)


class Scratching(_FeedRow):
    meeting_id: Optional[str] = None
    race_number: int
    track: Optional[str] = None
    horse_name: Optional[str] = None
    runner_id: Optional[str] = None
    tab_number: Optional[int] = None
    timestamp: Optional[str] = None
    reason: Optional[str] = None


class TrackCondition(_FeedRow):
    meeting_id: Optional[str] = None
    track: str
    track_condition: Optional[str] = None
    rail_position: Optional[str] = None
    weather: Optional[str] = None


# --- Reconciled output ---

class RaceIdentity(_Frozen):
    date: str  # YYYY-MM-DD, civil date in the deployment timezone
    track: str
    race_number: int

    @property
    def key(self) -> tuple:
        return (self.date, self.track, self.race_number)


class CanonicalRace(_Frozen):
    race: RaceIdentity
    meeting_id: Optional[str] = None
    surface: Optional[str] = None
    runners: List[FieldRunner] = Field(default_factory=list)


class AlignmentResult(_Frozen):
    race: Optional[CanonicalRace] = None
    reason: Optional[AlignmentReason] = None
    confidence: MatchConfidence = "none"
    candidates_matched: int = 0

    @property
    def aligned(self) -> bool:
        return self.race is not None

    @property
    def ambiguous(self) -> bool:
        return self.candidates_matched > 1


class RunnerRecord(_Frozen):
    race: RaceIdentity
    horse_name: str
    tab_number: Optional[int] = None
    rating: Optional[float] = None
    price: Optional[float] = None
    odds_win: Optional[float] = None
    odds_place: Optional[float] = None
    odds_win_time: Optional[str] = None
    odds_place_time: Optional[str] = None
    is_scratched: bool = False
    scratch_reason: Optional[str] = None
    scratch_time: Optional[str] = None
    track_condition: Optional[str] = None
    rail_position: Optional[str] = None
    match_confidence: MatchConfidence = "none"


class Diagnostic(_Frozen):
    kind: DiagnosticKind
    message: str
    track: Optional[str] = None
    race_number: Optional[int] = None
    horse_name: Optional[str] = None


class UnmatchedRating(_Frozen):
    row: RatingRow
    reason: AlignmentReason
    track_resolved: Optional[str] = None


class ReconciliationResult(BaseModel):
    date: str
    records: List[RunnerRecord] = Field(default_factory=list)
    unmatched: List[UnmatchedRating] = Field(default_factory=list)
    diagnostics: List[Diagnostic] = Field(default_factory=list)
    counters: Dict[str, int] = Field(default_factory=dict)

    @computed_field
    @property
    def matched_count(self) -> int:
        return len(self.records)

    @computed_field
    @property
    def unmatched_count(self) -> int:
        return len(self.unmatched)
