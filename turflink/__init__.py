"""turflink: reconciliation engine for racing ratings, odds and scratchings."""
from .errors import ConfigurationError, TurflinkError, UnresolvedNameError, UpstreamFetchError
from .models import (
    AlignmentResult,
    CanonicalRace,
    Diagnostic,
    MatchResult,
    NameResolution,
    RaceIdentity,
    ReconciliationResult,
    RunnerRecord,
    TrackIdentity,
    TrackRegistry,
)
from .normalise import normalize_horse_name, normalize_track_name
from .matcher import MIN_LEN, match_name, names_match
from .aliases import AliasTable, build_alias_table, build_default_registry, load_alias_table
from .cache import CacheStore
from .races import RaceAligner, build_race_index, civil_date
from .runners import RunnerReconciler, apply_scratching, merge_odds
from .config import TurflinkConfig
from .feeds import Feeds, FixtureFeed, get_feeds
from .pipeline import ReconciliationPipeline
from .views import unscratched, value_only, value_score

__all__ = [
    "AliasTable",
    "AlignmentResult",
    "CacheStore",
    "CanonicalRace",
    "ConfigurationError",
    "Diagnostic",
    "Feeds",
    "FixtureFeed",
    "MIN_LEN",
    "MatchResult",
    "NameResolution",
    "RaceAligner",
    "RaceIdentity",
    "ReconciliationPipeline",
    "ReconciliationResult",
    "RunnerReconciler",
    "RunnerRecord",
    "TrackIdentity",
    "TrackRegistry",
    "TurflinkConfig",
    "TurflinkError",
    "UnresolvedNameError",
    "UpstreamFetchError",
    "apply_scratching",
    "build_alias_table",
    "build_default_registry",
    "build_race_index",
    "civil_date",
    "get_feeds",
    "load_alias_table",
    "match_name",
    "merge_odds",
    "names_match",
    "normalize_horse_name",
    "normalize_track_name",
    "unscratched",
    "value_only",
    "value_score",
]
