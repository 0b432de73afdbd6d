from __future__ import annotations

"""Pluggable feed adapters.

Each provider is an external collaborator behind a small interface:

- IdentityFeed: authoritative meetings and fields (PuntingForm)
- RatingsFeed: rating/price rows per runner (race-card ratings API)
- OddsFeed: fixed win/place odds per race (TAB odds API)
- ScratchingsFeed / ConditionsFeed: late changes per jurisdiction

Adapters raise ``UpstreamFetchError`` when a call fails; absence of data is an
empty list. The fixture adapter reads JSON captured under
``<fixtures_dir>/<date>/<kind>.json`` and is what the tests run against.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Tuple

from pydantic import ValidationError

from .errors import ConfigurationError, UpstreamFetchError
from .models import Meeting, OddsRace, RatingRow, Scratching, TrackCondition

logger = logging.getLogger(__name__)

JURISDICTIONS: Tuple[str, ...] = ("AU", "NZ")


# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------


class IdentityFeed(ABC):
    source_name: str = "unknown"

    @abstractmethod
    def fetch_meetings(self, date_local: str) -> List[Meeting]:
        """Meetings for ``date_local`` (YYYY-MM-DD); races may be empty."""
        pass

    def fetch_fields(self, meeting: Meeting) -> Meeting:
        """Return ``meeting`` with its races and field runners populated."""
        return meeting


class RatingsFeed(ABC):
    source_name: str = "unknown"

    @abstractmethod
    def fetch_ratings(self, date_local: str) -> List[RatingRow]:
        pass


class OddsFeed(ABC):
    source_name: str = "unknown"

    @abstractmethod
    def fetch_odds(self, date_local: str, jurisdiction: str = "AU") -> List[OddsRace]:
        pass


class ScratchingsFeed(ABC):
    source_name: str = "unknown"

    @abstractmethod
    def fetch_scratchings(self, date_local: str, jurisdiction: str = "AU") -> List[Scratching]:
        pass


class ConditionsFeed(ABC):
    source_name: str = "unknown"

    @abstractmethod
    def fetch_conditions(self, date_local: str, jurisdiction: str = "AU") -> List[TrackCondition]:
        pass


@dataclass
class Feeds:
    """The set of feeds one pipeline run reads from."""

    identity: IdentityFeed
    ratings: RatingsFeed
    odds: Optional[OddsFeed] = None
    scratchings: Optional[ScratchingsFeed] = None
    conditions: Optional[ConditionsFeed] = None


# ---------------------------------------------------------------------------
# Fixture adapter (for testing and offline replays)
# ---------------------------------------------------------------------------


class FixtureFeed(IdentityFeed, RatingsFeed, OddsFeed, ScratchingsFeed, ConditionsFeed):
    """Serves every feed from JSON files under ``fixtures_dir/<date>/``.

    Per-jurisdiction files (odds, scratchings, conditions) may be either a list,
    taken as AU, or an object keyed by jurisdiction.
    """

    source_name = "fixture"

    def __init__(self, fixtures_dir: Path):
        self.fixtures_dir = Path(fixtures_dir)

    def _load(self, date_local: str, kind: str) -> Any:
        path = self.fixtures_dir / date_local / f"{kind}.json"
        if not path.exists():
            logger.debug("No %s fixture at %s", kind, path)
            return []
        try:
            return json.loads(path.read_text())
        except json.JSONDecodeError as e:
            raise UpstreamFetchError(self.source_name, f"Invalid fixture {path}: {e}") from e

    def _rows(self, date_local: str, kind: str, model, jurisdiction: Optional[str] = None) -> list:
        data = self._load(date_local, kind)
        if isinstance(data, dict):
            data = data.get(jurisdiction or "AU", [])
        elif jurisdiction not in (None, "AU"):
            data = []
        try:
            return [model.model_validate(row) for row in data]
        except ValidationError as e:
            raise UpstreamFetchError(self.source_name, f"Invalid {kind} fixture for {date_local}: {e}") from e

    def fetch_meetings(self, date_local: str) -> List[Meeting]:
        return self._rows(date_local, "meetings", Meeting)

    def fetch_ratings(self, date_local: str) -> List[RatingRow]:
        return self._rows(date_local, "ratings", RatingRow)

    def fetch_odds(self, date_local: str, jurisdiction: str = "AU") -> List[OddsRace]:
        return self._rows(date_local, "odds", OddsRace, jurisdiction)

    def fetch_scratchings(self, date_local: str, jurisdiction: str = "AU") -> List[Scratching]:
        return self._rows(date_local, "scratchings", Scratching, jurisdiction)

    def fetch_conditions(self, date_local: str, jurisdiction: str = "AU") -> List[TrackCondition]:
        return self._rows(date_local, "conditions", TrackCondition, jurisdiction)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def get_feeds(source: str, config=None, fixtures_dir: Optional[Path] = None) -> Feeds:
    """Build the feed set for ``source``.

    Args:
        source: "fixture" or "live"
        config: TurflinkConfig, required for "live"
        fixtures_dir: directory of captured JSON, required for "fixture"
    """
    if source == "fixture":
        if fixtures_dir is None:
            raise ConfigurationError("fixture feeds need a fixtures directory")
        feed = FixtureFeed(fixtures_dir)
        return Feeds(identity=feed, ratings=feed, odds=feed, scratchings=feed, conditions=feed)

    if source == "live":
        if config is None:
            raise ConfigurationError("live feeds need a TurflinkConfig")
        from .fanout import Throttle
        from .punting_form import PuntingFormFeed
        from .race_cards import RaceCardsFeed
        from .tab_odds import TabOddsFeed

        config.require_live()
        punting_form = PuntingFormFeed(config.punting_form_api_key, throttle=Throttle(config.min_request_interval))
        odds = None
        if config.postgres_api_url:
            odds = TabOddsFeed(config.postgres_api_url, throttle=Throttle(config.min_request_interval))
        else:
            logger.warning("POSTGRES_API_URL not set, odds will not be merged")
        return Feeds(
            identity=punting_form,
            ratings=RaceCardsFeed(config.race_card_ratings_api_url, throttle=Throttle(config.min_request_interval)),
            odds=odds,
            scratchings=punting_form,
            conditions=punting_form,
        )

    raise ConfigurationError(f"Unknown feed source: {source}. Supported: fixture, live")
