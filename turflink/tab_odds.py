from __future__ import annotations

"""TAB fixed-odds adapter (race-data API behind POSTGRES_API_URL)."""

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .errors import UpstreamFetchError
from .fanout import Throttle
from .feeds import OddsFeed
from .models import OddsRace, OddsRunner
from .transport import get_json

logger = logging.getLogger(__name__)

AU_LOCATION = "Australia"
# The API has accepted each of these for NZ at different times.
NZ_LOCATION_VARIANTS = ("New Zealand", "NZ", "NZL", "new-zealand")


def _is_nz(location: Optional[str]) -> bool:
    loc = (location or "").lower()
    return "new zealand" in loc or "nz" in loc


def parse_odds_race(item: Dict[str, Any]) -> OddsRace:
    runners = [
        OddsRunner(
            horse_name=r.get("horse_name"),
            runner_number=r.get("runner_number"),
            fixed_win_price=r.get("tab_fixed_win_price"),
            fixed_place_price=r.get("tab_fixed_place_price"),
            fixed_win_timestamp=r.get("tab_fixed_win_timestamp"),
            fixed_place_timestamp=r.get("tab_fixed_place_timestamp"),
        )
        for r in item.get("runners") or []
    ]
    return OddsRace(
        meeting_date=item["meeting_date"],
        meeting_name=item["meeting_name"],
        race_number=int(item["race_number"]),
        runners=runners,
    )


class TabOddsFeed(OddsFeed):
    source_name = "tab"

    def __init__(self, base_url: str, *, throttle: Optional[Throttle] = None, timeout: float = 30):
        self.base_url = base_url.rstrip("/")
        self.throttle = throttle
        self.timeout = timeout

    def _races(self, date_local: str, location: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"date": date_local}
        if location:
            params["location"] = location
        data = get_json(
            f"{self.base_url}/api/race-data/races",
            source=self.source_name,
            params=params,
            timeout=self.timeout,
            throttle=self.throttle,
        )
        if not isinstance(data, dict) or not data.get("success", True):
            raise UpstreamFetchError(self.source_name, f"race-data request failed: {data!r:.200}")
        return data.get("data") or []

    def _parse(self, items: List[Dict[str, Any]]) -> List[OddsRace]:
        try:
            return [parse_odds_race(item) for item in items]
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise UpstreamFetchError(self.source_name, f"Malformed race-data payload: {e}") from e

    def fetch_odds(self, date_local: str, jurisdiction: str = "AU") -> List[OddsRace]:
        if jurisdiction != "NZ":
            return self._parse(self._races(date_local, AU_LOCATION))

        for variant in NZ_LOCATION_VARIANTS:
            try:
                items = self._races(date_local, variant)
            except UpstreamFetchError as e:
                logger.debug("NZ odds with location=%r failed: %s", variant, e)
                continue
            if items:
                logger.debug("Found %d NZ races using location=%r", len(items), variant)
                return self._parse(items)

        logger.info("No NZ races by location filter, filtering all races for %s", date_local)
        items = [i for i in self._races(date_local) if _is_nz(i.get("meeting_location"))]
        return self._parse(items)
