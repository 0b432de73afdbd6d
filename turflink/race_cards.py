from __future__ import annotations

"""Race-card ratings adapter: per-runner rating and rated price."""

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .errors import UpstreamFetchError
from .fanout import Throttle
from .feeds import RatingsFeed
from .models import RatingRow
from .transport import get_json

logger = logging.getLogger(__name__)

RACE_CARD_RATINGS_URL = "https://race-cards-ratings.onrender.com"


def parse_rating(item: Dict[str, Any]) -> RatingRow:
    return RatingRow(
        date=item.get("meeting_date") or item["date"],
        track=item.get("meeting_name") or item["track"],
        race_number=int(item["race_number"]),
        horse_name=item["horse_name"],
        rating=item.get("ttr_rating", item.get("rating")),
        price=item.get("ttr_price", item.get("price")),
        tab_number=item.get("runner_number"),
    )


class RaceCardsFeed(RatingsFeed):
    source_name = "race-cards"

    def __init__(
        self,
        base_url: str = RACE_CARD_RATINGS_URL,
        *,
        throttle: Optional[Throttle] = None,
        timeout: float = 60,
    ):
        self.base_url = base_url.rstrip("/")
        self.throttle = throttle
        self.timeout = timeout

    def fetch_ratings(self, date_local: str) -> List[RatingRow]:
        data = get_json(
            f"{self.base_url}/api/ratings",
            source=self.source_name,
            params={"date": date_local},
            timeout=self.timeout,
            throttle=self.throttle,
        )
        items = data.get("data") if isinstance(data, dict) else data
        if not isinstance(items, list):
            raise UpstreamFetchError(self.source_name, "ratings response has no data list")
        rows: List[RatingRow] = []
        for item in items:
            try:
                rows.append(parse_rating(item))
            except (KeyError, TypeError, ValueError, ValidationError) as e:
                logger.warning("Skipping malformed rating row %r: %s", item, e)
        logger.info("Race cards: %d rating rows for %s", len(rows), date_local)
        return rows
