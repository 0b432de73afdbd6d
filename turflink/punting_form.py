from __future__ import annotations

"""PuntingForm v2 adapter: the authoritative identity feed.

Serves meetings and fields (canonical track names and runners) plus the
scratchings and track-condition update streams. Every call goes through one
shared throttle so sequential requests stay at least the configured interval
apart.
"""

import datetime as dt
import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar

from pydantic import ValidationError

from .errors import UpstreamFetchError
from .fanout import Throttle
from .feeds import ConditionsFeed, IdentityFeed, ScratchingsFeed
from .models import FieldRace, FieldRunner, Meeting, Scratching, TrackCondition
from .races import civil_date
from .transport import get_json

logger = logging.getLogger(__name__)

PUNTING_FORM_URL = "https://api.puntingform.com.au/v2"
JURISDICTION_CODES = {"AU": 0, "NZ": 1}
_HEADERS = {"accept": "application/json"}
_PARSE_ERRORS = (KeyError, TypeError, ValueError, AttributeError, ValidationError)

T = TypeVar("T")


def pf_date(date_local: str) -> str:
    """2026-02-05 -> 05-Feb-2026."""
    return dt.date.fromisoformat(date_local).strftime("%d-%b-%Y")


def _country(raw: Optional[str]) -> str:
    value = (raw or "").strip().lower()
    if value in ("nz", "nzl", "new zealand"):
        return "NZ"
    return "AUS"


def _first(d: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if d.get(key) is not None:
            return d[key]
    return None


class PuntingFormFeed(IdentityFeed, ScratchingsFeed, ConditionsFeed):
    source_name = "puntingform"

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = PUNTING_FORM_URL,
        throttle: Optional[Throttle] = None,
        timeout: float = 30,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.throttle = throttle
        self.timeout = timeout

    def _get(self, path: str, **params: Any) -> Any:
        data = get_json(
            f"{self.base_url}{path}",
            source=self.source_name,
            params={**params, "apiKey": self.api_key},
            headers=_HEADERS,
            timeout=self.timeout,
            throttle=self.throttle,
        )
        if not isinstance(data, dict):
            raise UpstreamFetchError(self.source_name, f"Unexpected response shape from {path}")
        if data.get("statusCode", 200) != 200:
            raise UpstreamFetchError(self.source_name, f"{path} returned error: {data.get('error')}")
        return data.get("payLoad")

    def _parse(self, path: str, build: Callable[..., T], payload: Any, *args: Any) -> T:
        try:
            return build(payload, *args)
        except _PARSE_ERRORS as e:
            raise UpstreamFetchError(self.source_name, f"Malformed {path} payload: {e}") from e

    # --- identity ---

    def fetch_meetings(self, date_local: str) -> List[Meeting]:
        path = "/form/meetingslist"
        payload = self._get(path, meetingDate=pf_date(date_local), stage="(A)") or []
        meetings = self._parse(path, self._meetings_from, payload, date_local)
        logger.info("PuntingForm: %d meetings for %s", len(meetings), date_local)
        return meetings

    def fetch_fields(self, meeting: Meeting) -> Meeting:
        path = "/form/fields"
        payload = self._get(path, meetingId=meeting.meeting_id, raceNumber=0) or {}
        races = self._parse(path, self._races_from, payload)
        return meeting.model_copy(update={"races": races})

    def _meetings_from(self, payload: List[Dict[str, Any]], date_local: str) -> List[Meeting]:
        meetings: List[Meeting] = []
        for item in payload:
            track = item.get("track") or {}
            name = (track.get("name") or "").strip()
            if not name or item.get("isBarrierTrial"):
                continue
            meetings.append(Meeting(
                meeting_id=str(item.get("meetingId")),
                track=name,
                meeting_date=item.get("meetingDate") or date_local,
                surface=track.get("surface"),
                state=track.get("state") or None,
                country=_country(track.get("country")),
            ))
        return meetings

    def _races_from(self, payload: Dict[str, Any]) -> List[FieldRace]:
        races: List[FieldRace] = []
        for race in payload.get("races") or []:
            number = race.get("raceNumber") or race.get("number")
            if number is None:
                continue
            runners = [
                FieldRunner(
                    horse_name=r.get("horseName") or r.get("name") or "",
                    tab_number=_first(r, "tabNumber", "tabNo"),
                    runner_id=str(r["runnerId"]) if r.get("runnerId") is not None else None,
                )
                for r in race.get("runners") or []
                if r.get("horseName") or r.get("name")
            ]
            races.append(FieldRace(race_number=int(number), runners=runners))
        return races

    # --- updates ---

    def _on_date(self, item: Dict[str, Any], date_local: str) -> bool:
        raw = item.get("meetingDate")
        if not raw:
            return True
        try:
            return civil_date(raw) == date_local
        except ValueError:
            return True

    def fetch_scratchings(self, date_local: str, jurisdiction: str = "AU") -> List[Scratching]:
        path = "/Updates/Scratchings"
        payload = self._get(path, jurisdiction=JURISDICTION_CODES.get(jurisdiction, 0)) or []
        return self._parse(path, self._scratchings_from, payload, date_local)

    def fetch_conditions(self, date_local: str, jurisdiction: str = "AU") -> List[TrackCondition]:
        path = "/Updates/Conditions"
        payload = self._get(path, jurisdiction=JURISDICTION_CODES.get(jurisdiction, 0)) or []
        return self._parse(path, self._conditions_from, payload, date_local)

    def _scratchings_from(self, payload: List[Dict[str, Any]], date_local: str) -> List[Scratching]:
        rows: List[Scratching] = []
        for item in payload:
            if not self._on_date(item, date_local) or item.get("raceNumber") is None:
                continue
            rows.append(Scratching(
                meeting_id=str(item["meetingId"]) if item.get("meetingId") is not None else None,
                race_number=int(item["raceNumber"]),
                track=_first(item, "track", "trackName"),
                horse_name=_first(item, "name", "horseName"),
                runner_id=str(item["runnerId"]) if item.get("runnerId") is not None else None,
                tab_number=_first(item, "tabNo", "tabNumber"),
                timestamp=_first(item, "timeStamp", "scratchingTime"),
                reason=item.get("reason"),
            ))
        return rows

    def _conditions_from(self, payload: List[Dict[str, Any]], date_local: str) -> List[TrackCondition]:
        rows: List[TrackCondition] = []
        for item in payload:
            track = _first(item, "track", "trackName")
            if not track or not self._on_date(item, date_local):
                continue
            rows.append(TrackCondition(
                meeting_id=str(item["meetingId"]) if item.get("meetingId") is not None else None,
                track=track,
                track_condition=_first(item, "trackCondition", "condition"),
                rail_position=item.get("railPosition"),
                weather=item.get("weather"),
            ))
        return rows
