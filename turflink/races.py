from __future__ import annotations

"""Race alignment: joining provider rows to the canonical race set.

A row aligns to a canonical race when the civil dates are equal, the race
numbers are equal and the track names match. Civil dates are always taken in
one deployment timezone, so a UTC timestamp late in the evening lands on the
next local day.
"""

import datetime as dt
import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence
from zoneinfo import ZoneInfo

from .aliases import AliasTable
from .matcher import match_tier, names_match
from .models import (
    AlignmentResult,
    CanonicalRace,
    DateLike,
    MatchConfidence,
    Meeting,
    OddsRace,
    RaceIdentity,
    RatingRow,
)
from .normalise import normalize_track_name

logger = logging.getLogger(__name__)

SYDNEY_TZ = ZoneInfo("Australia/Sydney")

_ISO_DATE_PREFIX = re.compile(r"^(\d{4}-\d{2}-\d{2})")
# PuntingForm uses 05-Feb-2026; some ratings exports use 05/02/2026.
_FALLBACK_FORMATS = ("%d-%b-%Y", "%d/%m/%Y")


def civil_date(value: DateLike, tz: ZoneInfo = SYDNEY_TZ) -> str:
    """Reduce a date, datetime or date string to ``YYYY-MM-DD`` in ``tz``.

    Naive datetimes are taken to be local already.
    """
    if isinstance(value, dt.datetime):
        if value.tzinfo is not None:
            value = value.astimezone(tz)
        return value.date().isoformat()
    if isinstance(value, dt.date):
        return value.isoformat()
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Not a date: {value!r}")

    s = value.strip()
    try:
        return civil_date(dt.datetime.fromisoformat(s.replace("Z", "+00:00")), tz)
    except ValueError:
        pass
    m = _ISO_DATE_PREFIX.match(s)
    if m:
        return m.group(1)
    for fmt in _FALLBACK_FORMATS:
        try:
            return dt.datetime.strptime(s, fmt).date().isoformat()
        except ValueError:
            continue
    raise ValueError(f"Unrecognised date: {value!r}")


def build_race_index(meetings: Iterable[Meeting], tz: ZoneInfo = SYDNEY_TZ) -> List[CanonicalRace]:
    """Canonical races from identity-feed meetings, one per (date, track, race number)."""
    index: Dict[tuple, CanonicalRace] = {}
    for meeting in meetings:
        track = meeting.track.strip()
        try:
            date_local = civil_date(meeting.meeting_date, tz)
        except ValueError as e:
            logger.warning("Skipping meeting %s at %s: %s", meeting.meeting_id, track, e)
            continue
        for race in meeting.races:
            identity = RaceIdentity(date=date_local, track=track, race_number=race.race_number)
            if identity.key in index:
                logger.debug("Duplicate canonical race %s ignored", identity.key)
                continue
            index[identity.key] = CanonicalRace(
                race=identity,
                meeting_id=meeting.meeting_id,
                surface=meeting.surface,
                runners=list(race.runners),
            )
    return [index[k] for k in sorted(index)]


class RaceAligner:
    def __init__(self, alias_table: Optional[AliasTable] = None, tz: ZoneInfo = SYDNEY_TZ):
        self.alias_table = alias_table
        self.tz = tz

    def track_names(self, track: str) -> List[str]:
        """Names to try for ``track``, alias variants first."""
        if self.alias_table is None:
            return [track]
        names = [n for n in self.alias_table.all_matches(track)["feed"] if n]
        if track not in names:
            names.append(track)
        return names

    def align(self, row: RatingRow, candidates: Sequence[CanonicalRace]) -> AlignmentResult:
        return self.align_key(row.date, row.track, row.race_number, candidates)

    def align_odds(self, race: OddsRace, candidates: Sequence[CanonicalRace]) -> AlignmentResult:
        return self.align_key(race.meeting_date, race.meeting_name, race.race_number, candidates)

    def align_key(
        self,
        date: DateLike,
        track: str,
        race_number: int,
        candidates: Sequence[CanonicalRace],
    ) -> AlignmentResult:
        if not candidates:
            return AlignmentResult(reason="no-candidates")

        date_local = civil_date(date, self.tz)
        same_day = [c for c in candidates if c.race.date == date_local]
        if not same_day:
            return AlignmentResult(reason="date-mismatch")

        on_track: List[CanonicalRace] = []
        via = track
        for name in self.track_names(track):
            on_track = [c for c in same_day if names_match(name, c.race.track)]
            if on_track:
                via = name
                break
        if not on_track:
            return AlignmentResult(reason="track-mismatch")

        qualifying = [c for c in on_track if c.race.race_number == race_number]
        if not qualifying:
            return AlignmentResult(reason="race-number-mismatch")

        race = qualifying[0]
        if len(qualifying) > 1:
            logger.debug(
                "%s R%d on %s matched %d canonical races, taking %s",
                track, race_number, date_local, len(qualifying), race.race.track,
            )
        return AlignmentResult(
            race=race,
            confidence=self._confidence(track, via, race.race.track),
            candidates_matched=len(qualifying),
        )

    def _confidence(self, track: str, via: str, canonical: str) -> MatchConfidence:
        tier = match_tier(track, canonical)
        if tier in ("exact", "normalized"):
            return tier
        if normalize_track_name(via) != normalize_track_name(track):
            return "alias"
        return tier
