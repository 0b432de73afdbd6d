from __future__ import annotations

"""Filters applied on top of reconciled records.

The pipeline keeps scratched runners; hiding them is a view concern.
"""

from typing import Iterable, List, Optional

from .models import RunnerRecord

VALUE_THRESHOLD = 25.0


def value_score(rating: Optional[float], price: Optional[float]) -> Optional[float]:
    """(rating / price) * 10, or None when either side is missing."""
    if rating is None or price is None or price <= 0:
        return None
    return round((rating / price) * 10, 2)


def record_value(record: RunnerRecord) -> Optional[float]:
    # Live fixed odds beat the rated price when present.
    price = record.odds_win if record.odds_win is not None else record.price
    return value_score(record.rating, price)


def unscratched(records: Iterable[RunnerRecord]) -> List[RunnerRecord]:
    return [r for r in records if not r.is_scratched]


def value_only(records: Iterable[RunnerRecord], threshold: float = VALUE_THRESHOLD) -> List[RunnerRecord]:
    """Unscratched runners whose value score exceeds ``threshold``."""
    out = []
    for r in unscratched(records):
        score = record_value(r)
        if score is not None and score > threshold:
            out.append(r)
    return out
