from __future__ import annotations

import pytest

from turflink.models import RaceIdentity, RunnerRecord
from turflink.views import VALUE_THRESHOLD, record_value, unscratched, value_only, value_score

RACE = RaceIdentity(date="2026-02-05", track="Sandown Hillside", race_number=3)


def runner(name: str, rating=None, price=None, odds_win=None, scratched: bool = False) -> RunnerRecord:
    return RunnerRecord(race=RACE, horse_name=name, rating=rating, price=price, odds_win=odds_win,
                        is_scratched=scratched)


class TestValueScore:
    def test_formula(self) -> None:
        assert value_score(95, 3.0) == pytest.approx(316.67)
        assert value_score(40, 26.0) == pytest.approx(15.38)

    @pytest.mark.parametrize("rating,price", [(None, 3.0), (90, None), (90, 0), (90, -1.5)])
    def test_missing_or_bad_inputs(self, rating, price) -> None:
        assert value_score(rating, price) is None

    def test_record_value_prefers_fixed_odds(self) -> None:
        assert record_value(runner("A", rating=50, price=5.0, odds_win=10.0)) == 50.0
        assert record_value(runner("B", rating=50, price=5.0)) == 100.0
        assert record_value(runner("C", price=5.0)) is None


class TestFilters:
    def test_unscratched(self) -> None:
        records = [runner("A"), runner("B", scratched=True), runner("C")]
        assert [r.horse_name for r in unscratched(records)] == ["A", "C"]

    def test_value_only(self) -> None:
        records = [
            runner("Value", rating=80, price=4.0),
            runner("Short", rating=40, price=26.0),
            runner("Scratched", rating=95, price=2.0, scratched=True),
            runner("Unrated", price=2.0),
        ]
        assert [r.horse_name for r in value_only(records)] == ["Value"]

    def test_threshold_is_strict(self) -> None:
        # 25 / 10 * 10 is exactly the threshold.
        at_threshold = runner("Edge", rating=25, price=10.0)
        assert record_value(at_threshold) == VALUE_THRESHOLD
        assert value_only([at_threshold]) == []
        assert value_only([at_threshold], threshold=20) == [at_threshold]
