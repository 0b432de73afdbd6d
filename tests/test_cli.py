from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from turflink.cli import app

FIXTURES_DIR = Path(__file__).parent / "fixtures" / "feeds"

ENV_VARS = [
    "PUNTING_FORM_API_KEY",
    "POSTGRES_API_URL",
    "RACE_CARD_RATINGS_API_URL",
    "TURFLINK_TZ",
    "TURFLINK_CACHE_TTL_HOURS",
    "TURFLINK_MAX_CONCURRENCY",
    "TURFLINK_MIN_REQUEST_INTERVAL",
    "TURFLINK_TRACK_REGISTRY",
    "TRACK_NAME_DEBUG",
]

runner = CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)


def test_reconcile_writes_result(tmp_path: Path) -> None:
    out = tmp_path / "result.json"
    result = runner.invoke(
        app, ["reconcile", "--date", "2026-02-05", "--fixtures", str(FIXTURES_DIR), "--out", str(out)]
    )
    assert result.exit_code == 0, result.output
    assert "matched=5 unmatched=3" in result.output

    data = json.loads(out.read_text())
    assert data["date"] == "2026-02-05"
    assert data["matched_count"] == 5
    assert data["unmatched_count"] == 3
    assert len(data["records"]) == 5


def test_reconcile_value_view() -> None:
    result = runner.invoke(
        app, ["reconcile", "--date", "2026-02-05", "--fixtures", str(FIXTURES_DIR), "--show", "value"]
    )
    assert result.exit_code == 0, result.output
    assert "Sunline" in result.output
    assert "Makybe Diva" not in result.output


def test_reconcile_without_fixtures_dir() -> None:
    result = runner.invoke(app, ["reconcile", "--date", "2026-02-05"])
    assert result.exit_code == 2


def test_reconcile_live_without_key() -> None:
    result = runner.invoke(app, ["reconcile", "--date", "2026-02-05", "--source", "live"])
    assert result.exit_code == 2
    assert "PUNTING_FORM_API_KEY" in result.output


def test_bad_env_is_reported(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TURFLINK_MAX_CONCURRENCY", "lots")
    result = runner.invoke(app, ["variants", "Sandown"])
    assert result.exit_code == 2
    assert "TURFLINK_MAX_CONCURRENCY" in result.output


def test_standardize() -> None:
    result = runner.invoke(
        app, ["standardize", "sandown", "Atlantis Downs", "--fixtures", str(FIXTURES_DIR), "--as-of", "2026-02-05"]
    )
    assert result.exit_code == 0, result.output
    assert '"canonical": "Sandown Hillside"' in result.output
    assert '"confidence": "none"' in result.output


def test_variants_surface() -> None:
    result = runner.invoke(app, ["variants", "Newcastle", "--surface", "synthetic"])
    assert result.exit_code == 0, result.output
    assert "Beaumont" in result.output
    assert "Australia/Sydney" in result.output


def test_align() -> None:
    result = runner.invoke(
        app,
        ["align", "--date", "2026-02-05", "--track", "sandown", "--race", "3", "--fixtures", str(FIXTURES_DIR)],
    )
    assert result.exit_code == 0, result.output
    assert '"aligned": true' in result.output
    assert "Sandown Hillside" in result.output


def test_align_unknown_race() -> None:
    result = runner.invoke(
        app,
        ["align", "--date", "2026-02-05", "--track", "sandown", "--race", "9", "--fixtures", str(FIXTURES_DIR)],
    )
    assert result.exit_code == 1
    assert "race-number-mismatch" in result.output


@pytest.mark.parametrize(
    "args",
    [
        ["reconcile", "--date", "next tuesday", "--fixtures", str(FIXTURES_DIR)],
        ["align", "--date", "TBA", "--track", "sandown", "--race", "3", "--fixtures", str(FIXTURES_DIR)],
        ["standardize", "sandown", "--fixtures", str(FIXTURES_DIR), "--as-of", "soon"],
    ],
)
def test_unusable_date_exits_cleanly(args) -> None:
    result = runner.invoke(app, args)
    assert result.exit_code == 2
    assert "Unrecognised date" in result.output
    assert result.exception is None or isinstance(result.exception, SystemExit)
