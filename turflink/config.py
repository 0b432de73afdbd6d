from __future__ import annotations

"""Environment-driven settings.

Variables:
- PUNTING_FORM_API_KEY: PuntingForm API key (required for live feeds)
- POSTGRES_API_URL: TAB race-data API base URL (optional; odds skipped when unset)
- RACE_CARD_RATINGS_API_URL: ratings API base URL
- TURFLINK_TZ: civil timezone for all date comparisons (default Australia/Sydney)
- TURFLINK_CACHE_TTL_HOURS: canonical-name cache lifetime (default 24)
- TURFLINK_MAX_CONCURRENCY: concurrent upstream fetches per run (default 4)
- TURFLINK_MIN_REQUEST_INTERVAL: seconds between calls to one provider (default 1.0)
- TURFLINK_TRACK_REGISTRY: optional JSON track registry replacing the built-in one
- TRACK_NAME_DEBUG: log every name standardisation
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import ConfigurationError
from .race_cards import RACE_CARD_RATINGS_URL

DEFAULT_TZ = "Australia/Sydney"


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class TurflinkConfig:
    punting_form_api_key: Optional[str] = None
    postgres_api_url: Optional[str] = None
    race_card_ratings_api_url: str = RACE_CARD_RATINGS_URL
    timezone: str = DEFAULT_TZ
    cache_ttl_hours: float = 24.0
    max_concurrency: int = 4
    min_request_interval: float = 1.0
    track_registry: Optional[Path] = None
    track_name_debug: bool = False

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cache_ttl_hours * 3600

    @classmethod
    def from_env(cls) -> "TurflinkConfig":
        """Load config from environment variables.

        Raises ConfigurationError listing every malformed value at once.
        """
        problems: List[str] = []

        def number(name: str, default: float, cast=float):
            raw = os.environ.get(name)
            if raw is None or raw.strip() == "":
                return default
            try:
                value = cast(raw)
            except ValueError:
                problems.append(f"{name}={raw!r} is not a valid {cast.__name__}")
                return default
            if value <= 0 and name != "TURFLINK_MIN_REQUEST_INTERVAL":
                problems.append(f"{name} must be positive, got {raw!r}")
            elif value < 0:
                problems.append(f"{name} must not be negative, got {raw!r}")
            return value

        timezone = os.environ.get("TURFLINK_TZ") or DEFAULT_TZ
        try:
            ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError):
            problems.append(f"TURFLINK_TZ={timezone!r} is not a known timezone")

        registry = os.environ.get("TURFLINK_TRACK_REGISTRY")
        if registry and not Path(registry).exists():
            problems.append(f"TURFLINK_TRACK_REGISTRY points at a missing file: {registry}")

        config = cls(
            punting_form_api_key=os.environ.get("PUNTING_FORM_API_KEY") or None,
            postgres_api_url=os.environ.get("POSTGRES_API_URL") or None,
            race_card_ratings_api_url=os.environ.get("RACE_CARD_RATINGS_API_URL") or RACE_CARD_RATINGS_URL,
            timezone=timezone,
            cache_ttl_hours=number("TURFLINK_CACHE_TTL_HOURS", 24.0),
            max_concurrency=number("TURFLINK_MAX_CONCURRENCY", 4, int),
            min_request_interval=number("TURFLINK_MIN_REQUEST_INTERVAL", 1.0),
            track_registry=Path(registry) if registry else None,
            track_name_debug=_flag(os.environ.get("TRACK_NAME_DEBUG")),
        )

        if problems:
            raise ConfigurationError("Invalid turflink configuration: " + "; ".join(problems))
        return config

    def require_live(self) -> None:
        """Raise ConfigurationError when credentials for the live feeds are missing."""
        missing = []
        if not self.punting_form_api_key:
            missing.append("PUNTING_FORM_API_KEY")
        if not self.race_card_ratings_api_url:
            missing.append("RACE_CARD_RATINGS_API_URL")
        if missing:
            raise ConfigurationError(
                f"Missing required settings for live feeds: {', '.join(missing)}. "
                "Set them as environment variables or use --source fixture."
            )
