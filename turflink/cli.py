from __future__ import annotations

import datetime as dt
import json
import logging
import pathlib
from typing import List, Optional

import typer
from rich import print
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .aliases import load_alias_table
from .cache import CacheStore
from .config import TurflinkConfig
from .errors import ConfigurationError, UpstreamFetchError
from .feeds import get_feeds
from .pipeline import ReconciliationPipeline
from .races import RaceAligner, build_race_index, civil_date
from .views import record_value, unscratched, value_only

app = typer.Typer(help="turflink: reconcile ratings, odds and scratchings across racing feeds")

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _load_config() -> TurflinkConfig:
    try:
        return TurflinkConfig.from_env()
    except ConfigurationError as e:
        print(f"[red]{e}[/red]")
        raise typer.Exit(code=2)


def _parse_date(value: str, config: TurflinkConfig) -> str:
    try:
        return civil_date(value, config.tz)
    except ValueError as e:
        print(f"[red]{e}[/red]")
        raise typer.Exit(code=2)


def _as_of_clock(config: TurflinkConfig, as_of: Optional[str]):
    """Clock pinned to midday of ``as_of`` so the cache window covers that day."""
    if not as_of:
        return None
    day = dt.date.fromisoformat(_parse_date(as_of, config))
    noon = dt.datetime.combine(day, dt.time(12, 0), tzinfo=config.tz).timestamp()
    return lambda: noon


def _build(source: str, fixtures: Optional[pathlib.Path], as_of: Optional[str]):
    config = _load_config()
    if config.track_name_debug:
        logging.getLogger("turflink.cache").setLevel(logging.DEBUG)
    try:
        alias_table = load_alias_table(config.track_registry)
        feeds = get_feeds(source, config, fixtures_dir=fixtures)
    except ConfigurationError as e:
        print(f"[red]{e}[/red]")
        raise typer.Exit(code=2)
    cache_kwargs = {"ttl_seconds": config.cache_ttl_seconds, "tz": config.tz}
    clock = _as_of_clock(config, as_of)
    if clock is not None:
        cache_kwargs["clock"] = clock
    cache = CacheStore(feeds.identity, alias_table, **cache_kwargs)
    return config, feeds, cache


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")):
    _setup_logging(verbose)


@app.command()
def reconcile(
    date: str = typer.Option(..., help="Race day, YYYY-MM-DD"),
    source: str = typer.Option("fixture", help="Feed source: fixture or live"),
    fixtures: Optional[pathlib.Path] = typer.Option(None, help="Fixture directory for --source fixture"),
    show: str = typer.Option("all", help="Rows to show: all, unscratched or value"),
    as_json: bool = typer.Option(False, "--json", help="Print the full result as JSON"),
    out_path: Optional[pathlib.Path] = typer.Option(None, "--out", help="Also write the result JSON here"),
):
    """Reconcile one race day and print the runner records."""
    config, feeds, cache = _build(source, fixtures, as_of=date)
    try:
        result = ReconciliationPipeline(feeds, cache, config).run(date)
    except ConfigurationError as e:
        print(f"[red]{e}[/red]")
        raise typer.Exit(code=2)

    if out_path:
        out_path.write_text(result.model_dump_json(indent=2))
    if as_json:
        typer.echo(result.model_dump_json(indent=2))
        return

    records = result.records
    if show == "unscratched":
        records = unscratched(records)
    elif show == "value":
        records = value_only(records)

    console = Console()
    table = Table(title=f"Reconciled runners {result.date}")
    table.add_column("Track", style="cyan")
    table.add_column("R", justify="right")
    table.add_column("No", justify="right")
    table.add_column("Horse", style="magenta")
    table.add_column("Rating", justify="right")
    table.add_column("Win", justify="right")
    table.add_column("Value", justify="right", style="green")
    table.add_column("Status")
    table.add_column("Match")
    for r in records:
        score = record_value(r)
        table.add_row(
            r.race.track,
            str(r.race.race_number),
            str(r.tab_number) if r.tab_number is not None else "-",
            r.horse_name,
            f"{r.rating:.1f}" if r.rating is not None else "-",
            f"{r.odds_win:.2f}" if r.odds_win is not None else "-",
            f"{score:.1f}" if score is not None else "-",
            f"[red]SCR[/red] {r.scratch_reason or ''}".strip() if r.is_scratched else "",
            r.match_confidence,
        )
    console.print(table)
    console.print(
        f"matched={result.matched_count} unmatched={result.unmatched_count} "
        f"diagnostics={len(result.diagnostics)}"
    )
    for d in result.diagnostics:
        if d.kind in ("upstream-fetch", "unresolved-name"):
            console.print(f"[yellow]{d.kind}[/yellow] {d.message}")


@app.command()
def standardize(
    names: List[str] = typer.Argument(..., help="Track names to standardise"),
    source: str = typer.Option("fixture", help="Feed source: fixture or live"),
    fixtures: Optional[pathlib.Path] = typer.Option(None, help="Fixture directory for --source fixture"),
    as_of: Optional[str] = typer.Option(None, help="Build the cache as of this date"),
    surface: Optional[str] = typer.Option(None, help="Surface hint: turf or synthetic"),
):
    """Resolve track names to their canonical spelling."""
    _, _, cache = _build(source, fixtures, as_of)
    out = []
    for name in names:
        resolution = cache.standardize(name)
        row = resolution.model_dump()
        if surface:
            row["surface_name"] = cache.standardize_with_surface(name, surface)
        out.append(row)
    typer.echo(json.dumps(out, indent=2))


@app.command()
def variants(
    name: str = typer.Argument(..., help="Track name"),
    surface: Optional[str] = typer.Option(None, help="Surface hint: turf or synthetic"),
):
    """Show the spellings each provider uses for a track."""
    config = _load_config()
    try:
        table = load_alias_table(config.track_registry)
    except ConfigurationError as e:
        print(f"[red]{e}[/red]")
        raise typer.Exit(code=2)
    identity = table.identity_for(name)
    typer.echo(json.dumps({
        "input": name,
        "canonical": identity.canonical if identity else None,
        "timezone": table.timezone_for(name, config.timezone),
        **table.all_matches(name, surface),
    }, indent=2))


@app.command()
def align(
    date: str = typer.Option(..., help="Race day, YYYY-MM-DD"),
    track: str = typer.Option(..., help="Track name as a provider spells it"),
    race_number: int = typer.Option(..., "--race", help="Race number"),
    source: str = typer.Option("fixture", help="Feed source: fixture or live"),
    fixtures: Optional[pathlib.Path] = typer.Option(None, help="Fixture directory for --source fixture"),
):
    """Align one (date, track, race) to the canonical race set."""
    config, feeds, cache = _build(source, fixtures, as_of=date)
    date_local = _parse_date(date, config)
    try:
        meetings = [feeds.identity.fetch_fields(m) for m in feeds.identity.fetch_meetings(date_local)]
    except UpstreamFetchError as e:
        print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)
    races = build_race_index(meetings, config.tz)
    canonical = cache.standardize(track).canonical
    result = RaceAligner(cache.alias_table, tz=config.tz).align_key(date_local, canonical, race_number, races)
    typer.echo(json.dumps({
        "aligned": result.aligned,
        "race": result.race.race.model_dump() if result.race else None,
        "reason": result.reason,
        "confidence": result.confidence,
        "candidates_matched": result.candidates_matched,
    }, indent=2))
    if not result.aligned:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
