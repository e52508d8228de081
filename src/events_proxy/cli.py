"""Typer CLI for the events proxy (administrative commands only)."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import structlog
import typer
from rich.console import Console
from rich.table import Table

from events_proxy.config.loader import config_from_env, load_proxy_config
from events_proxy.config.models import DestinationType, ProxyConfig
from events_proxy.destinations.snowflake.adapter import SnowflakeAdapter
from events_proxy.models import InsertResult, Record, parse_record_kind
from events_proxy.observability.health import Status, check_destinations
from events_proxy.observability.logging import configure_logging
from events_proxy.pipeline.dispatcher import Dispatcher

logger = structlog.get_logger()
console = Console()
app = typer.Typer(name="events-proxy", help="Events proxy CLI")
stage_app = typer.Typer(name="stage", help="Snowflake stage maintenance")
app.add_typer(stage_app)

_CONFIG_OPTION = typer.Option(
    None, "--config", "-c", help="Proxy YAML (environment variables if omitted)"
)

T = TypeVar("T")


def _load(config_path: str | None) -> ProxyConfig:
    if config_path is None:
        config = config_from_env()
    else:
        path = Path(config_path)
        if not path.exists():
            console.print(f"[red]Config file not found: {path}[/red]")
            raise typer.Exit(1)
        config = load_proxy_config(path)
    configure_logging(json=config.log_json, verbose=config.verbose)
    return config


def _read_ndjson(path: Path) -> list[Record]:
    records: list[Record] = []
    with path.open(encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            if not line.strip():
                continue
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError as exc:
                console.print(f"[red]Invalid JSON on line {lineno}:[/red] {exc}")
                raise typer.Exit(1) from exc
    return records


async def _then_close(work: Awaitable[T], close: Callable[[], Awaitable[None]]) -> T:
    try:
        return await work
    finally:
        await close()


def _snowflake_adapter(
    config: ProxyConfig, destination_id: str | None
) -> SnowflakeAdapter:
    candidates = [
        d
        for d in config.enabled_destinations
        if d.destination_type == DestinationType.SNOWFLAKE
        and (destination_id is None or d.destination_id == destination_id)
    ]
    if not candidates:
        console.print("[red]No matching Snowflake destination configured[/red]")
        raise typer.Exit(1)
    return SnowflakeAdapter(candidates[0])


@app.command()
def validate(config_path: str | None = _CONFIG_OPTION) -> None:
    """Validate the proxy configuration."""
    try:
        config = _load(config_path)
    except Exception as exc:
        console.print(f"[red]Validation error:[/red] {exc}")
        raise typer.Exit(1) from exc

    t = config.tables
    console.print("[green]Valid[/green]")
    console.print(f"  tables: {t.event_table}, {t.user_table}, {t.group_table}")
    if not config.destinations:
        console.print("  destinations: (none)")
        return
    console.print(f"  destinations: {len(config.destinations)}")
    for d in config.destinations:
        status = "enabled" if d.enabled else "disabled"
        console.print(f"    - {d.destination_id} ({d.destination_type}) [{status}]")


@app.command()
def init(config_path: str | None = _CONFIG_OPTION) -> None:
    """Verify or create every destination's resources."""
    config = _load(config_path)
    dispatcher = Dispatcher(config)
    outcomes = asyncio.run(_then_close(dispatcher.init_all(), dispatcher.close_all))

    table = Table(title="Destination Init")
    table.add_column("Destination", style="cyan")
    table.add_column("Result")
    failed = False
    for dest_id, outcome in outcomes.items():
        if isinstance(outcome, Exception):
            failed = True
            table.add_row(dest_id, f"[red]{outcome}[/red]")
        else:
            ok = all(outcome)
            failed = failed or not ok
            style = "green" if ok else "red"
            table.add_row(dest_id, f"[{style}]{outcome}[/{style}]")
    console.print(table)
    if failed:
        raise typer.Exit(1)


@app.command()
def drop(
    config_path: str | None = _CONFIG_OPTION,
    yes: bool = typer.Option(False, "--yes", "-y", help="Confirm destructive drop"),
) -> None:
    """Delete tables, pipes, tasks, stages and objects for the configured tables."""
    if not yes:
        console.print("[red]Refusing to drop without --yes[/red]")
        raise typer.Exit(1)
    config = _load(config_path)
    dispatcher = Dispatcher(config)
    outcomes = asyncio.run(_then_close(dispatcher.drop_all(), dispatcher.close_all))
    for dest_id, outcome in outcomes.items():
        if isinstance(outcome, Exception):
            console.print(f"[red]{dest_id}:[/red] {outcome}")
        else:
            console.print(f"[yellow]{dest_id}:[/yellow] {outcome.as_dict()}")


@app.command()
def load(
    ndjson_path: str = typer.Argument(..., help="Newline-delimited JSON records"),
    kind: str = typer.Option("track", "--kind", "-k", help="track, engage or groups"),
    config_path: str | None = _CONFIG_OPTION,
) -> None:
    """Push one batch through every enabled destination."""
    config = _load(config_path)
    try:
        record_kind = parse_record_kind(kind)
    except Exception as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from exc

    batch = _read_ndjson(Path(ndjson_path))
    dispatcher = Dispatcher(config)
    outcomes = asyncio.run(
        _then_close(dispatcher.dispatch(batch, record_kind), dispatcher.close_all)
    )

    failed = False
    for dest_id, outcome in outcomes.items():
        row: dict[str, Any]
        if isinstance(outcome, InsertResult):
            row = outcome.as_dict()
            failed = failed or row["status"] != "success"
        else:
            row = {"status": "error", "dest": dest_id, "errorMessage": str(outcome)}
            failed = True
        console.print_json(json.dumps(row))
    if failed:
        raise typer.Exit(1)


@app.command()
def health(config_path: str | None = _CONFIG_OPTION) -> None:
    """Initialize destinations and report their readiness."""
    config = _load(config_path)
    dispatcher = Dispatcher(config)

    async def _check() -> Any:
        await dispatcher.init_all()
        return await check_destinations(dispatcher.adapters)

    result = asyncio.run(_then_close(_check(), dispatcher.close_all))

    table = Table(title="Destination Health")
    table.add_column("Destination", style="cyan")
    table.add_column("Status")
    table.add_column("Detail")
    for c in result.components:
        style = "green" if c.status == Status.HEALTHY else "red"
        table.add_row(c.name, f"[{style}]{c.status}[/{style}]", c.detail)

    console.print(table)
    if not result.healthy:
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Stage sub-commands
# ---------------------------------------------------------------------------


@stage_app.command("flush")
def stage_flush(
    kind: str = typer.Option("track", "--kind", "-k", help="track, engage or groups"),
    destination_id: str | None = typer.Option(None, "--destination-id"),
    config_path: str | None = _CONFIG_OPTION,
) -> None:
    """Load every staged file into the kind's table."""
    config = _load(config_path)
    adapter = _snowflake_adapter(config, destination_id)
    try:
        loaded = asyncio.run(
            _then_close(adapter.flush_stage(kind, config.tables), adapter.close)
        )
    except Exception as exc:
        console.print(f"[red]Flush failed:[/red] {exc}")
        raise typer.Exit(1) from exc
    console.print(f"[green]Loaded {loaded} rows[/green]")


@stage_app.command("cleanup")
def stage_cleanup(
    days: int = typer.Option(1, "--days", help="Remove files older than this"),
    destination_id: str | None = typer.Option(None, "--destination-id"),
    config_path: str | None = _CONFIG_OPTION,
) -> None:
    """Remove staged batch files older than --days."""
    config = _load(config_path)
    adapter = _snowflake_adapter(config, destination_id)
    try:
        removed = asyncio.run(_then_close(adapter.cleanup_stage(days), adapter.close))
    except Exception as exc:
        console.print(f"[red]Cleanup failed:[/red] {exc}")
        raise typer.Exit(1) from exc
    console.print(f"[green]Removed {len(removed)} files[/green]")


@stage_app.command("purge")
def stage_purge(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    destination_id: str | None = typer.Option(None, "--destination-id"),
    config_path: str | None = _CONFIG_OPTION,
) -> None:
    """Remove every file from the stage."""
    config = _load(config_path)
    adapter = _snowflake_adapter(config, destination_id)
    if not yes:
        confirm = typer.confirm("Remove every file from the stage?")
        if not confirm:
            console.print("[yellow]Cancelled[/yellow]")
            raise typer.Exit(0)
    try:
        removed = asyncio.run(_then_close(adapter.purge_stage(), adapter.close))
    except Exception as exc:
        console.print(f"[red]Purge failed:[/red] {exc}")
        raise typer.Exit(1) from exc
    console.print(f"[green]Removed {removed} files[/green]")
