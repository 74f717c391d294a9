"""Command-line interface for steamagg."""

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from steamagg import Aggregator, AggregatorConfig, __version__
from steamagg.config import LogFormat
from steamagg.core.merger import to_response
from steamagg.exceptions import SteamAggError
from steamagg.store.documents import DocumentKind, is_steam64

app = typer.Typer(
    name="steamagg",
    help="Steam profile aggregator",
    add_completion=False,
)
console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"steamagg version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
):
    """steamagg - Steam profile aggregator."""
    pass


@app.command()
def lookup(
    users: list[str] = typer.Argument(..., help="Vanity names, profile URLs or Steam ids"),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Output directory for JSON files"
    ),
    data_dir: Optional[Path] = typer.Option(
        None, "--data-dir", help="Store directory (defaults to config)"
    ),
    headless: bool = typer.Option(
        True, "--headless/--no-headless", help="Run resolver browser in headless mode"
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress output, only show errors"
    ),
):
    """Aggregate one or more Steam profiles."""
    config = AggregatorConfig(headless=headless)
    if quiet:
        config.log_level = "WARNING"
        config.log_format = LogFormat.JSON
    if data_dir:
        config.data_dir = str(data_dir)

    async def run() -> int:
        succeeded = 0
        async with Aggregator(config) as aggregator:
            for user in users:
                try:
                    profile = await aggregator.aggregate(user)
                except SteamAggError as e:
                    console.print(f"[red]✗[/red] Failed to aggregate {user}: {e}")
                    continue

                succeeded += 1
                if not quiet:
                    _print_profile_table(profile)

                if output:
                    output.mkdir(parents=True, exist_ok=True)
                    filepath = output / f"{profile.steamid}.json"
                    filepath.write_text(
                        json.dumps(to_response(profile), indent=2, ensure_ascii=False),
                        encoding="utf-8",
                    )
                    console.print(f"[dim]Saved to {filepath}[/dim]")

        console.print(f"\n[bold]Aggregated {succeeded}/{len(users)} profiles[/bold]")
        return succeeded

    if asyncio.run(run()) < len(users):
        raise typer.Exit(1)


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host", help="Bind address"),
    port: int = typer.Option(3000, "--port", "-p", help="Bind port"),
):
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("steamagg.api:app", host=host, port=port)


@app.command()
def store(
    action: str = typer.Argument(..., help="Action: info, clear, reindex"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Steam64 id to clear"),
):
    """Manage the on-disk profile store."""
    config = AggregatorConfig()

    async def run():
        async with Aggregator(config) as aggregator:
            if action == "info":
                partitions = await aggregator.store.partitions()
                console.print(f"Store path: {config.data_dir}")
                console.print(f"Index path: {config.resolved_index_path}")
                console.print(f"Profiles: {len(partitions)}")
                for steam64 in partitions:
                    kinds = [
                        kind.value for kind in DocumentKind
                        if await aggregator.store.exists(kind, steam64)
                    ]
                    console.print(f"  {steam64}  [dim]{', '.join(kinds)}[/dim]")

            elif action == "clear":
                if user:
                    if not is_steam64(user):
                        console.print(f"[red]Not a Steam64 id: {user}[/red]")
                        raise typer.Exit(1)
                    await aggregator.forget(user)
                    console.print(f"[green]✓[/green] Cleared {user}")
                else:
                    for steam64 in await aggregator.store.partitions():
                        await aggregator.forget(steam64)
                    console.print("[green]✓[/green] Cleared all profiles")

            elif action == "reindex":
                count = await aggregator.reindex()
                console.print(f"[green]✓[/green] Indexed {count} profiles")

            else:
                console.print(f"[red]Unknown action: {action}[/red]")
                console.print("Available actions: info, clear, reindex")
                raise typer.Exit(1)

    asyncio.run(run())


def _print_profile_table(profile):
    """Print merged profile as table."""
    p = profile.profile
    flags = [
        name for name, on in (
            ("new", profile.is_new_user),
            ("vanity changed", profile.vanity_changed),
            ("avatar changed", profile.avatar_changed),
            ("badges changed", profile.badge_count_changed),
        ) if on
    ]

    table = Table(title=f"{p.name or profile.steamid}", show_header=False)
    table.add_column("Field", style="dim")
    table.add_column("Value")

    table.add_row("Steam64", profile.steamid)
    table.add_row("Status", f"{p.status}" + (f" ({p.game})" if p.game else ""))
    table.add_row("Level", str(p.level) if p.level is not None else "-")
    table.add_row("Country", p.country or "-")
    table.add_row("URL", p.url or "-")
    table.add_row("Badges", f"{profile.badges.count} ({profile.badges.xp:,} XP)")
    table.add_row("Games", str(profile.stats.games) if profile.stats.games else "-")
    table.add_row("Friends", str(profile.stats.friends) if profile.stats.friends else "-")
    table.add_row("Flags", ", ".join(flags) or "-")

    console.print(table)

    if profile.recently_played.games:
        console.print(f"\n[bold]Recently Played ({profile.recently_played.total})[/bold]")
        for game in profile.recently_played.games[:5]:
            hours = (game.playtime_2weeks or 0) / 60
            console.print(f"  [dim]{hours:>6.1f}h[/dim]  {game.name}")


if __name__ == "__main__":
    app()
