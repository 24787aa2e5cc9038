"""CLI entry point using Typer."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from snitch import __version__
from snitch.config import SnitchConfig, load_config
from snitch.errors import ConfigError
from snitch.models import Sample, ScanResult

if TYPE_CHECKING:
    from snitch.snitch import Snitch

app = typer.Typer(
    name="snitch",
    help="Watch sample hashes on threat-intel platforms and report the ones that get burned.",
    no_args_is_help=True,
)
console = Console()
logger = logging.getLogger("snitch")


def version_callback(value: bool) -> None:
    if value:
        console.print(f"snitch {__version__}")
        raise typer.Exit()


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", "-V", callback=version_callback, is_eager=True),
    ] = None,
) -> None:
    """snitch — know when your samples get burned."""


@app.command()
def watch(
    directory: Annotated[Path, typer.Argument(help="Directory of samples to monitor")],
    provider: Annotated[
        str | None,
        typer.Option("--provider", "-p", help="Comma-separated provider names"),
    ] = None,
    config: Annotated[
        Path | None, typer.Option("--config", "-c", help="Config file path")
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    """Hash every file in DIRECTORY and monitor the hashes until interrupted."""
    setup_logging(verbose)
    try:
        cfg = load_config(config)
        if provider:
            cfg.providers = [p.strip() for p in provider.split(",") if p.strip()]
        samples = _collect(directory, cfg.hash_algorithm)
    except ConfigError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from exc

    if not samples:
        console.print(f"[yellow]No files found in {directory}[/yellow]")
        raise typer.Exit(1)

    try:
        asyncio.run(_watch(cfg, samples))
    except ConfigError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from exc
    except KeyboardInterrupt:
        console.print("\n[dim]Interrupted.[/dim]")


def burned(result: ScanResult) -> None:
    console.print(
        f"[bold red][!][/bold red] File [bold]{result.sample.name}[/bold] has been seen on "
        f"{result.provider} on {result.last_seen:%Y-%m-%d %H:%M:%S %Z}"
    )


async def _watch(cfg: SnitchConfig, samples: list[Sample]) -> None:
    from snitch.snitch import Snitch

    sn = Snitch.from_config(cfg, on_flagged=burned)
    await sn.start()
    try:
        for sample in samples:
            logger.info("Adding %s (%s) to the list", sample.name, sample.hash)
            await sn.add(sample.name, sample.hash)
        await _heartbeat(sn, cfg.heartbeat)
    finally:
        await sn.stop()


async def _heartbeat(sn: Snitch, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        pending = ", ".join(f"{name}: {count}" for name, count in sn.pending().items())
        logger.info("Still watching: pending %s, flagged %d", pending, len(sn.flagged))


def _collect(directory: Path, algorithm: str) -> list[Sample]:
    from snitch.feeder import iter_directory

    try:
        return list(iter_directory(directory, algorithm))
    except OSError as exc:
        raise ConfigError(f"Cannot read samples from {directory}: {exc}") from exc


@app.command(name="hash")
def hash_dir(
    directory: Annotated[Path, typer.Argument(help="Directory of samples")],
    algorithm: Annotated[str, typer.Option("--algorithm", "-a", help="md5, sha1 or sha256")] = "md5",
) -> None:
    """Print the hashes that `watch` would monitor."""
    try:
        samples = _collect(directory, algorithm)
    except ConfigError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from exc

    for sample in samples:
        console.print(f"{sample.hash}  {sample.name}", highlight=False)


@app.command()
def status(
    config: Annotated[
        Path | None, typer.Option("--config", "-c", help="Config file path")
    ] = None,
) -> None:
    """Show known providers and whether credentials are set."""
    from snitch.providers import PROVIDER_CLASSES, configured_providers

    try:
        cfg = load_config(config)
    except ConfigError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from exc

    ready = configured_providers(cfg)
    console.print(f"[bold]snitch[/bold] v{__version__}\n")
    console.print("[bold]Providers:[/bold]")
    for name in PROVIDER_CLASSES:
        icon = "[green]✓[/green]" if name in ready else "[dim]✗[/dim]"
        enabled = " (enabled)" if name in cfg.providers else ""
        console.print(f"  {icon} {name}{enabled}")


@app.command(name="config")
def config_show(
    config: Annotated[
        Path | None, typer.Option("--config", "-c", help="Config file path")
    ] = None,
) -> None:
    """Show current configuration."""
    try:
        cfg = load_config(config)
    except ConfigError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from exc
    console.print_json(json.dumps(cfg.model_dump(mode="json"), default=str))
