"""porttop - command line entry point and component wiring."""

import asyncio
from pathlib import Path
from typing import Optional

import structlog
import typer

from porttop.actions import kill_by_port
from porttop.adapter import select_adapter
from porttop.cache import MetadataCache
from porttop.config import Settings, load_settings
from porttop.dashboard import Dashboard
from porttop.detector import PortDetector
from porttop.errors import ConfigError
from porttop.filters import FilterOptions, SortKey
from porttop.keyboard import KeyboardHandler
from porttop.logging_setup import configure_logging
from porttop.processor import PortProcessor, TypeDetector
from porttop.renderer import Renderer
from porttop.runner import CommandRunner, ConcurrencyLimiter

log = structlog.get_logger()

app = typer.Typer(
    add_completion=False,
    help="Live dashboard of listening ports and the processes behind them.",
)


def build_detector(settings: Settings) -> PortDetector:
    """Wire runner, cache and platform adapter into a detector."""
    runner = CommandRunner(ConcurrencyLimiter(settings.max_concurrency))
    cache = MetadataCache(ttl=settings.cache_ttl, max_size=settings.cache_size)
    adapter = select_adapter(runner, cache=cache, kill_wait=settings.kill_wait)
    return PortDetector(adapter, snapshot_ttl=settings.snapshot_ttl)


def build_dashboard(settings: Settings, filter_options: FilterOptions) -> Dashboard:
    detector = build_detector(settings)
    renderer = Renderer(color=settings.color)
    keyboard = KeyboardHandler(on_interrupt=renderer.restore)
    return Dashboard(
        detector,
        PortProcessor(TypeDetector(settings.type_presets)),
        renderer,
        keyboard,
        filter_options=filter_options,
        refresh_interval=settings.refresh_interval,
        post_kill_delay=settings.post_kill_delay,
        show_details=settings.show_details,
    )


async def run_kill(settings: Settings, port: int, force: bool) -> bool:
    detector = build_detector(settings)
    result = await kill_by_port(detector, detector.adapter, port, force)
    typer.echo(result.message)
    return result.success


@app.command(help="Show listening ports; press ? inside the dashboard for keys.")
def cli(
    type: Optional[str] = typer.Option(None, "--type", "-t", help="Glob on port category, e.g. 'dev-*'"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Glob on process owner"),
    process: Optional[str] = typer.Option(None, "--process", "-p", help="Glob on process name or command"),
    sort: Optional[SortKey] = typer.Option(None, "--sort", "-s", help="Initial sort key"),
    refresh: Optional[float] = typer.Option(None, "--refresh", "-r", help="Refresh interval in seconds"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to a YAML config file"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Write logs to this file"),
    no_color: bool = typer.Option(False, "--no-color", help="Disable colors"),
    kill: Optional[int] = typer.Option(None, "--kill", "-k", min=1, max=65535, help="Kill the processes on PORT and exit"),
    force: bool = typer.Option(False, "--force", "-f", help="With --kill, skip the graceful request"),
):
    try:
        settings = load_settings(config)
    except ConfigError as exc:
        typer.echo(f"porttop: {exc}", err=True)
        raise typer.Exit(code=2)

    if refresh is not None:
        settings.refresh_interval = max(0.1, refresh)
    if no_color:
        settings.color = False
    if log_file is not None:
        settings.log_file = log_file

    log_stream = configure_logging(settings.log_file, settings.log_level)
    try:
        if kill is not None:
            ok = asyncio.run(run_kill(settings, kill, force))
            raise typer.Exit(code=0 if ok else 1)

        filter_options = FilterOptions(type=type, user=user, process=process, sort=sort or settings.sort)
        log.info("dashboard_start", filters=filter_options)
        asyncio.run(build_dashboard(settings, filter_options).run())
    finally:
        log_stream.close()


def main() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":
    main()
