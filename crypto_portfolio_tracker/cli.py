"""
Command line interface for the portfolio tracker.

Each command loads configuration, opens the tracker, runs one operation and
shuts the tracker down again. ``watch`` keeps the refresh scheduler running
and reprints the portfolio until interrupted.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from crypto_portfolio_tracker import __version__
from crypto_portfolio_tracker.core.config import ConfigError, ConfigManager, TrackerSettings
from crypto_portfolio_tracker.core.exceptions import TrackerError
from crypto_portfolio_tracker.core.logging import setup_logging as setup_structured_logging
from crypto_portfolio_tracker.tracker.formatting import NOT_AVAILABLE, format_price
from crypto_portfolio_tracker.tracker.service import PortfolioTracker
from crypto_portfolio_tracker.tracker.view import PortfolioSnapshot, normalize_coin_id

console = Console()
err_console = Console(stderr=True)
logger = logging.getLogger(__name__)


@dataclass
class CLIState:
    """Options shared by every command."""

    debug: bool = False
    verbose: bool = False
    config_dir: Optional[Path] = None
    db_path: Optional[Path] = None

    @property
    def log_level(self) -> str:
        if self.debug:
            return "DEBUG"
        return "INFO" if self.verbose else "WARNING"


async def load_settings(state: CLIState) -> TrackerSettings:
    """Load configuration, set up logging and build tracker settings."""
    config_manager = ConfigManager(config_dir=state.config_dir)
    await config_manager.initialize()

    config_manager.set("logging.level", state.log_level)
    config_manager.set("logging.handlers.console.level", state.log_level)
    setup_structured_logging(
        config_manager.get_all(),
        console_handler=RichHandler(console=err_console, rich_tracebacks=True, show_path=False),
    )

    settings = TrackerSettings.from_config(config_manager)
    if state.db_path:
        settings.store_path = state.db_path
    return settings


def create_tracker(settings: TrackerSettings) -> PortfolioTracker:
    return PortfolioTracker(settings)


def run_with_tracker(state: CLIState, operation: Callable[[PortfolioTracker], Awaitable[Any]],
                     run_scheduler: bool = False) -> Any:
    """Run ``operation`` against an initialized tracker.

    Background work started by the operation is allowed to finish before the
    tracker shuts down, so prices fetched here are persisted for the next run.
    """
    async def runner():
        try:
            settings = await load_settings(state)
        except ConfigError as e:
            raise click.ClickException(f"Configuration error: {e}")

        tracker = create_tracker(settings)
        await tracker.initialize(run_scheduler=run_scheduler)
        try:
            return await operation(tracker)
        finally:
            await tracker.shutdown(wait_for_background=not run_scheduler)

    try:
        return asyncio.run(runner())
    except TrackerError as e:
        logger.debug(f"Command failed: {e!r}")
        raise click.ClickException(e.message)


def render_portfolio(snapshot: PortfolioSnapshot) -> Table:
    """Build a rich table for a portfolio snapshot."""
    table = Table(title="Portfolio")
    table.add_column("Coin", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Symbol", style="cyan")
    table.add_column("Amount", justify="right", style="magenta")
    table.add_column("Price (USD)", justify="right")
    table.add_column("Value (USD)", justify="right", style="green")

    for row in snapshot.holdings:
        price = row.price if row.price == NOT_AVAILABLE else f"${row.price}"
        value = row.value if row.value == NOT_AVAILABLE else f"${row.value}"
        table.add_row(row.coin_id, row.name, row.symbol, format(row.amount, "f"), price, value)

    return table


def print_portfolio(snapshot: PortfolioSnapshot) -> None:
    if not snapshot.holdings:
        console.print("Portfolio is empty. Add a holding with [bold]add COIN_ID AMOUNT[/bold].")
        return

    console.print(render_portfolio(snapshot))
    console.print(f"[bold]Total Portfolio Value:[/bold] [green]${snapshot.total_value}[/green]")

    missing = len(snapshot.holdings) - snapshot.priced_count
    if missing:
        console.print(f"[yellow]{missing} holding(s) have no price yet.[/yellow]")


@click.group()
@click.version_option(__version__, prog_name="crypto-tracker")
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.option('--config-dir', type=click.Path(file_okay=False, path_type=Path),
              help='Directory with config.yaml overrides')
@click.option('--db', 'db_path', type=click.Path(dir_okay=False, path_type=Path),
              help='Portfolio database path')
@click.pass_context
def main(ctx: click.Context, debug: bool, verbose: bool,
         config_dir: Optional[Path], db_path: Optional[Path]) -> None:
    """
    Crypto Portfolio Tracker - cached USD valuation of cryptocurrency holdings.

    Prices come from CoinGecko and are served from a local cache that is
    refreshed in the background.
    """
    ctx.obj = CLIState(debug=debug, verbose=verbose, config_dir=config_dir, db_path=db_path)


@main.command(name='show')
@click.option('--refresh/--no-refresh', default=True,
              help='Repair stale prices in the background after showing')
@click.option('--json', 'as_json', is_flag=True, help='Print the portfolio as JSON')
@click.pass_obj
def show_portfolio(state: CLIState, refresh: bool, as_json: bool) -> None:
    """Show holdings valued at cached prices."""
    snapshot = run_with_tracker(state, lambda t: t.get_portfolio_view(reconcile=refresh))

    if as_json:
        click.echo(json.dumps(snapshot.to_dict(), indent=2))
    else:
        print_portfolio(snapshot)


@main.command(name='price')
@click.argument('coin_id')
@click.option('--json', 'as_json', is_flag=True, help='Print the price as JSON')
@click.pass_obj
def show_price(state: CLIState, coin_id: str, as_json: bool) -> None:
    """Show the cached price of a held coin."""
    valuation = run_with_tracker(state, lambda t: t.get_price(coin_id))

    if valuation is None:
        raise click.ClickException(
            f"No fresh price for '{coin_id}'. It is not held or not refreshed yet.")

    if as_json:
        click.echo(json.dumps(valuation.to_dict(), indent=2))
        return

    console.print(f"[cyan]{valuation.coin_id}[/cyan]: ${format_price(valuation.price)}"
                  f" (holding value ${valuation.value})")


@main.command(name='add')
@click.argument('coin_id')
@click.argument('amount')
@click.pass_obj
def add_holding(state: CLIState, coin_id: str, amount: str) -> None:
    """Add AMOUNT of COIN_ID (a CoinGecko id such as 'bitcoin')."""
    holdings = run_with_tracker(state, lambda t: t.add_holding(coin_id, amount))

    coin_id = normalize_coin_id(coin_id)
    total = next((h.amount for h in holdings if h.coin_id == coin_id), None)
    console.print(f"[green]✓[/green] Added {amount} {coin_id} to portfolio"
                  f" (now holding {format(total, 'f')})")


@main.command(name='remove')
@click.argument('coin_id')
@click.pass_obj
def remove_holding(state: CLIState, coin_id: str) -> None:
    """Remove COIN_ID from the portfolio."""
    run_with_tracker(state, lambda t: t.remove_holding(coin_id))
    console.print(f"[green]✓[/green] Removed {normalize_coin_id(coin_id)} from portfolio")


@main.command(name='refresh')
@click.pass_obj
def refresh_prices(state: CLIState) -> None:
    """Refresh every held coin's price now and show the portfolio."""
    async def operation(tracker: PortfolioTracker):
        refreshed = await tracker.refresh_now()
        return refreshed, await tracker.get_portfolio_view(reconcile=False)

    refreshed, snapshot = run_with_tracker(state, operation)

    if not refreshed and snapshot.holdings:
        console.print("[yellow]Prices could not be refreshed; showing cached values.[/yellow]")
    print_portfolio(snapshot)


@main.command(name='watch')
@click.option('--interval', type=click.FloatRange(min=1.0), default=None,
              help='Seconds between redraws (defaults to the refresh interval)')
@click.option('--iterations', type=click.IntRange(min=0), default=0,
              help='Stop after this many redraws (0 runs until interrupted)')
@click.pass_obj
def watch_portfolio(state: CLIState, interval: Optional[float], iterations: int) -> None:
    """Keep prices refreshed and reprint the portfolio periodically."""
    async def operation(tracker: PortfolioTracker):
        delay = interval or tracker.settings.refresh_interval
        count = 0
        while True:
            snapshot = await tracker.get_portfolio_view()
            print_portfolio(snapshot)
            count += 1
            if iterations and count >= iterations:
                return
            await asyncio.sleep(delay)

    try:
        run_with_tracker(state, operation, run_scheduler=True)
    except KeyboardInterrupt:
        console.print("Stopped watching.")


if __name__ == '__main__':
    main()
