"""
CLI interface for Grace Meter.

Provides command-line access to the billing engine over a SQLite database.
"""

import logging
import sys
from typing import Dict, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from grace_meter.config.loader import BillingConfig, default_config, load_billing_config
from grace_meter.core.aggregator import CategoryBill
from grace_meter.core.categories import Category, DomainCategorizer
from grace_meter.core.engine import BillingEngine
from grace_meter.core.errors import GraceMeterError
from grace_meter.core.pricing import format_cents
from grace_meter.processor.stripe_client import build_processor
from grace_meter.storage.db import DEFAULT_DB_PATH
from grace_meter.storage.kv import initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

DB_OPTION = typer.Option(DEFAULT_DB_PATH, "--db", help="Path to SQLite database")
CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to YAML billing config")
WEEK_END_OPTION = typer.Option(None, "--week-end", "-w", help="Local week-end date (YYYY-MM-DD)")
TZ_OPTION = typer.Option(0, "--tz-offset", "-t", help="Local time minus UTC, in minutes")


def _load_config(config_path: Optional[str]) -> BillingConfig:
    return load_billing_config(config_path) if config_path else default_config()


def _build_engine(db_path: str, config_path: Optional[str]) -> BillingEngine:
    """Open (and if needed create) the database and wire an engine to it."""
    config = _load_config(config_path)
    initialize_schema(db_path)
    processor = build_processor(config.processor.api_key, config.processor.timeout_seconds)
    return BillingEngine.from_sqlite(db_path, processor=processor, config=config)


def _fail(error: Exception) -> None:
    console.print(f"[red]Error:[/] {error}")
    sys.exit(EXIT_CODE_FAIL)


def _parse_pairs(values: List[str], option: str) -> Dict[str, float]:
    """Parse repeated CATEGORY=NUMBER options."""
    pairs = {}
    for value in values:
        name, sep, number = value.partition("=")
        if not sep:
            raise typer.BadParameter(f"{option} expects CATEGORY=NUMBER, got '{value}'")
        try:
            pairs[name.strip().lower()] = float(number)
        except ValueError:
            raise typer.BadParameter(f"{option} value for '{name}' must be a number")
    return pairs


def _bills_table(per_category: Dict[Category, CategoryBill]) -> Table:
    table = Table(show_header=True)
    table.add_column("Category")
    table.add_column("Billable min", justify="right")
    table.add_column("Cents/min", justify="right")
    table.add_column("Total", justify="right")
    for category, bill in per_category.items():
        table.add_row(
            category.value,
            str(bill.minutes),
            str(bill.cents_per_minute),
            format_cents(bill.cents_total),
        )
    return table


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")
):
    """Grace Meter CLI."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    if ctx.invoked_subcommand is None:
        console.print("Grace Meter - Use --help to see available commands")


@app.command()
def init(db: str = DB_OPTION):
    """Initialize the Grace Meter database."""
    try:
        initialize_schema(db)
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def categorize(host: str, config: Optional[str] = CONFIG_OPTION):
    """Show which category a hostname falls into."""
    try:
        categorizer = DomainCategorizer.from_seeds(_load_config(config).seeds())
    except (FileNotFoundError, ValueError) as e:
        _fail(e)
    category = categorizer.categorize(host)
    console.print(f"{host}: {category.value if category else 'none'}")


@app.command()
def track(
    user: str,
    domain: str,
    seconds: int,
    category: Optional[str] = typer.Option(None, "--category", help="Override the detected category"),
    ts: Optional[str] = typer.Option(None, "--ts", help="ISO-8601 timestamp of the usage"),
    db: str = DB_OPTION,
    config: Optional[str] = CONFIG_OPTION
):
    """Record seconds of usage on a domain."""
    try:
        engine = _build_engine(db, config)
        event = {"domain": domain, "seconds": seconds, "category": category, "ts": ts}
        result = engine.ingest_events(user, [event])
    except (GraceMeterError, FileNotFoundError, ValueError) as e:
        _fail(e)
    if result.rejected:
        _, reason = result.rejected[0]
        _fail(reason)
    console.print(f"[green]✓[/] Recorded {seconds}s on {domain} for {user}")


@app.command()
def consent(
    user: str,
    grace: Optional[int] = typer.Option(None, "--grace", help="Free minutes per day for every category"),
    rate: List[str] = typer.Option([], "--rate", help="CATEGORY=DOLLARS_PER_MINUTE, repeatable"),
    off: List[str] = typer.Option([], "--off", help="Category to stop billing, repeatable"),
    tos_hash: Optional[str] = typer.Option(None, "--tos-hash", help="Hash of the accepted terms"),
    db: str = DB_OPTION,
    config: Optional[str] = CONFIG_OPTION
):
    """Record a user's consent snapshot."""
    rates = _parse_pairs(rate, "--rate") or None
    categories_on = {name.strip().lower(): False for name in off} or None
    try:
        engine = _build_engine(db, config)
        engine.record_consent(
            user,
            grace=grace,
            rates=rates,
            categories_on=categories_on,
            tos_hash=tos_hash,
        )
    except (GraceMeterError, FileNotFoundError, ValueError) as e:
        _fail(e)
    console.print(f"[green]✓[/] Consent recorded for {user}")


@app.command()
def preview(
    user: str,
    week_end: Optional[str] = WEEK_END_OPTION,
    tz_offset: int = TZ_OPTION,
    db: str = DB_OPTION,
    config: Optional[str] = CONFIG_OPTION
):
    """Preview a week's settlement without charging."""
    try:
        engine = _build_engine(db, config)
        result = engine.preview_week(user, week_end, tz_offset)
    except (GraceMeterError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"\n[bold]Week {result.week_start} .. {result.week_end}[/bold]")
    console.print(_bills_table(result.per_category))
    console.print(f"Week total: {format_cents(result.total_cents)}")
    console.print(f"Rollover: {format_cents(result.rollover_cents)}")
    console.print(f"Would charge: {format_cents(result.would_charge_cents)}")
    console.print(f"Would carry: {format_cents(result.would_carry_cents)}")


@app.command()
def settle(
    user: str,
    week_end: Optional[str] = WEEK_END_OPTION,
    tz_offset: int = TZ_OPTION,
    payment_method: Optional[str] = typer.Option(None, "--payment-method", help="Processor payment method id"),
    db: str = DB_OPTION,
    config: Optional[str] = CONFIG_OPTION
):
    """Settle a week: carry it forward or charge it."""
    try:
        engine = _build_engine(db, config)
        result = engine.settle_week(user, week_end, tz_offset, payment_method)
    except (GraceMeterError, FileNotFoundError, ValueError) as e:
        _fail(e)

    settlement = result.settlement
    console.print(f"\n[bold]Week {result.week_start} .. {result.week_end}[/bold]")
    console.print(_bills_table(result.per_category))
    if settlement.charged:
        console.print(
            f"[green]Charged[/] {format_cents(settlement.charged)} "
            f"({settlement.external_charge_id}, {settlement.status})"
        )
    else:
        console.print(
            f"[yellow]Carried[/] {format_cents(settlement.carried_cents)} "
            f"({settlement.reason.value})"
        )


@app.command()
def today(user: str, db: str = DB_OPTION, config: Optional[str] = CONFIG_OPTION):
    """Show today's counters and busiest domains."""
    try:
        engine = _build_engine(db, config)
        snapshot = engine.today_snapshot(user)
    except (GraceMeterError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"\n[bold]{user} on {snapshot.day}[/bold]")
    if not snapshot.by_category:
        console.print("[dim]No usage recorded today.[/]")
        return
    for name, counter in snapshot.by_category.items():
        console.print(f"{name}: {counter.minutes} min {counter.leftover_seconds}s")
    table = Table(show_header=True)
    table.add_column("Domain")
    table.add_column("Seconds", justify="right")
    table.add_column("Category")
    for usage in snapshot.top_domains:
        table.add_row(usage.domain, str(usage.seconds), usage.category or "")
    console.print(table)


@app.command()
def dashboard(
    user: str,
    tz_offset: int = TZ_OPTION,
    db: str = DB_OPTION,
    config: Optional[str] = CONFIG_OPTION
):
    """Show this week's wallet and clean-day streaks."""
    try:
        engine = _build_engine(db, config)
        result = engine.dashboard(user, tz_offset)
    except (GraceMeterError, FileNotFoundError, ValueError) as e:
        _fail(e)

    wallet, streak = result.wallet, result.streak
    console.print(f"\n[bold]Wallet {wallet.week_start} .. {wallet.week_end}[/bold]")
    console.print(f"Week total: {format_cents(wallet.total_cents)}")
    console.print(f"Rollover: {format_cents(wallet.rollover_cents)}")
    console.print(f"Would charge: {format_cents(wallet.would_charge_cents)}")
    console.print(f"\n[bold]Streak[/bold]")
    console.print(f"Current streak: {streak.current_streak_days} days")
    console.print(f"Last streak: {streak.last_streak_days} days")
    console.print(f"Last break: {streak.last_break_day or '-'}")


if __name__ == "__main__":
    app()
