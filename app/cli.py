"""
Credits admin CLI

Operates directly on the configured database, for support and local
development.

Usage:
    credits serve                         - Start the API server
    credits init-db                       - Create tables
    credits balance PRINCIPAL             - Show remaining credits
    credits award PRINCIPAL PAYMENT_REF   - Credit a payment (idempotent)
    credits history PRINCIPAL             - List credited payments
    credits token PRINCIPAL               - Issue a dev session token
"""
import asyncio
import subprocess
import sys
from typing import Awaitable, Callable, TypeVar

import click
from rich.console import Console
from rich.table import Table

from app import __version__
from app.auth.session_token import create_session_token
from app.config import get_settings
from app.database import Database
from app.models import CreditSource
from app.services.ledger import CreditLedger, LedgerUnavailable

console = Console()

T = TypeVar("T")


def run_with_ledger(fn: Callable[[CreditLedger], Awaitable[T]]) -> T:
    """Open the database, run ``fn`` against a ledger, close the database."""
    settings = get_settings()

    async def _run() -> T:
        db = Database(settings.DATABASE_URL)
        db.open()
        try:
            await db.create_all()
            return await fn(CreditLedger(db, default_count=settings.CREDITS_PER_PURCHASE))
        finally:
            await db.close()

    try:
        return asyncio.run(_run())
    except LedgerUnavailable as e:
        console.print(f"[red]✗ {e}[/red]")
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="Review Generator Credits")
def main():
    """Premium credit ledger administration."""


@main.command()
@click.option("--port", default=8000, help="Port to run server on")
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(port: int, reload: bool):
    """Start the API server."""
    cmd = [sys.executable, "-m", "uvicorn", "app.main:app", f"--port={port}"]
    if reload:
        cmd.append("--reload")
    console.print(f"[green]Serving on http://localhost:{port}[/green]")
    subprocess.run(cmd)


@main.command("init-db")
def init_db():
    """Create ledger tables."""

    async def _noop(ledger: CreditLedger) -> None:
        return None

    run_with_ledger(_noop)
    console.print("[green]✓ Tables ready[/green]")


@main.command()
@click.argument("principal")
def balance(principal: str):
    """Show remaining premium credits for PRINCIPAL."""
    remaining = run_with_ledger(lambda ledger: ledger.get_balance(principal))
    console.print(f"[bold]{principal}[/bold]: {remaining} credits")


@main.command()
@click.argument("principal")
@click.argument("payment_ref")
@click.option("--count", type=click.IntRange(min=1), default=None, help="Credits to award")
def award(principal: str, payment_ref: str, count: int | None):
    """Credit PAYMENT_REF to PRINCIPAL. A reference is only ever credited once."""

    async def _award(ledger: CreditLedger) -> tuple[bool, int]:
        credited = await ledger.award(principal, payment_ref, count=count, source=CreditSource.ADMIN)
        return credited, await ledger.get_balance(principal)

    credited, remaining = run_with_ledger(_award)
    if credited:
        console.print(f"[green]✓ Credited {payment_ref}[/green]")
    else:
        console.print(f"[yellow]⚠ {payment_ref} was already credited[/yellow]")
    console.print(f"[bold]{principal}[/bold]: {remaining} credits")


@main.command()
@click.argument("principal")
@click.option("--limit", default=20, help="Number of events to show")
def history(principal: str, limit: int):
    """List payments credited to PRINCIPAL."""
    events = run_with_ledger(lambda ledger: ledger.events_for(principal, limit=limit))

    if not events:
        console.print("[yellow]No credited payments[/yellow]")
        return

    table = Table(title=f"Credits for {principal}")
    table.add_column("Payment", style="cyan")
    table.add_column("Count", justify="right")
    table.add_column("Source")
    table.add_column("Awarded", style="dim")
    for event in events:
        awarded = event.awarded_at.isoformat() if event.awarded_at else "-"
        table.add_row(event.payment_ref, str(event.count), event.source, awarded)
    console.print(table)


@main.command()
@click.argument("principal")
def token(principal: str):
    """Issue a session token for PRINCIPAL (development only)."""
    settings = get_settings()
    if settings.is_production:
        console.print("[red]✗ Refusing to issue tokens in production[/red]")
        sys.exit(1)
    click.echo(create_session_token(principal, settings))


if __name__ == "__main__":
    main()
