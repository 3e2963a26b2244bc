"""CLI for FitFlow operations using Typer."""

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from .exceptions import FitFlowError
from .utils import parse_timestamp, setup_logging

# Load .env from project directory only
_env_path = Path(__file__).parent.parent / ".env"
load_dotenv(_env_path, override=False)

# CLI styles
STYLE_HEADER = "bold blue"
STYLE_SUCCESS = "bold green"
STYLE_WARNING = "bold yellow"
STYLE_ERROR = "bold red"

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="fitflow",
    help="FitFlow - subscription box operations.",
    add_completion=False,
)
console = Console()


def _run(coro):
    """Run a coroutine and dispose the engine afterwards."""
    from .db.session import engine

    async def _wrapped():
        try:
            return await coro
        finally:
            await engine.dispose()

    try:
        return asyncio.run(_wrapped())
    except FitFlowError as e:
        console.print(f"[{STYLE_ERROR}]{e.message}[/{STYLE_ERROR}]")
        raise typer.Exit(1)


@app.command("generate-orders")
def generate_orders(
    cycle_id: Annotated[
        Optional[int], typer.Option(help="Cycle to generate for (default: earliest due upcoming cycle)")
    ] = None,
    verbose: Annotated[bool, typer.Option(help="Verbose output")] = False,
):
    """
    Generate subscription orders for a delivery cycle.

    Safe to rerun: subscriptions that already have an order in the cycle are skipped.
    """
    from .db.session import async_session_factory
    from .services.cycle_service import generate_orders_for_active_cycle, generate_orders_for_cycle

    setup_logging(verbose)

    async def _generate():
        async with async_session_factory() as db:
            if cycle_id is not None:
                return await generate_orders_for_cycle(db, cycle_id)
            return await generate_orders_for_active_cycle(db)

    console.print(f"[{STYLE_HEADER}]Generating orders...[/{STYLE_HEADER}]")
    result = _run(_generate())

    if result.cycle_id is None:
        console.print(f"[{STYLE_WARNING}]{result.message}[/{STYLE_WARNING}]")
        return

    console.print(f"Cycle {result.cycle_id} ({result.cycle_date})")
    console.print(f"  generated: {result.generated}")
    console.print(f"  skipped:   {result.skipped}")
    console.print(f"  excluded:  {result.excluded}")
    if result.errors:
        console.print(f"[{STYLE_ERROR}]  errors:    {result.errors}[/{STYLE_ERROR}]")
        for detail in result.error_details:
            console.print(f"    {detail}")
        raise typer.Exit(1)
    console.print(f"[{STYLE_SUCCESS}]Done.[/{STYLE_SUCCESS}]")


@app.command("expire-preorders")
def expire_preorders(
    now: Annotated[
        Optional[str], typer.Option(help="Evaluate expiry as of this ISO timestamp (default: now)")
    ] = None,
    verbose: Annotated[bool, typer.Option(help="Verbose output")] = False,
):
    """Flip pending preorders whose conversion link has lapsed to expired."""
    from .db.session import async_session_factory
    from .services.preorder_service import expire_stale_preorders

    setup_logging(verbose)

    as_of = parse_timestamp(now)
    if now and as_of is None:
        console.print(f"[{STYLE_ERROR}]Invalid timestamp: {now}[/{STYLE_ERROR}]")
        raise typer.Exit(2)

    async def _expire():
        async with async_session_factory() as db:
            return await expire_stale_preorders(db, as_of)

    count = _run(_expire())
    console.print(f"[{STYLE_SUCCESS}]Expired {count} preorders.[/{STYLE_SUCCESS}]")


@app.command()
def quote(
    box_type: Annotated[str, typer.Argument(help="Box type id, e.g. monthly-standard")],
    promo: Annotated[Optional[str], typer.Option(help="Promo code to apply")] = None,
):
    """Show the EUR/BGN price of a box, optionally with a promo code."""
    from .db.session import async_session_factory
    from .services.pricing_service import calculate_price

    async def _quote():
        async with async_session_factory() as db:
            return await calculate_price(db, box_type, promo)

    price = _run(_quote())

    table = Table(title=f"{box_type}")
    table.add_column("", style="bold")
    table.add_column("EUR", justify="right")
    table.add_column("BGN", justify="right")
    table.add_row("Original", str(price.original_price_eur), str(price.original_price_bgn))
    table.add_row(
        f"Discount ({price.discount_percent}%)",
        str(price.discount_amount_eur),
        str(price.discount_amount_bgn),
    )
    table.add_row("Final", str(price.final_price_eur), str(price.final_price_bgn))
    console.print(table)

    if promo and not price.promo_code:
        console.print(f"[{STYLE_WARNING}]Promo code '{promo}' is not valid; no discount applied.[/{STYLE_WARNING}]")


@app.command()
def seed():
    """Create the box catalog, launch promo codes, BGN rate and the next delivery cycle."""
    from .db.session import async_session_factory, engine
    from .models import Base
    from .seed import seed_catalog

    setup_logging()

    async def _seed():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with async_session_factory() as db:
            return await seed_catalog(db)

    created = _run(_seed())
    for kind, count in created.items():
        console.print(f"  {kind:<16} {count} created")
    console.print(f"[{STYLE_SUCCESS}]Seed complete.[/{STYLE_SUCCESS}]")


if __name__ == "__main__":
    app()
