import click

from ims.infrastructure.bootstrap import init_database
from ims.infrastructure.cli.inventory_commands import inventory_provision, inventory_show
from ims.infrastructure.cli.outbox_commands import outbox_list, outbox_replay, outbox_stats
from ims.infrastructure.cli.relay_commands import relay_run
from ims.infrastructure.cli.stock_commands import stock_release, stock_reserve
from ims.infrastructure.logging_config import setup_logging
from ims.infrastructure.settings import get_settings


@click.group()
@click.option("--log-level", default=None, help="Override IMS_LOG_LEVEL.")
@click.option("--log-json", is_flag=True, help="Emit JSON log lines.")
def cli(log_level: str | None, log_json: bool) -> None:
    """IMS — Inventory reservations with a transactional outbox"""
    settings = get_settings()
    setup_logging(
        level=log_level or settings.log_level,
        json_format=log_json or settings.log_json,
    )


@cli.group()
def db() -> None:
    """Manage the database."""


@db.command("init")
def db_init() -> None:
    """Create tables if they do not exist."""
    init_database()
    click.echo("Database schema ready.")


@cli.group()
def inventory() -> None:
    """Manage inventory items."""


@cli.group()
def stock() -> None:
    """Reserve and release stock."""


@cli.group()
def outbox() -> None:
    """Inspect and replay outbox messages."""


@cli.group()
def relay() -> None:
    """Run the outbox relay."""


# Register subcommands
inventory.add_command(inventory_provision)
inventory.add_command(inventory_show)
stock.add_command(stock_reserve)
stock.add_command(stock_release)
outbox.add_command(outbox_list)
outbox.add_command(outbox_replay)
outbox.add_command(outbox_stats)
relay.add_command(relay_run)
