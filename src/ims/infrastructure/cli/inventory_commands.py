"""CLI commands for inventory items."""

from __future__ import annotations

import click

from ims.application.provision_stock import ProvisionStockCommand, ProvisionStockHandler
from ims.application.show_inventory import ShowInventoryHandler, ShowInventoryQuery
from ims.domain.exceptions import DomainException, InfrastructureError
from ims.infrastructure.bootstrap import unit_of_work_factory


@click.command("provision")
@click.option("--item", "item_id", required=True, help="Inventory item id.")
@click.option("--sku", required=True, help="Product SKU.")
@click.option("--quantity", required=True, type=int, help="Total quantity in stock.")
def inventory_provision(item_id: str, sku: str, quantity: int) -> None:
    """Create an inventory item with its initial stock."""
    handler = ProvisionStockHandler(unit_of_work_factory())

    try:
        dto = handler.handle(
            ProvisionStockCommand(item_id=item_id, sku=sku, total_quantity=quantity)
        )
    except (DomainException, InfrastructureError) as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Item '{dto.item_id}' ({dto.sku}) provisioned with {dto.total} units")


@click.command("show")
@click.option("--item", "item_id", default=None, help="Show a single item.")
def inventory_show(item_id: str | None) -> None:
    """Show current inventory levels."""
    handler = ShowInventoryHandler(unit_of_work_factory())

    try:
        lines = handler.handle(ShowInventoryQuery(item_id=item_id))
    except (DomainException, InfrastructureError) as exc:
        raise click.ClickException(str(exc))

    if not lines:
        click.echo("No inventory records found.")
        return

    click.echo(
        f"{'Item':<16} {'SKU':<16} {'Total':>8} {'Reserved':>10} {'Available':>10} {'Ver':>5}"
    )
    click.echo("-" * 70)
    for line in lines:
        click.echo(
            f"{line.item_id:<16} {line.sku:<16} {line.total:>8} "
            f"{line.reserved:>10} {line.available:>10} {line.version:>5}"
        )
