"""CLI commands for reserving and releasing stock."""

from __future__ import annotations

import uuid

import click

from ims.application.dto import ReservationResultDTO
from ims.application.release_stock import ReleaseStockCommand, ReleaseStockHandler
from ims.application.reserve_stock import ReserveStockCommand, ReserveStockHandler
from ims.domain.exceptions import DomainException, InfrastructureError
from ims.infrastructure.bootstrap import unit_of_work_factory
from ims.infrastructure.settings import get_settings


def _display_result(verb: str, dto: ReservationResultDTO) -> None:
    suffix = "  (already applied, nothing changed)" if dto.no_op else ""
    click.echo(f"{verb} {dto.quantity} x {dto.item.item_id} [{dto.reservation_id}]{suffix}")
    click.echo(
        f"  total={dto.item.total} reserved={dto.item.reserved} "
        f"available={dto.item.available} version={dto.item.version}"
    )


@click.command("reserve")
@click.option("--item", "item_id", required=True, help="Inventory item id.")
@click.option("--quantity", required=True, type=int, help="Units to reserve.")
@click.option(
    "--reservation",
    "reservation_id",
    default=None,
    help="Idempotency key; generated when omitted.",
)
def stock_reserve(item_id: str, quantity: int, reservation_id: str | None) -> None:
    """Reserve stock on an item."""
    handler = ReserveStockHandler(
        unit_of_work_factory(), retry=get_settings().conflict_retry()
    )
    command = ReserveStockCommand(
        item_id=item_id,
        quantity=quantity,
        reservation_id=reservation_id or str(uuid.uuid4()),
    )

    try:
        dto = handler.handle(command)
    except (DomainException, InfrastructureError) as exc:
        raise click.ClickException(str(exc))

    _display_result("Reserved", dto)


@click.command("release")
@click.option("--item", "item_id", required=True, help="Inventory item id.")
@click.option("--reservation", "reservation_id", required=True, help="Reservation id.")
def stock_release(item_id: str, reservation_id: str) -> None:
    """Release a reservation."""
    handler = ReleaseStockHandler(
        unit_of_work_factory(), retry=get_settings().conflict_retry()
    )

    try:
        dto = handler.handle(
            ReleaseStockCommand(item_id=item_id, reservation_id=reservation_id)
        )
    except (DomainException, InfrastructureError) as exc:
        raise click.ClickException(str(exc))

    _display_result("Released", dto)
