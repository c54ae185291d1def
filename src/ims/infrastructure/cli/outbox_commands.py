"""CLI commands for operating the outbox."""

from __future__ import annotations

import click

from ims.application.list_outbox import (
    ListOutboxHandler,
    ListOutboxQuery,
    OutboxStatsHandler,
    OutboxStatsQuery,
)
from ims.application.replay_outbox import ReplayOutboxCommand, ReplayOutboxHandler
from ims.domain.exceptions import DomainException, InfrastructureError
from ims.infrastructure.bootstrap import unit_of_work_factory


@click.command("list")
@click.option(
    "--status",
    type=click.Choice(["pending", "published", "failed"], case_sensitive=False),
    default=None,
    help="Only show messages with this status.",
)
@click.option("--limit", default=50, show_default=True, type=int)
def outbox_list(status: str | None, limit: int) -> None:
    """List outbox messages in publication order."""
    handler = ListOutboxHandler(unit_of_work_factory())

    try:
        messages = handler.handle(ListOutboxQuery(status=status, limit=limit))
    except (DomainException, InfrastructureError) as exc:
        raise click.ClickException(str(exc))

    if not messages:
        click.echo("Outbox is empty.")
        return

    click.echo(
        f"{'Aggregate':<16} {'Seq':>5} {'Event':<16} {'Status':<10} {'Tries':>5}  Last error"
    )
    click.echo("-" * 80)
    for m in messages:
        click.echo(
            f"{m.aggregate_id:<16} {m.sequence:>5} {m.event_type:<16} "
            f"{m.status:<10} {m.attempt_count:>5}  {m.last_error or ''}"
        )


@click.command("replay")
@click.argument("aggregate_id")
@click.argument("sequence", type=int)
def outbox_replay(aggregate_id: str, sequence: int) -> None:
    """Requeue a FAILED message so the relay publishes it again."""
    handler = ReplayOutboxHandler(unit_of_work_factory())

    try:
        dto = handler.handle(ReplayOutboxCommand(aggregate_id=aggregate_id, sequence=sequence))
    except (DomainException, InfrastructureError) as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Message {dto.aggregate_id}#{dto.sequence} requeued (status={dto.status})")


@click.command("stats")
def outbox_stats() -> None:
    """Show how many messages are in each status."""
    handler = OutboxStatsHandler(unit_of_work_factory())

    try:
        counts = handler.handle(OutboxStatsQuery())
    except InfrastructureError as exc:
        raise click.ClickException(str(exc))

    for status, count in counts.items():
        click.echo(f"{status:<10} {count:>8}")
