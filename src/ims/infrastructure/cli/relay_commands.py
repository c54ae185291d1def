"""CLI command that runs the outbox relay."""

from __future__ import annotations

import logging
import signal
import threading

import click

from ims.domain.exceptions import InfrastructureError
from ims.infrastructure.bootstrap import relay_pool

logger = logging.getLogger(__name__)


@click.command("run")
@click.option("--once", is_flag=True, help="Drain one batch per worker and exit.")
@click.option("--workers", type=int, default=None, help="Override IMS_RELAY_WORKERS.")
def relay_run(once: bool, workers: int | None) -> None:
    """Publish pending outbox messages to the broker."""
    try:
        pool = relay_pool(workers=workers)
    except ValueError as exc:
        raise click.ClickException(str(exc))

    if once:
        try:
            report = pool.drain_once()
        except InfrastructureError as exc:
            raise click.ClickException(str(exc))
        click.echo(
            f"published={report.published} duplicates={report.skipped_duplicates} "
            f"failed={report.failed_attempts} quarantined={report.quarantined} "
            f"unmarked={report.unmarked}"
        )
        return

    stop_event = threading.Event()

    def _stop(signum, frame) -> None:
        logger.info("Received signal %d, stopping relay", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)
    pool.run_forever(stop_event)
