"""SQL Unit of Work — one connection, one transaction.

The inventory and outbox repositories share the connection, so an item
update and the outbox rows it produced commit or roll back together.
"""

from __future__ import annotations

import logging

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from ims.domain.exceptions import PersistenceError
from ims.domain.repository.unit_of_work import UnitOfWork
from ims.infrastructure.persistence.sql_inventory_repository import (
    SqlInventoryRepository,
)
from ims.infrastructure.persistence.sql_outbox_repository import SqlOutboxRepository

logger = logging.getLogger(__name__)


class SqlUnitOfWork(UnitOfWork):

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._connection: Connection | None = None
        self._transaction = None

    def __enter__(self) -> SqlUnitOfWork:
        try:
            self._connection = self._engine.connect()
            self._transaction = self._connection.begin()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not open a database transaction: {exc}") from exc
        self.inventory = SqlInventoryRepository(self._connection)
        self.outbox = SqlOutboxRepository(self._connection)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            super().__exit__(exc_type, exc, tb)
        finally:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
        if isinstance(exc, SQLAlchemyError):
            raise PersistenceError(str(exc)) from exc

    def commit(self) -> None:
        if self._transaction is None:
            raise PersistenceError("Unit of work is not active")
        try:
            self._transaction.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Commit failed: {exc}") from exc

    def rollback(self) -> None:
        if self._transaction is not None and self._transaction.is_active:
            try:
                self._transaction.rollback()
            except SQLAlchemyError:
                logger.exception("Rollback failed")
        self._transaction = None
