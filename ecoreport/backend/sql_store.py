"""
SQLAlchemy structured store

Implements the structured-store contract over DatabaseConnection. Blocking
session work runs in a worker thread so callers stay on the event loop.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from ecoreport.backend.base import Ordering, StoreError, StructuredStore
from ecoreport.backend.changes import LocalChangeFeed
from ecoreport.core.constants import CHANGE_INSERT
from ecoreport.database.connection import DatabaseConnection
from ecoreport.database.models import MODELS

logger = logging.getLogger(__name__)


class SqlStore(StructuredStore):
    """
    Structured store backed by a relational database.

    Successful inserts are published to ``changes`` when a feed is attached,
    which is how comment views in the same process learn about new rows.
    """

    def __init__(
        self,
        db: DatabaseConnection,
        changes: Optional[LocalChangeFeed] = None
    ):
        self.db = db
        self.changes = changes

    def _model(self, table: str):
        model = MODELS.get(table)
        if model is None:
            raise StoreError(f"Unknown table: {table}")
        return model

    def _conditions(self, model, filters: Optional[Dict[str, Any]]) -> list:
        conditions = []
        for column, value in (filters or {}).items():
            attr = getattr(model, column, None)
            if attr is None:
                raise StoreError(f"Unknown column {model.__tablename__}.{column}")
            conditions.append(attr == value)
        return conditions

    async def insert(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        model = self._model(table)

        def _insert() -> Dict[str, Any]:
            with self.db.get_session() as session:
                row = model(**record)
                session.add(row)
                session.flush()
                return row.to_dict()

        try:
            row = await asyncio.to_thread(_insert)
        except (SQLAlchemyError, TypeError) as e:
            logger.error(f"Insert into {table} failed: {e}")
            raise StoreError(f"Insert into {table} failed: {e}") from e

        if self.changes is not None:
            await self.changes.publish(table, CHANGE_INSERT, dict(row))

        return row

    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order: Optional[Ordering] = None
    ) -> List[Dict[str, Any]]:
        model = self._model(table)
        statement = select(model).where(*self._conditions(model, filters))

        if order is not None:
            column = getattr(model, order.column, None)
            if column is None:
                raise StoreError(f"Unknown column {table}.{order.column}")
            statement = statement.order_by(column.desc() if order.descending else column.asc())

        def _select() -> List[Dict[str, Any]]:
            with self.db.get_session() as session:
                return [row.to_dict() for row in session.scalars(statement)]

        try:
            return await asyncio.to_thread(_select)
        except SQLAlchemyError as e:
            logger.error(f"Select from {table} failed: {e}")
            raise StoreError(f"Select from {table} failed: {e}") from e

    async def count(self, table: str, filters: Optional[Dict[str, Any]] = None) -> int:
        model = self._model(table)
        statement = select(func.count()).select_from(model).where(*self._conditions(model, filters))

        def _count() -> int:
            with self.db.get_session() as session:
                return int(session.execute(statement).scalar() or 0)

        try:
            return await asyncio.to_thread(_count)
        except SQLAlchemyError as e:
            logger.error(f"Count on {table} failed: {e}")
            raise StoreError(f"Count on {table} failed: {e}") from e
