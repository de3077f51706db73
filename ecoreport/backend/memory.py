"""
In-memory data service

Object storage, structured store and change feed kept in process memory.
Used for tests and local development; failure injection attributes let
callers simulate an unreachable or rejecting service.
"""

import copy
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from ecoreport.backend.base import (
    DataService,
    ObjectStorage,
    Ordering,
    StorageError,
    StoreError,
    StructuredStore,
    matches,
)
from ecoreport.backend.changes import LocalChangeFeed
from ecoreport.core.constants import CHANGE_INSERT, DEFAULT_BUCKET, TABLES

logger = logging.getLogger(__name__)


class MemoryObjectStorage(ObjectStorage):
    """
    Bucket held in a dict.

    Set ``put_error`` to make every ``put`` fail with that message.
    """

    def __init__(
        self,
        bucket: str = DEFAULT_BUCKET,
        public_base_url: str = "memory://storage"
    ):
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")
        self.objects: Dict[str, Dict[str, Any]] = {}
        self.put_error: Optional[str] = None
        self.put_calls = 0

    async def put(self, path: str, data: bytes, content_type: str) -> None:
        self.put_calls += 1
        if self.put_error:
            raise StorageError(self.put_error)
        if path in self.objects:
            raise StorageError(f"Object already exists: {path}")

        self.objects[path] = {"data": bytes(data), "content_type": content_type}
        logger.debug(f"Stored {len(data)} bytes at {self.bucket}/{path}")

    async def resolve_url(self, path: str) -> str:
        if path not in self.objects:
            raise StorageError(f"Object not found: {path}")
        return f"{self.public_base_url}/{self.bucket}/{path}"

    def exists(self, path: str) -> bool:
        return path in self.objects


class MemoryStore(StructuredStore):
    """
    Tables held as lists of dicts.

    Inserts get a UUID ``id`` and a strictly increasing ``created_at`` and are
    published to ``changes`` when a feed is attached. ``insert_errors`` maps
    table names to failure messages; ``select_error`` fails every read.
    """

    def __init__(
        self,
        changes: Optional[LocalChangeFeed] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.changes = changes
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.tables: Dict[str, List[Dict[str, Any]]] = {name: [] for name in TABLES}
        self.insert_errors: Dict[str, str] = {}
        self.select_error: Optional[str] = None
        self.insert_calls = 0
        self.select_calls = 0
        self._last_created: Optional[datetime] = None

    def _next_timestamp(self) -> datetime:
        now = self.clock()
        if self._last_created is not None and now <= self._last_created:
            now = self._last_created + timedelta(microseconds=1)
        self._last_created = now
        return now

    async def insert(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        self.insert_calls += 1
        if table in self.insert_errors:
            raise StoreError(self.insert_errors[table])
        if table not in self.tables:
            raise StoreError(f"Unknown table: {table}")

        row = copy.deepcopy(record)
        row["id"] = str(uuid.uuid4())
        row["created_at"] = self._next_timestamp()
        self.tables[table].append(row)

        if self.changes is not None:
            await self.changes.publish(table, CHANGE_INSERT, copy.deepcopy(row))

        return copy.deepcopy(row)

    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order: Optional[Ordering] = None
    ) -> List[Dict[str, Any]]:
        self.select_calls += 1
        if self.select_error:
            raise StoreError(self.select_error)
        if table not in self.tables:
            raise StoreError(f"Unknown table: {table}")

        rows = [copy.deepcopy(r) for r in self.tables[table] if matches(r, filters)]

        if order is not None:
            present = [r for r in rows if r.get(order.column) is not None]
            missing = [r for r in rows if r.get(order.column) is None]
            present.sort(key=lambda r: r[order.column], reverse=order.descending)
            rows = present + missing

        return rows

    async def count(self, table: str, filters: Optional[Dict[str, Any]] = None) -> int:
        if self.select_error:
            raise StoreError(self.select_error)
        if table not in self.tables:
            raise StoreError(f"Unknown table: {table}")
        return sum(1 for r in self.tables[table] if matches(r, filters))


def create_memory_service(
    bucket: str = DEFAULT_BUCKET,
    clock: Optional[Callable[[], datetime]] = None
) -> DataService:
    """
    Build a complete in-memory data service.

    Args:
        bucket: Object storage bucket name
        clock: Timestamp source for ``created_at``

    Returns:
        DataService whose store publishes to its change feed
    """
    changes = LocalChangeFeed()
    return DataService(
        storage=MemoryObjectStorage(bucket=bucket),
        store=MemoryStore(changes=changes, clock=clock),
        changes=changes,
    )
