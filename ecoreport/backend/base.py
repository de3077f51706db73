"""
Data service interfaces for EcoReport

The core delegates persistence, object storage, change notification and
identity to an external data service. Each concern is an abstract class so
the in-memory service, the SQL store and the HTTP adapters are
interchangeable.
"""

import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class DataServiceError(Exception):
    """Raised by data service adapters."""


class StorageError(DataServiceError):
    """Object storage rejected or failed an operation."""


class StoreError(DataServiceError):
    """Structured store rejected or failed an operation."""


class IdentityError(DataServiceError):
    """The identity provider could not be reached."""


@dataclass(frozen=True)
class Identity:
    """Authenticated identity as reported by the identity provider."""
    id: str
    display_name: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class Ordering:
    """Sort order for ``select``."""
    column: str
    descending: bool = False


@dataclass
class ChangeEvent:
    """
    Notification delivered by a change feed.

    ``record`` is whatever the transport delivered; subscribers in the core
    never rely on it.
    """
    table: str
    event_type: str
    record: Optional[Dict[str, Any]] = None
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


ChangeCallback = Callable[[ChangeEvent], Awaitable[None]]
IdentityCallback = Callable[[Optional[Identity]], Any]

_subscription_ids = itertools.count(1)


@dataclass(eq=False)
class Subscription:
    """Handle returned by ``ChangeFeed.subscribe``."""
    table: str
    filters: Dict[str, Any]
    callback: ChangeCallback
    id: int = field(default_factory=lambda: next(_subscription_ids))
    active: bool = True


def matches(record: Optional[Dict[str, Any]], filters: Optional[Dict[str, Any]]) -> bool:
    """Equality match of a record against column filters."""
    if not filters:
        return True
    if record is None:
        return False
    return all(record.get(column) == value for column, value in filters.items())


class ObjectStorage(ABC):
    """Binary object storage (one bucket)."""

    @abstractmethod
    async def put(self, path: str, data: bytes, content_type: str) -> None:
        """Store ``data`` under ``path``. Raises StorageError."""

    @abstractmethod
    async def resolve_url(self, path: str) -> str:
        """Durable URL for a stored object. Raises StorageError."""


class StructuredStore(ABC):
    """Table-oriented record store."""

    @abstractmethod
    async def insert(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a record and return it with server-assigned fields."""

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order: Optional[Ordering] = None
    ) -> List[Dict[str, Any]]:
        """Return all records matching ``filters`` in ``order``."""

    @abstractmethod
    async def count(self, table: str, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count records matching ``filters``."""


class ChangeFeed(ABC):
    """Live change notifications scoped by table and column filters."""

    @abstractmethod
    def subscribe(
        self,
        table: str,
        filters: Optional[Dict[str, Any]],
        callback: ChangeCallback
    ) -> Subscription:
        """Start delivering matching changes to ``callback``."""

    @abstractmethod
    def unsubscribe(self, subscription: Subscription) -> None:
        """Stop delivery. Idempotent."""

    @abstractmethod
    def active_subscriptions(self, table: Optional[str] = None) -> List[Subscription]:
        """Currently active subscriptions, optionally for one table."""


class IdentityProvider(ABC):
    """Source of the current identity."""

    @abstractmethod
    async def current_identity(self) -> Optional[Identity]:
        """Re-read the current identity. None when signed out."""

    @abstractmethod
    def on_identity_change(self, callback: IdentityCallback) -> Callable[[], None]:
        """Register a transition listener. Returns a function that removes it."""


@dataclass
class DataService:
    """The three shared collaborators the core talks to."""
    storage: ObjectStorage
    store: StructuredStore
    changes: ChangeFeed
