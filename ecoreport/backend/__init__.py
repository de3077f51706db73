"""
EcoReport - Data Service Module
Interfaces and adapters for storage, records, change notification and identity.
"""

import logging
from typing import Optional

from ecoreport.backend.base import (
    DataService,
    DataServiceError,
    StorageError,
    StoreError,
    IdentityError,
    Identity,
    Ordering,
    ChangeEvent,
    Subscription,
    ObjectStorage,
    StructuredStore,
    ChangeFeed,
    IdentityProvider,
)
from ecoreport.backend.changes import LocalChangeFeed
from ecoreport.backend.identity import SessionIdentityProvider, RemoteIdentityProvider
from ecoreport.backend.memory import (
    MemoryObjectStorage,
    MemoryStore,
    create_memory_service,
)
from ecoreport.backend.sql_store import SqlStore
from ecoreport.backend.storage import HttpObjectStorage
from ecoreport.core.config import Settings, settings as default_settings
from ecoreport.database.connection import DatabaseConnection

logger = logging.getLogger(__name__)


def build_data_service(
    config: Optional[Settings] = None,
    db: Optional[DatabaseConnection] = None
) -> DataService:
    """
    Build the data service described by the settings.

    Records go to the SQL database; photos go to the remote bucket when
    ``supabase_url``/``supabase_key`` are set. Without them photos are kept
    in memory, which is refused in production.

    Args:
        config: Settings (defaults to the global settings)
        db: Existing database connection

    Returns:
        DataService sharing one change feed between store and subscribers
    """
    config = config or default_settings

    if db is None:
        db = DatabaseConnection(database_url=config.database_url)
        db.create_tables()

    changes = LocalChangeFeed()
    store = SqlStore(db, changes=changes)

    if config.has_remote_service:
        storage = HttpObjectStorage(
            base_url=config.supabase_url,
            api_key=config.supabase_key,
            bucket=config.storage_bucket,
            timeout=config.http_timeout_seconds,
        )
    elif config.is_production:
        raise RuntimeError(
            "Object storage configuration missing.\n"
            "Required env vars:\n"
            "- SUPABASE_URL\n"
            "- SUPABASE_KEY"
        )
    else:
        logger.warning("Object storage not configured; photos are kept in memory")
        storage = MemoryObjectStorage(bucket=config.storage_bucket)

    return DataService(storage=storage, store=store, changes=changes)


__all__ = [
    "DataService",
    "DataServiceError",
    "StorageError",
    "StoreError",
    "IdentityError",
    "Identity",
    "Ordering",
    "ChangeEvent",
    "Subscription",
    "ObjectStorage",
    "StructuredStore",
    "ChangeFeed",
    "IdentityProvider",
    "LocalChangeFeed",
    "SessionIdentityProvider",
    "RemoteIdentityProvider",
    "MemoryObjectStorage",
    "MemoryStore",
    "create_memory_service",
    "SqlStore",
    "HttpObjectStorage",
    "build_data_service",
]
