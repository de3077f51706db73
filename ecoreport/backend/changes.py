"""
In-process change feed

Delivers change notifications from a structured store to subscribers in the
same event loop. Stores call ``publish`` after every successful write.
"""

import logging
from typing import Any, Dict, List, Optional

from ecoreport.backend.base import (
    ChangeCallback,
    ChangeEvent,
    ChangeFeed,
    Subscription,
    matches,
)
from ecoreport.core.constants import CHANGE_EVENTS

logger = logging.getLogger(__name__)


class LocalChangeFeed(ChangeFeed):
    """
    Change feed backed by a subscription registry.

    Subscribers are awaited one after another in registration order. A
    subscriber that raises is logged and does not affect the publisher or
    the remaining subscribers.
    """

    def __init__(self):
        self._subscriptions: Dict[int, Subscription] = {}
        self._published = 0

    def subscribe(
        self,
        table: str,
        filters: Optional[Dict[str, Any]],
        callback: ChangeCallback
    ) -> Subscription:
        subscription = Subscription(table=table, filters=dict(filters or {}), callback=callback)
        self._subscriptions[subscription.id] = subscription
        logger.debug(f"Subscription {subscription.id} opened on {table} {subscription.filters}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.active = False
        if self._subscriptions.pop(subscription.id, None) is not None:
            logger.debug(f"Subscription {subscription.id} closed on {subscription.table}")

    def active_subscriptions(self, table: Optional[str] = None) -> List[Subscription]:
        return [
            s for s in self._subscriptions.values()
            if table is None or s.table == table
        ]

    async def publish(
        self,
        table: str,
        event_type: str,
        record: Optional[Dict[str, Any]] = None
    ) -> int:
        """
        Notify subscribers of a change.

        Args:
            table: Table that changed
            event_type: INSERT, UPDATE or DELETE
            record: New row (old row for DELETE)

        Returns:
            Number of subscribers notified
        """
        if event_type not in CHANGE_EVENTS:
            raise ValueError(f"Unknown change event: {event_type}")

        event = ChangeEvent(table=table, event_type=event_type, record=record)
        targets = [
            s for s in list(self._subscriptions.values())
            if s.table == table and matches(record, s.filters)
        ]
        self._published += 1

        delivered = 0
        for subscription in targets:
            if not subscription.active:
                continue
            try:
                await subscription.callback(event)
                delivered += 1
            except Exception as e:
                logger.error(f"Subscriber {subscription.id} failed on {table} {event_type}: {e}")

        return delivered

    def get_statistics(self) -> Dict[str, Any]:
        """Get feed statistics."""
        by_table: Dict[str, int] = {}
        for subscription in self._subscriptions.values():
            by_table[subscription.table] = by_table.get(subscription.table, 0) + 1

        return {
            "active_subscriptions": len(self._subscriptions),
            "by_table": by_table,
            "published_events": self._published,
        }
