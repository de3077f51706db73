"""
Live comment synchronization for one report

The engine never applies change payloads. Any notification for the report
(insert, update or delete alike) triggers a full refetch that replaces the
local list, so ordering, duplicate delivery and partial payloads cannot
corrupt it.
"""

import logging
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from ecoreport.backend.base import (
    ChangeEvent,
    DataService,
    IdentityProvider,
    Ordering,
    StoreError,
    Subscription,
)
from ecoreport.core.constants import COMMENTS_TABLE
from ecoreport.core.exceptions import FetchFailed, Stage, SubmissionError, ValidationFailed
from ecoreport.crowdsource.models import Comment
from ecoreport.crowdsource.session import require_identity

logger = logging.getLogger(__name__)

OLDEST_FIRST = Ordering(column="created_at", descending=False)

CommentsListener = Callable[[List[Comment]], Awaitable[None]]


class SyncState(str, Enum):
    """Lifecycle of a report view's comment list."""
    IDLE = "idle"
    SUBSCRIBED = "subscribed"
    RECONCILING = "reconciling"
    UNSUBSCRIBED = "unsubscribed"


class CommentSyncEngine:
    """
    Ordered comment list for one report, kept in step with the change feed.

    One engine per open report view. The engine owns at most one
    subscription; leaving the view (``close`` or the end of an
    ``async with`` block, including on error) releases it.

    Usage:
        async with CommentSyncEngine(service, report_id) as view:
            view.comments
            await view.add_comment(session, "Still there today")

    Refetches may overlap. The most recently started one wins; results of
    older refetches, and of any refetch finishing after the view closed,
    are discarded.
    """

    def __init__(
        self,
        service: DataService,
        report_id: str,
        on_update: Optional[CommentsListener] = None
    ):
        """
        Initialize engine.

        Args:
            service: Data service holding the comments
            report_id: Report whose comments are shown
            on_update: Awaited with the new list after every applied refetch
        """
        if not report_id:
            raise ValueError("report_id is required")

        self.service = service
        self.report_id = str(report_id)
        self.on_update = on_update

        self.state = SyncState.IDLE
        self._comments: List[Comment] = []
        self._subscription: Optional[Subscription] = None
        self._session = 0
        self._started = 0
        self._applied = 0
        self._in_flight = 0
        self.refetch_count = 0

    async def __aenter__(self) -> "CommentSyncEngine":
        await self.open()
        return self

    async def __aexit__(self, *args) -> None:
        self.close()

    @property
    def comments(self) -> List[Comment]:
        return list(self._comments)

    @property
    def is_open(self) -> bool:
        return self._subscription is not None

    async def open(self) -> List[Comment]:
        """
        Enter the view: fetch the full list, then subscribe to its changes.

        Calling ``open`` on an already open engine does nothing. If the view
        is closed while the first fetch is in flight, nothing is subscribed.

        Raises:
            FetchFailed: Initial fetch failed; nothing is subscribed
        """
        if self._subscription is not None:
            return self.comments

        self._session += 1
        session = self._session
        self.state = SyncState.IDLE
        await self._reconcile()

        if session != self._session:
            logger.debug(f"Comment view for report {self.report_id} closed while opening")
            return self.comments

        self._subscription = self.service.changes.subscribe(
            COMMENTS_TABLE,
            {"report_id": self.report_id},
            self._on_change,
        )
        self.state = SyncState.SUBSCRIBED
        logger.info(f"Comment view opened for report {self.report_id} ({len(self._comments)} comments)")
        return self.comments

    def close(self) -> None:
        """Leave the view and release the subscription. Idempotent."""
        self._session += 1
        if self._subscription is not None:
            self.service.changes.unsubscribe(self._subscription)
            self._subscription = None
            logger.info(f"Comment view closed for report {self.report_id}")
        self.state = SyncState.UNSUBSCRIBED

    async def refresh(self) -> List[Comment]:
        """
        Refetch and replace the local list.

        Raises:
            FetchFailed: The store could not be read
        """
        return await self._reconcile()

    async def add_comment(self, identity_provider: IdentityProvider, text: str) -> Comment:
        """
        Post a comment, then refetch.

        The new comment is not spliced into the local list; it appears once
        the refetch returns it with its server-assigned id and timestamp.

        Args:
            identity_provider: Session to act as (re-read now)
            text: Comment text

        Returns:
            The stored comment

        Raises:
            ValidationFailed: Empty or whitespace-only text; nothing was sent
            Unauthenticated: No current identity
            SubmissionError: The insert was rejected, or the stored row could
                not be read back (``partial`` is then True)
        """
        body = (text or "").strip()
        if not body:
            raise ValidationFailed("Comment text is required")

        identity = await require_identity(identity_provider)

        try:
            row = await self.service.store.insert(
                COMMENTS_TABLE,
                {"report_id": self.report_id, "user_id": identity.id, "text": body},
            )
        except StoreError as e:
            logger.error(f"Error adding comment to report {self.report_id}: {e}")
            raise SubmissionError(f"Failed to add comment: {e}", stage=Stage.PERSIST) from e

        await self._reconcile_quietly()

        try:
            return Comment.from_record(row)
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Comment stored on report {self.report_id} but the store returned {row!r}: {e}")
            error = SubmissionError(f"Unexpected record returned by the store: {e}", stage=Stage.PERSIST)
            error.partial = True
            raise error from e

    async def _on_change(self, event: ChangeEvent) -> None:
        logger.debug(f"Comment change ({event.event_type}) on report {self.report_id}")
        await self._reconcile_quietly()

    async def _reconcile_quietly(self) -> None:
        try:
            await self._reconcile()
        except FetchFailed as e:
            logger.error(f"Comment refetch failed for report {self.report_id}: {e}")

    async def _reconcile(self) -> List[Comment]:
        if self.state == SyncState.UNSUBSCRIBED:
            return self.comments

        session = self._session
        self._started += 1
        generation = self._started
        self._in_flight += 1
        if self.state == SyncState.SUBSCRIBED:
            self.state = SyncState.RECONCILING

        try:
            rows = await self.service.store.select(
                COMMENTS_TABLE, {"report_id": self.report_id}, OLDEST_FIRST
            )
        except StoreError as e:
            raise FetchFailed(f"Failed to load comments: {e}") from e
        finally:
            self._in_flight -= 1
            if self._in_flight == 0 and self.state == SyncState.RECONCILING:
                self.state = SyncState.SUBSCRIBED

        self.refetch_count += 1

        if session != self._session or self.state == SyncState.UNSUBSCRIBED:
            logger.debug(f"Discarding comment refetch for closed view of report {self.report_id}")
            return self.comments

        if generation < self._applied:
            logger.debug(f"Discarding stale comment refetch {generation} < {self._applied}")
            return self.comments

        comments = []
        for row in rows:
            try:
                comments.append(Comment.from_record(row))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed comment row {row.get('id')}: {e}")

        self._applied = generation
        self._comments = comments
        await self._notify()
        return self.comments

    async def _notify(self) -> None:
        if self.on_update is None:
            return
        try:
            await self.on_update(self.comments)
        except Exception as e:
            logger.error(f"Comment listener failed for report {self.report_id}: {e}")
