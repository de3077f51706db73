"""
Report feed queries

Fetches the full report collection newest first and filters it in the
client. Every view activation refetches everything; there is no incremental
patching and no pagination, which bounds this to modest report volumes.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from ecoreport.backend.base import DataService, IdentityProvider, Ordering, StoreError
from ecoreport.core.constants import REPORTS_TABLE
from ecoreport.core.exceptions import FetchFailed, ReportNotFound, ValidationFailed
from ecoreport.crowdsource.models import Report, ReportCategory
from ecoreport.crowdsource.session import require_identity

logger = logging.getLogger(__name__)

NEWEST_FIRST = Ordering(column="created_at", descending=True)


@dataclass
class FeedFilter:
    """Client-side feed filter."""
    text: Optional[str] = None
    category: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.text and self.text.strip()) and not self.category


def filter_reports(reports: Iterable[Report], feed_filter: Optional[FeedFilter] = None) -> List[Report]:
    """
    Apply a feed filter, keeping input order.

    ``text`` is a case-insensitive substring match on description or
    category; ``category`` must match exactly.

    Raises:
        ValidationFailed: ``category`` is not a known category
    """
    reports = list(reports)
    if feed_filter is None or feed_filter.is_empty:
        return reports

    if feed_filter.category:
        category = ReportCategory.parse(feed_filter.category)
        if category is None:
            raise ValidationFailed(f"Unknown category: {feed_filter.category!r}")
        reports = [r for r in reports if r.category == category.value]

    query = (feed_filter.text or "").strip().lower()
    if query:
        reports = [
            r for r in reports
            if query in (r.description or "").lower() or query in r.category.lower()
        ]

    return reports


class FeedQueryEngine:
    """
    Report listing for the feed and report detail views.

    Usage:
        feed = FeedQueryEngine(service)
        reports = await feed.activate()                 # view entered
        visible = feed.apply_filter(FeedFilter(text="plastic"))
    """

    def __init__(self, service: DataService):
        self.service = service
        self.reports: List[Report] = []

    async def list_reports(self, feed_filter: Optional[FeedFilter] = None) -> List[Report]:
        """
        Fetch all reports newest first and filter them.

        Args:
            feed_filter: Optional text/category filter

        Returns:
            Matching reports, newest first
        """
        reports = await self._fetch()
        return filter_reports(reports, feed_filter)

    async def activate(self, feed_filter: Optional[FeedFilter] = None) -> List[Report]:
        """Refetch everything on view (re-)entry and keep it for local filtering."""
        self.reports = await self._fetch()
        logger.info(f"Feed refreshed: {len(self.reports)} reports")
        return filter_reports(self.reports, feed_filter)

    def apply_filter(self, feed_filter: Optional[FeedFilter] = None) -> List[Report]:
        """Filter the last fetched set without a round trip."""
        return filter_reports(self.reports, feed_filter)

    async def get_report(self, report_id: str) -> Report:
        """
        Fetch one report.

        Raises:
            ReportNotFound: No report with that id
            FetchFailed: The store could not be read
        """
        reports = await self._fetch({"id": report_id})
        if not reports:
            raise ReportNotFound(f"Report {report_id} not found")
        return reports[0]

    async def list_my_reports(self, identity_provider: IdentityProvider) -> List[Report]:
        """Reports authored by the current identity, newest first."""
        identity = await require_identity(identity_provider)
        return await self._fetch({"user_id": identity.id})

    async def _fetch(self, filters: Optional[Dict[str, str]] = None) -> List[Report]:
        try:
            rows = await self.service.store.select(REPORTS_TABLE, filters, NEWEST_FIRST)
        except StoreError as e:
            logger.error(f"Failed to fetch reports: {e}")
            raise FetchFailed(f"Failed to load reports: {e}") from e

        reports = []
        for row in rows:
            try:
                reports.append(Report.from_record(row))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed report row {row.get('id')}: {e}")
        return reports
