"""
Per-user activity statistics
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict

from ecoreport.backend.base import DataService, IdentityProvider, StoreError
from ecoreport.core.constants import (
    COMMENTS_TABLE,
    POINTS_PER_COMMENT,
    POINTS_PER_REPORT,
    REPORTS_TABLE,
)
from ecoreport.core.exceptions import FetchFailed
from ecoreport.crowdsource.session import require_identity

logger = logging.getLogger(__name__)


@dataclass
class ActivityStats:
    """Contribution counts for one identity."""
    user_id: str
    reports: int = 0
    comments: int = 0

    @property
    def points(self) -> int:
        return self.reports * POINTS_PER_REPORT + self.comments * POINTS_PER_COMMENT

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "user_id": self.user_id,
            "reports": self.reports,
            "comments": self.comments,
            "points": self.points,
        }


async def get_user_stats(service: DataService, identity_provider: IdentityProvider) -> ActivityStats:
    """
    Count the current identity's reports and comments.

    Args:
        service: Data service to count in
        identity_provider: Session to report on (re-read now)

    Returns:
        ActivityStats

    Raises:
        Unauthenticated: No current identity
        FetchFailed: A count could not be read
    """
    identity = await require_identity(identity_provider)
    owner = {"user_id": identity.id}

    try:
        reports = await service.store.count(REPORTS_TABLE, owner)
        comments = await service.store.count(COMMENTS_TABLE, owner)
    except StoreError as e:
        logger.error(f"Error fetching activity counts for {identity.id}: {e}")
        raise FetchFailed(f"Failed to load activity: {e}") from e

    return ActivityStats(user_id=identity.id, reports=reports, comments=comments)
