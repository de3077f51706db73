"""
EcoReport - Crowdsource Module
Citizen environmental reports, their feed and their comment threads.
"""

from ecoreport.crowdsource.models import (
    Report,
    Comment,
    ReportCategory,
)
from ecoreport.crowdsource.submission import ReportSubmitter
from ecoreport.crowdsource.feed import (
    FeedQueryEngine,
    FeedFilter,
    filter_reports,
)
from ecoreport.crowdsource.comments import (
    CommentSyncEngine,
    SyncState,
)
from ecoreport.crowdsource.composer import (
    ReportComposer,
    ReportDraft,
)
from ecoreport.crowdsource.stats import (
    ActivityStats,
    get_user_stats,
)

__all__ = [
    # Models
    "Report",
    "Comment",
    "ReportCategory",
    # Submission
    "ReportSubmitter",
    "ReportComposer",
    "ReportDraft",
    # Feed
    "FeedQueryEngine",
    "FeedFilter",
    "filter_reports",
    # Comments
    "CommentSyncEngine",
    "SyncState",
    # Stats
    "ActivityStats",
    "get_user_stats",
]
