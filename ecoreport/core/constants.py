"""
EcoReport - Constants and Reference Data
Static values used throughout the application.
"""

from typing import Dict, List, Tuple

# =============================================================================
# REPORT CATEGORIES
# =============================================================================

# Closed set of report categories (value -> display label)
REPORT_CATEGORIES: Dict[str, str] = {
    "pollution": "Pollution",
    "deforestation": "Deforestation",
    "waste": "Illegal Waste",
    "other": "Other",
}

DEFAULT_CATEGORY: str = "pollution"

# =============================================================================
# DATA SERVICE LAYOUT
# =============================================================================

REPORTS_TABLE: str = "reports"
COMMENTS_TABLE: str = "comments"

TABLES: List[str] = [REPORTS_TABLE, COMMENTS_TABLE]

DEFAULT_BUCKET: str = "reports"

IMAGE_CONTENT_TYPE: str = "image/jpeg"
IMAGE_EXTENSION: str = "jpg"

# =============================================================================
# CHANGE FEED
# =============================================================================

CHANGE_INSERT: str = "INSERT"
CHANGE_UPDATE: str = "UPDATE"
CHANGE_DELETE: str = "DELETE"

CHANGE_EVENTS: Tuple[str, str, str] = (CHANGE_INSERT, CHANGE_UPDATE, CHANGE_DELETE)

# =============================================================================
# ACTIVITY POINTS
# =============================================================================

POINTS_PER_REPORT: int = 10
POINTS_PER_COMMENT: int = 2

# =============================================================================
# MEDIA
# =============================================================================

JPEG_QUALITY_RANGE: Tuple[int, int] = (1, 95)
