"""
EcoReport - Core Utilities
Central configuration, logging, error taxonomy and shared reference data.
"""

from ecoreport.core.config import settings
from ecoreport.core.constants import (
    REPORT_CATEGORIES,
    REPORTS_TABLE,
    COMMENTS_TABLE,
)
from ecoreport.core.exceptions import (
    EcoReportError,
    PermissionDenied,
    Cancelled,
    FetchFailed,
    ReportNotFound,
    SubmissionError,
    ValidationFailed,
    Unauthenticated,
    UploadFailed,
    PersistFailed,
    describe_error,
)
from ecoreport.core.geo_utils import Location, is_placeholder_coordinate, is_valid_coordinate

__all__ = [
    "settings",
    "REPORT_CATEGORIES",
    "REPORTS_TABLE",
    "COMMENTS_TABLE",
    "EcoReportError",
    "PermissionDenied",
    "Cancelled",
    "FetchFailed",
    "ReportNotFound",
    "SubmissionError",
    "ValidationFailed",
    "Unauthenticated",
    "UploadFailed",
    "PersistFailed",
    "describe_error",
    "Location",
    "is_valid_coordinate",
    "is_placeholder_coordinate",
]
