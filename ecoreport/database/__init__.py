"""
Database module for EcoReport
SQLAlchemy persistence for reports and comments
"""

from .connection import DatabaseConnection
from .models import (
    Base,
    ReportRecord,
    CommentRecord,
    MODELS,
)

__all__ = [
    "DatabaseConnection",
    "Base",
    "ReportRecord",
    "CommentRecord",
    "MODELS",
]
