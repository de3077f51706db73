"""
Report and comment models for crowdsourced environmental reports
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from dataclasses import dataclass

from ecoreport.core.constants import REPORT_CATEGORIES
from ecoreport.core.geo_utils import Location, location_from_record


class ReportCategory(str, Enum):
    """Closed set of report categories."""
    POLLUTION = "pollution"
    DEFORESTATION = "deforestation"
    WASTE = "waste"
    OTHER = "other"

    @property
    def label(self) -> str:
        return REPORT_CATEGORIES[self.value]

    @classmethod
    def parse(cls, value: Any) -> Optional["ReportCategory"]:
        """Category for a value, or None if it is not in the set."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a stored timestamp; naive values are taken as UTC."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if not isinstance(value, datetime):
        raise ValueError(f"Not a timestamp: {value!r}")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class Report:
    """
    Persisted environmental issue report.

    Built only from records returned by the data service, so ``id`` and
    ``created_at`` are always the server's values.
    """
    id: str
    author_id: str
    image_ref: str
    category: str
    created_at: datetime
    location: Optional[Location] = None
    description: Optional[str] = None

    @property
    def category_label(self) -> str:
        return REPORT_CATEGORIES.get(self.category, self.category.title())

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Report":
        """Build from a ``reports`` row."""
        return cls(
            id=str(record["id"]),
            author_id=str(record["user_id"]),
            image_ref=record["image_url"],
            category=record["category"],
            created_at=parse_timestamp(record["created_at"]),
            location=location_from_record(record.get("location")),
            description=record.get("description") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "author_id": self.author_id,
            "image_ref": self.image_ref,
            "category": self.category,
            "category_label": self.category_label,
            "description": self.description,
            "location": {
                "latitude": self.location.latitude,
                "longitude": self.location.longitude,
            } if self.location else None,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class Comment:
    """Comment on a report, as stored."""
    id: str
    report_id: str
    author_id: str
    text: str
    created_at: datetime

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Comment":
        """Build from a ``comments`` row."""
        return cls(
            id=str(record["id"]),
            report_id=str(record["report_id"]),
            author_id=str(record["user_id"]),
            text=record["text"],
            created_at=parse_timestamp(record["created_at"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "report_id": self.report_id,
            "author_id": self.author_id,
            "text": self.text,
            "created_at": self.created_at.isoformat(),
        }
