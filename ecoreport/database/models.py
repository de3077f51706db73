"""
SQLAlchemy models for EcoReport
Reports and their comments.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Text, DateTime, ForeignKey, Index, JSON
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReportRecord(Base):
    """
    Environmental issue report.

    One required photo, optional location and description.
    """
    __tablename__ = "reports"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(64), nullable=False)

    image_url = Column(String(1024), nullable=False)
    location = Column(JSON, nullable=True)  # {"lat": ..., "lng": ...}
    category = Column(String(32), nullable=False)
    description = Column(Text)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    comments = relationship("CommentRecord", back_populates="report", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_report_user", user_id),
        Index("idx_report_created_at", created_at),
        Index("idx_report_category", category),
    )

    def __repr__(self):
        return f"<ReportRecord({self.id}, category={self.category}, user={self.user_id})>"

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "image_url": self.image_url,
            "location": self.location,
            "category": self.category,
            "description": self.description,
            "created_at": self.created_at,
        }


class CommentRecord(Base):
    """Comment attached to exactly one report."""
    __tablename__ = "comments"

    id = Column(String(36), primary_key=True, default=_new_id)
    report_id = Column(String(36), ForeignKey("reports.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(64), nullable=False)
    text = Column(Text, nullable=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    report = relationship("ReportRecord", back_populates="comments")

    __table_args__ = (
        Index("idx_comment_report", report_id),
        Index("idx_comment_user", user_id),
        Index("idx_comment_created_at", created_at),
    )

    def __repr__(self):
        return f"<CommentRecord({self.id}, report={self.report_id})>"

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "report_id": self.report_id,
            "user_id": self.user_id,
            "text": self.text,
            "created_at": self.created_at,
        }


MODELS = {
    ReportRecord.__tablename__: ReportRecord,
    CommentRecord.__tablename__: CommentRecord,
}
