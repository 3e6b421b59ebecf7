"""SQLAlchemy ORM models for QueryGate's own tables.

QueryGate never writes to the databases it serves queries from, except for
the append-only feedback log, which lives in the configured feedback
database.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def generate_uuid() -> str:
    """Generate a new UUID as string."""
    return str(uuid4())


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all QueryGate models."""

    pass


class FeedbackEntry(Base):
    """One accuracy signal for a natural-language request.

    Append-only; read offline to improve analysis quality.
    """

    __tablename__ = "querygate_feedback"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False, index=True
    )

    user_query: Mapped[str] = mapped_column(Text, nullable=False)
    generated_sql: Mapped[str] = mapped_column(Text, nullable=False)
    was_accurate: Mapped[bool] = mapped_column(Boolean, nullable=False)
    # 100 for accurate, 50 otherwise
    confidence: Mapped[int] = mapped_column(Integer, nullable=False)
    user_feedback: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "user_query": self.user_query,
            "generated_sql": self.generated_sql,
            "was_accurate": self.was_accurate,
            "confidence": self.confidence,
            "user_feedback": self.user_feedback,
        }


# Tables QueryGate owns; hidden from the schema catalog
INTERNAL_TABLES = frozenset({FeedbackEntry.__tablename__})
