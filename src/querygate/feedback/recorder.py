"""Feedback recorder: append-only log of accuracy signals."""

from __future__ import annotations

import logging
import threading

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from querygate.core.connection import DatabaseConnection
from querygate.core.types import FeedbackRecord
from querygate.exceptions import QueryGateError
from querygate.schema.models import Base, FeedbackEntry

logger = logging.getLogger(__name__)


class FeedbackRecorder:
    """Persists FeedbackRecord entries.

    Recording never fails the request that triggered it: errors are logged
    and swallowed.
    """

    def __init__(self, connection: DatabaseConnection) -> None:
        """Initialize the recorder.

        Args:
            connection: Database holding the feedback log
        """
        self._connection = connection
        self._table_ready = False
        self._lock = threading.Lock()

    def _ensure_table(self) -> None:
        if self._table_ready:
            return
        with self._lock:
            if not self._table_ready:
                Base.metadata.create_all(self._connection.engine, tables=[FeedbackEntry.__table__])
                self._table_ready = True

    def record(self, feedback: FeedbackRecord) -> bool:
        """Append one feedback entry.

        Args:
            feedback: The accuracy signal

        Returns:
            True if stored, False if storing failed (already logged)
        """
        try:
            self._ensure_table()
            with Session(self._connection.engine) as session:
                entry = FeedbackEntry(
                    user_query=feedback.user_query,
                    generated_sql=feedback.generated_sql,
                    was_accurate=feedback.was_accurate,
                    confidence=100 if feedback.was_accurate else 50,
                    user_feedback=feedback.user_feedback
                    or ("accurate" if feedback.was_accurate else "inaccurate"),
                )
                session.add(entry)
                session.commit()
            return True
        except (SQLAlchemyError, QueryGateError) as e:
            logger.error(f"Failed to record feedback for {feedback.user_query!r}: {e}")
            return False

    def entries(self, limit: int = 100) -> list[FeedbackEntry]:
        """Most recent feedback entries, for offline review."""
        self._ensure_table()
        with Session(self._connection.engine) as session:
            rows = (
                session.query(FeedbackEntry)
                .order_by(FeedbackEntry.created_at.desc())
                .limit(limit)
                .all()
            )
            session.expunge_all()
            return rows
