"""Feedback recording."""

from querygate.feedback.recorder import FeedbackRecorder

__all__ = ["FeedbackRecorder"]
