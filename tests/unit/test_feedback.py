"""Tests for the feedback recorder."""

from querygate.core.connection import DatabaseConnection
from querygate.core.types import FeedbackRecord
from querygate.feedback.recorder import FeedbackRecorder
from querygate.schema.catalog import SchemaCatalog


def test_record_accurate(connection: DatabaseConnection):
    recorder = FeedbackRecorder(connection)
    stored = recorder.record(
        FeedbackRecord(
            user_query="contacts without email",
            generated_sql="SELECT * FROM contacts WHERE email IS NULL",
            was_accurate=True,
        )
    )
    assert stored is True

    [entry] = recorder.entries()
    assert entry.confidence == 100
    assert entry.user_feedback == "accurate"
    assert entry.to_dict()["user_query"] == "contacts without email"


def test_record_inaccurate_with_comment(connection: DatabaseConnection):
    recorder = FeedbackRecorder(connection)
    recorder.record(
        FeedbackRecord.model_validate(
            {
                "userQuery": "active campaigns",
                "generatedSQL": "SELECT * FROM campaigns",
                "wasAccurate": False,
                "userFeedback": "missed the status filter",
            }
        )
    )
    [entry] = recorder.entries()
    assert entry.confidence == 50
    assert entry.was_accurate is False
    assert entry.user_feedback == "missed the status filter"


def test_default_comment_for_inaccurate(connection: DatabaseConnection):
    recorder = FeedbackRecorder(connection)
    recorder.record(FeedbackRecord(user_query="q", generated_sql="s", was_accurate=False))
    assert recorder.entries()[0].user_feedback == "inaccurate"


def test_storage_failure_returns_false():
    recorder = FeedbackRecorder(DatabaseConnection("invalid://nowhere"))
    stored = recorder.record(FeedbackRecord(user_query="q", generated_sql="s", was_accurate=True))
    assert stored is False


def test_feedback_table_hidden_from_catalog(connection: DatabaseConnection):
    from querygate.schema.models import INTERNAL_TABLES

    FeedbackRecorder(connection).record(
        FeedbackRecord(user_query="q", generated_sql="s", was_accurate=True)
    )
    catalog = SchemaCatalog(connection, excluded_tables=INTERNAL_TABLES)
    assert "querygate_feedback" not in catalog.table_names()
