"""Tests for the natural-language intent pipeline."""

import pytest
from conftest import FakeAnalyzer, intent_payload

from querygate.core.connection import DatabaseConnection
from querygate.core.types import IntentState, QueryIntent
from querygate.exceptions import (
    InvalidRequestError,
    SafetyViolationError,
    UpstreamAnalysisError,
)
from querygate.intent.pipeline import UNSAFE_EXPLANATION, IntentPipeline
from querygate.query.context import SchemaContextBuilder
from querygate.query.executor import ExecutionEngine
from querygate.query.validator import SafetyGate
from querygate.schema.catalog import SchemaCatalog


def build_pipeline(
    connection: DatabaseConnection, catalog: SchemaCatalog, analyzer: FakeAnalyzer | None
) -> IntentPipeline:
    gate = SafetyGate(catalog)
    return IntentPipeline(
        gate=gate,
        executor=ExecutionEngine(connection, gate, statement_timeout=5, max_rows=100),
        context_builder=SchemaContextBuilder(catalog, dialect="sqlite"),
        analyzer=analyzer,
    )


class TestAnalyze:
    def test_safe_intent(self, connection, catalog):
        analyzer = FakeAnalyzer(intent_payload("SELECT first_name FROM contacts LIMIT 10"))
        intent = build_pipeline(connection, catalog, analyzer).analyze("list contact names")

        assert intent.is_read_only
        assert intent.state == IntentState.CONFIRMATION_PENDING
        assert intent.tables_involved == ["contacts"]

    def test_analyzer_receives_schema_context(self, connection, catalog):
        analyzer = FakeAnalyzer(intent_payload("SELECT first_name FROM contacts LIMIT 10"))
        build_pipeline(connection, catalog, analyzer).analyze("  list contact names  ")

        query, context = analyzer.calls[0]
        assert query == "list contact names"
        assert context["database"] == "sqlite"
        assert {t["name"] for t in context["tables"]} == {"contacts", "campaigns"}

    def test_write_suggestion_forced_unsafe(self, connection, catalog):
        """A model claiming a DELETE is read-only is overruled by the gate."""
        analyzer = FakeAnalyzer(intent_payload("DELETE FROM contacts", isReadOnly=True))
        intent = build_pipeline(connection, catalog, analyzer).analyze(
            "show contacts with no email"
        )

        assert intent.is_read_only is False
        assert intent.explanation == UNSAFE_EXPLANATION
        assert intent.state == IntentState.REJECTED

    def test_unknown_table_forced_unsafe(self, connection, catalog):
        analyzer = FakeAnalyzer(intent_payload("SELECT * FROM users LIMIT 5"))
        intent = build_pipeline(connection, catalog, analyzer).analyze("show users")
        assert intent.is_read_only is False

    def test_model_flagged_write_stays_unsafe(self, connection, catalog):
        analyzer = FakeAnalyzer(
            intent_payload("SELECT * FROM contacts LIMIT 5", isReadOnly=False)
        )
        intent = build_pipeline(connection, catalog, analyzer).analyze("wipe contacts")
        assert intent.is_read_only is False

    def test_ambiguous_with_questions(self, connection, catalog):
        analyzer = FakeAnalyzer(
            intent_payload(
                "",
                isAmbiguous=True,
                clarifyingQuestions=["Which status do you mean?"],
            )
        )
        intent = build_pipeline(connection, catalog, analyzer).analyze("show the good ones")
        assert intent.state == IntentState.AWAITING_CLARIFICATION
        assert intent.clarifying_questions == ["Which status do you mean?"]

    def test_ambiguous_write_suggestion_forced_unsafe(self, connection, catalog):
        analyzer = FakeAnalyzer(
            intent_payload(
                "DELETE FROM contacts",
                isReadOnly=True,
                isAmbiguous=True,
                clarifyingQuestions=["Which contacts?"],
            )
        )
        intent = build_pipeline(connection, catalog, analyzer).analyze("clean up contacts")

        assert intent.is_read_only is False
        assert intent.explanation == UNSAFE_EXPLANATION
        assert intent.clarifying_questions == ["Which contacts?"]

    def test_ambiguous_safe_suggestion_kept(self, connection, catalog):
        analyzer = FakeAnalyzer(
            intent_payload(
                "SELECT first_name FROM contacts LIMIT 10",
                isAmbiguous=True,
                clarifyingQuestions=["Active contacts only?"],
            )
        )
        intent = build_pipeline(connection, catalog, analyzer).analyze("show contacts")

        assert intent.is_read_only is True
        assert intent.state == IntentState.AWAITING_CLARIFICATION

    def test_ambiguous_without_questions_is_upstream_failure(self, connection, catalog):
        analyzer = FakeAnalyzer(
            intent_payload("SELECT * FROM contacts", isAmbiguous=True, clarifyingQuestions=[])
        )
        with pytest.raises(UpstreamAnalysisError):
            build_pipeline(connection, catalog, analyzer).analyze("show stuff")

    def test_confidence_clamped(self, connection, catalog):
        analyzer = FakeAnalyzer(
            intent_payload("SELECT id FROM contacts LIMIT 1", confidence=150)
        )
        intent = build_pipeline(connection, catalog, analyzer).analyze("one contact")
        assert intent.confidence == 100

    def test_empty_text(self, connection, catalog):
        with pytest.raises(InvalidRequestError):
            build_pipeline(connection, catalog, FakeAnalyzer()).analyze("   ")

    def test_no_analyzer(self, connection, catalog):
        pipeline = build_pipeline(connection, catalog, None)
        assert pipeline.available is False
        with pytest.raises(UpstreamAnalysisError):
            pipeline.analyze("anything")

    def test_malformed_output(self, connection, catalog):
        analyzer = FakeAnalyzer({"confidence": "very"})
        with pytest.raises(UpstreamAnalysisError):
            build_pipeline(connection, catalog, analyzer).analyze("anything")

    def test_missing_sql(self, connection, catalog):
        analyzer = FakeAnalyzer(intent_payload("   "))
        with pytest.raises(UpstreamAnalysisError):
            build_pipeline(connection, catalog, analyzer).analyze("anything")

    def test_analyzer_crash_wrapped(self, connection, catalog):
        analyzer = FakeAnalyzer(error=RuntimeError("socket closed"))
        with pytest.raises(UpstreamAnalysisError) as exc_info:
            build_pipeline(connection, catalog, analyzer).analyze("anything")
        assert "socket" not in exc_info.value.message

    def test_each_call_independent(self, connection, catalog):
        analyzer = FakeAnalyzer(intent_payload("SELECT id FROM contacts LIMIT 1"))
        pipeline = build_pipeline(connection, catalog, analyzer)
        first = pipeline.analyze("one contact")
        analyzer.payload = intent_payload("SELECT id FROM campaigns LIMIT 1")
        second = pipeline.analyze("one contact")
        assert first.suggested_sql != second.suggested_sql
        assert len(analyzer.calls) == 2


class TestExecute:
    def test_execute_confirmed_sql(self, connection, catalog):
        pipeline = build_pipeline(connection, catalog, None)
        result = pipeline.execute_sql("SELECT COUNT(*) AS n FROM contacts WHERE email IS NULL")
        assert result.success
        assert result.data == [{"n": 1}]

    def test_execute_rejects_unsafe_sql(self, connection, catalog):
        """Unsafe SQL fails before touching the database."""
        pipeline = build_pipeline(connection, catalog, None)
        with pytest.raises(SafetyViolationError):
            pipeline.execute_sql("DELETE FROM contacts", "show contacts with no email")

        result = pipeline.execute_sql("SELECT COUNT(*) AS n FROM contacts")
        assert result.data == [{"n": 6}]

    def test_execute_intent_revalidates(self, connection, catalog):
        pipeline = build_pipeline(connection, catalog, None)
        forged = QueryIntent(
            intent="forged",
            confidence=99,
            suggested_sql="DROP TABLE contacts",
            is_read_only=True,
        )
        with pytest.raises(SafetyViolationError):
            pipeline.execute(forged)

    def test_execute_ambiguous_intent(self, connection, catalog):
        pipeline = build_pipeline(connection, catalog, None)
        intent = QueryIntent(
            intent="unclear",
            confidence=20,
            is_ambiguous=True,
            clarifying_questions=["Which table?"],
        )
        with pytest.raises(InvalidRequestError):
            pipeline.execute(intent)
