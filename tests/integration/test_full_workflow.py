"""Integration tests for the full QueryGate workflow."""

from collections.abc import Generator

import pytest
from conftest import FakeAnalyzer, intent_payload
from fastapi.testclient import TestClient

from querygate import QueryGate, Settings
from querygate.api.app import create_app
from querygate.core.types import FeedbackRecord, FilterCondition, SearchRequest
from querygate.exceptions import SafetyViolationError


class TestFullWorkflow:
    """End-to-end flows over SQLite."""

    def test_discover_search_export(self, gate: QueryGate):
        # 1. Discover schema (a client's first action)
        tables = {t.table_name: t for t in gate.metadata()}
        assert set(tables) == {"campaigns", "contacts"}
        assert "status" in tables["contacts"].sample_values

        # 2. Build a filter from the discovered columns and legal operators
        assert "contains" in gate.operators()["text"]
        request = SearchRequest(
            table="contacts",
            filters=[FilterCondition(column="email", operator="contains", value="@acme.com")],
        )
        compiled = gate.compile(request)
        assert compiled.sql == "SELECT * FROM contacts WHERE email LIKE $1 LIMIT $2 OFFSET $3"
        assert compiled.parameters == ["%@acme.com%", 50, 0]

        # 3. Search
        page = gate.search(request)
        assert page.total_count == 2

        # 4. Export the same search
        assert len(gate.export(request).split("\n")) == 3

    def test_natural_language_round_trip(self, gate: QueryGate, fake_analyzer: FakeAnalyzer):
        fake_analyzer.payload = intent_payload(
            "SELECT first_name FROM contacts WHERE email IS NULL LIMIT 100"
        )
        intent = gate.analyze("show contacts with no email")
        assert intent.is_read_only and not intent.is_ambiguous

        result = gate.execute_nl(intent.suggested_sql, "show contacts with no email")
        assert result.data == [{"first_name": "Grace"}]

        assert gate.record_feedback(
            FeedbackRecord(
                user_query="show contacts with no email",
                generated_sql=intent.suggested_sql,
                was_accurate=True,
            )
        )

    def test_unsafe_suggestion_never_runs(self, gate: QueryGate, fake_analyzer: FakeAnalyzer):
        fake_analyzer.payload = intent_payload("DELETE FROM contacts")
        intent = gate.analyze("show contacts with no email")
        assert intent.is_read_only is False

        with pytest.raises(SafetyViolationError):
            gate.execute_nl(intent.suggested_sql, "show contacts with no email")
        assert gate.search(SearchRequest(table="contacts")).total_count == 6

    def test_http_flow(self, gate: QueryGate):
        with TestClient(create_app(gate=gate)) as client:
            metadata = client.get("/api/metadata").json()
            table = metadata["tables"][0]["tableName"]
            page = client.post("/api/search", json={"table": table, "pageSize": 1}).json()
            assert page["pageSize"] == 1
            assert page["totalPages"] == page["totalCount"]

    def test_app_builds_its_own_gate(self, settings: Settings, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with TestClient(create_app(settings=settings)) as client:
            body = client.get("/health").json()
            assert body["status"] == "ok"
            assert body["analysisAvailable"] is False
            assert client.post("/api/nl/analyze", json={"query": "x"}).status_code == 400


@pytest.fixture
def pg_gate(pg_seeded_url: str) -> Generator[QueryGate, None, None]:
    qg = QueryGate(
        Settings(main_url=pg_seeded_url, statement_timeout=2.0),
        analyzer=FakeAnalyzer(intent_payload("SELECT first_name FROM contacts LIMIT 10")),
    )
    yield qg
    qg.close()


class TestPostgreSQLWorkflow:
    """The same flows against PostgreSQL (skipped without TEST_DATABASE_URL)."""

    def test_discovery(self, pg_gate: QueryGate):
        contacts = pg_gate.services().catalog.require_table("contacts")
        assert contacts.get_column("age").data_type == "integer"
        assert contacts.row_count == 6

    def test_search(self, pg_gate: QueryGate):
        result = pg_gate.search(
            SearchRequest(
                table="contacts",
                filters=[FilterCondition(column="age", operator="between", value=30, value2=80)],
                sort_by="id",
            )
        )
        assert [row["id"] for row in result.data] == [1, 2, 4]

    def test_case_insensitive_search(self, pg_seeded_url: str):
        settings = Settings(main_url=pg_seeded_url, case_insensitive_search=True)
        with QueryGate(settings) as qg:
            result = qg.search(
                SearchRequest(
                    table="contacts",
                    filters=[FilterCondition(column="email", operator="contains", value="ACME")],
                )
            )
        assert result.total_count == 2

    def test_timeout(self, pg_gate: QueryGate):
        from querygate.exceptions import ResourceExhaustedError

        with pytest.raises(ResourceExhaustedError):
            pg_gate.execute_nl(
                "SELECT COUNT(*) FROM contacts a, contacts b, contacts c, contacts d, "
                "contacts e, contacts f, contacts g, contacts h, contacts i, contacts j, "
                "contacts k, contacts l"
            )

    def test_execute_nl(self, pg_gate: QueryGate):
        result = pg_gate.execute_intent(pg_gate.analyze("names"))
        assert result.row_count == 6
