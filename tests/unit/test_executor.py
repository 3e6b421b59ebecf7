"""Tests for the execution engine and CSV projection."""

from contextlib import contextmanager
from datetime import date

import pytest

from querygate.core.connection import DatabaseConnection
from querygate.core.types import CompiledQuery
from querygate.exceptions import SafetyViolationError
from querygate.query.executor import (
    GENERIC_EXECUTION_ERROR,
    ExecutionEngine,
    bind_parameters,
    rows_to_csv,
    to_bind_sql,
)
from querygate.query.validator import SafetyGate
from querygate.schema.catalog import SchemaCatalog


@pytest.fixture
def engine(connection: DatabaseConnection, catalog: SchemaCatalog) -> ExecutionEngine:
    return ExecutionEngine(connection, SafetyGate(catalog), statement_timeout=5, max_rows=4)


class TestRun:
    def test_runs_parameterized_query(self, engine: ExecutionEngine):
        result = engine.run(
            CompiledQuery(
                sql="SELECT first_name FROM contacts WHERE email LIKE $1 ORDER BY id LIMIT $2",
                parameters=["%@acme.com", 10],
            )
        )
        assert result.success
        assert result.data == [{"first_name": "Ada"}, {"first_name": "Alan"}]
        assert result.row_count == 2
        assert result.insights is None

    def test_row_cap(self, engine: ExecutionEngine):
        result = engine.run(CompiledQuery(sql="SELECT id FROM contacts ORDER BY id"))
        assert result.row_count == 4
        assert result.insights == ["Result truncated to 4 rows."]

    def test_rows_streamed_under_cap(
        self,
        engine: ExecutionEngine,
        connection: DatabaseConnection,
        monkeypatch: pytest.MonkeyPatch,
    ):
        recorded: list[dict | None] = []
        read_only = connection.read_only

        class RecordingConnection:
            def __init__(self, conn):
                self._conn = conn

            def execute(self, statement, parameters=None, execution_options=None):
                recorded.append(execution_options)
                return self._conn.execute(
                    statement, parameters, execution_options=execution_options or {}
                )

        @contextmanager
        def recording_read_only(timeout: float):
            with read_only(timeout) as conn:
                yield RecordingConnection(conn)

        monkeypatch.setattr(connection, "read_only", recording_read_only)
        result = engine.run(CompiledQuery(sql="SELECT id FROM contacts ORDER BY id"))

        assert result.row_count == 4
        assert recorded == [{"stream_results": True, "max_row_buffer": 5}]

    def test_lower_cap_per_call(self, engine: ExecutionEngine):
        result = engine.run(CompiledQuery(sql="SELECT id FROM contacts"), max_rows=2)
        assert result.row_count == 2

    def test_cap_never_raised(self, engine: ExecutionEngine):
        result = engine.run(CompiledQuery(sql="SELECT id FROM contacts"), max_rows=100)
        assert result.row_count == 4

    def test_empty_result(self, engine: ExecutionEngine):
        result = engine.run(
            CompiledQuery(sql="SELECT * FROM contacts WHERE age > $1", parameters=[500])
        )
        assert result.success
        assert result.data == []
        assert result.insights == ["No rows matched the query."]

    def test_rejected_before_database(self, engine: ExecutionEngine):
        with pytest.raises(SafetyViolationError):
            engine.run(CompiledQuery(sql="DELETE FROM contacts"))
        # Still all rows
        count = engine.run(CompiledQuery(sql="SELECT COUNT(*) AS n FROM contacts"))
        assert count.data == [{"n": 6}]

    def test_database_error_is_generic(self, engine: ExecutionEngine):
        result = engine.run(CompiledQuery(sql="SELECT no_such_column FROM contacts"))
        assert result.success is False
        assert result.error == GENERIC_EXECUTION_ERROR
        assert "no_such_column" not in result.error

    def test_colons_in_literals(self, engine: ExecutionEngine):
        result = engine.run(
            CompiledQuery(sql="SELECT 'a:b' AS v, first_name FROM contacts WHERE id = 1")
        )
        assert result.data == [{"v": "a:b", "first_name": "Ada"}]

    def test_escaped_like(self, engine: ExecutionEngine):
        result = engine.run(
            CompiledQuery(
                sql="SELECT first_name FROM contacts WHERE email LIKE $1 ESCAPE '\\'",
                parameters=["%100\\%%"],
            )
        )
        assert result.data == [{"first_name": "Ken"}]


class TestBinding:
    def test_to_bind_sql(self):
        assert to_bind_sql("SELECT * FROM t WHERE a = $1 AND b = $2") == (
            "SELECT * FROM t WHERE a = :p1 AND b = :p2"
        )

    def test_placeholders_in_strings_untouched(self):
        assert to_bind_sql("SELECT '$1' FROM t WHERE a = $1") == "SELECT '$1' FROM t WHERE a = :p1"

    def test_postgres_casts_kept(self):
        assert to_bind_sql("SELECT a::text FROM t") == "SELECT a::text FROM t"

    def test_bind_parameters(self):
        assert bind_parameters(["x", 5]) == {"p1": "x", "p2": 5}


class TestCsv:
    def test_basic(self):
        rows = [{"id": 1, "name": "Ada"}, {"id": 2, "name": "Alan"}]
        assert rows_to_csv(rows) == "id,name\n1,Ada\n2,Alan"

    def test_empty(self):
        assert rows_to_csv([]) == ""

    def test_nulls_and_booleans(self):
        rows = [{"a": None, "b": True, "c": False}]
        assert rows_to_csv(rows) == "a,b,c\n,true,false"

    def test_quoting(self):
        rows = [{"note": 'say "hi", then\nleave', "d": date(2024, 1, 5)}]
        assert rows_to_csv(rows) == 'note,d\n"say ""hi"", then\nleave",2024-01-05'

    def test_header_from_first_row(self):
        rows = [{"a": 1, "b": 2}, {"b": 3, "a": 4}]
        assert rows_to_csv(rows) == "a,b\n1,2\n4,3"
