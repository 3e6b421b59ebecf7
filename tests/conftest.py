"""Shared test fixtures for QueryGate."""

import os
import tempfile
from collections.abc import Generator
from typing import Any

import pytest
from sqlalchemy import create_engine, text

from querygate import QueryGate, Settings
from querygate.core.connection import DatabaseConnection
from querygate.core.types import ColumnMetadata, TableMetadata
from querygate.intent.analyzer import IntentAnalyzer
from querygate.schema.catalog import SchemaCatalog

SCHEMA_DDL = [
    """
    CREATE TABLE contacts (
        id INTEGER PRIMARY KEY,
        first_name VARCHAR(100) NOT NULL,
        last_name VARCHAR(100),
        email VARCHAR(255),
        status VARCHAR(20),
        age INTEGER,
        is_active BOOLEAN,
        created_at TIMESTAMP,
        password_hash VARCHAR(255)
    )
    """,
    """
    CREATE TABLE campaigns (
        id INTEGER PRIMARY KEY,
        name VARCHAR(200) NOT NULL,
        status VARCHAR(20),
        budget NUMERIC(10, 2),
        start_date DATE,
        settings JSON
    )
    """,
]

CONTACTS = [
    (1, "Ada", "Lovelace", "ada@acme.com", "active", 36, True, "2024-01-05 10:00:00", "x1"),
    (2, "Alan", "Turing", "alan@acme.com", "active", 41, True, "2024-02-11 09:30:00", "x2"),
    (3, "Grace", "Hopper", None, "inactive", 85, False, "2024-03-20 14:15:00", "x3"),
    (4, "Edsger", "Dijkstra", "edsger@example.org", "pending", 72, True, "2024-04-01 08:00:00", "x4"),
    (5, "Barbara", "Liskov", "barbara@example.org", "active", 29, False, "2024-05-15 16:45:00", "x5"),
    (6, "Ken", None, "ken_100%@example.org", "inactive", None, None, None, "x6"),
]

CAMPAIGNS = [
    (1, "Spring launch", "active", 1500.00, "2024-03-01", '{"channel": "email"}'),
    (2, "Summer sale", "paused", 800.50, "2024-06-15", None),
    (3, "Winter promo", "active", 2200.00, "2024-12-01", '{"channel": "sms"}'),
]


def seed_database(url: str) -> None:
    """Create and fill the contacts/campaigns fixture schema."""
    engine = create_engine(url)
    with engine.begin() as conn:
        for ddl in SCHEMA_DDL:
            conn.execute(text(ddl))
        conn.execute(
            text(
                "INSERT INTO contacts VALUES (:id, :first_name, :last_name, :email, :status, "
                ":age, :is_active, :created_at, :password_hash)"
            ),
            [
                dict(
                    zip(
                        [
                            "id",
                            "first_name",
                            "last_name",
                            "email",
                            "status",
                            "age",
                            "is_active",
                            "created_at",
                            "password_hash",
                        ],
                        row,
                        strict=True,
                    )
                )
                for row in CONTACTS
            ],
        )
        conn.execute(
            text(
                "INSERT INTO campaigns VALUES (:id, :name, :status, :budget, :start_date, :settings)"
            ),
            [
                dict(
                    zip(["id", "name", "status", "budget", "start_date", "settings"], row, strict=True)
                )
                for row in CAMPAIGNS
            ],
        )
    engine.dispose()


class FakeAnalyzer(IntentAnalyzer):
    """Analyzer returning a canned payload, recording what it was asked."""

    def __init__(self, payload: dict[str, Any] | None = None, error: Exception | None = None):
        self.payload = payload or {}
        self.error = error
        self.calls: list[tuple[str, dict[str, Any]]] = []

    @property
    def model_name(self) -> str:
        return "fake"

    def analyze(self, query: str, schema_context: dict[str, Any]) -> dict[str, Any]:
        self.calls.append((query, schema_context))
        if self.error is not None:
            raise self.error
        return dict(self.payload)


def intent_payload(sql: str, **overrides: Any) -> dict[str, Any]:
    """A well-formed analyzer response for the given SQL."""
    payload: dict[str, Any] = {
        "intent": "list contacts",
        "confidence": 90,
        "suggestedSQL": sql,
        "explanation": "Lists contacts.",
        "tablesInvolved": ["contacts"],
        "isReadOnly": True,
        "isAmbiguous": False,
        "clarifyingQuestions": [],
        "userFriendlyIntent": "Show contacts",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def temp_db_url() -> Generator[str, None, None]:
    """A seeded temporary SQLite database file."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    url = f"sqlite:///{db_path}"
    seed_database(url)
    yield url
    # Cleanup
    if os.path.exists(db_path):
        os.remove(db_path)


@pytest.fixture
def settings(temp_db_url: str) -> Settings:
    """Settings pointing at the seeded database."""
    return Settings(main_url=temp_db_url, statement_timeout=5.0, max_rows=100)


@pytest.fixture
def connection(temp_db_url: str) -> Generator[DatabaseConnection, None, None]:
    """Connection to the seeded database."""
    conn = DatabaseConnection(temp_db_url)
    yield conn
    conn.close()


@pytest.fixture
def catalog(connection: DatabaseConnection) -> SchemaCatalog:
    """Catalog discovered from the seeded database."""
    return SchemaCatalog(connection, ttl=300)


@pytest.fixture
def static_catalog() -> SchemaCatalog:
    """Catalog over fixed metadata, no database needed."""
    return SchemaCatalog.from_tables(
        [
            TableMetadata(
                table_name="contacts",
                row_count=6,
                columns=[
                    ColumnMetadata(name="id", data_type="integer", nullable=False),
                    ColumnMetadata(name="first_name", data_type="character varying"),
                    ColumnMetadata(name="email", data_type="character varying"),
                    ColumnMetadata(name="status", data_type="character varying"),
                    ColumnMetadata(name="age", data_type="integer"),
                    ColumnMetadata(name="is_active", data_type="boolean"),
                    ColumnMetadata(name="created_at", data_type="timestamp with time zone"),
                    ColumnMetadata(name="settings", data_type="jsonb"),
                ],
                sample_values={"status": ["active", "inactive", "pending"]},
            ),
            TableMetadata(
                table_name="campaigns",
                row_count=3,
                columns=[
                    ColumnMetadata(name="id", data_type="integer", nullable=False),
                    ColumnMetadata(name="name", data_type="text"),
                    ColumnMetadata(name="budget", data_type="numeric"),
                ],
            ),
        ]
    )


@pytest.fixture
def fake_analyzer() -> FakeAnalyzer:
    """Analyzer with a safe default payload."""
    return FakeAnalyzer(intent_payload("SELECT first_name, email FROM contacts LIMIT 10"))


@pytest.fixture
def gate(settings: Settings, fake_analyzer: FakeAnalyzer) -> Generator[QueryGate, None, None]:
    """QueryGate over the seeded database with a fake analyzer."""
    qg = QueryGate(settings, analyzer=fake_analyzer)
    yield qg
    qg.close()


def _psycopg_available() -> bool:
    """Check if psycopg is installed."""
    try:
        import psycopg  # noqa: F401

        return True
    except ImportError:
        return False


def _postgresql_connectable(url: str) -> bool:
    """Check if we can connect to PostgreSQL."""
    if not _psycopg_available():
        return False
    conn = DatabaseConnection(url)
    try:
        return conn.test_connection()
    except Exception:
        return False
    finally:
        conn.close()


# Skip marker for tests requiring PostgreSQL
requires_postgresql = pytest.mark.skipif(
    not _psycopg_available(),
    reason="psycopg not installed (install with: pip install querygate[postgresql])",
)


@pytest.fixture
def postgresql_url() -> str:
    """Get PostgreSQL URL from TEST_DATABASE_URL, skipping if unreachable."""
    url = os.environ.get("TEST_DATABASE_URL") or "postgresql://localhost/querygate_test"

    if not _psycopg_available():
        pytest.skip("psycopg not installed")
    if not _postgresql_connectable(url):
        pytest.skip(f"Cannot connect to PostgreSQL at {url}")
    return url


@pytest.fixture
def pg_seeded_url(postgresql_url: str) -> Generator[str, None, None]:
    """PostgreSQL database holding the fixture schema, dropped afterwards."""
    engine = create_engine(DatabaseConnection(postgresql_url).url)
    with engine.begin() as conn:
        conn.execute(text("DROP TABLE IF EXISTS contacts, campaigns, querygate_feedback"))
    engine.dispose()

    seed_database(DatabaseConnection(postgresql_url).url)
    yield postgresql_url

    engine = create_engine(DatabaseConnection(postgresql_url).url)
    with engine.begin() as conn:
        conn.execute(text("DROP TABLE IF EXISTS contacts, campaigns, querygate_feedback"))
    engine.dispose()


# Re-export for use in test files
__all__ = ["FakeAnalyzer", "intent_payload", "requires_postgresql"]
