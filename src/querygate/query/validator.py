"""Query safety gate for compiled and model-generated SQL.

Every statement passes through here before it can reach a database:
- Only a single SELECT statement is allowed
- Write/DDL keywords and known abuse patterns are rejected outright
- Every referenced table must be in the schema catalog's allow-list

Text inspection is not a sound injection defense on its own, so the
execution engine additionally runs every approved statement inside the
database's read-only transaction mode.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, NamedTuple

from querygate.core.types import CompiledQuery
from querygate.exceptions import SafetyViolationError

if TYPE_CHECKING:
    from querygate.schema.catalog import SchemaCatalog

logger = logging.getLogger(__name__)


class QueryType(StrEnum):
    """Types of SQL statements."""

    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    OTHER = "OTHER"


# Rejected as bare words and anywhere inside string literals or comments;
# a double-quoted identifier spelling one of these is just a name
BANNED_KEYWORDS = (
    "INSERT",
    "UPDATE",
    "DELETE",
    "DROP",
    "ALTER",
    "TRUNCATE",
    "GRANT",
    "REVOKE",
    "CREATE",
    "EXEC",
    "EXECUTE",
    "CALL",
    "MERGE",
    "COPY",
    "INTO",
    "ATTACH",
    "DETACH",
    "PRAGMA",
    "VACUUM",
)

_BANNED_RE = re.compile(r"\b(" + "|".join(BANNED_KEYWORDS) + r")\b", re.IGNORECASE)

# Dangerous SQL patterns to block
INJECTION_PATTERNS = [
    r"UNION\s+ALL\s+SELECT",  # Union-based injection
    r"UNION\s+SELECT",
    r"INTO\s+OUTFILE",
    r"INTO\s+DUMPFILE",
    r"LOAD_FILE\s*\(",
    r"BENCHMARK\s*\(",
    r"SLEEP\s*\(",
    r"WAITFOR\s+DELAY",
    r"xp_cmdshell",
    r"sp_executesql",
    r"pg_sleep\s*\(",
    r"pg_read_file\s*\(",
    r"pg_read_binary_file\s*\(",
    r"pg_ls_dir\s*\(",
    r"pg_terminate_backend\s*\(",
    r"pg_cancel_backend\s*\(",
    r"lo_import\s*\(",
    r"lo_export\s*\(",
    r"dblink",
    r"set_config\s*\(",
    r"current_setting\s*\(",
]

_TOKEN_RE = re.compile(
    r"""
      (?P<ws>\s+)
    | (?P<comment>--[^\n]*|/\*.*?\*/)
    | (?P<string>'(?:[^']|'')*')
    | (?P<quoted>"(?:[^"]|"")*")
    | (?P<placeholder>\$\d+)
    | (?P<word>[A-Za-z_][A-Za-z0-9_]*)
    | (?P<number>\d+(?:\.\d*)?)
    | (?P<unsupported>['"`\[\]$]|/\*)
    | (?P<punct>.)
    """,
    re.VERBOSE | re.DOTALL,
)

# Keywords that may sit between FROM/JOIN and the table name
_TABLE_PREFIX_WORDS = {"ONLY", "LATERAL"}

# Words that close the FROM clause of the current query level
_FROM_TERMINATORS = {
    "WHERE", "GROUP", "HAVING", "ORDER", "LIMIT", "OFFSET", "UNION", "EXCEPT",
    "INTERSECT", "WINDOW", "FETCH", "FOR", "RETURNING",
}  # fmt: skip


class Token(NamedTuple):
    """One lexical token of a SQL statement."""

    kind: str
    text: str
    start: int

    @property
    def significant(self) -> bool:
        return self.kind not in ("ws", "comment")

    def is_word(self, *words: str) -> bool:
        return self.kind == "word" and self.text.upper() in words


def tokenize(sql: str) -> list[Token]:
    """Split SQL into tokens, keeping string literals and comments whole."""
    return [
        Token(kind=m.lastgroup or "punct", text=m.group(), start=m.start())
        for m in _TOKEN_RE.finditer(sql)
    ]


@dataclass
class ValidationResult:
    """Result of query validation."""

    valid: bool
    """Whether the query passed validation."""

    sql: str = ""
    """The normalized SQL (leading comments and trailing semicolon removed)."""

    error: str | None = None
    """Reason the statement was rejected."""

    query_type: QueryType = QueryType.OTHER
    """Detected query type."""

    tables_accessed: list[str] = field(default_factory=list)
    """Catalog names of the tables referenced in the query."""

    warnings: list[str] = field(default_factory=list)
    """Non-fatal warnings about the query."""


@dataclass(frozen=True)
class TableReference:
    """A table named in a FROM or JOIN clause."""

    name: str
    schema: str | None = None
    quoted: bool = False


@dataclass
class _Level:
    """Scan state of one parenthesis level."""

    subquery: bool
    in_from: bool = False
    expect_table: bool = False


class SafetyGate:
    """Validates SQL statements before execution.

    Provides multiple layers of protection:
    1. Statement shape (single SELECT, no comments, only quoting the
       tokenizer understands)
    2. Banned keywords and injection pattern detection
    3. Table access control against the schema catalog
    """

    def __init__(
        self,
        catalog: SchemaCatalog | None = None,
        allowed_tables: set[str] | None = None,
        schema: str | None = None,
    ) -> None:
        """Initialize the gate.

        Args:
            catalog: Schema catalog whose tables form the allow-list
            allowed_tables: Fixed allow-list, used when no catalog is given
            schema: The only schema a qualified table name may reference
                (defaults to the catalog's schema)
        """
        if catalog is None and allowed_tables is None:
            raise ValueError("SafetyGate needs a catalog or an explicit allowed_tables set")
        self._catalog = catalog
        self._allowed_tables = allowed_tables or set()
        self._schema = schema or (catalog.schema if catalog is not None else "public")

    @property
    def allowed_tables(self) -> set[str]:
        """Current allow-list of table names."""
        if self._catalog is not None:
            return self._catalog.table_names()
        return set(self._allowed_tables)

    def validate(self, statement: str | CompiledQuery) -> ValidationResult:
        """Validate an SQL statement.

        Args:
            statement: Raw SQL or a CompiledQuery

        Returns:
            ValidationResult with validation status and details
        """
        if isinstance(statement, CompiledQuery):
            sql, parameter_count = statement.sql, len(statement.parameters)
        else:
            sql, parameter_count = statement or "", 0

        tokens = tokenize(sql)
        significant = [t for t in tokens if t.significant]

        if not significant:
            return ValidationResult(valid=False, error="Empty query")

        query_type = self._detect_query_type(significant[0])
        if query_type != QueryType.SELECT:
            return ValidationResult(
                valid=False,
                error=f"Only SELECT statements are allowed. Got: {query_type.value}",
                query_type=query_type,
            )

        lexical_error = self._check_lexical(tokens)
        if lexical_error:
            return self._reject(lexical_error, query_type)

        # Leading comments are stripped; anything after the first keyword is not
        if any(t.kind == "comment" and t.start > significant[0].start for t in tokens):
            return self._reject("SQL comments are not allowed", query_type)

        semicolons = [i for i, t in enumerate(significant) if t.text == ";"]
        if semicolons and semicolons[0] != len(significant) - 1:
            return self._reject("Multiple statements are not allowed", query_type)
        if semicolons:
            significant = significant[:-1]

        banned = self._find_banned_keyword(tokens)
        if banned:
            return self._reject(f"Keyword '{banned}' is not allowed", query_type)

        injection = self._check_injection_patterns(sql)
        if injection:
            return self._reject(f"Query contains potentially unsafe pattern: {injection}", query_type)

        if self._max_placeholder(significant) > parameter_count:
            return self._reject("Statement references parameters that were not supplied", query_type)

        references = self._extract_tables(significant)
        tables, error = self._authorize(references)
        if error:
            return ValidationResult(
                valid=False,
                error=error,
                query_type=query_type,
                tables_accessed=tables,
            )

        normalized = self._normalize(sql, significant)
        return ValidationResult(
            valid=True,
            sql=normalized,
            query_type=query_type,
            tables_accessed=tables,
            warnings=self._check_warnings(normalized),
        )

    def approve(self, statement: str | CompiledQuery) -> CompiledQuery:
        """Validate a statement, returning the runnable CompiledQuery.

        Raises:
            SafetyViolationError: If the statement fails any check. The
                offending SQL is logged here and kept off the client payload.
        """
        result = self.validate(statement)
        sql = statement.sql if isinstance(statement, CompiledQuery) else statement

        if not result.valid:
            logger.warning(f"Safety gate rejected statement ({result.error}): {sql!r}")
            raise SafetyViolationError(result.error or "rejected", sql=sql)

        if isinstance(statement, CompiledQuery):
            return CompiledQuery(
                sql=result.sql,
                parameters=list(statement.parameters),
                source_table=statement.source_table,
            )
        return CompiledQuery(
            sql=result.sql,
            parameters=[],
            source_table=result.tables_accessed[0] if result.tables_accessed else None,
        )

    def _reject(self, error: str, query_type: QueryType) -> ValidationResult:
        return ValidationResult(valid=False, error=error, query_type=query_type)

    def _detect_query_type(self, first: Token) -> QueryType:
        """Detect the type of SQL statement from its first keyword."""
        keyword = first.text.upper() if first.kind == "word" else ""
        try:
            return QueryType(keyword)
        except ValueError:
            return QueryType.OTHER

    def _check_lexical(self, tokens: list[Token]) -> str | None:
        """Reject input the tokenizer cannot split the way the database would.

        Bracket and backtick identifiers, dollar quoting, escape strings,
        nested comments and unterminated literals all change where a string
        or identifier ends, which would hide the rest of the statement from
        the table check.
        """
        for i, token in enumerate(tokens):
            if token.kind == "unsupported":
                if token.text in ("'", '"', "/*"):
                    return "Unterminated string, identifier or comment"
                return f"Unsupported quoting character {token.text!r}"
            if token.kind == "comment" and token.text.startswith("/*") and "/*" in token.text[2:]:
                return "Nested comments are not allowed"
            nxt = tokens[i + 1] if i + 1 < len(tokens) else None
            if (
                token.is_word("E")
                and nxt is not None
                and nxt.kind == "string"
                and nxt.start == token.start + len(token.text)
            ):
                return "Escape string literals are not allowed"
        return None

    def _find_banned_keyword(self, tokens: list[Token]) -> str | None:
        for token in tokens:
            if token.kind == "word" and token.text.upper() in BANNED_KEYWORDS:
                return token.text.upper()
            if token.kind in ("string", "comment"):
                match = _BANNED_RE.search(token.text)
                if match:
                    return match.group(1).upper()
        return None

    def _check_injection_patterns(self, sql: str) -> str | None:
        """Check for SQL injection patterns.

        Returns:
            The matching pattern, or None if clean
        """
        for pattern in INJECTION_PATTERNS:
            if re.search(pattern, sql, re.IGNORECASE):
                return pattern
        return None

    def _max_placeholder(self, tokens: list[Token]) -> int:
        return max((int(t.text[1:]) for t in tokens if t.kind == "placeholder"), default=0)

    def _extract_tables(self, tokens: list[Token]) -> list[TableReference]:
        """Extract table references from FROM lists and JOIN clauses.

        FROM inside a function call (EXTRACT, SUBSTRING, TRIM) is ignored;
        FROM inside a parenthesized subquery is not.
        """
        references: list[TableReference] = []
        levels = [_Level(subquery=True)]
        i = 0
        while i < len(tokens):
            token = tokens[i]
            level = levels[-1]

            if token.text == "(":
                level.expect_table = False
                nxt = tokens[i + 1] if i + 1 < len(tokens) else None
                levels.append(_Level(subquery=nxt is not None and nxt.is_word("SELECT")))
            elif token.text == ")":
                if len(levels) > 1:
                    levels.pop()
            elif not level.subquery:
                pass
            elif token.is_word("FROM") and not (i > 0 and tokens[i - 1].is_word("DISTINCT")):
                level.in_from = level.expect_table = True
            elif token.is_word("JOIN"):
                level.in_from = level.expect_table = True
            elif token.is_word(*_FROM_TERMINATORS):
                level.in_from = level.expect_table = False
            elif token.text == "," and level.in_from:
                level.expect_table = True
            elif level.expect_table and token.is_word(*_TABLE_PREFIX_WORDS):
                pass
            elif level.expect_table:
                level.expect_table = False
                reference, end = self._read_table_name(tokens, i)
                if reference is not None:
                    references.append(reference)
                    i = end
                    continue
            i += 1
        return references

    def _read_table_name(self, tokens: list[Token], i: int) -> tuple[TableReference | None, int]:
        first = tokens[i]
        if first.kind not in ("word", "quoted"):
            return None, i
        parts = [first]
        i += 1
        while i + 1 < len(tokens) and tokens[i].text == "." and tokens[i + 1].kind in (
            "word",
            "quoted",
        ):
            parts.append(tokens[i + 1])
            i += 2

        name_token = parts[-1]
        schema_token = parts[-2] if len(parts) >= 2 else None
        if len(parts) > 2:
            # catalog.schema.table: keep it so the allow-list check rejects it
            schema_token = parts[0]
        return (
            TableReference(
                name=_identifier(name_token),
                schema=_identifier(schema_token) if schema_token is not None else None,
                quoted=name_token.kind == "quoted",
            ),
            i,
        )

    def _authorize(self, references: list[TableReference]) -> tuple[list[str], str | None]:
        """Map references onto catalog tables.

        Returns:
            (catalog names accessed, error message or None)
        """
        allowed = self.allowed_tables
        by_lower = {name.lower(): name for name in allowed}

        accessed: list[str] = []
        denied: list[str] = []
        for ref in references:
            if ref.schema is not None and ref.schema.lower() != self._schema.lower():
                denied.append(f"{ref.schema}.{ref.name}")
                continue
            resolved = ref.name if ref.quoted else by_lower.get(ref.name.lower())
            if resolved is None or resolved not in allowed:
                denied.append(ref.name)
            elif resolved not in accessed:
                accessed.append(resolved)

        if denied:
            return accessed, (
                f"Access denied to tables: {', '.join(sorted(set(denied)))}. "
                f"Allowed tables: {', '.join(sorted(allowed))}"
            )
        if not accessed:
            return accessed, "Query does not reference any known table"
        return accessed, None

    def _normalize(self, sql: str, significant: list[Token]) -> str:
        """Cut leading comments and a trailing semicolon."""
        last = significant[-1]
        return sql[significant[0].start : last.start + len(last.text)].strip()

    def _check_warnings(self, sql: str) -> list[str]:
        """Generate warnings for potentially problematic queries."""
        warnings = []

        if re.search(r"\bSELECT\s+\*", sql, re.IGNORECASE):
            warnings.append(
                "Using SELECT * may return more data than needed. "
                "Consider selecting specific columns."
            )

        if not re.search(r"\bLIMIT\s+(\d+|\$\d+)", sql, re.IGNORECASE):
            warnings.append(
                "No LIMIT clause found. Results will be capped at the configured row limit."
            )

        return warnings


def _identifier(token: Token) -> str:
    if token.kind == "quoted":
        return token.text[1:-1].replace('""', '"')
    return token.text
