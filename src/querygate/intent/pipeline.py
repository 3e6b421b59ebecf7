"""Intent pipeline for natural-language queries.

A request moves through:

    Submitted -> Analyzed(confident) -> ConfirmationPending -> Executed | Cancelled
    Submitted -> Analyzed(ambiguous) -> AwaitingClarification

An ambiguous intent is terminal: the user resubmits refined text, which
starts a new analysis. Every ``analyze`` call produces an independent
QueryIntent; nothing is cached between calls.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from querygate.core.types import QueryIntent, QueryResult
from querygate.exceptions import InvalidRequestError, UpstreamAnalysisError
from querygate.intent.analyzer import IntentAnalyzer
from querygate.query.context import SchemaContextBuilder
from querygate.query.executor import ExecutionEngine
from querygate.query.validator import SafetyGate

logger = logging.getLogger(__name__)

UNSAFE_EXPLANATION = (
    "This query contains operations which are not allowed. "
    "Only single read-only SELECT queries on known tables are permitted."
)


class IntentPipeline:
    """Wraps the external analysis capability in the safety envelope.

    The pipeline, not the analyzer, decides whether an intent is read-only,
    ambiguous, or runnable.
    """

    def __init__(
        self,
        gate: SafetyGate,
        executor: ExecutionEngine,
        context_builder: SchemaContextBuilder,
        analyzer: IntentAnalyzer | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            gate: Safety gate for suggested SQL
            executor: Engine that runs confirmed intents
            context_builder: Builds the schema context for the analyzer
            analyzer: External analysis capability (None = analysis unavailable)
        """
        self._gate = gate
        self._executor = executor
        self._context_builder = context_builder
        self._analyzer = analyzer

    @property
    def available(self) -> bool:
        """Whether an analyzer is configured."""
        return self._analyzer is not None

    def analyze(self, text: str) -> QueryIntent:
        """Interpret a natural-language request.

        Args:
            text: The user's request

        Returns:
            A new QueryIntent. ``is_read_only`` is True only if the analyzer
            claimed it AND the suggested SQL passed the safety gate.

        Raises:
            InvalidRequestError: If the text is empty
            UpstreamAnalysisError: If analysis is unavailable, fails, returns
                malformed output, or claims ambiguity without questions
        """
        query = (text or "").strip()
        if not query:
            raise InvalidRequestError("Query text is required.")

        if self._analyzer is None:
            raise UpstreamAnalysisError(
                "Query analysis is unavailable. Set OPENAI_API_KEY to enable it."
            )

        context = self._context_builder.build_context()
        try:
            payload = self._analyzer.analyze(query, context)
        except UpstreamAnalysisError as e:
            logger.error(f"Intent analysis failed for {query!r}: {e.message}")
            raise
        except Exception as e:
            logger.error(f"Intent analysis failed for {query!r}: {e}")
            raise UpstreamAnalysisError("Query analysis is unavailable.") from e

        return self._normalize(query, payload)

    def _normalize(self, query: str, payload: dict[str, Any]) -> QueryIntent:
        payload = dict(payload)
        if isinstance(payload.get("confidence"), int | float):
            payload["confidence"] = max(0, min(100, int(payload["confidence"])))

        try:
            candidate = QueryIntent.model_validate(payload)
        except ValidationError as e:
            logger.error(f"Malformed analysis output for {query!r}: {e}")
            raise UpstreamAnalysisError("Query analysis returned malformed output.") from e

        if candidate.is_ambiguous:
            if not candidate.clarifying_questions:
                logger.error(f"Analysis flagged {query!r} as ambiguous without questions")
                raise UpstreamAnalysisError(
                    "Query analysis returned an ambiguous result without clarifying questions."
                )
            if not candidate.suggested_sql.strip():
                return candidate
        elif not candidate.suggested_sql.strip():
            logger.error(f"Analysis returned no SQL for {query!r}")
            raise UpstreamAnalysisError("Query analysis returned no SQL.")

        verdict = self._gate.validate(candidate.suggested_sql)
        if not verdict.valid:
            logger.warning(
                f"Forcing intent unsafe ({verdict.error}): {candidate.suggested_sql!r}"
            )
            return candidate.model_copy(
                update={"is_read_only": False, "explanation": UNSAFE_EXPLANATION}
            )

        if candidate.is_ambiguous:
            return candidate
        return candidate.model_copy(update={"tables_involved": verdict.tables_accessed})

    def execute(self, intent: QueryIntent) -> QueryResult:
        """Run a confirmed intent.

        The suggested SQL is re-validated here; the verdict from ``analyze``
        is not trusted since the schema may have changed since.

        Raises:
            InvalidRequestError: If the intent is awaiting clarification
            SafetyViolationError: If the SQL fails the safety gate
        """
        if intent.is_ambiguous:
            raise InvalidRequestError(
                "This request needs clarification before it can run.",
                {"clarifying_questions": intent.clarifying_questions or []},
            )
        return self.execute_sql(intent.suggested_sql, intent.intent)

    def execute_sql(self, sql: str, user_query: str | None = None) -> QueryResult:
        """Run SQL the user confirmed, after re-validating it.

        Raises:
            SafetyViolationError: Before any database access if the SQL fails
                the safety gate
        """
        approved = self._gate.approve(sql)
        logger.info(f"Executing confirmed query for {user_query!r}")
        return self._executor.run(approved)
