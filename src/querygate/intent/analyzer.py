"""Intent analyzers: the external capability that turns text into candidate SQL.

The pipeline only depends on the ``IntentAnalyzer`` interface, so tests and
alternative backends can be injected without a live model.
"""

from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from querygate.exceptions import ConfigurationError, UpstreamAnalysisError
from querygate.query.context import render_summary

if TYPE_CHECKING:
    from openai import OpenAI

logger = logging.getLogger(__name__)


class IntentAnalyzer(ABC):
    """Interface for natural-language analysis backends."""

    @abstractmethod
    def analyze(self, query: str, schema_context: dict[str, Any]) -> dict[str, Any]:
        """Interpret a natural-language request.

        Args:
            query: The user's request text
            schema_context: Context built by SchemaContextBuilder

        Returns:
            QueryIntent-shaped JSON object (camelCase keys)

        Raises:
            UpstreamAnalysisError: If the backend fails or returns non-JSON
        """
        ...

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Model identifier, for logs."""
        ...


class OpenAIIntentAnalyzer(IntentAnalyzer):
    """OpenAI chat-completions analyzer.

    Example:
        >>> analyzer = OpenAIIntentAnalyzer()  # Uses OPENAI_API_KEY env var
        >>> analyzer.analyze("how many contacts are there?", context)["suggestedSQL"]
        'SELECT COUNT(*) FROM contacts'
    """

    DEFAULT_MODEL = "gpt-4o-mini"
    TEMPERATURE = 0.3

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        api_key: str | None = None,
        client: OpenAI | None = None,
    ) -> None:
        """Initialize OpenAI analyzer.

        Args:
            model: Chat model name. Defaults to gpt-4o-mini.
            api_key: OpenAI API key. Falls back to OPENAI_API_KEY env var.
            client: Pre-built OpenAI client (overrides api_key)
        """
        self._model = model
        if client is not None:
            self._client = client
            return

        from openai import OpenAI

        api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise ConfigurationError(
                "OpenAI API key required. Set OPENAI_API_KEY environment variable "
                "or pass api_key parameter."
            )
        self._client = OpenAI(api_key=api_key)

    @property
    def model_name(self) -> str:
        return self._model

    def analyze(self, query: str, schema_context: dict[str, Any]) -> dict[str, Any]:
        system_prompt = (
            "You are a SQL expert assistant that converts natural language queries "
            "into read-only SELECT queries.\n\n" + render_summary(schema_context)
        )
        try:
            response = self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": query},
                ],
                response_format={"type": "json_object"},
                temperature=self.TEMPERATURE,
            )
        except Exception as e:
            raise UpstreamAnalysisError(
                "Query analysis is unavailable. Please try again later.",
                {"model": self._model},
            ) from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise UpstreamAnalysisError("Query analysis returned no response.", {"model": self._model})

        try:
            payload = json.loads(content)
        except json.JSONDecodeError as e:
            raise UpstreamAnalysisError(
                "Query analysis returned malformed output.", {"model": self._model}
            ) from e

        if not isinstance(payload, dict):
            raise UpstreamAnalysisError(
                "Query analysis returned malformed output.", {"model": self._model}
            )
        return payload
