"""Curated example prompts for the natural-language query box."""

from __future__ import annotations

EXAMPLE_PROMPTS = [
    "Show me all contacts",
    "How many contacts are there?",
    "Show contacts with no email address",
    "Find contacts whose email ends with @acme.com",
    "List the 10 most recently created contacts",
    "How many campaigns are active?",
    "Show campaigns created in the last 30 days",
    "Count contacts by status",
    "Which campaigns have the most contacts?",
    "Show contacts who have never been called",
]


def get_suggestions(limit: int | None = None) -> list[str]:
    """Example prompts, optionally truncated to ``limit``."""
    prompts = list(EXAMPLE_PROMPTS)
    return prompts[:limit] if limit is not None else prompts
