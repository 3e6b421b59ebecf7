"""Schema discovery and QueryGate's own ORM models."""

from querygate.schema.catalog import SchemaCatalog, quote_identifier
from querygate.schema.models import Base, FeedbackEntry

__all__ = ["Base", "FeedbackEntry", "SchemaCatalog", "quote_identifier"]
