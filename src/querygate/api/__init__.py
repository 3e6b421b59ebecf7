"""HTTP API for QueryGate."""

from querygate.api.app import create_app

__all__ = ["create_app"]
