"""HTTP surface of the central aggregator."""

from .app import create_app

__all__ = ["create_app"]
