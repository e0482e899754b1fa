"""API endpoints for the execution sandbox service."""

from . import health, rooms

__all__ = ["health", "rooms"]
