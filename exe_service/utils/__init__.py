"""Utility modules for the execution sandbox service."""

from .id_generator import generate_request_id
from .logging import setup_logging

__all__ = [
    "generate_request_id",
    "setup_logging",
]
