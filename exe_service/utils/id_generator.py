"""Identifier generation."""

import uuid


def generate_request_id() -> str:
    """Short random id used to correlate an error response with its log line."""
    return uuid.uuid4().hex[:12]
