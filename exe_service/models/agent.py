"""Agent response models for the stateful execution path.

The agent answers every request with one JSON object. It is parsed into
an explicit tagged result so callers never handle untyped dictionaries.
"""

import json
from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class AgentOk:
    """The guest code ran to completion."""

    stdout: str
    stderr: str

    @property
    def combined_output(self) -> str:
        return self.stdout + self.stderr


@dataclass(frozen=True)
class AgentErr:
    """The guest code raised."""

    message: str
    trace: str
    stdout: str = ""
    stderr: str = ""


AgentResult = Union[AgentOk, AgentErr]


def parse_agent_response(raw: Union[str, bytes, None]) -> Optional[AgentResult]:
    """Parse a raw agent reply.

    Returns None when the reply is empty or does not follow the protocol,
    which means the agent is unavailable rather than that the guest failed.
    """
    if raw is None:
        return None
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    raw = raw.strip()
    if not raw:
        return None

    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, ValueError):
        return None

    if not isinstance(payload, dict) or not isinstance(payload.get("ok"), bool):
        return None

    stdout = payload.get("stdout") or ""
    stderr = payload.get("stderr") or ""
    if not isinstance(stdout, str) or not isinstance(stderr, str):
        return None

    if payload["ok"]:
        return AgentOk(stdout=stdout, stderr=stderr)

    return AgentErr(
        message=str(payload.get("error") or "Unknown error"),
        trace=str(payload.get("traceback") or ""),
        stdout=stdout,
        stderr=stderr,
    )


def truncate_traceback(trace: str, limit: int) -> str:
    """Keep the tail of a traceback, where the raising frame is."""
    if len(trace) <= limit:
        return trace
    return "...[truncated]\n" + trace[-limit:]
