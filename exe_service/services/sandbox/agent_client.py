"""Client side of the stateful agent protocol.

The host cannot reach the guest's Unix socket directly because sandboxes
have no network. Each request therefore runs the agent module's ``request``
shim through ``docker exec``; the shim connects to the socket inside the
container and prints the agent's JSON reply on stdout.
"""

import base64
import time
from pathlib import Path
from typing import List, Optional

import structlog

from ...config import SandboxConfig, settings
from ...models.agent import AgentOk, AgentResult, parse_agent_response
from ...models.sandbox import SandboxHandle
from . import agent_server
from .strategies import StrategyUnavailable
from .utils import RUNTIME_ERRORS, run_in_executor

logger = structlog.get_logger(__name__)

# Source shipped into the guest for both the agent and its client shim
AGENT_SOURCE = Path(agent_server.__file__).read_text(encoding="utf-8")


def build_serve_command(interpreter: str, socket_path: str) -> List[str]:
    """Guest command that launches the persistent agent."""
    return [interpreter, "-c", AGENT_SOURCE, "serve", socket_path]


def build_request_command(interpreter: str, socket_path: str, code: str) -> List[str]:
    """Exec command that forwards one code payload to the agent."""
    payload = base64.b64encode(code.encode("utf-8")).decode("ascii")
    return [interpreter, "-c", AGENT_SOURCE, "request", socket_path, payload]


class AgentUnavailable(StrategyUnavailable):
    """The agent could not be reached or answered outside the protocol."""


class AgentClient:
    """Sends code to the agent running in a stateful sandbox."""

    def __init__(self, config: Optional[SandboxConfig] = None):
        self._config = config or settings.sandbox

    async def execute(self, handle: SandboxHandle, code: str) -> AgentResult:
        """Run code through the agent.

        Returns:
            ``AgentOk`` or ``AgentErr`` parsed from the reply

        Raises:
            AgentUnavailable: If the request could not be delivered, or the
                reply was empty or not a protocol object
        """
        start_time = time.perf_counter()
        command = build_request_command(
            self._config.primary_interpreter, self._config.agent_socket_path, code
        )

        try:
            result = await run_in_executor(
                handle.environment_ref.exec_run, command, stdout=True, stderr=False
            )
        except RUNTIME_ERRORS as e:
            logger.warning(
                "Agent request could not be sent",
                room_id=handle.room_id,
                error=str(e),
            )
            raise AgentUnavailable(f"agent request failed: {e}") from e

        output = result.output or b""
        parsed = parse_agent_response(output)
        elapsed_ms = (time.perf_counter() - start_time) * 1000

        if parsed is None:
            logger.warning(
                "Agent reply unusable",
                room_id=handle.room_id,
                exit_code=result.exit_code,
                reply_length=len(output),
                elapsed_ms=f"{elapsed_ms:.1f}",
            )
            if not output.strip():
                raise AgentUnavailable(
                    f"agent returned an empty reply (exit code {result.exit_code})"
                )
            raise AgentUnavailable("agent reply is not a protocol object")

        logger.debug(
            "Agent request completed",
            room_id=handle.room_id,
            ok=isinstance(parsed, AgentOk),
            elapsed_ms=f"{elapsed_ms:.1f}",
        )
        return parsed
