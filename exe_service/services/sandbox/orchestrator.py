"""Execution orchestration for room sandboxes.

Coordinates the lifecycle manager, the persistent agent and the stateless
interpreters for one ``exec`` call:

    1. Under the room's lifecycle lock, require a registered sandbox, bump
       its activity and make sure its container is running.
    2. Stateful sandboxes try the agent first. An unusable agent reply falls
       through to the interpreters without surfacing an error.
    3. The interpreters are tried primary first, then secondary.

Calls for the same room are queued and run one at a time.
"""

import asyncio
from typing import List, Optional

import structlog

from ...config import SandboxConfig, settings
from ...models.agent import AgentErr, truncate_traceback
from ...models.errors import ExecutionError
from ...models.sandbox import ExecutionResult, SandboxHandle
from .agent_client import AgentClient
from .executor import SandboxExecutor
from .manager import SandboxManager
from .registry import SandboxRegistry
from .strategies import ExecutionStrategy, run_strategies

logger = structlog.get_logger(__name__)


class FallbackOrchestrator:
    """Runs code in a room's sandbox through an ordered list of strategies."""

    def __init__(
        self,
        registry: SandboxRegistry,
        manager: SandboxManager,
        executor: Optional[SandboxExecutor] = None,
        agent_client: Optional[AgentClient] = None,
        config: Optional[SandboxConfig] = None,
    ):
        self._config = config or settings.sandbox
        self._registry = registry
        self._manager = manager
        self._executor = executor or SandboxExecutor(self._config)
        self._agent_client = agent_client or AgentClient(self._config)

    def strategies_for(self, handle: SandboxHandle) -> List[ExecutionStrategy]:
        """Strategies to try for the handle, in order."""
        strategies = []
        if handle.is_stateful:
            strategies.append(ExecutionStrategy(name="agent", run=self._run_agent))
        strategies.extend(self._executor.interpreter_strategies())
        return strategies

    async def exec(self, room_id: str, code: str) -> ExecutionResult:
        """Execute code in the room's sandbox.

        Raises:
            NotRunningError: If the room has no sandbox
            ExecutionError: If the guest code raised, every strategy failed,
                the call timed out or the sandbox was stopped mid-call
        """
        async with self._registry.exec_lock(room_id):
            async with self._registry.lock(room_id):
                # Raises NotRunningError for unknown rooms
                handle = await self._manager.ensure_running(room_id)
                self._registry.touch(room_id)

            result = await self._run_with_timeout(handle, code)

            if self._registry.get(room_id) is not handle:
                raise ExecutionError(
                    message=f"Sandbox for room {room_id} was stopped during execution"
                )
            self._registry.touch(room_id)
            return result

    async def _run_with_timeout(self, handle: SandboxHandle, code: str) -> ExecutionResult:
        strategies = self.strategies_for(handle)
        timeout = self._config.exec_timeout_seconds
        if timeout is None:
            return await run_strategies(strategies, handle, code)

        try:
            return await asyncio.wait_for(
                run_strategies(strategies, handle, code), timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.warning("exec.timeout", room_id=handle.room_id, timeout=timeout)
            # The guest process may still be running; the next exec restarts it
            async with self._registry.lock(handle.room_id):
                if self._registry.get(handle.room_id) is handle:
                    await self._manager.kill(handle)
                else:
                    logger.info("exec.timeout_sandbox_replaced", room_id=handle.room_id)
            raise ExecutionError(
                message=f"Execution exceeded {timeout}s and the sandbox was killed",
                timed_out=True,
            )

    async def _run_agent(self, handle: SandboxHandle, code: str) -> ExecutionResult:
        result = await self._agent_client.execute(handle, code)

        if isinstance(result, AgentErr):
            logger.info("exec.guest_error", room_id=handle.room_id, error=result.message)
            raise ExecutionError(
                message=result.message,
                guest_error=result.message,
                guest_traceback=truncate_traceback(
                    result.trace, self._config.agent_traceback_max_chars
                ),
            )

        return ExecutionResult(combined_output=result.combined_output)
