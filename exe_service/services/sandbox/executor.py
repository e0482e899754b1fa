"""Stateless command execution in room sandboxes.

Every call spawns a fresh interpreter inside the room's container through
``docker exec`` and captures merged stdout/stderr.
"""

import re
import time
from typing import List, Optional

import structlog

from ...config import SandboxConfig, settings
from ...models.sandbox import ExecutionResult, SandboxHandle
from .strategies import ExecutionStrategy, StrategyUnavailable, run_strategies
from .utils import RUNTIME_ERRORS, preview, run_in_executor

logger = structlog.get_logger(__name__)

# Reports the runtime gives when the binary itself could not be started
_LAUNCH_FAILURE_MARKERS = (
    "executable file not found",
    "oci runtime exec failed",
    "no such file or directory",
)
_LAUNCH_FAILURE_EXIT_CODES = {126, 127}

MAX_OUTPUT_CHARS = 1024 * 1024


class InterpreterLaunchError(StrategyUnavailable):
    """The interpreter binary could not be launched in the sandbox."""


class SandboxExecutor:
    """Runs code in a fresh interpreter process per call."""

    def __init__(self, config: Optional[SandboxConfig] = None):
        self._config = config or settings.sandbox

    def interpreter_strategies(self) -> List[ExecutionStrategy]:
        """Primary then secondary interpreter, as named strategies."""
        return [
            ExecutionStrategy(
                name=binary,
                run=lambda handle, code, binary=binary: self.run_interpreter(
                    handle, binary, code
                ),
            )
            for binary in self._config.interpreters
        ]

    async def run_stateless(self, handle: SandboxHandle, code: str) -> ExecutionResult:
        """Run code with the primary interpreter, falling back to the secondary.

        Raises:
            ExecutionError: If neither interpreter could be launched
        """
        return await run_strategies(self.interpreter_strategies(), handle, code)

    async def run_interpreter(
        self, handle: SandboxHandle, binary: str, code: str
    ) -> ExecutionResult:
        """Execute ``binary -c code`` in the sandbox.

        A non-zero exit status from the guest program is a normal result.

        Raises:
            InterpreterLaunchError: If the process could not be started
        """
        start_time = time.perf_counter()
        try:
            result = await run_in_executor(
                handle.environment_ref.exec_run,
                [binary, "-c", code],
                stdout=True,
                stderr=True,
                demux=False,
            )
        except RUNTIME_ERRORS as e:
            raise InterpreterLaunchError(f"{binary} exec failed: {e}") from e

        output = self._sanitize_output(result.output)
        if self._is_launch_failure(result.exit_code, output):
            raise InterpreterLaunchError(
                f"{binary} could not be started (exit code {result.exit_code}): "
                f"{preview(output.strip(), 200)}"
            )

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "exec.success",
            room_id=handle.room_id,
            lang=binary,
            duration_ms=f"{elapsed_ms:.1f}",
            exit_code=result.exit_code,
            out_preview=preview(output, 120),
            out_length=len(output),
        )
        return ExecutionResult(combined_output=output, exit_code=result.exit_code)

    def _is_launch_failure(self, exit_code: Optional[int], output: str) -> bool:
        if exit_code not in _LAUNCH_FAILURE_EXIT_CODES:
            return False
        lowered = output.lower()
        return any(marker in lowered for marker in _LAUNCH_FAILURE_MARKERS)

    def _sanitize_output(self, output: Optional[bytes]) -> str:
        """Decode command output and drop control characters."""
        if not output:
            return ""
        output_str = output.decode("utf-8", errors="replace")

        if len(output_str) > MAX_OUTPUT_CHARS:
            output_str = (
                output_str[:MAX_OUTPUT_CHARS]
                + "\n[Output truncated - size limit exceeded]"
            )

        return re.sub(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]", "", output_str)
