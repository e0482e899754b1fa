"""Ordered execution strategies with recorded fallbacks.

Each strategy either returns a result, raises ``StrategyUnavailable`` when
its infrastructure path failed, or raises ``ExecutionError`` when the guest
program itself failed. Only the first kind moves on to the next strategy.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, List, Sequence

import structlog

from ...models.errors import ErrorDetail, ExecutionError
from ...models.sandbox import ExecutionResult, SandboxHandle

logger = structlog.get_logger(__name__)


class StrategyUnavailable(Exception):
    """The strategy's execution path failed before the guest code ran."""


@dataclass
class ExecutionStrategy:
    """A named way of running code in a sandbox."""

    name: str
    run: Callable[[SandboxHandle, str], Awaitable[ExecutionResult]]


async def run_strategies(
    strategies: Sequence[ExecutionStrategy], handle: SandboxHandle, code: str
) -> ExecutionResult:
    """Try strategies in order until one produces a result.

    Raises:
        ExecutionError: When the guest code fails, or when every strategy
            was unavailable. In the latter case the error names each
            attempted strategy and why it failed.
    """
    failures: List[ErrorDetail] = []

    for strategy in strategies:
        try:
            result = await strategy.run(handle, code)
        except StrategyUnavailable as e:
            failures.append(
                ErrorDetail(field=strategy.name, message=str(e), code="strategy_unavailable")
            )
            logger.warning(
                "exec.fallback",
                room_id=handle.room_id,
                strategy=strategy.name,
                error=str(e),
            )
            continue

        result.strategy = strategy.name
        if failures:
            logger.info(
                "exec.fallback_succeeded",
                room_id=handle.room_id,
                strategy=strategy.name,
                skipped=[f.field for f in failures],
            )
        return result

    attempted = " + ".join(f.field for f in failures) or "no strategies"
    reasons = "; ".join(f"{f.field}: {f.message}" for f in failures)
    raise ExecutionError(
        message=f"Exec failed ({attempted}). {reasons}".strip(),
        attempts=failures,
    )
