"""Unit tests for the ordered strategy runner."""

from unittest.mock import AsyncMock

import pytest

from exe_service.models.errors import ExecutionError
from exe_service.models.sandbox import ExecutionResult, SandboxHandle, SandboxMode
from exe_service.services.sandbox.strategies import (
    ExecutionStrategy,
    StrategyUnavailable,
    run_strategies,
)


@pytest.fixture
def handle():
    return SandboxHandle(room_id="room-1", environment_ref=object(), mode=SandboxMode.STATELESS)


def strategy(name, result=None, error=None):
    run = AsyncMock(return_value=result, side_effect=error)
    return ExecutionStrategy(name=name, run=run)


class TestRunStrategies:
    """Test fallback through ordered strategies."""

    @pytest.mark.asyncio
    async def test_first_success_wins(self, handle):
        """Test later strategies are not tried after a success."""
        first = strategy("python3", result=ExecutionResult(combined_output="21\n"))
        second = strategy("python", result=ExecutionResult(combined_output="other"))

        result = await run_strategies([first, second], handle, "print(3*7)")

        assert result.combined_output == "21\n"
        assert result.strategy == "python3"
        first.run.assert_awaited_once_with(handle, "print(3*7)")
        second.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unavailable_falls_through(self, handle):
        """Test an unavailable strategy moves on to the next one silently."""
        first = strategy("python3", error=StrategyUnavailable("not found"))
        second = strategy("python", result=ExecutionResult(combined_output="ok"))

        result = await run_strategies([first, second], handle, "print('ok')")

        assert result.combined_output == "ok"
        assert result.strategy == "python"

    @pytest.mark.asyncio
    async def test_exhausted_names_every_attempt(self, handle):
        """Test the final error lists each strategy with its reason."""
        first = strategy("python3", error=StrategyUnavailable("python3 missing"))
        second = strategy("python", error=StrategyUnavailable("python missing"))

        with pytest.raises(ExecutionError) as exc_info:
            await run_strategies([first, second], handle, "print(1)")

        error = exc_info.value
        assert "python3 + python" in error.message
        assert "python3: python3 missing" in error.message
        assert "python: python missing" in error.message
        assert [a.field for a in error.attempts] == ["python3", "python"]
        assert all(a.code == "strategy_unavailable" for a in error.attempts)
        assert error.is_guest_error is False
        assert error.status_code == 500

    @pytest.mark.asyncio
    async def test_guest_error_is_not_a_fallback(self, handle):
        """Test a guest failure propagates without trying other strategies."""
        guest = ExecutionError("NameError: x", guest_error="NameError: x", guest_traceback="tb")
        first = strategy("agent", error=guest)
        second = strategy("python3", result=ExecutionResult(combined_output="never"))

        with pytest.raises(ExecutionError) as exc_info:
            await run_strategies([first, second], handle, "x")

        assert exc_info.value is guest
        second.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_strategy_list(self, handle):
        """Test running with no strategies is an execution failure."""
        with pytest.raises(ExecutionError) as exc_info:
            await run_strategies([], handle, "print(1)")

        assert "no strategies" in exc_info.value.message
