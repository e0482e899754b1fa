"""Unit tests for SandboxExecutor."""

from unittest.mock import MagicMock

import pytest
from docker.errors import APIError
from docker.models.containers import ExecResult

from exe_service.models.errors import ExecutionError
from exe_service.models.sandbox import SandboxHandle, SandboxMode
from exe_service.services.sandbox.executor import InterpreterLaunchError, SandboxExecutor

from fakes import make_config


@pytest.fixture
def container(fake_docker):
    container = fake_docker.containers.create(
        "python:3.11-slim", command=["python3", "-c", "pass"], name="room-1"
    )
    container.start()
    return container


@pytest.fixture
def handle(container):
    return SandboxHandle(room_id="room-1", environment_ref=container, mode=SandboxMode.STATELESS)


@pytest.fixture
def executor(sandbox_config):
    return SandboxExecutor(sandbox_config)


class TestRunStateless:
    """Test stateless execution through docker exec."""

    @pytest.mark.asyncio
    async def test_runs_code(self, executor, handle):
        """Test simple code returns its output from the primary interpreter."""
        result = await executor.run_stateless(handle, "print(3*7)")

        assert "21" in result.combined_output
        assert result.exit_code == 0
        assert result.strategy == "python3"

    @pytest.mark.asyncio
    async def test_merges_stderr(self, executor, handle):
        """Test stderr is part of the combined output."""
        result = await executor.run_stateless(
            handle, "import sys\nprint('out', flush=True)\nsys.stderr.write('err\\n')"
        )

        assert "out" in result.combined_output
        assert "err" in result.combined_output

    @pytest.mark.asyncio
    async def test_guest_failure_is_a_result(self, executor, handle):
        """Test a non-zero exit from the guest program is returned, not raised."""
        result = await executor.run_stateless(handle, "raise ValueError('boom')")

        assert result.exit_code == 1
        assert "ValueError: boom" in result.combined_output
        assert result.strategy == "python3"

    @pytest.mark.asyncio
    async def test_falls_back_to_secondary(self, executor, handle, fake_docker):
        """Test a missing primary interpreter falls back to the secondary."""
        fake_docker.missing_binaries.add("python3")

        result = await executor.run_stateless(handle, "print(3*7)")

        assert "21" in result.combined_output
        assert result.strategy == "python"

    @pytest.mark.asyncio
    async def test_both_interpreters_missing(self, executor, handle, fake_docker):
        """Test exhausting both interpreters names both attempts."""
        fake_docker.missing_binaries.update({"python3", "python"})

        with pytest.raises(ExecutionError) as exc_info:
            await executor.run_stateless(handle, "print(1)")

        error = exc_info.value
        assert error.message.startswith("Exec failed (python3 + python)")
        assert [a.field for a in error.attempts] == ["python3", "python"]
        assert "executable file not found" in error.attempts[0].message

    @pytest.mark.asyncio
    async def test_stopped_container(self, executor, handle, container):
        """Test exec on a stopped container is an infrastructure failure."""
        container.crash()

        with pytest.raises(ExecutionError) as exc_info:
            await executor.run_stateless(handle, "print(1)")

        assert len(exc_info.value.attempts) == 2


class TestRunInterpreter:
    """Test launch failure detection."""

    @pytest.mark.asyncio
    async def test_api_error_is_launch_failure(self, executor):
        """Test runtime API errors are raised as launch failures."""
        container = MagicMock()
        container.exec_run.side_effect = APIError("daemon went away")
        handle = SandboxHandle(room_id="r", environment_ref=container, mode=SandboxMode.STATELESS)

        with pytest.raises(InterpreterLaunchError) as exc_info:
            await executor.run_interpreter(handle, "python3", "print(1)")

        assert "python3 exec failed" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_guest_exit_127_is_not_launch_failure(self, executor):
        """Test a guest that exits 127 on its own is a normal result."""
        container = MagicMock()
        container.exec_run.return_value = ExecResult(127, b"custom exit\n")
        handle = SandboxHandle(room_id="r", environment_ref=container, mode=SandboxMode.STATELESS)

        result = await executor.run_interpreter(handle, "python3", "import sys; sys.exit(127)")

        assert result.exit_code == 127
        assert result.combined_output == "custom exit\n"

    @pytest.mark.asyncio
    async def test_command_shape(self, executor):
        """Test the interpreter is invoked with -c and merged streams."""
        container = MagicMock()
        container.exec_run.return_value = ExecResult(0, b"ok\n")
        handle = SandboxHandle(room_id="r", environment_ref=container, mode=SandboxMode.STATELESS)

        await executor.run_interpreter(handle, "python", "print('ok')")

        container.exec_run.assert_called_once_with(
            ["python", "-c", "print('ok')"], stdout=True, stderr=True, demux=False
        )

    def test_interpreter_order_follows_config(self):
        """Test strategy order comes from the configured binaries."""
        executor = SandboxExecutor(
            make_config(primary_interpreter="python3.11", secondary_interpreter="python3")
        )

        assert [s.name for s in executor.interpreter_strategies()] == ["python3.11", "python3"]


class TestSanitizeOutput:
    """Test output decoding."""

    def test_strips_control_characters(self, executor):
        """Test control characters are removed but newlines and tabs kept."""
        assert executor._sanitize_output(b"a\x00b\x07c\n\td") == "abc\n\td"

    def test_empty(self, executor):
        """Test missing output decodes to an empty string."""
        assert executor._sanitize_output(None) == ""
        assert executor._sanitize_output(b"") == ""

    def test_invalid_utf8(self, executor):
        """Test undecodable bytes are replaced."""
        assert executor._sanitize_output(b"ok \xff") == "ok \ufffd"
