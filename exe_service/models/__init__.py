"""Data models for the execution sandbox service."""

from .agent import AgentErr, AgentOk, AgentResult, parse_agent_response
from .errors import (
    ConfigurationError,
    CreationError,
    ErrorDetail,
    ErrorResponse,
    ErrorType,
    ExecServiceException,
    ExecutionError,
    NotRunningError,
    StopError,
    ValidationError,
)
from .exec import (
    ExecRequest,
    ExecResponse,
    ReadinessResponse,
    RoomActionResponse,
    RoomStatusResponse,
)
from .sandbox import (
    ActivityRecord,
    ExecutionResult,
    RoomStatus,
    SandboxHandle,
    SandboxMode,
    SandboxState,
)

__all__ = [
    # Sandbox models
    "ActivityRecord",
    "ExecutionResult",
    "RoomStatus",
    "SandboxHandle",
    "SandboxMode",
    "SandboxState",
    # Agent models
    "AgentOk",
    "AgentErr",
    "AgentResult",
    "parse_agent_response",
    # Exec endpoint models
    "ExecRequest",
    "ExecResponse",
    "ReadinessResponse",
    "RoomActionResponse",
    "RoomStatusResponse",
    # Error models
    "ErrorType",
    "ErrorDetail",
    "ErrorResponse",
    "ExecServiceException",
    "ValidationError",
    "ConfigurationError",
    "NotRunningError",
    "CreationError",
    "StopError",
    "ExecutionError",
]
