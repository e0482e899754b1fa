"""Error models and exception classes for the execution sandbox service."""

import time
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorType(str, Enum):
    """Error type enumeration."""

    VALIDATION = "validation"
    RESOURCE_NOT_FOUND = "resource_not_found"
    EXECUTION_FAILED = "execution_failed"
    TIMEOUT = "timeout"
    INTERNAL_SERVER = "internal_server"
    SERVICE_UNAVAILABLE = "service_unavailable"
    EXTERNAL_SERVICE = "external_service"


class ErrorDetail(BaseModel):
    """Detailed error information."""

    field: Optional[str] = Field(None, description="Field or strategy the detail refers to")
    message: str = Field(..., description="Human-readable error message")
    code: Optional[str] = Field(None, description="Machine-readable error code")


class ErrorResponse(BaseModel):
    """Standardized error response model."""

    model_config = ConfigDict(use_enum_values=True)

    error: str = Field(..., description="Short error label")
    message: str = Field(..., description="Human-readable error detail")
    error_type: ErrorType = Field(..., description="Error category")
    details: Optional[List[ErrorDetail]] = Field(
        None, description="Additional error details"
    )
    request_id: Optional[str] = Field(
        None, description="Request identifier for tracking"
    )
    timestamp: float = Field(default_factory=time.time, description="Error timestamp")


# Custom Exception Classes


class ExecServiceException(Exception):
    """Base exception for the execution sandbox service."""

    error_code = "internal_error"

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.INTERNAL_SERVER,
        status_code: int = 500,
        details: Optional[List[ErrorDetail]] = None,
        request_id: Optional[str] = None,
        error_code: Optional[str] = None,
    ):
        self.message = message
        self.error_type = error_type
        self.status_code = status_code
        self.details = details or []
        self.request_id = request_id
        if error_code:
            self.error_code = error_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert exception to error response model."""
        return ErrorResponse(
            error=self.error_code,
            message=self.message,
            error_type=self.error_type,
            details=self.details if self.details else None,
            request_id=self.request_id,
        )


class ValidationError(ExecServiceException):
    """Request validation errors."""

    error_code = "validation_failed"

    def __init__(self, message: str = "Validation failed", **kwargs):
        super().__init__(
            message=message, error_type=ErrorType.VALIDATION, status_code=400, **kwargs
        )


class ConfigurationError(ExecServiceException):
    """The container runtime is unreachable or misconfigured."""

    error_code = "runtime_unavailable"

    def __init__(self, message: str = "Container runtime is unavailable", **kwargs):
        super().__init__(
            message=message,
            error_type=ErrorType.SERVICE_UNAVAILABLE,
            status_code=503,
            **kwargs,
        )


class NotRunningError(ExecServiceException):
    """The room has no active sandbox."""

    error_code = "room_not_running"

    def __init__(self, room_id: str, message: Optional[str] = None, **kwargs):
        self.room_id = room_id
        super().__init__(
            message=message or f"No sandbox running for room {room_id}",
            error_type=ErrorType.VALIDATION,
            status_code=400,
            **kwargs,
        )


class CreationError(ExecServiceException):
    """The runtime refused to allocate a new environment."""

    error_code = "creation_failed"

    def __init__(self, room_id: str, message: str, **kwargs):
        self.room_id = room_id
        super().__init__(
            message=f"Failed to start sandbox for room {room_id}: {message}",
            error_type=ErrorType.EXTERNAL_SERVICE,
            status_code=500,
            **kwargs,
        )


class StopError(ExecServiceException):
    """Both the graceful stop and the forceful kill failed."""

    error_code = "stop_failed"

    def __init__(self, room_id: str, stop_reason: str, kill_reason: str, **kwargs):
        self.room_id = room_id
        self.stop_reason = stop_reason
        self.kill_reason = kill_reason
        super().__init__(
            message=(
                f"Failed to stop sandbox for room {room_id}. "
                f"Stop: {stop_reason}; Kill: {kill_reason}"
            ),
            error_type=ErrorType.EXTERNAL_SERVICE,
            status_code=500,
            **kwargs,
        )


class ExecutionError(ExecServiceException):
    """Guest code raised, or every execution strategy was exhausted.

    ``attempts`` names each strategy that was tried together with its
    failure reason, so a guest bug can be told apart from an
    infrastructure fault.
    """

    error_code = "execution_failed"

    def __init__(
        self,
        message: str,
        attempts: Optional[List[ErrorDetail]] = None,
        guest_error: Optional[str] = None,
        guest_traceback: Optional[str] = None,
        timed_out: bool = False,
        **kwargs,
    ):
        self.attempts = attempts or []
        self.guest_error = guest_error
        self.guest_traceback = guest_traceback
        self.timed_out = timed_out
        details = list(self.attempts)
        if guest_traceback:
            details.append(
                ErrorDetail(field="traceback", message=guest_traceback, code="guest_error")
            )
        if timed_out:
            kwargs.setdefault("error_code", "execution_timeout")
            error_type, status_code = ErrorType.TIMEOUT, 504
        else:
            error_type, status_code = ErrorType.EXECUTION_FAILED, 500
        super().__init__(
            message=message,
            error_type=error_type,
            status_code=status_code,
            details=details,
            **kwargs,
        )

    @property
    def is_guest_error(self) -> bool:
        """True when the guest program itself raised."""
        return self.guest_error is not None

