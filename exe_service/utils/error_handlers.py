"""Global error handlers for the execution sandbox service.

Every error leaves the service as an ``ErrorResponse`` body. Log lines carry
the request id from that body plus the room the request addressed, so a
failing room can be followed from the response back to the logs.
"""

# Standard library imports
import traceback
from typing import Any, Dict, Union

# Third-party imports
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

# Local application imports
from ..models.errors import (
    ExecServiceException,
    ErrorResponse,
    ErrorType,
    ErrorDetail,
)
from .id_generator import generate_request_id

logger = structlog.get_logger(__name__)

# Status codes raised by the framework itself (unknown route, wrong method...)
HTTP_ERROR_TYPES = {
    400: ErrorType.VALIDATION,
    404: ErrorType.RESOURCE_NOT_FOUND,
    405: ErrorType.VALIDATION,
    413: ErrorType.VALIDATION,
    415: ErrorType.VALIDATION,
    422: ErrorType.VALIDATION,
    502: ErrorType.EXTERNAL_SERVICE,
    503: ErrorType.SERVICE_UNAVAILABLE,
    504: ErrorType.TIMEOUT,
}

# Detail messages can hold guest tracebacks; those belong in the response
MAX_LOGGED_DETAIL = 200


def _request_context(request: Request, request_id: str) -> Dict[str, Any]:
    context = {
        "request_id": request_id,
        "path": request.url.path,
        "method": request.method,
        "client_ip": request.client.host if request.client else "unknown",
    }
    room_id = request.path_params.get("room_id")
    if room_id is not None:
        context["room_id"] = room_id
    return context


def _logged_details(details) -> list:
    return [
        {"field": d.field, "message": d.message[:MAX_LOGGED_DETAIL], "code": d.code}
        for d in details
    ]


def _respond(status_code: int, body: ErrorResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def exec_service_exception_handler(
    request: Request, exc: ExecServiceException
) -> JSONResponse:
    """Handle room lifecycle, execution and validation errors."""
    if not exc.request_id:
        exc.request_id = generate_request_id()

    context = _request_context(request, exc.request_id)
    context.update(
        error=exc.error_code,
        error_type=exc.error_type.value,
        status_code=exc.status_code,
        message=exc.message,
    )
    if exc.details:
        context["details"] = _logged_details(exc.details)

    if exc.status_code >= 500:
        logger.error("Room request failed", **context)
    else:
        logger.warning("Room request rejected", **context)

    return _respond(exc.status_code, exc.to_response())


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Handle HTTP errors raised by routing or by ``HTTPException``."""
    request_id = generate_request_id()
    error_type = HTTP_ERROR_TYPES.get(exc.status_code, ErrorType.INTERNAL_SERVER)

    logger.warning(
        "HTTP error",
        status_code=exc.status_code,
        detail=exc.detail,
        **_request_context(request, request_id),
    )

    return _respond(
        exc.status_code,
        ErrorResponse(
            error=error_type.value,
            message=str(exc.detail),
            error_type=error_type,
            request_id=request_id,
        ),
    )


async def validation_exception_handler(
    request: Request, exc: Union[RequestValidationError, PydanticValidationError]
) -> JSONResponse:
    """Handle request body validation errors.

    Malformed requests are client errors and answer with 400, the same as a
    missing ``code`` field.
    """
    request_id = generate_request_id()
    details = [
        ErrorDetail(
            field=" -> ".join(str(loc) for loc in error["loc"]),
            message=error["msg"],
            code=error["type"],
        )
        for error in exc.errors()
    ]

    logger.warning(
        "Request validation failed",
        validation_errors=_logged_details(details),
        **_request_context(request, request_id),
    )

    return _respond(
        400,
        ErrorResponse(
            error="validation_failed",
            message="Request validation failed",
            error_type=ErrorType.VALIDATION,
            details=details,
            request_id=request_id,
        ),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    request_id = generate_request_id()

    logger.error(
        "Unexpected exception",
        exception_type=type(exc).__name__,
        exception_message=str(exc),
        traceback=traceback.format_exc(),
        **_request_context(request, request_id),
    )

    # Don't expose internal details
    return _respond(
        500,
        ErrorResponse(
            error="internal_error",
            message="An unexpected error occurred",
            error_type=ErrorType.INTERNAL_SERVER,
            request_id=request_id,
        ),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Install the handlers on the application."""
    app.add_exception_handler(ExecServiceException, exec_service_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PydanticValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
