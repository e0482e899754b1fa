"""Health check endpoints."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
import structlog

from ..config import settings
from ..dependencies import RoomServiceDep
from ..models import ReadinessResponse

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/health", summary="Basic health check")
async def basic_health_check():
    """Liveness check that does not touch the container runtime."""
    return {"status": "ok", "service": "exe"}


@router.get(
    "/health/ready", summary="Runtime readiness check", response_model=ReadinessResponse
)
async def readiness_check(rooms: RoomServiceDep):
    """Check whether the container runtime answers."""
    ready = await rooms.is_ready()
    if ready:
        return ReadinessResponse(ready=True)

    error = rooms.get_initialization_error()
    logger.warning("Container runtime not ready", error=error)
    content = {"ready": False}
    if settings.api_debug and error:
        content["error"] = error
    return JSONResponse(status_code=503, content=content)
