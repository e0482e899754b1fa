"""Main FastAPI application for the execution sandbox service."""

# Standard library imports
from contextlib import asynccontextmanager

# Third-party imports
import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Local application imports
from . import __version__
from .api import health, rooms
from .config import settings
from .dependencies import get_room_service
from .utils.error_handlers import register_error_handlers
from .utils.logging import setup_logging

# Setup logging
setup_logging()
logger = structlog.get_logger()


async def _probe_runtime() -> None:
    """Check the container runtime once at startup.

    An unreachable runtime is logged and the service keeps running; each
    request tries to connect again.
    """
    room_service = get_room_service()
    if await room_service.is_ready():
        logger.info("Container runtime reachable")
    else:
        logger.error(
            "Container runtime unreachable at startup",
            error=room_service.get_initialization_error(),
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting execution sandbox service", version=__version__)

    if settings.api_debug:
        logger.warning("Debug mode is enabled - disable in production")
    logger.info(
        "Sandbox policy",
        image=settings.sandbox_image,
        memory_mb=settings.sandbox_memory_mb,
        cpu_shares=settings.sandbox_cpu_shares,
        network=settings.sandbox_network_mode,
        stateful=settings.stateful_mode,
    )

    await _probe_runtime()
    room_service = get_room_service()
    room_service.start_reaper()

    logger.info("Execution sandbox service startup completed")

    yield

    logger.info("Shutting down execution sandbox service")
    await room_service.shutdown()
    logger.info("Execution sandbox service shutdown completed")


app = FastAPI(
    title="Execution Sandbox Service",
    description="Runs code snippets in one isolated container per collaboration room",
    version=__version__,
    docs_url="/docs" if settings.enable_docs else None,
    redoc_url="/redoc" if settings.enable_docs else None,
    debug=settings.api_debug,
    lifespan=lifespan,
)

if settings.enable_cors:
    origins = settings.cors_origins if settings.cors_origins else ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    logger.info("CORS enabled", origins=origins)

# Register global error handlers
register_error_handlers(app)

app.include_router(rooms.router, tags=["rooms"])
app.include_router(health.router, tags=["health"])


def run_server():
    logger.info(f"Starting HTTP server on {settings.api_host}:{settings.api_port}")
    uvicorn.run(
        "exe_service.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
        log_level=settings.log_level.lower(),
        access_log=settings.enable_access_logs,
        timeout_keep_alive=120,
    )


if __name__ == "__main__":
    run_server()
