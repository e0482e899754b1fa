"""Room sandbox endpoints."""

import re
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import APIRouter

from ..config import settings
from ..dependencies import RoomServiceDep
from ..models import (
    ExecRequest,
    ExecResponse,
    RoomActionResponse,
    RoomStatusResponse,
    ValidationError,
)
from ..services.sandbox.utils import preview

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/execute/room")

# Room ids double as container names
ROOM_ID_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.-]{0,127}$")


def _validate_room_id(room_id: str) -> str:
    if not ROOM_ID_PATTERN.match(room_id):
        raise ValidationError(
            "room id must start with a letter or digit and contain only "
            "letters, digits, '_', '.' or '-'"
        )
    return room_id


@router.post("/{room_id}/start", response_model=RoomActionResponse)
async def start_room(room_id: str, rooms: RoomServiceDep):
    """Ensure the room has a running sandbox."""
    await rooms.start(_validate_room_id(room_id))
    return RoomActionResponse(status="started")


@router.post("/{room_id}/exec", response_model=ExecResponse)
async def exec_code(
    room_id: str, rooms: RoomServiceDep, request: Optional[ExecRequest] = None
):
    """Run a code snippet in the room's sandbox."""
    _validate_room_id(room_id)
    code = request.code if request else None
    if not code:
        raise ValidationError("code is required")

    code_size = len(code.encode("utf-8"))
    if code_size > settings.max_code_bytes:
        raise ValidationError(
            f"code is {code_size} bytes, the limit is {settings.max_code_bytes}"
        )

    logger.info("exec.request", room_id=room_id, code_preview=preview(code, 60))
    result = await rooms.exec(room_id, code)
    return ExecResponse(output=result.combined_output)


@router.post("/{room_id}/stop", response_model=RoomActionResponse)
async def stop_room(room_id: str, rooms: RoomServiceDep):
    """Destroy the room's sandbox. Stopping an unknown room succeeds."""
    await rooms.stop(_validate_room_id(room_id))
    return RoomActionResponse(status="stopped")


@router.get("/{room_id}/status", response_model=RoomStatusResponse)
async def room_status(room_id: str, rooms: RoomServiceDep):
    """Report the room's sandbox state without changing it."""
    status = await rooms.status(_validate_room_id(room_id))
    last_active_at = None
    if status.last_active_at is not None:
        last_active_at = datetime.fromtimestamp(status.last_active_at, tz=timezone.utc)

    return RoomStatusResponse(
        room_id=status.room_id,
        state=status.state.value,
        mode=status.mode.value if status.mode else None,
        created_at=status.created_at,
        last_active_at=last_active_at,
    )
