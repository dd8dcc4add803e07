"""Stream start/stop endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..schemas import streams as streams_schema
from ..services.streams import StreamController, get_stream_controller

router = APIRouter()

ERROR_RESPONSES = {
    400: {"model": streams_schema.StreamErrorResponse},
    429: {"model": streams_schema.StreamErrorResponse},
    500: {"model": streams_schema.StreamErrorResponse},
    502: {"model": streams_schema.StreamErrorResponse},
}


@router.post("/start", response_model=streams_schema.StreamAck, responses=ERROR_RESPONSES)
async def start_stream(
    payload: streams_schema.StreamStartRequest,
    controller: StreamController = Depends(get_stream_controller),
) -> streams_schema.StreamAck:
    """Launch a streaming worker for the meeting."""

    return await controller.start(payload)


@router.post("/stop", response_model=streams_schema.StreamAck, responses=ERROR_RESPONSES)
async def stop_stream(
    payload: streams_schema.StreamStopRequest,
    controller: StreamController = Depends(get_stream_controller),
) -> streams_schema.StreamAck:
    """Tear down the meeting's streaming worker."""

    return await controller.stop(payload.meeting_id)
