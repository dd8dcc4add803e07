"""Schemas for the stream start/stop endpoints."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class StreamStartRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    meeting_id: str = Field(alias="meetingId", description="Meeting to relay")
    hide_presentation: bool = Field(default=False, alias="hidePresentation")
    rtmp_url: str = Field(alias="rtmpUrl", description="RTMP destination for the relay")


class StreamStopRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    meeting_id: str = Field(alias="meetingId")


class StreamAck(BaseModel):
    message: str


class StreamErrorResponse(BaseModel):
    error: str
    kind: str
