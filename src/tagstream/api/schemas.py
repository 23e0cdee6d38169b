from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from tagstream.models import OperationStatus, StreamNode


class HealthResponse(BaseModel):
    status: str = "ok"


class StreamRequest(BaseModel):
    """Cumulative text of the turn so far."""

    text: str


class FeedResponse(BaseModel):
    turn_id: str
    nodes: list[StreamNode]
    dispatched: list[str]


class OperationStatusResponse(BaseModel):
    id: str
    status: OperationStatus


class WorkspaceStatusResponse(BaseModel):
    status_line: str
    is_processing: bool
    pending: int
    execution_error: str | None = None
    followup: str | None = None
    active_file: str | None = None
    notices: list[str] = []


class DetectionSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    log: str
    timestamp: datetime
    status: str
