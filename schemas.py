"""
Pydantic models for queue payloads and API responses of the story video worker.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict


class SegmentMessage(BaseModel):
    """Payload of a segment queue message."""
    model_config = ConfigDict(coerce_numbers_to_str=True)

    segmentId: str = Field(min_length=1)


class VideoMessage(BaseModel):
    """Payload of a video queue message."""
    model_config = ConfigDict(coerce_numbers_to_str=True)

    videoId: str = Field(min_length=1)


class QueueMessage(BaseModel):
    """A message popped from a queue, with its delivery handle."""
    msg_id: int
    read_ct: int = 0
    message: Any = None


class HandlerResponse(BaseModel):
    """Outcome of one queue dispatch pass."""
    status_code: int
    body: Dict[str, Any]


class QueueStatusResponse(BaseModel):
    isProcessing: bool
    messagesAvailable: bool
    workerCount: int
    processingInterval: int


class ControlResponse(BaseModel):
    message: str

