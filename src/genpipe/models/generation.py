"""Pydantic models for generation results and job-start events."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from genpipe.models.enums import TERMINAL_STATUSES, ResultStatus


class GenerationResultModel(BaseModel):
    """A generation result record as exposed to pollers."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    event_name: str
    event_id: str | None = None
    status: ResultStatus
    step: str | None = None
    message: str | None = None
    result: Any = None
    error: str | None = None
    object_type: str
    object_id: str = ""
    object_key: str = ""
    cancel_requested: bool = False
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class JobStartEvent(BaseModel):
    """Event emitted by the dispatcher and consumed by workers."""

    model_config = ConfigDict(extra="forbid")

    id: str
    event_name: str
    object_type: str
    object_id: str = ""
    object_key: str = ""
    data: dict[str, Any] = Field(default_factory=dict)
    event_id: str | None = None


class DispatchRequest(BaseModel):
    """Body of POST /generations."""

    model_config = ConfigDict(extra="forbid")

    event_name: str = Field(..., min_length=1, max_length=200)
    object_type: str = Field(..., min_length=1, max_length=100)
    object_id: str | None = Field(None, max_length=128)
    object_key: str | None = Field(None, max_length=100)
    data: dict[str, Any] = Field(default_factory=dict)
    force: bool = False


class DispatchResponse(BaseModel):
    id: str
    status: ResultStatus
