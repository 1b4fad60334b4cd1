"""
Pydantic schemas for the pipeline API.
"""
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.core.jobs import QueueJobState


class PipelineRequest(BaseModel):
    """Request body for submitting a pipeline run."""
    model_config = ConfigDict(populate_by_name=True)

    project_id: str = Field(
        ..., alias="projectId", min_length=1, max_length=256, pattern=r"^[A-Za-z0-9][A-Za-z0-9._-]*$"
    )
    prompt: str = Field(..., min_length=1, max_length=16384)


class PipelineCreateResponse(BaseModel):
    id: str


class PipelineStatusResponse(BaseModel):
    """Queue state; result is the pipeline report once completed."""
    state: QueueJobState
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    attempts: int = 0
