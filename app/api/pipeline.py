"""
Pipeline API routes: submit a run, poll its queue state.
"""
import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.api.deps import get_queue
from app.core.jobs import PipelineQueue
from app.pipeline.models import PipelinePayload
from app.schemas.pipeline import PipelineCreateResponse, PipelineRequest, PipelineStatusResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/pipeline", tags=["pipeline"])


@router.post("", response_model=PipelineCreateResponse)
async def submit_pipeline(
    body: PipelineRequest,
    queue: PipelineQueue = Depends(get_queue),
) -> PipelineCreateResponse:
    """Enqueue a pipeline run and return its id immediately."""
    payload = PipelinePayload(project_id=body.project_id, prompt=body.prompt)
    job_id = await asyncio.to_thread(queue.enqueue, payload)
    return PipelineCreateResponse(id=job_id)


@router.get("", response_model=PipelineStatusResponse)
async def get_pipeline(
    id: Optional[str] = Query(default=None),
    queue: PipelineQueue = Depends(get_queue),
) -> PipelineStatusResponse:
    """Queue state of a run; `result` holds the report once completed."""
    if not id:
        raise HTTPException(status_code=400, detail="id required")
    job = await asyncio.to_thread(queue.get_status, id)
    if job is None:
        raise HTTPException(status_code=404, detail="not found")
    return PipelineStatusResponse(
        state=job.state,
        result=job.result,
        error=job.error,
        attempts=job.attempts,
    )
