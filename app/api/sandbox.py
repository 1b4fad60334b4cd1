"""
Sandbox API routes: container jobs and host-directory transactions.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from app.api.deps import get_sandbox
from app.sandbox.manager import SandboxJobManager
from app.sandbox.transaction import TransactionError, run_transaction
from app.schemas.sandbox import (
    SandboxJobListResponse,
    SandboxJobModel,
    SandboxJobRequest,
    SandboxJobResponse,
    SandboxLogsResponse,
    SandboxStopResponse,
    TransactionRequest,
    TransactionResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sandbox", tags=["sandbox"])


@router.get("/job", response_model=SandboxJobListResponse)
async def list_jobs(sandbox: SandboxJobManager = Depends(get_sandbox)) -> SandboxJobListResponse:
    return SandboxJobListResponse(jobs=[SandboxJobModel.from_state(state) for state in sandbox.list()])


@router.post("/job", response_model=SandboxJobResponse)
async def start_job(
    body: SandboxJobRequest,
    sandbox: SandboxJobManager = Depends(get_sandbox),
) -> SandboxJobResponse:
    """
    Start a job and return its initial snapshot.
    A spec the engine cannot run comes back as an `error` job.
    """
    state = await sandbox.start(body.to_spec())
    return SandboxJobResponse(job=SandboxJobModel.from_state(state, include_logs=True))


@router.get("/job/{job_id}", response_model=SandboxJobResponse)
async def get_job(job_id: str, sandbox: SandboxJobManager = Depends(get_sandbox)) -> SandboxJobResponse:
    state = sandbox.get(job_id)
    if state is None:
        raise HTTPException(status_code=404, detail="not found")
    return SandboxJobResponse(job=SandboxJobModel.from_state(state, include_logs=True))


@router.delete("/job/{job_id}", response_model=SandboxStopResponse)
async def stop_job(job_id: str, sandbox: SandboxJobManager = Depends(get_sandbox)) -> SandboxStopResponse:
    """Signal the job to stop; ok is False for unknown or finished jobs."""
    return SandboxStopResponse(ok=sandbox.stop(job_id))


@router.get("/job/{job_id}/logs", response_model=SandboxLogsResponse)
async def get_job_logs(job_id: str, sandbox: SandboxJobManager = Depends(get_sandbox)) -> SandboxLogsResponse:
    state = sandbox.get(job_id)
    if state is None:
        raise HTTPException(status_code=404, detail="not found")
    return SandboxLogsResponse(logs=list(state.logs), status=state.status)


@router.post("/transaction", response_model=TransactionResponse, response_model_exclude_none=True)
async def transaction(body: TransactionRequest) -> TransactionResponse:
    """Run host commands in a directory, rolling it back if any step fails."""
    try:
        result = await run_transaction(body.path, body.to_steps())
    except TransactionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return TransactionResponse(**result.to_dict())
