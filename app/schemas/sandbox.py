"""
Pydantic schemas for the sandbox job and transaction API.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from app.sandbox.models import SandboxJobSpec, SandboxJobState, SandboxJobStatus, SandboxMount
from app.sandbox.transaction import TransactionStep


class MountModel(BaseModel):
    host: str
    target: str
    readonly: bool = False


class SandboxJobRequest(BaseModel):
    """
    Job spec as submitted over HTTP.
    Values are checked by the manager, which turns a bad spec into an
    `error` job instead of rejecting the request.
    """
    image: str
    cmd: str
    args: List[str] = Field(default_factory=list)
    workdir: Optional[str] = None
    env: dict[str, str] = Field(default_factory=dict)
    mounts: List[MountModel] = Field(default_factory=list)
    network: str = "none"
    cpus: Optional[str] = None
    memory: Optional[str] = None

    def to_spec(self) -> SandboxJobSpec:
        return SandboxJobSpec(
            image=self.image,
            cmd=self.cmd,
            args=tuple(self.args),
            workdir=self.workdir,
            env=dict(self.env),
            mounts=tuple(SandboxMount(m.host, m.target, m.readonly) for m in self.mounts),
            network=self.network,  # type: ignore[arg-type]
            cpus=self.cpus,
            memory=self.memory,
        )


class SandboxJobModel(BaseModel):
    """Job snapshot. Env values are never echoed back."""
    id: str
    status: SandboxJobStatus
    image: str
    cmd: str
    args: List[str]
    network: str
    pid: Optional[int] = None
    exit_code: Optional[int] = None
    started_at: datetime
    ended_at: Optional[datetime] = None
    logs: Optional[List[str]] = None

    @classmethod
    def from_state(cls, state: SandboxJobState, include_logs: bool = False) -> "SandboxJobModel":
        return cls(
            id=state.id,
            status=state.status,
            image=state.spec.image,
            cmd=state.spec.cmd,
            args=list(state.spec.args),
            network=state.spec.network,
            pid=state.pid,
            exit_code=state.exit_code,
            started_at=state.started_at,
            ended_at=state.ended_at,
            logs=list(state.logs) if include_logs else None,
        )


class SandboxJobResponse(BaseModel):
    job: SandboxJobModel


class SandboxJobListResponse(BaseModel):
    jobs: List[SandboxJobModel]


class SandboxStopResponse(BaseModel):
    ok: bool


class SandboxLogsResponse(BaseModel):
    logs: List[str]
    status: SandboxJobStatus


class TransactionStepModel(BaseModel):
    cmd: str = Field(..., min_length=1)
    args: List[str] = Field(default_factory=list)


class TransactionRequest(BaseModel):
    path: str = Field(..., min_length=1)
    steps: List[TransactionStepModel]

    def to_steps(self) -> list[TransactionStep]:
        return [TransactionStep(cmd=step.cmd, args=tuple(step.args)) for step in self.steps]


class TransactionResponse(BaseModel):
    ok: bool
    logs: List[str]
    error: Optional[str] = None
