"""
Sandbox job types.
A spec is immutable input; a state is a read-only snapshot handed to callers.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal, Optional

NetworkMode = Literal["none", "bridge"]
NETWORK_MODES = ("none", "bridge")


class SandboxSpecError(ValueError):
    """Spec rejected before the engine was invoked."""
    pass


class SandboxJobStatus(str, Enum):
    """Sandbox job lifecycle status."""
    RUNNING = "running"
    EXITED = "exited"
    ERROR = "error"


@dataclass(frozen=True)
class SandboxMount:
    """Bind mount from a host path into the container."""
    host: str
    target: str
    readonly: bool = False


@dataclass(frozen=True)
class SandboxJobSpec:
    """What to run and with which bounds. cpus/memory fall back to manager defaults."""
    image: str
    cmd: str
    args: tuple[str, ...] = ()
    workdir: Optional[str] = None
    env: dict[str, str] = field(default_factory=dict)
    mounts: tuple[SandboxMount, ...] = ()
    network: NetworkMode = "none"
    cpus: Optional[str] = None
    memory: Optional[str] = None

    def validate(self) -> None:
        """Raise SandboxSpecError if the spec cannot be turned into an engine call."""
        if not self.image or not self.image.strip():
            raise SandboxSpecError("image is required")
        if not self.cmd or not self.cmd.strip():
            raise SandboxSpecError("cmd is required")
        if self.network not in NETWORK_MODES:
            raise SandboxSpecError(f"unsupported network mode: {self.network}")
        for key in self.env:
            if not key or "=" in key:
                raise SandboxSpecError(f"invalid env var name: {key!r}")
        for mount in self.mounts:
            if not mount.host or not mount.target:
                raise SandboxSpecError("mounts need both host and target")


@dataclass(frozen=True)
class SandboxJobState:
    """Snapshot of a sandbox job. Mutations happen only inside the registry."""
    id: str
    spec: SandboxJobSpec
    status: SandboxJobStatus
    started_at: datetime
    pid: Optional[int] = None
    exit_code: Optional[int] = None
    ended_at: Optional[datetime] = None
    logs: tuple[str, ...] = ()

    @property
    def is_terminal(self) -> bool:
        return self.status != SandboxJobStatus.RUNNING

    @property
    def succeeded(self) -> bool:
        return self.status == SandboxJobStatus.EXITED and self.exit_code == 0

    @property
    def output(self) -> str:
        """Combined stdout/stderr in arrival order."""
        return "".join(self.logs)
