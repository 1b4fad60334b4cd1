"""
Job registry: identity -> sandbox job state.

JobRegistry is the storage contract the manager depends on; InMemoryJobRegistry
is the default, process-local implementation. All methods are thread-safe.
Terminal states are final: mark_exited/mark_error on a finished job is a no-op.
"""
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from app.sandbox.models import SandboxJobSpec, SandboxJobState, SandboxJobStatus


class JobRegistry(ABC):
    """Storage contract for sandbox job state."""

    @abstractmethod
    def create(self, job_id: str, spec: SandboxJobSpec) -> SandboxJobState:
        """Register a new job in running status."""

    @abstractmethod
    def set_pid(self, job_id: str, pid: Optional[int]) -> None:
        pass

    @abstractmethod
    def append_log(self, job_id: str, chunk: str) -> None:
        """Append output, dropping the oldest entries past the cap."""

    @abstractmethod
    def mark_exited(self, job_id: str, exit_code: Optional[int]) -> bool:
        """Move a running job to exited. Returns False if it was already terminal."""

    @abstractmethod
    def mark_error(self, job_id: str, message: str) -> bool:
        """Move a running job to error with a diagnostic log line."""

    @abstractmethod
    def get(self, job_id: str) -> Optional[SandboxJobState]:
        pass

    @abstractmethod
    def list(self) -> List[SandboxJobState]:
        """All known jobs in creation order."""

    @abstractmethod
    def reap(self, max_age_s: float) -> int:
        """Drop terminal jobs that ended more than max_age_s ago. Returns count."""


@dataclass
class _JobRecord:
    id: str
    spec: SandboxJobSpec
    logs: deque
    status: SandboxJobStatus = SandboxJobStatus.RUNNING
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    pid: Optional[int] = None
    exit_code: Optional[int] = None
    ended_at: Optional[datetime] = None

    def snapshot(self) -> SandboxJobState:
        return SandboxJobState(
            id=self.id,
            spec=self.spec,
            status=self.status,
            started_at=self.started_at,
            pid=self.pid,
            exit_code=self.exit_code,
            ended_at=self.ended_at,
            logs=tuple(self.logs),
        )


class InMemoryJobRegistry(JobRegistry):
    """Lock-guarded ordered dict of job records."""

    def __init__(self, max_log_entries: int = 5000, max_jobs: int = 1000):
        self._lock = threading.Lock()
        self._jobs: "OrderedDict[str, _JobRecord]" = OrderedDict()
        self.max_log_entries = max_log_entries
        self.max_jobs = max_jobs

    def create(self, job_id: str, spec: SandboxJobSpec) -> SandboxJobState:
        record = _JobRecord(id=job_id, spec=spec, logs=deque(maxlen=self.max_log_entries))
        with self._lock:
            self._jobs[job_id] = record
            self._evict_over_cap()
            return record.snapshot()

    def _evict_over_cap(self) -> None:
        # Caller holds the lock. Running jobs are never evicted.
        excess = len(self._jobs) - self.max_jobs
        if excess <= 0:
            return
        for job_id in [j.id for j in self._jobs.values() if j.status != SandboxJobStatus.RUNNING][:excess]:
            del self._jobs[job_id]

    def set_pid(self, job_id: str, pid: Optional[int]) -> None:
        with self._lock:
            record = self._jobs.get(job_id)
            if record:
                record.pid = pid

    def append_log(self, job_id: str, chunk: str) -> None:
        with self._lock:
            record = self._jobs.get(job_id)
            if record:
                record.logs.append(chunk)

    def mark_exited(self, job_id: str, exit_code: Optional[int]) -> bool:
        with self._lock:
            record = self._jobs.get(job_id)
            if not record or record.status != SandboxJobStatus.RUNNING:
                return False
            record.status = SandboxJobStatus.EXITED
            record.exit_code = exit_code
            record.ended_at = datetime.now(timezone.utc)
            return True

    def mark_error(self, job_id: str, message: str) -> bool:
        with self._lock:
            record = self._jobs.get(job_id)
            if not record or record.status != SandboxJobStatus.RUNNING:
                return False
            record.logs.append(f"[error] {message}")
            record.status = SandboxJobStatus.ERROR
            record.ended_at = datetime.now(timezone.utc)
            return True

    def get(self, job_id: str) -> Optional[SandboxJobState]:
        with self._lock:
            record = self._jobs.get(job_id)
            return record.snapshot() if record else None

    def list(self) -> List[SandboxJobState]:
        with self._lock:
            return [record.snapshot() for record in self._jobs.values()]

    def reap(self, max_age_s: float) -> int:
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=max_age_s)
        with self._lock:
            expired = [
                job_id for job_id, record in self._jobs.items()
                if record.ended_at is not None and record.ended_at < cutoff
            ]
            for job_id in expired:
                del self._jobs[job_id]
        return len(expired)
