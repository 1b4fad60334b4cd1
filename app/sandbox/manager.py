"""
Sandbox Job Manager - isolated, resource-bounded command execution.

Each job is one `<engine> run --rm ...` child process. Output from stdout and
stderr is appended to the job's bounded log buffer as it arrives; a supervisor
task records the exit and fires the job's completion event.

Failure model:
- Spawn failures (invalid spec, engine binary missing) are recorded as an
  `error` job, never raised from start()
- A non-zero exit is a normal `exited` outcome carrying the exit code
- stop() only signals; callers observe the transition via get() or wait()

Logs only job_id, pid, status, exit code - never env values or output.
"""
import asyncio
import codecs
import logging
import uuid
from typing import List, Optional

from app.core.config import Settings
from app.core.metrics import metrics
from app.sandbox.models import SandboxJobSpec, SandboxJobState
from app.sandbox.registry import InMemoryJobRegistry, JobRegistry

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096
# How long run_and_wait gives a stopped job to actually exit
STOP_GRACE_S = 5.0


class SandboxJobManager:
    """Starts, tracks and stops sandbox jobs. Safe to share across pipeline runs."""

    def __init__(
        self,
        registry: Optional[JobRegistry] = None,
        engine: str = "docker",
        default_cpus: str = "1",
        default_memory: str = "1g",
        retention_s: float = 3600,
    ):
        self.registry = registry or InMemoryJobRegistry()
        self.engine = engine
        self.default_cpus = default_cpus
        self.default_memory = default_memory
        self.retention_s = retention_s
        self._processes: dict[str, asyncio.subprocess.Process] = {}
        self._supervisors: dict[str, asyncio.Task] = {}
        self._done: dict[str, asyncio.Event] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "SandboxJobManager":
        registry = InMemoryJobRegistry(
            max_log_entries=settings.sandbox_max_log_entries,
            max_jobs=settings.sandbox_max_jobs,
        )
        return cls(
            registry=registry,
            engine=settings.sandbox_engine,
            default_cpus=settings.sandbox_default_cpus,
            default_memory=settings.sandbox_default_memory,
            retention_s=settings.sandbox_retention_s,
        )

    def build_command(self, spec: SandboxJobSpec, job_id: str) -> List[str]:
        """Map spec fields to container engine flags."""
        command = [
            self.engine,
            "run",
            "--rm",
            "--name", f"job_{job_id}",
            "--network", spec.network,
            "--cpus", spec.cpus or self.default_cpus,
            "--memory", spec.memory or self.default_memory,
        ]
        if spec.workdir:
            command += ["-w", spec.workdir]
        for key, value in spec.env.items():
            command += ["-e", f"{key}={value}"]
        for mount in spec.mounts:
            suffix = ":ro" if mount.readonly else ""
            command += ["-v", f"{mount.host}:{mount.target}{suffix}"]
        command += [spec.image, spec.cmd, *spec.args]
        return command

    async def start(self, spec: SandboxJobSpec) -> SandboxJobState:
        """
        Launch a job and return its initial snapshot without waiting for it.

        The snapshot is `running` on success, `error` if the process could not
        be spawned.
        """
        self.reap()

        job_id = str(uuid.uuid4())
        self.registry.create(job_id, spec)
        done = asyncio.Event()
        self._done[job_id] = done
        metrics.inc("sandbox_jobs_started_total")

        try:
            spec.validate()
            command = self.build_command(spec, job_id)
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (OSError, ValueError) as e:
            self.registry.mark_error(job_id, str(e) or type(e).__name__)
            self._done.pop(job_id, None)
            done.set()
            metrics.inc("sandbox_jobs_error_total")
            logger.warning(f"sandbox_job_spawn_failed job_id={job_id} error_type={type(e).__name__}")
            return self.registry.get(job_id)

        self._processes[job_id] = process
        self.registry.set_pid(job_id, process.pid)
        self._supervisors[job_id] = asyncio.create_task(self._supervise(job_id, process, done))
        logger.info(f"sandbox_job_started job_id={job_id} pid={process.pid} image={spec.image}")
        return self.registry.get(job_id)

    async def _pump(self, job_id: str, stream: Optional[asyncio.StreamReader]) -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                tail = decoder.decode(b"", final=True)
                if tail:
                    self.registry.append_log(job_id, tail)
                return
            text = decoder.decode(chunk)
            if text:
                self.registry.append_log(job_id, text)

    async def _supervise(
        self,
        job_id: str,
        process: asyncio.subprocess.Process,
        done: asyncio.Event,
    ) -> None:
        """Sole writer of a job's terminal state after start()."""
        try:
            await asyncio.gather(
                self._pump(job_id, process.stdout),
                self._pump(job_id, process.stderr),
            )
            exit_code = await process.wait()
            self.registry.mark_exited(job_id, exit_code)
            metrics.inc("sandbox_jobs_exited_total")
            logger.info(f"sandbox_job_exited job_id={job_id} exit_code={exit_code}")
        except asyncio.CancelledError:
            self.registry.mark_error(job_id, "supervisor cancelled")
            metrics.inc("sandbox_jobs_error_total")
            raise
        except Exception as e:
            self.registry.mark_error(job_id, f"supervisor failed: {type(e).__name__}: {e}")
            metrics.inc("sandbox_jobs_error_total")
            logger.error(f"sandbox_job_crashed job_id={job_id} error_type={type(e).__name__}")
        finally:
            self._processes.pop(job_id, None)
            self._supervisors.pop(job_id, None)
            self._done.pop(job_id, None)
            done.set()

    def get(self, job_id: str) -> Optional[SandboxJobState]:
        return self.registry.get(job_id)

    def list(self) -> List[SandboxJobState]:
        return self.registry.list()

    def stop(self, job_id: str) -> bool:
        """Send SIGTERM if the job has a live process. Does not wait for exit."""
        process = self._processes.get(job_id)
        if process is None or process.returncode is not None:
            return False
        try:
            process.terminate()
        except ProcessLookupError:
            return False
        logger.info(f"sandbox_job_stop_sent job_id={job_id}")
        return True

    async def wait(self, job_id: str, timeout: Optional[float] = None) -> Optional[SandboxJobState]:
        """
        Block until the job is terminal or the timeout elapses.
        Returns the latest snapshot (still `running` on timeout), None if unknown.
        """
        state = self.registry.get(job_id)
        if state is None or state.is_terminal:
            return state
        done = self._done.get(job_id)
        if done is not None:
            try:
                await asyncio.wait_for(done.wait(), timeout)
            except asyncio.TimeoutError:
                pass
        return self.registry.get(job_id)

    async def run_and_wait(self, spec: SandboxJobSpec, timeout: float) -> tuple[SandboxJobState, bool]:
        """
        Start a job and wait for it with a bound.
        Returns (final snapshot, timed_out). A job still running at the
        deadline is stopped.
        """
        state = await self.start(spec)
        if state.is_terminal:
            return state, False
        final = await self.wait(state.id, timeout)
        if final is not None and final.is_terminal:
            return final, False

        logger.warning(f"sandbox_job_timeout job_id={state.id} timeout_s={timeout}")
        self.stop(state.id)
        final = await self.wait(state.id, STOP_GRACE_S)
        return final or state, True

    def reap(self) -> int:
        """Drop terminal jobs past the retention window."""
        removed = self.registry.reap(self.retention_s)
        if removed:
            logger.info(f"sandbox_jobs_reaped count={removed}")
        return removed

    async def shutdown(self, timeout: float = STOP_GRACE_S) -> None:
        """Terminate every live job and wait for supervisors to finish."""
        for job_id in list(self._processes):
            self.stop(job_id)
        supervisors = list(self._supervisors.values())
        if not supervisors:
            return
        _, pending = await asyncio.wait(supervisors, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
