"""
Worker pool that drains the pipeline queue.

Each worker claims one job at a time and runs it through the orchestrator.
Database calls are synchronous and go through asyncio.to_thread so they never
block the event loop that supervises sandbox processes.
"""
import asyncio
import logging
from typing import Optional

from app.core.jobs import PipelineQueue, QueueJob
from app.core.request_context import set_job_id
from app.pipeline.orchestrator import PipelineOrchestrator

logger = logging.getLogger(__name__)


class PipelineWorkerPool:
    """Fixed number of asyncio workers sharing one queue."""

    def __init__(
        self,
        queue: PipelineQueue,
        orchestrator: PipelineOrchestrator,
        concurrency: int = 2,
        poll_interval: float = 1.0,
    ):
        self.queue = queue
        self.orchestrator = orchestrator
        self.concurrency = max(1, concurrency)
        self.poll_interval = poll_interval
        self._tasks: list[asyncio.Task] = []
        self._stopping: Optional[asyncio.Event] = None

    def start(self) -> None:
        """Spawn the workers on the running loop. Idempotent."""
        if self._tasks:
            return
        self._stopping = asyncio.Event()
        self._tasks = [
            asyncio.create_task(self._worker(index), name=f"pipeline-worker-{index}")
            for index in range(self.concurrency)
        ]
        logger.info(f"pipeline_workers_started count={self.concurrency}")

    async def stop(self, timeout: float = 10.0) -> None:
        """Ask workers to finish their current job, cancel any that overrun."""
        if not self._tasks:
            return
        self._stopping.set()
        _, pending = await asyncio.wait(self._tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._tasks = []
        logger.info("pipeline_workers_stopped")

    async def _worker(self, index: int) -> None:
        while not self._stopping.is_set():
            try:
                handled = await self.process_one()
            except Exception as e:
                # Queue backend trouble; back off and keep the worker alive
                logger.error(f"pipeline_worker_error worker={index} error_type={type(e).__name__}")
                handled = False
            if handled:
                continue
            try:
                await asyncio.wait_for(self._stopping.wait(), self.poll_interval)
            except asyncio.TimeoutError:
                pass

    async def process_one(self) -> bool:
        """
        Claim and run a single job.
        Returns False if the queue had nothing waiting.
        """
        job = await asyncio.to_thread(self.queue.claim_next)
        if job is None:
            return False
        await self._run(job)
        return True

    async def _run(self, job: QueueJob) -> None:
        set_job_id(job.id)
        try:
            report = await self.orchestrator.run(job.payload)
        except Exception as e:
            logger.error(f"pipeline_job_crashed job_id={job.id} error_type={type(e).__name__}")
            await asyncio.to_thread(self.queue.fail, job.id, f"{type(e).__name__}: {e}")
            return
        finally:
            set_job_id(None)

        await asyncio.to_thread(self.queue.complete, job.id, report.to_dict())
