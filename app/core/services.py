"""
Service wiring. Every collaborator is built once here and handed down
explicitly; nothing below this module reaches for a global instance.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from app.core.config import Settings
from app.core.jobs import PipelineQueue
from app.core.studio import FileWriter, StudioClient
from app.core.worker import PipelineWorkerPool
from app.db.database import create_session_factory
from app.llm.client import Generator, get_generator
from app.pipeline.orchestrator import PipelineOrchestrator
from app.sandbox.manager import SandboxJobManager

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    queue: PipelineQueue
    sandbox: SandboxJobManager
    generator: Generator
    files: FileWriter
    orchestrator: PipelineOrchestrator
    workers: PipelineWorkerPool


def build_services(
    settings: Settings,
    generator: Optional[Generator] = None,
    files: Optional[FileWriter] = None,
    sandbox: Optional[SandboxJobManager] = None,
) -> Services:
    """Build the object graph. Tests pass fakes for the external collaborators."""
    studio = StudioClient(settings.public_base_url, timeout_s=settings.studio_timeout_s)
    queue = PipelineQueue(
        create_session_factory(settings.queue_url),
        max_attempts=settings.max_attempts,
        retention_hours=settings.job_retention_hours,
    )
    sandbox = sandbox or SandboxJobManager.from_settings(settings)
    generator = generator or get_generator()
    files = files or studio

    orchestrator = PipelineOrchestrator(
        generator=generator,
        files=files,
        sandbox=sandbox,
        settings=settings,
        deployer=studio,
    )
    workers = PipelineWorkerPool(
        queue,
        orchestrator,
        concurrency=settings.workers,
        poll_interval=settings.poll_interval_s,
    )
    logger.info(f"services_built workers={settings.workers} engine={settings.sandbox_engine}")
    return Services(
        settings=settings,
        queue=queue,
        sandbox=sandbox,
        generator=generator,
        files=files,
        orchestrator=orchestrator,
        workers=workers,
    )
