"""
Durable pipeline queue backed by SQLAlchemy.

Delivery is at-least-once: a job claimed by a worker that dies stays `active`
until requeue_stale() moves it back to `waiting` on the next start-up.
Logs only job_id, state, attempts, duration - never prompts or results.
"""
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from sqlalchemy.orm import sessionmaker

from app.core.metrics import metrics
from app.db.models import PipelineJob as PipelineJobModel
from app.pipeline.models import PipelinePayload

logger = logging.getLogger(__name__)


class QueueJobState(str, Enum):
    """Queue job state."""
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


FINISHED_STATES = (QueueJobState.COMPLETED.value, QueueJobState.FAILED.value)


@dataclass
class QueueJob:
    """Queue job (in-memory representation)."""
    id: str
    payload: PipelinePayload
    state: QueueJobState
    attempts: int = 0
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _model_to_job(model: PipelineJobModel) -> QueueJob:
    return QueueJob(
        id=model.id,
        payload=PipelinePayload.from_dict(json.loads(model.payload)),
        state=QueueJobState(model.status),
        attempts=model.attempts or 0,
        result=json.loads(model.result) if model.result else None,
        error=model.error,
        created_at=_parse_time(model.created_at),
        started_at=_parse_time(model.started_at),
        completed_at=_parse_time(model.completed_at),
        duration_ms=model.duration_ms,
    )


def _finish(model: PipelineJobModel, now: datetime) -> None:
    model.completed_at = now.isoformat()
    if model.started_at:
        started = datetime.fromisoformat(model.started_at)
        model.duration_ms = int((now - started).total_seconds() * 1000)


class PipelineQueue:
    """Queue of pipeline runs. Safe to use from several worker threads."""

    def __init__(self, session_factory: sessionmaker, max_attempts: int = 1, retention_hours: int = 24):
        self.session_factory = session_factory
        self.max_attempts = max_attempts
        self.retention_hours = retention_hours

    def enqueue(self, payload: PipelinePayload) -> str:
        """Record a new run and return its id without waiting for it."""
        job_id = str(uuid.uuid4())
        db = self.session_factory()
        try:
            db.add(PipelineJobModel(
                id=job_id,
                status=QueueJobState.WAITING.value,
                payload=json.dumps(payload.to_dict()),
                attempts=0,
                created_at=datetime.now(timezone.utc).isoformat(),
            ))
            db.commit()
        finally:
            db.close()

        logger.info(f"pipeline_job_enqueued job_id={job_id}")
        metrics.inc("pipeline_enqueued_total")
        return job_id

    def get_status(self, job_id: str) -> Optional[QueueJob]:
        """Current state of a job; result is set only once completed."""
        db = self.session_factory()
        try:
            model = db.query(PipelineJobModel).filter(PipelineJobModel.id == job_id).first()
            return _model_to_job(model) if model else None
        finally:
            db.close()

    def claim_next(self) -> Optional[QueueJob]:
        """Atomically move the oldest waiting job to active and return it."""
        db = self.session_factory()
        try:
            while True:
                candidate = (
                    db.query(PipelineJobModel.id)
                    .filter(PipelineJobModel.status == QueueJobState.WAITING.value)
                    .order_by(PipelineJobModel.created_at)
                    .first()
                )
                if candidate is None:
                    return None

                # Conditional update: only one worker wins the row
                claimed = (
                    db.query(PipelineJobModel)
                    .filter(
                        PipelineJobModel.id == candidate.id,
                        PipelineJobModel.status == QueueJobState.WAITING.value,
                    )
                    .update(
                        {
                            PipelineJobModel.status: QueueJobState.ACTIVE.value,
                            PipelineJobModel.started_at: datetime.now(timezone.utc).isoformat(),
                            PipelineJobModel.attempts: PipelineJobModel.attempts + 1,
                        },
                        synchronize_session=False,
                    )
                )
                db.commit()
                if claimed == 1:
                    model = db.query(PipelineJobModel).filter(PipelineJobModel.id == candidate.id).first()
                    job = _model_to_job(model)
                    logger.info(f"pipeline_job_claimed job_id={job.id} attempt={job.attempts}")
                    return job
        finally:
            db.close()

    def complete(self, job_id: str, result: dict[str, Any]) -> bool:
        db = self.session_factory()
        try:
            model = db.query(PipelineJobModel).filter(PipelineJobModel.id == job_id).first()
            if not model or model.status != QueueJobState.ACTIVE.value:
                return False
            model.status = QueueJobState.COMPLETED.value
            model.result = json.dumps(result)
            model.error = None
            _finish(model, datetime.now(timezone.utc))
            db.commit()
            logger.info(f"pipeline_job_completed job_id={job_id} duration_ms={model.duration_ms}")
        finally:
            db.close()

        metrics.inc("pipeline_completed_total")
        return True

    def fail(self, job_id: str, error: str) -> bool:
        """
        Record a failed delivery. The job goes back to waiting while attempts
        remain, otherwise it is marked failed. Returns True if re-queued.
        """
        db = self.session_factory()
        try:
            model = db.query(PipelineJobModel).filter(PipelineJobModel.id == job_id).first()
            if not model or model.status != QueueJobState.ACTIVE.value:
                return False

            model.error = error[:2000]
            if (model.attempts or 0) < self.max_attempts:
                model.status = QueueJobState.WAITING.value
                model.started_at = None
                db.commit()
                logger.info(f"pipeline_job_requeued job_id={job_id} attempts={model.attempts}")
                return True

            model.status = QueueJobState.FAILED.value
            _finish(model, datetime.now(timezone.utc))
            db.commit()
            logger.info(f"pipeline_job_failed job_id={job_id} attempts={model.attempts}")
        finally:
            db.close()

        metrics.inc("pipeline_failed_total")
        return False

    def requeue_stale(self) -> int:
        """Return jobs left active by a previous process to waiting."""
        db = self.session_factory()
        try:
            count = (
                db.query(PipelineJobModel)
                .filter(PipelineJobModel.status == QueueJobState.ACTIVE.value)
                .update(
                    {PipelineJobModel.status: QueueJobState.WAITING.value, PipelineJobModel.started_at: None},
                    synchronize_session=False,
                )
            )
            db.commit()
        finally:
            db.close()

        if count:
            logger.info(f"pipeline_jobs_requeued_stale count={count}")
        return count

    def cleanup_finished(self) -> int:
        """Delete finished jobs older than the retention period."""
        cutoff = (datetime.now(timezone.utc) - timedelta(hours=self.retention_hours)).isoformat()
        db = self.session_factory()
        try:
            count = (
                db.query(PipelineJobModel)
                .filter(
                    PipelineJobModel.status.in_(FINISHED_STATES),
                    PipelineJobModel.created_at < cutoff,
                )
                .delete(synchronize_session=False)
            )
            db.commit()
        except Exception as e:
            # Never crash start-up on cleanup failure
            logger.warning(f"cleanup_pipeline_jobs_failed error_type={type(e).__name__}")
            db.rollback()
            return 0
        finally:
            db.close()

        if count:
            logger.info(f"cleanup_pipeline_jobs deleted={count}")
        return count
