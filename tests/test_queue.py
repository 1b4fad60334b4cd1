"""
Tests for the durable pipeline queue (SQLite backend).
"""
from datetime import datetime, timedelta, timezone

import pytest

from app.core.jobs import PipelineQueue, QueueJobState
from app.db.database import create_session_factory
from app.db.models import PipelineJob
from app.pipeline.models import PipelinePayload

PAYLOAD = PipelinePayload(project_id="p1", prompt="Build a blog")


@pytest.fixture
def session_factory(tmp_path):
    return create_session_factory(f"sqlite:///{tmp_path / 'queue.db'}")


@pytest.fixture
def queue(session_factory):
    return PipelineQueue(session_factory)


class TestEnqueue:
    """Tests for submitting jobs."""

    def test_enqueue_returns_waiting_job(self, queue):
        job_id = queue.enqueue(PAYLOAD)
        job = queue.get_status(job_id)
        assert job.state == QueueJobState.WAITING
        assert job.payload == PAYLOAD
        assert job.result is None
        assert job.attempts == 0

    def test_unknown_job(self, queue):
        assert queue.get_status("missing") is None

    def test_survives_new_queue_instance(self, queue, session_factory):
        job_id = queue.enqueue(PAYLOAD)
        assert PipelineQueue(session_factory).get_status(job_id).state == QueueJobState.WAITING


class TestClaim:
    """Tests for claiming and finishing jobs."""

    def test_claims_oldest_first(self, queue):
        first = queue.enqueue(PAYLOAD)
        second = queue.enqueue(PipelinePayload(project_id="p2", prompt="other"))
        claimed = queue.claim_next()
        assert claimed.id == first
        assert claimed.state == QueueJobState.ACTIVE
        assert claimed.attempts == 1
        assert queue.claim_next().id == second
        assert queue.claim_next() is None

    def test_complete_stores_result(self, queue):
        job_id = queue.enqueue(PAYLOAD)
        queue.claim_next()
        assert queue.complete(job_id, {"ok": True}) is True
        job = queue.get_status(job_id)
        assert job.state == QueueJobState.COMPLETED
        assert job.result == {"ok": True}
        assert job.duration_ms is not None

    def test_complete_requires_active(self, queue):
        job_id = queue.enqueue(PAYLOAD)
        assert queue.complete(job_id, {}) is False

    def test_fail_without_attempts_left(self, queue):
        job_id = queue.enqueue(PAYLOAD)
        queue.claim_next()
        assert queue.fail(job_id, "RuntimeError: boom") is False
        job = queue.get_status(job_id)
        assert job.state == QueueJobState.FAILED
        assert job.error == "RuntimeError: boom"

    def test_fail_requeues_while_attempts_remain(self, session_factory):
        queue = PipelineQueue(session_factory, max_attempts=2)
        job_id = queue.enqueue(PAYLOAD)
        queue.claim_next()
        assert queue.fail(job_id, "boom") is True
        assert queue.get_status(job_id).state == QueueJobState.WAITING

        assert queue.claim_next().attempts == 2
        assert queue.fail(job_id, "boom again") is False
        assert queue.get_status(job_id).state == QueueJobState.FAILED


class TestRecovery:
    """Tests for start-up maintenance."""

    def test_requeue_stale_active_jobs(self, queue):
        job_id = queue.enqueue(PAYLOAD)
        queue.claim_next()
        assert queue.requeue_stale() == 1
        assert queue.get_status(job_id).state == QueueJobState.WAITING
        assert queue.claim_next().id == job_id

    def test_cleanup_finished_respects_retention(self, queue, session_factory):
        old_id = queue.enqueue(PAYLOAD)
        queue.claim_next()
        queue.complete(old_id, {})
        waiting_id = queue.enqueue(PAYLOAD)

        db = session_factory()
        try:
            old_time = (datetime.now(timezone.utc) - timedelta(hours=48)).isoformat()
            db.query(PipelineJob).update({PipelineJob.created_at: old_time})
            db.commit()
        finally:
            db.close()

        assert queue.cleanup_finished() == 1
        assert queue.get_status(old_id) is None
        # Unfinished jobs are kept whatever their age
        assert queue.get_status(waiting_id) is not None
