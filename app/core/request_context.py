"""
Context variables for correlating log lines across async calls.
request_id is set per HTTP request, job_id per pipeline run in a worker.
"""
import uuid
from contextvars import ContextVar

request_id_var: ContextVar[str] = ContextVar("request_id", default="")
job_id_var: ContextVar[str] = ContextVar("job_id", default="")


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
    """Set the request ID (generates new one if not provided)."""
    rid = request_id or str(uuid.uuid4())
    request_id_var.set(rid)
    return rid


def get_job_id() -> str:
    """Get the pipeline job ID of the current worker task."""
    return job_id_var.get()


def set_job_id(job_id: str | None) -> None:
    job_id_var.set(job_id or "")
