"""
SQLAlchemy models for the durable pipeline queue.
"""
from sqlalchemy import Column, Text, Integer, Index

from app.db.database import Base


class PipelineJob(Base):
    """One queued pipeline run."""
    __tablename__ = "pipeline_jobs"

    id = Column(Text, primary_key=True, index=True)
    status = Column(Text, nullable=False, index=True)  # waiting, active, completed, failed
    payload = Column(Text, nullable=False)  # JSON: {project_id, prompt}
    result = Column(Text, nullable=True)  # JSON pipeline report
    error = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(Text, nullable=False, index=True)  # ISO timestamp
    started_at = Column(Text, nullable=True)
    completed_at = Column(Text, nullable=True)
    duration_ms = Column(Integer, nullable=True)

    # Claiming scans waiting jobs oldest first
    __table_args__ = (
        Index("ix_pipeline_jobs_status_created", "status", "created_at"),
    )
