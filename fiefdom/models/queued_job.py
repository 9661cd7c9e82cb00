"""
SQLAlchemy model for the queued_jobs table: durable delayed-job queue the
worker drains. Each row is one scheduled invocation of a job handler.
"""
from sqlalchemy import Column, String, Integer, DateTime, Text, JSON
from datetime import datetime, timezone
from fiefdom.database import Base
import uuid


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QueuedJob(Base):
    __tablename__ = "queued_jobs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    queue = Column(String(50), nullable=False, default="default", index=True)
    job_type = Column(String(100), nullable=False, index=True)

    # Status: pending → processing → completed | failed
    status = Column(String(20), nullable=False, default="pending", index=True)
    payload = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)

    # Not claimable before this instant
    run_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)

    attempts = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
