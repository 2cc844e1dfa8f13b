"""Job SQLAlchemy ORM model

Durable ledger row for one unit of asynchronous work.

Attributes:
    id: UUID primary key
    type: Job type tag selecting the handler (e.g. "embedding-generation")
    status: waiting | active | completed | failed
    payload: JSON-serialized handler input
    result: JSON-serialized handler output (set when completed)
    error: Last error message (set when a run failed)
    progress: 0-100
    attempts / max_attempts: Lease count and retry limit
    created_at / updated_at / started_at / completed_at: Timestamps (UTC)

Note:
    Only JobQueue writes status, attempts, started_at and completed_at.
"""
from datetime import datetime, timezone
from enum import Enum
from sqlalchemy import Column, String, Text, Integer, DateTime, Index
import uuid

from picstash.core.database import Base


class JobStatus(str, Enum):
    """Lifecycle status of a job."""
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class Job(Base):
    """Asynchronous job ledger row."""

    __tablename__ = "jobs"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    type = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False, default=JobStatus.WAITING.value)
    payload = Column(Text, nullable=False, default="{}")
    result = Column(Text, nullable=True)
    error = Column(Text, nullable=True)
    progress = Column(Integer, nullable=False, default=0)
    attempts = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=3)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        # Lease query: oldest waiting job of a type
        Index("idx_jobs_type_status_created", "type", "status", "created_at"),
    )

    def __repr__(self):
        return (
            f"<Job(id={self.id}, type={self.type}, status={self.status}, "
            f"attempts={self.attempts}/{self.max_attempts})>"
        )
