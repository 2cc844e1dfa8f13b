"""Pydantic schemas for the job API and job handler payloads"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class JobCreate(BaseModel):
    """Schema for submitting a job."""
    type: str = Field(..., min_length=1, max_length=100, description="Job type tag")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Handler input")
    max_attempts: Optional[int] = Field(
        None,
        ge=1,
        le=20,
        description="Maximum attempts (defaults to JOB_DEFAULT_MAX_ATTEMPTS)"
    )


class JobResponse(BaseModel):
    """Schema for a job ledger row."""
    id: str
    type: str
    status: Literal["waiting", "active", "completed", "failed"]
    payload: Dict[str, Any]
    result: Optional[Any] = None
    error: Optional[str] = None
    progress: int = Field(..., ge=0, le=100)
    attempts: int
    max_attempts: int
    created_at: datetime
    updated_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class JobListResponse(BaseModel):
    jobs: List[JobResponse]
    total: int


# Handler payloads, validated when a job is picked up

class EmbeddingJobPayload(BaseModel):
    """Payload of an embedding-generation job."""
    image_id: str = Field(..., min_length=1)


class CaptionJobPayload(BaseModel):
    """Payload of a caption-generation job."""
    image_id: str = Field(..., min_length=1)


class ArchiveImportJobPayload(BaseModel):
    """Payload of an archive-import job."""
    archive_path: str = Field(..., min_length=1, description="ZIP path relative to the storage root")
    indices: List[int] = Field(..., description="Archive entry indices to import")
