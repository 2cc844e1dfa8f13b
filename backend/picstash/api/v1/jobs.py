"""
Job API endpoints

Submit jobs to the ledger and poll their status and progress. Execution
happens in the background JobWorker.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from picstash.api.deps import get_job_queue
from picstash.models.job import JobStatus
from picstash.schemas.jobs import JobCreate, JobListResponse, JobResponse
from picstash.services.job_queue import JobQueue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("", response_model=JobResponse, status_code=201)
def create_job(
    job_data: JobCreate,
    job_queue: JobQueue = Depends(get_job_queue),
):
    """
    Submit a job in `waiting` status.

    Jobs of a type without a registered handler are accepted and fail
    permanently when picked up.
    """
    job = job_queue.add(job_data.type, job_data.payload, job_data.max_attempts)
    return job.to_dict()


@router.get("", response_model=JobListResponse)
def list_jobs(
    status: Optional[JobStatus] = Query(default=None, description="Filter by status"),
    type: Optional[str] = Query(default=None, description="Filter by job type"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    job_queue: JobQueue = Depends(get_job_queue),
):
    """List jobs, newest first."""
    jobs = job_queue.list_jobs(status=status, job_type=type, limit=limit, offset=offset)
    return {"jobs": [job.to_dict() for job in jobs], "total": len(jobs)}


@router.get("/{job_id}", response_model=JobResponse)
def get_job(
    job_id: str,
    job_queue: JobQueue = Depends(get_job_queue),
):
    job = job_queue.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job.to_dict()
