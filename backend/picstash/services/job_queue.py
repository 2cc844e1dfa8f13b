"""
Job Queue - durable job ledger

Every status change of a job row goes through this module. Transitions follow
an explicit table:

    waiting → active                      (acquire_job: lease)
    active  → completed                   (complete_job)
    active  → waiting                     (fail_job, attempts remain)
    active  → failed                      (fail_job, attempts exhausted)

Leasing is a compare-and-swap: the oldest waiting job of a type is selected,
then claimed with `UPDATE ... WHERE id = :id AND status = 'waiting'`. If
another caller claimed it first the update touches no row and acquire_job
returns None. A retried job keeps its created_at, so it is leased again ahead
of newer jobs of the same type.
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Mapping, Optional

from sqlalchemy.orm import Session

from picstash.core.database import as_utc, utc_now
from picstash.core.errors import InvalidJobTransitionError, JobNotFoundError
from picstash.models.job import Job, JobStatus

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3

ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.WAITING: frozenset({JobStatus.ACTIVE}),
    JobStatus.ACTIVE: frozenset({JobStatus.COMPLETED, JobStatus.WAITING, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    """Whether a job may move from `current` to `target`."""
    return target in ALLOWED_TRANSITIONS[current]


@dataclass
class JobRecord:
    """Detached snapshot of a job row with payload and result decoded."""
    id: str
    type: str
    status: JobStatus
    payload: dict
    result: Optional[Any]
    error: Optional[str]
    progress: int
    attempts: int
    max_attempts: int
    created_at: datetime
    updated_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        """Convert job to dictionary for API response."""
        return {
            "id": self.id,
            "type": self.type,
            "status": self.status.value,
            "payload": self.payload,
            "result": self.result,
            "error": self.error,
            "progress": self.progress,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


def _decode_payload(job_id: str, raw: Optional[str]) -> dict:
    """Decode a payload column; anything that is not a JSON object reads as {}."""
    try:
        value = json.loads(raw) if raw else {}
    except (TypeError, ValueError):
        logger.warning(
            f"Job {job_id} has an undecodable payload",
            extra={"event_type": "job_payload_invalid", "job_id": job_id}
        )
        return {}
    return value if isinstance(value, dict) else {}


def _decode_result(raw: Optional[str]) -> Optional[Any]:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return raw


def _to_record(job: Job) -> JobRecord:
    return JobRecord(
        id=job.id,
        type=job.type,
        status=JobStatus(job.status),
        payload=_decode_payload(job.id, job.payload),
        result=_decode_result(job.result),
        error=job.error,
        progress=job.progress,
        attempts=job.attempts,
        max_attempts=job.max_attempts,
        created_at=as_utc(job.created_at),
        updated_at=as_utc(job.updated_at),
        started_at=as_utc(job.started_at),
        completed_at=as_utc(job.completed_at),
    )


class JobQueue:
    """
    Durable job ledger backed by the jobs table.

    Every method opens its own session from the injected factory, so one
    JobQueue can be shared by the worker loop and request handlers.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        default_max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self._session_factory = session_factory
        self.default_max_attempts = default_max_attempts

    def add(
        self,
        job_type: str,
        payload: Optional[Mapping[str, Any]] = None,
        max_attempts: Optional[int] = None,
    ) -> JobRecord:
        """
        Submit a job in `waiting` status.

        Raises:
            ValueError: If max_attempts is not positive
            TypeError: If payload is not JSON-serializable
        """
        attempts_budget = max_attempts if max_attempts is not None else self.default_max_attempts
        if attempts_budget < 1:
            raise ValueError("max_attempts must be at least 1")

        now = utc_now()
        with self._session_factory() as db:
            job = Job(
                type=job_type,
                status=JobStatus.WAITING.value,
                payload=json.dumps(dict(payload or {})),
                progress=0,
                attempts=0,
                max_attempts=attempts_budget,
                created_at=now,
                updated_at=now,
            )
            db.add(job)
            db.commit()
            db.refresh(job)
            record = _to_record(job)

        logger.info(
            f"Job {record.id} added ({job_type})",
            extra={
                "event_type": "job_added",
                "job_id": record.id,
                "job_type": job_type,
                "max_attempts": attempts_budget,
            }
        )
        return record

    def get_job(self, job_id: str) -> Optional[JobRecord]:
        with self._session_factory() as db:
            job = db.get(Job, job_id)
            return _to_record(job) if job is not None else None

    def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        job_type: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[JobRecord]:
        """Jobs newest first, optionally filtered by status and type."""
        with self._session_factory() as db:
            query = db.query(Job)
            if status is not None:
                query = query.filter(Job.status == JobStatus(status).value)
            if job_type is not None:
                query = query.filter(Job.type == job_type)
            rows = (
                query.order_by(Job.created_at.desc(), Job.id.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
            return [_to_record(job) for job in rows]

    def _select_candidate(self, job_type: str) -> Optional[str]:
        """Id of the oldest waiting job of a type."""
        with self._session_factory() as db:
            row = (
                db.query(Job.id)
                .filter(Job.type == job_type, Job.status == JobStatus.WAITING.value)
                .order_by(Job.created_at, Job.id)
                .first()
            )
            return row[0] if row else None

    def acquire_job(self, job_type: str) -> Optional[JobRecord]:
        """
        Lease the oldest waiting job of a type.

        The read of the candidate and the claim run in separate transactions;
        the claim only succeeds while the row is still waiting.

        Returns:
            The leased job (status active, attempts incremented, started_at
            set), or None if nothing is waiting or another caller won the race
        """
        candidate_id = self._select_candidate(job_type)
        if candidate_id is None:
            return None

        now = utc_now()
        with self._session_factory() as db:
            claimed = (
                db.query(Job)
                .filter(Job.id == candidate_id, Job.status == JobStatus.WAITING.value)
                .update(
                    {
                        Job.status: JobStatus.ACTIVE.value,
                        Job.attempts: Job.attempts + 1,
                        Job.started_at: now,
                        Job.updated_at: now,
                    },
                    synchronize_session=False,
                )
            )
            db.commit()

            if claimed == 0:
                logger.debug(
                    f"Lost lease race for job {candidate_id}",
                    extra={"event_type": "job_lease_lost", "job_id": candidate_id}
                )
                return None

            record = _to_record(db.get(Job, candidate_id))

        logger.info(
            f"Job {record.id} leased (attempt {record.attempts}/{record.max_attempts})",
            extra={
                "event_type": "job_leased",
                "job_id": record.id,
                "job_type": job_type,
                "attempts": record.attempts,
            }
        )
        return record

    def _transition(
        self,
        db: Session,
        job_id: str,
        target: JobStatus,
        values: dict,
    ) -> None:
        """Apply an active → target update or raise if the job is not active."""
        if not can_transition(JobStatus.ACTIVE, target):
            raise InvalidJobTransitionError(job_id, JobStatus.ACTIVE.value, target.value)

        values = {**values, Job.status: target.value, Job.updated_at: utc_now()}
        updated = (
            db.query(Job)
            .filter(Job.id == job_id, Job.status == JobStatus.ACTIVE.value)
            .update(values, synchronize_session=False)
        )
        if updated == 0:
            db.rollback()
            job = db.get(Job, job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            raise InvalidJobTransitionError(job_id, job.status, target.value)
        db.commit()

    def complete_job(self, job_id: str, result: Any = None) -> None:
        """
        Mark an active job completed with its result.

        Raises:
            JobNotFoundError: If the job does not exist
            InvalidJobTransitionError: If the job is not active
            TypeError: If result is not JSON-serializable
        """
        encoded = json.dumps(result)
        with self._session_factory() as db:
            self._transition(
                db,
                job_id,
                JobStatus.COMPLETED,
                {
                    Job.result: encoded,
                    Job.error: None,
                    Job.progress: 100,
                    Job.completed_at: utc_now(),
                },
            )

        logger.info(
            f"Job {job_id} completed",
            extra={"event_type": "job_completed", "job_id": job_id}
        )

    def fail_job(self, job_id: str, error: str, retryable: bool = True) -> bool:
        """
        Record a failed run of an active job.

        The job goes back to waiting while attempts < max_attempts (and
        retryable is True), otherwise it fails permanently.

        Returns:
            True if the job will be retried

        Raises:
            JobNotFoundError: If the job does not exist
            InvalidJobTransitionError: If the job is not active
        """
        with self._session_factory() as db:
            job = db.get(Job, job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            should_retry = retryable and job.attempts < job.max_attempts
            attempts, max_attempts = job.attempts, job.max_attempts
            target = JobStatus.WAITING if should_retry else JobStatus.FAILED
            self._transition(
                db,
                job_id,
                target,
                {Job.error: error, Job.started_at: None},
            )

        logger.warning(
            f"Job {job_id} failed (attempt {attempts}/{max_attempts}): {error}",
            extra={
                "event_type": "job_retry_scheduled" if should_retry else "job_failed",
                "job_id": job_id,
                "attempts": attempts,
                "max_attempts": max_attempts,
                "will_retry": should_retry,
            }
        )
        return should_retry

    def update_progress(self, job_id: str, progress: int) -> None:
        """
        Persist handler progress, clamped to 0..100.

        Only applies to an active job and never lowers its progress; other
        calls are ignored.
        """
        value = max(0, min(100, int(progress)))
        with self._session_factory() as db:
            db.query(Job).filter(
                Job.id == job_id,
                Job.status == JobStatus.ACTIVE.value,
                Job.progress < value,
            ).update(
                {Job.progress: value, Job.updated_at: utc_now()},
                synchronize_session=False,
            )
            db.commit()

    def requeue_interrupted_jobs(self) -> int:
        """
        Settle jobs left active by a process that died mid-run.

        Called once at startup before the worker starts. Each such job is
        treated as a failed run: back to waiting if attempts remain,
        otherwise failed.

        Returns:
            Number of jobs settled
        """
        with self._session_factory() as db:
            stale_ids = [
                row[0]
                for row in db.query(Job.id).filter(Job.status == JobStatus.ACTIVE.value).all()
            ]

        for job_id in stale_ids:
            self.fail_job(job_id, "Interrupted by worker restart")

        if stale_ids:
            logger.warning(
                f"Settled {len(stale_ids)} interrupted jobs",
                extra={"event_type": "jobs_requeued", "count": len(stale_ids)}
            )
        return len(stale_ids)
