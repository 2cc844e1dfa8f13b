"""
Job Worker

Polls the job ledger for each registered job type and runs one leased job at a
time through its handler.

Architecture:
    APScheduler interval trigger (first run immediately)
        │
        ▼
    JobWorker.poll_once()                 skipped while a sweep is running
        │
        ├── for each type, in registration order:
        │       JobQueue.acquire_job(type)        (atomic lease)
        │       handler(job, update_progress)     raced against job timeout
        │       complete_job / fail_job
        ▼
    stop(): no new leases; waits for the in-flight sweep up to the grace period

Handlers are not cancelled on timeout: the job is failed and the handler task
keeps running in the background until it finishes on its own.
"""
import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from picstash.core.logging_config import clear_job_id, set_job_id
from picstash.core.metrics import record_job_leased, record_job_processed
from picstash.services.job_queue import JobQueue, JobRecord

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], Awaitable[None]]
JobHandler = Callable[[JobRecord, ProgressCallback], Awaitable[Any]]

POLL_JOB_ID = "job_worker_poll"

DEFAULT_POLLING_INTERVAL_MS = 3000
DEFAULT_JOB_TIMEOUT_MS = 300000
DEFAULT_GRACEFUL_SHUTDOWN_TIMEOUT_MS = 30000


class JobTimeoutError(Exception):
    """Raised when a handler does not finish within the job timeout."""


class JobWorker:
    """
    Background executor for queued jobs.

    One job runs at a time per worker; types are polled in the order their
    handlers were registered.

    Attributes:
        polling_interval_ms: Delay between poll sweeps
        job_timeout_ms: Wall-clock limit for one handler run
        graceful_shutdown_timeout_ms: How long stop() waits for the running sweep
    """

    def __init__(
        self,
        job_queue: JobQueue,
        polling_interval_ms: int = DEFAULT_POLLING_INTERVAL_MS,
        job_timeout_ms: int = DEFAULT_JOB_TIMEOUT_MS,
        graceful_shutdown_timeout_ms: int = DEFAULT_GRACEFUL_SHUTDOWN_TIMEOUT_MS,
    ):
        self._job_queue = job_queue
        self.polling_interval_ms = polling_interval_ms
        self.job_timeout_ms = job_timeout_ms
        self.graceful_shutdown_timeout_ms = graceful_shutdown_timeout_ms

        self._handlers: dict[str, JobHandler] = {}
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._current_sweep: Optional[asyncio.Task] = None
        self._background_tasks: set[asyncio.Task] = set()
        self._is_processing = False
        self._is_shutting_down = False

        logger.info(
            "JobWorker initialized",
            extra={
                "event_type": "job_worker_init",
                "polling_interval_ms": polling_interval_ms,
                "job_timeout_ms": job_timeout_ms,
            }
        )

    def register_handler(self, job_type: str, handler: JobHandler) -> None:
        """
        Bind a job type to an async handler.

        Re-registering a type replaces its handler for jobs leased afterwards;
        a job already running keeps the handler it was started with.
        """
        self._handlers[job_type] = handler
        logger.info(
            f"Registered handler for job type: {job_type}",
            extra={"event_type": "job_handler_registered", "job_type": job_type}
        )

    def get_registered_types(self) -> list[str]:
        return list(self._handlers)

    @property
    def is_shutting_down(self) -> bool:
        return self._is_shutting_down

    def get_is_shutting_down(self) -> bool:
        return self._is_shutting_down

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and not self._is_shutting_down

    def start(self) -> None:
        """
        Start polling. The first sweep runs immediately.

        Must be called from a running event loop.
        """
        if self._scheduler is not None:
            logger.warning(
                "JobWorker already running",
                extra={"event_type": "job_worker_already_running"}
            )
            return

        self._is_shutting_down = False
        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self._poll_wrapper,
            trigger=IntervalTrigger(seconds=self.polling_interval_ms / 1000),
            id=POLL_JOB_ID,
            name="Job Worker Poll",
            next_run_time=datetime.now(timezone.utc),
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()

        logger.info(
            "JobWorker started",
            extra={
                "event_type": "job_worker_started",
                "job_types": self.get_registered_types(),
            }
        )

    async def stop(self) -> bool:
        """
        Stop leasing new jobs and wait for the in-flight sweep.

        A job leased before stop() was called still runs to completion as
        long as it finishes within the grace period.

        Returns:
            True if the grace period elapsed before the sweep finished
        """
        self._is_shutting_down = True

        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        timed_out = False
        sweep = self._current_sweep
        if sweep is not None and not sweep.done():
            logger.info(
                "Waiting for in-flight jobs to finish",
                extra={
                    "event_type": "job_worker_draining",
                    "grace_period_ms": self.graceful_shutdown_timeout_ms,
                }
            )
            try:
                await asyncio.wait_for(
                    asyncio.shield(sweep),
                    timeout=self.graceful_shutdown_timeout_ms / 1000,
                )
            except asyncio.TimeoutError:
                timed_out = True
                logger.warning(
                    "Graceful shutdown timed out with a job still running",
                    extra={"event_type": "job_worker_shutdown_timeout"}
                )

        logger.info(
            "JobWorker stopped",
            extra={"event_type": "job_worker_stopped", "timed_out": timed_out}
        )
        return timed_out

    async def _poll_wrapper(self) -> None:
        """Scheduler entry point; a failing sweep must not stop the schedule."""
        try:
            await self.poll_once()
        except Exception as e:
            logger.error(
                f"Job poll failed: {e}",
                extra={"event_type": "job_poll_error", "error": str(e)},
                exc_info=True
            )

    async def poll_once(self) -> int:
        """
        Run one sweep over all registered types.

        Does nothing while shutting down or while another sweep is running.

        Returns:
            Number of jobs processed in this sweep
        """
        if self._is_shutting_down or self._is_processing:
            return 0

        self._is_processing = True
        self._current_sweep = asyncio.ensure_future(self._sweep())
        return await asyncio.shield(self._current_sweep)

    async def _sweep(self) -> int:
        processed = 0
        loop = asyncio.get_running_loop()
        try:
            for job_type in list(self._handlers):
                if self._is_shutting_down:
                    break
                job = await loop.run_in_executor(None, self._job_queue.acquire_job, job_type)
                if job is None:
                    continue
                record_job_leased(job.type)
                await self._process_job(job)
                processed += 1
        finally:
            self._is_processing = False
        return processed

    async def _process_job(self, job: JobRecord) -> None:
        """Run one leased job and record its outcome."""
        token = set_job_id(job.id)
        loop = asyncio.get_running_loop()
        try:
            handler = self._handlers.get(job.type)
            if handler is None:
                message = f"No handler for job type: {job.type}"
                logger.error(message, extra={"event_type": "job_no_handler", "job_type": job.type})
                await loop.run_in_executor(None, self._job_queue.fail_job, job.id, message, False)
                record_job_processed(job.type, "failed", 0.0)
                return

            logger.info(
                f"Processing job {job.id} ({job.type})",
                extra={
                    "event_type": "job_processing_start",
                    "job_type": job.type,
                    "attempts": job.attempts,
                }
            )

            start_time = time.monotonic()
            try:
                result = await self._run_with_timeout(handler, job)
                await loop.run_in_executor(None, self._job_queue.complete_job, job.id, result)
                record_job_processed(job.type, "completed", time.monotonic() - start_time)
            except Exception as e:
                error = str(e) or type(e).__name__
                logger.error(
                    f"Job {job.id} failed: {error}",
                    extra={"event_type": "job_handler_error", "job_type": job.type, "error": error},
                    exc_info=not isinstance(e, JobTimeoutError)
                )
                will_retry = await loop.run_in_executor(None, self._job_queue.fail_job, job.id, error)
                record_job_processed(
                    job.type, "retried" if will_retry else "failed", time.monotonic() - start_time
                )
        except Exception as e:
            # Ledger write failed; the job stays active until restart recovery
            logger.error(
                f"Could not record outcome of job {job.id}: {e}",
                extra={"event_type": "job_outcome_write_failed", "error": str(e)},
                exc_info=True
            )
        finally:
            clear_job_id(token)

    async def _run_with_timeout(self, handler: JobHandler, job: JobRecord) -> Any:
        loop = asyncio.get_running_loop()

        async def update_progress(progress: int) -> None:
            await loop.run_in_executor(None, self._job_queue.update_progress, job.id, progress)

        task = asyncio.ensure_future(handler(job, update_progress))
        try:
            return await asyncio.wait_for(
                asyncio.shield(task),
                timeout=self.job_timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            # Handler keeps running; hold a reference until it settles
            self._background_tasks.add(task)
            task.add_done_callback(self._discard_background_task)
            raise JobTimeoutError(
                f"Job {job.id} timed out after {self.job_timeout_ms}ms"
            ) from None

    def _discard_background_task(self, task: asyncio.Task) -> None:
        self._background_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(
                f"Timed-out handler finished with error: {task.exception()}",
                extra={"event_type": "job_orphan_handler_error"}
            )
