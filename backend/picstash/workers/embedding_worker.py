"""Handler for embedding-generation jobs"""
import logging
from typing import Callable

from sqlalchemy.orm import Session

from picstash.schemas.jobs import EmbeddingJobPayload
from picstash.services.embedding_service import EmbeddingService
from picstash.services.file_storage import LocalFileStorage
from picstash.services.image_embedding_service import GenerateEmbeddingError, generate_embedding
from picstash.services.job_queue import JobRecord
from picstash.services.job_worker import JobHandler, ProgressCallback
from picstash.services.vector_store import VectorStore

logger = logging.getLogger(__name__)

EMBEDDING_JOB_TYPE = "embedding-generation"


def create_embedding_job_handler(
    session_factory: Callable[[], Session],
    embedding_service: EmbeddingService,
    file_storage: LocalFileStorage,
    vector_store: VectorStore,
) -> JobHandler:
    """Build the handler; a failed generation raises so the job is retried."""

    async def handle(job: JobRecord, update_progress: ProgressCallback) -> dict:
        payload = EmbeddingJobPayload.model_validate(job.payload)
        await update_progress(10)

        with session_factory() as db:
            outcome = await generate_embedding(
                db, payload.image_id, embedding_service, file_storage, vector_store
            )

        if isinstance(outcome, GenerateEmbeddingError):
            raise RuntimeError(f"Embedding generation failed for image {payload.image_id}: {outcome.value}")

        await update_progress(100)
        return outcome.to_dict()

    return handle
