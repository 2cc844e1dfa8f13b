"""
Handler for caption-generation jobs

Progress milestones:
    10  started
    20  image record found
    30  image file present
    40  OCR done (skipped without an OCR service; OCR errors are ignored)
    50  similar image descriptions collected
    100 caption generated and stored on the image
"""
import asyncio
import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from picstash.repositories.image_repository import ImageRepository
from picstash.schemas.jobs import CaptionJobPayload
from picstash.services.caption_service import (
    CaptionContext,
    CaptionService,
    OcrService,
    SimilarImageDescription,
)
from picstash.services.file_storage import LocalFileStorage
from picstash.services.job_queue import JobRecord
from picstash.services.job_worker import JobHandler, ProgressCallback
from picstash.services.similarity_service import distance_to_score
from picstash.services.vector_store import VectorStore, bytes_to_vector

logger = logging.getLogger(__name__)

CAPTION_JOB_TYPE = "caption-generation"
SIMILAR_DESCRIPTIONS_LIMIT = 5


def get_similar_image_descriptions(
    db: Session,
    vector_store: VectorStore,
    image_id: str,
    limit: int = SIMILAR_DESCRIPTIONS_LIMIT,
) -> list[SimilarImageDescription]:
    """Non-blank descriptions of the nearest images, in similarity order."""
    repo = ImageRepository(db)
    source = repo.find_by_id_with_embedding(image_id)
    vector = bytes_to_vector(source.embedding, vector_store.dimension) if source else None
    if vector is None:
        return []

    hits = vector_store.find_similar(vector, limit, [image_id])
    images = repo.find_by_ids([hit.image_id for hit in hits])

    descriptions = []
    for hit in hits:
        image = images.get(hit.image_id)
        if image is None or not image.description or not image.description.strip():
            continue
        descriptions.append(
            SimilarImageDescription(
                description=image.description,
                similarity=distance_to_score(hit.distance),
            )
        )
    return descriptions


def create_caption_job_handler(
    session_factory: Callable[[], Session],
    file_storage: LocalFileStorage,
    caption_service: CaptionService,
    vector_store: VectorStore,
    ocr_service: Optional[OcrService] = None,
) -> JobHandler:

    def load_image_path(image_id: str) -> str:
        with session_factory() as db:
            image = ImageRepository(db).find_by_id(image_id)
            if image is None:
                raise LookupError(f"Image not found: {image_id}")
            return image.path

    def load_similar(image_id: str) -> list[SimilarImageDescription]:
        with session_factory() as db:
            return get_similar_image_descriptions(db, vector_store, image_id)

    def store_description(image_id: str, caption: str) -> None:
        with session_factory() as db:
            stored = ImageRepository(db).find_by_id(image_id)
            if stored is not None:
                stored.description = caption
                db.commit()

    async def handle(job: JobRecord, update_progress: ProgressCallback) -> dict:
        payload = CaptionJobPayload.model_validate(job.payload)
        image_id = payload.image_id
        loop = asyncio.get_running_loop()
        await update_progress(10)

        image_path = await loop.run_in_executor(None, load_image_path, image_id)
        await update_progress(20)

        if not file_storage.file_exists(image_path):
            raise FileNotFoundError(f"Image file not found on disk: {image_path}")
        absolute_path = file_storage.get_absolute_path(image_path)
        await update_progress(30)

        ocr_text = None
        if ocr_service is not None:
            try:
                ocr_result = await ocr_service.extract_text(absolute_path)
                if ocr_result.text.strip():
                    ocr_text = ocr_result.text
            except Exception as e:
                logger.warning(
                    f"OCR failed for image {image_id}, continuing without text: {e}",
                    extra={"event_type": "caption_ocr_failed", "image_id": image_id}
                )
        await update_progress(40)

        similar = await loop.run_in_executor(None, load_similar, image_id)
        await update_progress(50)

        result = await caption_service.generate_with_context(
            absolute_path,
            CaptionContext(similar_descriptions=similar, ocr_text=ocr_text),
        )

        await loop.run_in_executor(None, store_description, image_id, result.caption)
        await update_progress(100)

        return {
            "description": result.caption,
            "model": result.model,
            "used_context": bool(similar) or ocr_text is not None,
        }

    return handle
