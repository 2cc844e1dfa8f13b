"""
Image Embedding Service

Generates CLIP embeddings for stored images and keeps the two copies of each
embedding in step:

    Image.embedding (durable backup, raw float32 bytes)
    VectorStore     (authoritative for search)

The two writes are not transactional. sync_embeddings_to_vector_store
rebuilds the index from the durable copies whenever they drift apart.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Union

from sqlalchemy.orm import Session

from picstash.core.database import utc_now
from picstash.core.metrics import record_embedding_generated, set_vector_store_size
from picstash.repositories.image_repository import ImageRepository
from picstash.services.embedding_service import EmbeddingService
from picstash.services.file_storage import LocalFileStorage
from picstash.services.vector_store import VectorStore, bytes_to_vector, vector_to_bytes

logger = logging.getLogger(__name__)

ProgressFn = Callable[[int, int], None]


class GenerateEmbeddingError(str, Enum):
    IMAGE_NOT_FOUND = "IMAGE_NOT_FOUND"
    EMBEDDING_FAILED = "EMBEDDING_FAILED"


@dataclass
class GenerateEmbeddingResult:
    image_id: str
    dimension: int
    model: str
    generated_at: datetime

    def to_dict(self) -> dict:
        return {
            "image_id": self.image_id,
            "dimension": self.dimension,
            "model": self.model,
            "generated_at": self.generated_at.isoformat(),
        }


@dataclass
class BatchError:
    image_id: str
    error: str


@dataclass
class BatchGenerateResult:
    total: int = 0
    success: int = 0
    failed: int = 0
    errors: list[BatchError] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "success": self.success,
            "failed": self.failed,
            "errors": [{"image_id": e.image_id, "error": e.error} for e in self.errors],
        }


@dataclass
class SyncResult:
    synced: int = 0
    skipped: int = 0

    def to_dict(self) -> dict:
        return {"synced": self.synced, "skipped": self.skipped}


@dataclass
class EmbeddingStatus:
    total_images: int
    with_embedding: int
    in_vector_store: int

    @property
    def without_embedding(self) -> int:
        return self.total_images - self.with_embedding

    @property
    def in_sync(self) -> bool:
        return self.with_embedding == self.in_vector_store

    def to_dict(self) -> dict:
        return {
            "total_images": self.total_images,
            "with_embedding": self.with_embedding,
            "without_embedding": self.without_embedding,
            "in_vector_store": self.in_vector_store,
            "in_sync": self.in_sync,
        }


async def generate_embedding(
    db: Session,
    image_id: str,
    embedding_service: EmbeddingService,
    file_storage: LocalFileStorage,
    vector_store: VectorStore,
) -> Union[GenerateEmbeddingResult, GenerateEmbeddingError]:
    """
    Embed one image and store the result in both places.

    Returns:
        GenerateEmbeddingResult, IMAGE_NOT_FOUND if the record is missing, or
        EMBEDDING_FAILED if the file could not be read or embedded
    """
    repo = ImageRepository(db)
    image = repo.find_by_id(image_id)
    if image is None:
        return GenerateEmbeddingError.IMAGE_NOT_FOUND

    try:
        data = file_storage.read_bytes(image.path)
        result = await embedding_service.generate_from_buffer(data)
        if len(result.embedding) != vector_store.dimension:
            raise ValueError(
                f"Embedding dimension mismatch: expected {vector_store.dimension}, "
                f"got {len(result.embedding)}"
            )

        generated_at = utc_now()
        repo.update_embedding(image_id, vector_to_bytes(result.embedding))
        vector_store.upsert(image_id, result.embedding)
    except Exception as e:
        logger.error(
            f"Failed to generate embedding for image {image_id}: {e}",
            extra={"event_type": "embedding_generation_failed", "image_id": image_id, "error": str(e)},
            exc_info=True
        )
        record_embedding_generated("image", success=False)
        return GenerateEmbeddingError.EMBEDDING_FAILED

    record_embedding_generated("image", success=True)

    logger.info(
        f"Generated embedding for image {image_id}",
        extra={"event_type": "embedding_generated", "image_id": image_id, "model": result.model}
    )
    return GenerateEmbeddingResult(
        image_id=image_id,
        dimension=result.dimension,
        model=result.model,
        generated_at=generated_at,
    )


async def generate_missing_embeddings(
    db: Session,
    embedding_service: EmbeddingService,
    file_storage: LocalFileStorage,
    vector_store: VectorStore,
    on_progress: Optional[ProgressFn] = None,
) -> BatchGenerateResult:
    """
    Embed every image that has no embedding yet.

    One failure never stops the batch; failures are collected in `errors`.
    on_progress(current, total) is called after each image.
    """
    image_ids = ImageRepository(db).find_ids_without_embedding()
    result = BatchGenerateResult(total=len(image_ids))

    for index, image_id in enumerate(image_ids, start=1):
        outcome = await generate_embedding(db, image_id, embedding_service, file_storage, vector_store)
        if isinstance(outcome, GenerateEmbeddingError):
            result.failed += 1
            result.errors.append(BatchError(image_id=image_id, error=outcome.value))
        else:
            result.success += 1
        if on_progress is not None:
            on_progress(index, result.total)

    logger.info(
        f"Batch embedding complete: {result.success}/{result.total} succeeded",
        extra={
            "event_type": "embedding_batch_complete",
            "total": result.total,
            "success": result.success,
            "failed": result.failed,
        }
    )
    return result


async def regenerate_all_embeddings(
    db: Session,
    embedding_service: EmbeddingService,
    file_storage: LocalFileStorage,
    vector_store: VectorStore,
    on_progress: Optional[ProgressFn] = None,
) -> BatchGenerateResult:
    """Drop every stored embedding, then embed all images from scratch."""
    cleared = ImageRepository(db).clear_all_embeddings()
    vector_store.clear()
    logger.info(
        f"Cleared {cleared} embeddings for regeneration",
        extra={"event_type": "embeddings_cleared", "count": cleared}
    )
    return await generate_missing_embeddings(
        db, embedding_service, file_storage, vector_store, on_progress
    )


def remove_embedding(db: Session, vector_store: VectorStore, image_id: str) -> None:
    """Drop an image's embedding from the index and the durable record."""
    vector_store.remove(image_id)
    ImageRepository(db).update_embedding(image_id, None)


def sync_embeddings_to_vector_store(db: Session, vector_store: VectorStore) -> SyncResult:
    """
    Upsert every durable embedding into the vector store.

    Blobs of the wrong size are skipped and counted.
    """
    result = SyncResult()
    for image in ImageRepository(db).find_all_with_embedding():
        vector = bytes_to_vector(image.embedding, vector_store.dimension)
        if vector is None:
            logger.warning(
                f"Skipping image {image.id}: unexpected embedding size",
                extra={
                    "event_type": "embedding_sync_skipped",
                    "image_id": image.id,
                    "size_bytes": len(image.embedding or b""),
                }
            )
            result.skipped += 1
            continue
        vector_store.upsert(image.id, vector)
        result.synced += 1

    set_vector_store_size(vector_store.count())
    logger.info(
        f"Synced {result.synced} embeddings ({result.skipped} skipped)",
        extra={"event_type": "embedding_sync_complete", **result.to_dict()}
    )
    return result


def get_embedding_status(db: Session, vector_store: VectorStore) -> EmbeddingStatus:
    repo = ImageRepository(db)
    return EmbeddingStatus(
        total_images=repo.count(),
        with_embedding=repo.count_with_embedding(),
        in_vector_store=vector_store.count(),
    )
