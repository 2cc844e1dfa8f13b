"""
Label Embedding Service

CLIP text embeddings for label names, used by attribute suggestion to score
labels against image embeddings. Label embeddings live only on the label row;
they are not indexed in the vector store.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Union

from sqlalchemy.orm import Session

from picstash.core.database import utc_now
from picstash.core.metrics import record_embedding_generated
from picstash.repositories.label_repository import LabelRepository
from picstash.services.embedding_service import EmbeddingService
from picstash.services.vector_store import EMBEDDING_DIMENSION, vector_to_bytes

logger = logging.getLogger(__name__)


class GenerateLabelEmbeddingError(str, Enum):
    LABEL_NOT_FOUND = "LABEL_NOT_FOUND"
    EMBEDDING_FAILED = "EMBEDDING_FAILED"


@dataclass
class GenerateLabelEmbeddingResult:
    label_id: str
    label_name: str
    dimension: int
    model: str
    generated_at: datetime


@dataclass
class LabelBatchError:
    label_id: str
    label_name: str
    error: str


@dataclass
class BatchGenerateLabelResult:
    total: int = 0
    success: int = 0
    failed: int = 0
    errors: list[LabelBatchError] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "success": self.success,
            "failed": self.failed,
            "errors": [
                {"label_id": e.label_id, "label_name": e.label_name, "error": e.error}
                for e in self.errors
            ],
        }


async def generate_label_embedding(
    db: Session,
    label_id: str,
    embedding_service: EmbeddingService,
    dimension: int = EMBEDDING_DIMENSION,
) -> Union[GenerateLabelEmbeddingResult, GenerateLabelEmbeddingError]:
    """Embed a label's name and store it on the label."""
    repo = LabelRepository(db)
    label = repo.find_by_id(label_id)
    if label is None:
        return GenerateLabelEmbeddingError.LABEL_NOT_FOUND

    try:
        result = await embedding_service.generate_from_text(label.name)
        if len(result.embedding) != dimension:
            raise ValueError(
                f"Embedding dimension mismatch: expected {dimension}, got {len(result.embedding)}"
            )
        generated_at = utc_now()
        repo.update_embedding(label_id, vector_to_bytes(result.embedding))
    except Exception as e:
        logger.error(
            f"Failed to generate embedding for label {label_id}: {e}",
            extra={"event_type": "label_embedding_failed", "label_id": label_id, "error": str(e)},
            exc_info=True
        )
        record_embedding_generated("label", success=False)
        return GenerateLabelEmbeddingError.EMBEDDING_FAILED

    record_embedding_generated("label", success=True)
    return GenerateLabelEmbeddingResult(
        label_id=label_id,
        label_name=label.name,
        dimension=result.dimension,
        model=result.model,
        generated_at=generated_at,
    )


async def generate_missing_label_embeddings(
    db: Session,
    embedding_service: EmbeddingService,
    on_progress: Optional[Callable[[int, int, str], None]] = None,
    dimension: int = EMBEDDING_DIMENSION,
) -> BatchGenerateLabelResult:
    """
    Embed every label without an embedding.

    on_progress(current, total, label_name) is called before each label.
    """
    pending = LabelRepository(db).find_without_embedding()
    result = BatchGenerateLabelResult(total=len(pending))

    for index, (label_id, label_name) in enumerate(pending, start=1):
        if on_progress is not None:
            on_progress(index, result.total, label_name)
        outcome = await generate_label_embedding(db, label_id, embedding_service, dimension)
        if isinstance(outcome, GenerateLabelEmbeddingError):
            result.failed += 1
            result.errors.append(
                LabelBatchError(label_id=label_id, label_name=label_name, error=outcome.value)
            )
        else:
            result.success += 1

    logger.info(
        f"Label embeddings: {result.success}/{result.total} succeeded",
        extra={
            "event_type": "label_embedding_batch_complete",
            "total": result.total,
            "success": result.success,
            "failed": result.failed,
        }
    )
    return result


async def regenerate_all_label_embeddings(
    db: Session,
    embedding_service: EmbeddingService,
    on_progress: Optional[Callable[[int, int, str], None]] = None,
    dimension: int = EMBEDDING_DIMENSION,
) -> BatchGenerateLabelResult:
    """Clear every label embedding, then embed all labels again."""
    LabelRepository(db).clear_all_embeddings()
    return await generate_missing_label_embeddings(db, embedding_service, on_progress, dimension)
