"""
ImageRepository - data access for the images table

Embeddings come back as raw bytes; callers decode them with
vector_store.bytes_to_vector, which also rejects blobs of the wrong size.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from picstash.models.image import Image

logger = logging.getLogger(__name__)


@dataclass
class ImageWithEmbedding:
    """Image id plus its stored embedding bytes (None if not embedded)."""
    id: str
    embedding: Optional[bytes]


class ImageRepository:
    """Image queries bound to one session."""

    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, image_id: str) -> Optional[Image]:
        return self.db.query(Image).filter(Image.id == image_id).first()

    def find_by_ids(self, image_ids: list[str]) -> dict[str, Image]:
        if not image_ids:
            return {}
        rows = self.db.query(Image).filter(Image.id.in_(image_ids)).all()
        return {image.id: image for image in rows}

    def find_by_id_with_embedding(self, image_id: str) -> Optional[ImageWithEmbedding]:
        row = self.db.query(Image.id, Image.embedding).filter(Image.id == image_id).first()
        if row is None:
            return None
        return ImageWithEmbedding(id=row[0], embedding=row[1])

    def find_all_with_embedding(self) -> list[ImageWithEmbedding]:
        """Every image that has an embedding, oldest first."""
        rows = (
            self.db.query(Image.id, Image.embedding)
            .filter(Image.embedding.isnot(None))
            .order_by(Image.created_at, Image.id)
            .all()
        )
        return [ImageWithEmbedding(id=r[0], embedding=r[1]) for r in rows]

    def find_ids_without_embedding(self) -> list[str]:
        rows = (
            self.db.query(Image.id)
            .filter(Image.embedding.is_(None))
            .order_by(Image.created_at, Image.id)
            .all()
        )
        return [r[0] for r in rows]

    def count(self) -> int:
        return self.db.query(Image).count()

    def count_with_embedding(self) -> int:
        return self.db.query(Image).filter(Image.embedding.isnot(None)).count()

    def update_embedding(self, image_id: str, embedding: Optional[bytes]) -> None:
        """Store (or clear, with None) the embedding backup copy."""
        embedded_at = datetime.now(timezone.utc) if embedding is not None else None
        self.db.query(Image).filter(Image.id == image_id).update(
            {Image.embedding: embedding, Image.embedded_at: embedded_at},
            synchronize_session=False,
        )
        self.db.commit()

    def clear_all_embeddings(self) -> int:
        updated = self.db.query(Image).filter(Image.embedding.isnot(None)).update(
            {Image.embedding: None, Image.embedded_at: None},
            synchronize_session=False,
        )
        self.db.commit()
        return updated

    def create(self, **fields) -> Image:
        image = Image(**fields)
        self.db.add(image)
        self.db.commit()
        self.db.refresh(image)
        logger.info(
            f"Created image {image.id}",
            extra={"event_type": "image_created", "image_id": image.id}
        )
        return image
