"""ImageVector SQLAlchemy ORM model

The vector store's index table: one fixed-dimension float32 vector per image,
keyed by image id. Rows are replaced by delete-then-insert, never updated.
There is no foreign key to images; callers keep the two in sync
(see image_embedding_service.sync_embeddings_to_vector_store).
"""
from sqlalchemy import Column, String, LargeBinary

from picstash.core.database import Base


class ImageVector(Base):
    """Indexed embedding for k-NN search."""

    __tablename__ = "image_vectors"

    image_id = Column(String, primary_key=True)
    embedding = Column(LargeBinary, nullable=False, doc="Raw float32 bytes")

    def __repr__(self):
        return f"<ImageVector(image_id={self.image_id}, bytes={len(self.embedding or b'')})>"
