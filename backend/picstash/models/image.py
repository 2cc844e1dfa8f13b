"""Image SQLAlchemy ORM model

The durable image record. `embedding` keeps a backup copy of the CLIP vector as
raw little-endian float32 bytes (512 * 4 bytes) for export and for rebuilding
the vector index; the ImageVector table is authoritative for search.
"""
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, Integer, DateTime, LargeBinary, Index
from sqlalchemy.orm import relationship
import uuid

from picstash.core.database import Base


class Image(Base):
    """
    Image in the library.

    Relationships:
        attributes: Label attributes attached to this image
        views: View history records
    """

    __tablename__ = "images"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    path = Column(String, nullable=False, doc="Path of the original, relative to the storage root")
    thumbnail_path = Column(String, nullable=True, doc="Path of the thumbnail, relative to the storage root")
    filename = Column(String, nullable=False, doc="Stored file name")
    mime_type = Column(String(50), nullable=False, default="image/jpeg")
    size = Column(Integer, nullable=False, default=0, doc="File size in bytes")
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)
    title = Column(String, nullable=False, default="")
    description = Column(Text, nullable=True, doc="Generated or user-written caption")
    embedding = Column(LargeBinary, nullable=True, doc="float32 embedding bytes (backup copy)")
    embedded_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    attributes = relationship(
        "ImageAttribute", back_populates="image", cascade="all, delete-orphan"
    )
    views = relationship(
        "ViewHistory", back_populates="image", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_images_created_at", "created_at"),
    )

    def __repr__(self):
        return f"<Image(id={self.id}, title={self.title!r}, embedded={self.embedding is not None})>"
