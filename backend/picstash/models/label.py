"""Label and ImageAttribute SQLAlchemy ORM models

A label is a user-defined attribute name ("cat", "sunset"). Its CLIP text
embedding lets the attribute suggester score labels against image embeddings.
An ImageAttribute attaches a label to an image with optional comma-separated
keywords.
"""
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, DateTime, LargeBinary, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
import uuid

from picstash.core.database import Base


class Label(Base):
    """User-defined label with an optional text embedding."""

    __tablename__ = "labels"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(100), nullable=False, unique=True)
    color = Column(String(20), nullable=True)
    embedding = Column(LargeBinary, nullable=True, doc="float32 text embedding bytes")
    embedded_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    attributes = relationship(
        "ImageAttribute", back_populates="label", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Label(id={self.id}, name={self.name!r})>"


class ImageAttribute(Base):
    """Label attached to an image, with free-form keywords."""

    __tablename__ = "image_attributes"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    image_id = Column(
        String,
        ForeignKey("images.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    label_id = Column(
        String,
        ForeignKey("labels.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    keywords = Column(Text, nullable=True, doc="Comma-separated keywords")
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    image = relationship("Image", back_populates="attributes")
    label = relationship("Label", back_populates="attributes")

    __table_args__ = (
        UniqueConstraint("image_id", "label_id", name="uq_image_attributes_image_label"),
    )

    def __repr__(self):
        return f"<ImageAttribute(image_id={self.image_id}, label_id={self.label_id})>"
