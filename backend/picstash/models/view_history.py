"""ViewHistory SQLAlchemy ORM model

One row per image view. `duration` (milliseconds) is filled in when the viewer
closes the image and may stay NULL.
"""
from datetime import datetime, timezone
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
import uuid

from picstash.core.database import Base


class ViewHistory(Base):
    """A single view of an image."""

    __tablename__ = "view_history"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    image_id = Column(
        String,
        ForeignKey("images.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    viewed_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    duration = Column(Integer, nullable=True, doc="View duration in milliseconds")

    image = relationship("Image", back_populates="views")

    __table_args__ = (
        Index("idx_view_history_viewed_at", "viewed_at"),
    )

    def __repr__(self):
        return f"<ViewHistory(image_id={self.image_id}, viewed_at={self.viewed_at}, duration={self.duration})>"
