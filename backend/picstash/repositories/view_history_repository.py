"""ViewHistoryRepository - data access for the view_history table"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from picstash.models.image import Image
from picstash.models.view_history import ViewHistory


@dataclass
class ViewWithImage:
    """A view joined to the image it refers to."""
    id: str
    image_id: str
    viewed_at: datetime
    duration: Optional[int]
    image_title: str


class ViewHistoryRepository:
    """View history queries bound to one session."""

    def __init__(self, db: Session):
        self.db = db

    def find_recent_with_images(self, limit: int = 100, offset: int = 0) -> list[ViewWithImage]:
        """Most recent views first, skipping views whose image is gone."""
        rows = (
            self.db.query(ViewHistory, Image.title)
            .join(Image, Image.id == ViewHistory.image_id)
            .order_by(ViewHistory.viewed_at.desc(), ViewHistory.id)
            .offset(offset)
            .limit(limit)
            .all()
        )
        return [
            ViewWithImage(
                id=view.id,
                image_id=view.image_id,
                viewed_at=view.viewed_at,
                duration=view.duration,
                image_title=title,
            )
            for view, title in rows
        ]

    def create(self, image_id: str, viewed_at: Optional[datetime] = None, duration: Optional[int] = None) -> ViewHistory:
        view = ViewHistory(image_id=image_id, duration=duration)
        if viewed_at is not None:
            view.viewed_at = viewed_at
        self.db.add(view)
        self.db.commit()
        self.db.refresh(view)
        return view
