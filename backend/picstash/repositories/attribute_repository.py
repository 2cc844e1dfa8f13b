"""ImageAttributeRepository - data access for the image_attributes table"""
from sqlalchemy.orm import Session, joinedload

from picstash.models.label import ImageAttribute


class ImageAttributeRepository:
    """Attribute queries bound to one session."""

    def __init__(self, db: Session):
        self.db = db

    def find_by_image_ids(self, image_ids: list[str]) -> list[ImageAttribute]:
        """Attributes of the given images with their labels loaded."""
        if not image_ids:
            return []
        return (
            self.db.query(ImageAttribute)
            .options(joinedload(ImageAttribute.label))
            .filter(ImageAttribute.image_id.in_(image_ids))
            .order_by(ImageAttribute.created_at, ImageAttribute.id)
            .all()
        )
