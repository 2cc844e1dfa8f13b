"""Query helpers over the ORM models, one repository per aggregate."""
from picstash.repositories.image_repository import ImageRepository, ImageWithEmbedding
from picstash.repositories.label_repository import LabelRepository, LabelWithEmbedding
from picstash.repositories.attribute_repository import ImageAttributeRepository
from picstash.repositories.view_history_repository import ViewHistoryRepository, ViewWithImage

__all__ = [
    "ImageRepository",
    "ImageWithEmbedding",
    "LabelRepository",
    "LabelWithEmbedding",
    "ImageAttributeRepository",
    "ViewHistoryRepository",
    "ViewWithImage",
]
