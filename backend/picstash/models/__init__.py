"""SQLAlchemy ORM models"""
from picstash.models.image import Image
from picstash.models.label import Label, ImageAttribute
from picstash.models.view_history import ViewHistory
from picstash.models.job import Job, JobStatus
from picstash.models.image_vector import ImageVector

__all__ = [
    "Image",
    "Label",
    "ImageAttribute",
    "ViewHistory",
    "Job",
    "JobStatus",
    "ImageVector",
]
