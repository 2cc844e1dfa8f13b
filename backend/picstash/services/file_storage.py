"""
Local File Storage

Stores originals and thumbnails under one storage root. Paths handed to the
rest of the code are relative to that root ("originals/<uuid>.jpg"); only
get_absolute_path turns them into filesystem paths.
"""
import io
import logging
import os
import uuid
from pathlib import Path

from PIL import Image

logger = logging.getLogger(__name__)

ORIGINALS_DIR = "originals"
THUMBNAILS_DIR = "thumbnails"

THUMBNAIL_SIZE = (300, 300)
THUMBNAIL_QUALITY = 85


class StoragePathError(ValueError):
    """Raised when a relative path escapes the storage root."""


class LocalFileStorage:
    """
    Filesystem-backed image storage.

    Attributes:
        root: Absolute storage root
    """

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()
        os.makedirs(self.root / ORIGINALS_DIR, exist_ok=True)
        os.makedirs(self.root / THUMBNAILS_DIR, exist_ok=True)

    def get_absolute_path(self, relative_path: str) -> Path:
        """
        Resolve a stored path against the root.

        Raises:
            StoragePathError: If the path points outside the root
        """
        candidate = (self.root / relative_path).resolve()
        if candidate != self.root and self.root not in candidate.parents:
            raise StoragePathError(f"Path escapes storage root: {relative_path}")
        return candidate

    def file_exists(self, relative_path: str) -> bool:
        try:
            return self.get_absolute_path(relative_path).is_file()
        except StoragePathError:
            return False

    def read_bytes(self, relative_path: str) -> bytes:
        """
        Raises:
            FileNotFoundError: If the file does not exist
        """
        return self.get_absolute_path(relative_path).read_bytes()

    def save_original(self, data: bytes, extension: str) -> str:
        """Write an original image and return its relative path."""
        extension = extension.lower().lstrip(".") or "bin"
        relative = f"{ORIGINALS_DIR}/{uuid.uuid4()}.{extension}"
        self.get_absolute_path(relative).write_bytes(data)
        logger.debug(
            f"Original saved: {relative}",
            extra={"event_type": "original_saved", "path": relative, "size": len(data)}
        )
        return relative

    def save_thumbnail(self, data: bytes) -> str:
        """
        Write a JPEG thumbnail of an encoded image and return its relative path.

        Raises:
            PIL.UnidentifiedImageError: If data is not an image
        """
        image = Image.open(io.BytesIO(data))
        thumbnail = image.convert("RGB")
        thumbnail.thumbnail(THUMBNAIL_SIZE, Image.Resampling.LANCZOS)

        relative = f"{THUMBNAILS_DIR}/{uuid.uuid4()}.jpg"
        thumbnail.save(self.get_absolute_path(relative), "JPEG", quality=THUMBNAIL_QUALITY)
        logger.debug(
            f"Thumbnail saved: {relative}",
            extra={
                "event_type": "thumbnail_saved",
                "path": relative,
                "width": thumbnail.width,
                "height": thumbnail.height,
            }
        )
        return relative

    def delete_file(self, relative_path: str) -> bool:
        """Delete a stored file. Returns False if it did not exist."""
        path = self.get_absolute_path(relative_path)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True
