"""
ZIP archive reading for archive imports.

Entry indices follow the archive's central directory order (directories
included), so an index picked from list_entries() stays valid for
extract_entry() on the same file.
"""
import os
import zipfile
from dataclasses import dataclass
from pathlib import Path

SUPPORTED_IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp")

IMAGE_EXTENSION_MIME_MAP = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
}


def is_supported_image_extension(extension: str) -> bool:
    return extension.lower() in SUPPORTED_IMAGE_EXTENSIONS


def get_mime_type_from_extension(extension: str) -> str:
    return IMAGE_EXTENSION_MIME_MAP.get(extension.lower(), "application/octet-stream")


@dataclass
class ArchiveEntry:
    index: int
    filename: str
    path: str
    size: int
    is_directory: bool

    @property
    def extension(self) -> str:
        return os.path.splitext(self.filename)[1].lower()

    @property
    def is_image(self) -> bool:
        return not self.is_directory and is_supported_image_extension(self.extension)


class ZipArchiveReader:
    """Lists and extracts entries of one ZIP file."""

    def __init__(self, archive_path: str | Path):
        self.archive_path = Path(archive_path)

    def list_entries(self) -> list[ArchiveEntry]:
        """
        Raises:
            FileNotFoundError: If the archive does not exist
            zipfile.BadZipFile: If the file is not a ZIP archive
        """
        with zipfile.ZipFile(self.archive_path) as archive:
            return [
                ArchiveEntry(
                    index=index,
                    filename=os.path.basename(info.filename.rstrip("/")),
                    path=info.filename,
                    size=info.file_size,
                    is_directory=info.is_dir(),
                )
                for index, info in enumerate(archive.infolist())
            ]

    def image_entries(self) -> list[ArchiveEntry]:
        return [entry for entry in self.list_entries() if entry.is_image]

    def extract_entry(self, index: int) -> bytes:
        """
        Raises:
            IndexError: If index is out of range
            IsADirectoryError: If the entry is a directory
        """
        with zipfile.ZipFile(self.archive_path) as archive:
            infos = archive.infolist()
            if index < 0 or index >= len(infos):
                raise IndexError(f"Entry index {index} out of range")
            info = infos[index]
            if info.is_dir():
                raise IsADirectoryError("Cannot extract a directory entry")
            return archive.read(info)
