"""
Handler for archive-import jobs

Imports selected image entries of a ZIP archive. Each entry succeeds or fails
on its own; the job itself only fails on infrastructure errors, so a partly
broken archive still completes with a per-entry result list.
"""
import asyncio
import io
import logging
import os
import zipfile
from dataclasses import dataclass
from typing import Callable, Optional

from PIL import Image as PILImage
from sqlalchemy.orm import Session

from picstash.repositories.image_repository import ImageRepository
from picstash.schemas.jobs import ArchiveImportJobPayload
from picstash.services.archive_reader import ZipArchiveReader, get_mime_type_from_extension
from picstash.services.file_storage import LocalFileStorage, StoragePathError
from picstash.services.job_queue import JobRecord
from picstash.services.job_worker import JobHandler, ProgressCallback

logger = logging.getLogger(__name__)

ARCHIVE_IMPORT_JOB_TYPE = "archive-import"


@dataclass
class ArchiveImportImageResult:
    index: int
    success: bool
    image_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "success": self.success,
            "image_id": self.image_id,
            "error": self.error,
        }


def _import_progress(processed: int, total: int) -> int:
    return round((processed + 0.5) / total * 100)


def _summary(indices: list[int], results: list[ArchiveImportImageResult]) -> dict:
    success_count = sum(1 for r in results if r.success)
    return {
        "total_requested": len(indices),
        "success_count": success_count,
        "failed_count": len(results) - success_count,
        "results": [r.to_dict() for r in results],
    }


def import_entry(
    db: Session,
    reader: ZipArchiveReader,
    file_storage: LocalFileStorage,
    index: int,
    filename: str,
) -> str:
    """
    Store one archive entry as a new image and return its id.

    Files written before a failure are removed again.
    """
    data = reader.extract_entry(index)
    extension = os.path.splitext(filename)[1].lower()

    saved_path = file_storage.save_original(data, extension)
    try:
        with PILImage.open(io.BytesIO(data)) as decoded:
            width, height = decoded.size
        thumbnail_path = file_storage.save_thumbnail(data)
    except Exception:
        file_storage.delete_file(saved_path)
        raise

    try:
        image = ImageRepository(db).create(
            path=saved_path,
            thumbnail_path=thumbnail_path,
            filename=os.path.basename(saved_path),
            mime_type=get_mime_type_from_extension(extension),
            size=len(data),
            width=width,
            height=height,
            title=os.path.splitext(filename)[0],
        )
    except Exception:
        db.rollback()
        file_storage.delete_file(saved_path)
        file_storage.delete_file(thumbnail_path)
        raise
    return image.id


def _open_archive(file_storage: LocalFileStorage, archive_path: str) -> tuple[ZipArchiveReader, dict]:
    reader = ZipArchiveReader(file_storage.get_absolute_path(archive_path))
    return reader, {entry.index: entry for entry in reader.image_entries()}


def create_archive_import_job_handler(
    session_factory: Callable[[], Session],
    file_storage: LocalFileStorage,
) -> JobHandler:

    def import_with_session(reader: ZipArchiveReader, index: int, filename: str) -> str:
        with session_factory() as db:
            return import_entry(db, reader, file_storage, index, filename)

    async def handle(job: JobRecord, update_progress: ProgressCallback) -> dict:
        payload = ArchiveImportJobPayload.model_validate(job.payload)
        indices = payload.indices
        # Zip, Pillow and database work is blocking; keep it off the event loop
        loop = asyncio.get_running_loop()

        try:
            reader, entries = await loop.run_in_executor(
                None, _open_archive, file_storage, payload.archive_path
            )
        except (OSError, zipfile.BadZipFile, StoragePathError) as e:
            logger.warning(
                f"Archive {payload.archive_path} unavailable: {e}",
                extra={"event_type": "archive_unavailable", "archive_path": payload.archive_path}
            )
            results = [
                ArchiveImportImageResult(index=i, success=False, error="Archive not found")
                for i in indices
            ]
            return _summary(indices, results)

        results: list[ArchiveImportImageResult] = []
        for processed, index in enumerate(indices):
            await update_progress(_import_progress(processed, len(indices)))

            entry = entries.get(index)
            if entry is None:
                results.append(
                    ArchiveImportImageResult(
                        index=index, success=False, error=f"Entry {index} not found in archive"
                    )
                )
                continue

            try:
                image_id = await loop.run_in_executor(
                    None, import_with_session, reader, index, entry.filename
                )
                results.append(ArchiveImportImageResult(index=index, success=True, image_id=image_id))
            except Exception as e:
                logger.warning(
                    f"Failed to import archive entry {index}: {e}",
                    extra={"event_type": "archive_entry_failed", "index": index, "error": str(e)}
                )
                results.append(ArchiveImportImageResult(index=index, success=False, error=str(e)))

        await update_progress(100)
        summary = _summary(indices, results)
        logger.info(
            f"Archive import finished: {summary['success_count']}/{len(indices)} imported",
            extra={
                "event_type": "archive_import_complete",
                "success_count": summary["success_count"],
                "failed_count": summary["failed_count"],
            }
        )
        return summary

    return handle
