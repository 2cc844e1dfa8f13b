"""
Unit tests for the archive-import job handler
"""
import threading
import zipfile
from unittest.mock import AsyncMock, patch

import pytest

from picstash.models.image import Image
from picstash.services.job_queue import JobQueue
from picstash.workers.archive_import_worker import (
    ARCHIVE_IMPORT_JOB_TYPE,
    _import_progress,
    create_archive_import_job_handler,
    import_entry,
)
from tests.conftest import make_png_bytes


def leased_job(session_factory, payload):
    queue = JobQueue(session_factory)
    queue.add(ARCHIVE_IMPORT_JOB_TYPE, payload)
    return queue.acquire_job(ARCHIVE_IMPORT_JOB_TYPE)


@pytest.fixture
def archive(file_storage):
    """ZIP under the storage root: 0 dir, 1 png, 2 txt, 3 corrupt png, 4 png."""
    relative = "uploads/batch.zip"
    path = file_storage.root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr("trip/", "")
        zf.writestr("trip/red.png", make_png_bytes((255, 0, 0), size=(40, 20)))
        zf.writestr("readme.txt", b"not an image")
        zf.writestr("trip/broken.png", b"garbage")
        zf.writestr("blue.png", make_png_bytes((0, 0, 255)))
    return relative


@pytest.fixture
def handler(session_factory, file_storage):
    return create_archive_import_job_handler(session_factory, file_storage)


class TestImportProgress:
    """Tests for the progress formula."""

    def test_progress_midpoints(self):
        assert _import_progress(0, 2) == 25
        assert _import_progress(1, 2) == 75
        assert _import_progress(0, 1) == 50


class TestArchiveImportJobHandler:
    """Tests for create_archive_import_job_handler()."""

    @pytest.mark.asyncio
    async def test_imports_selected_entries(self, handler, session_factory, db_session, file_storage, archive):
        job = leased_job(session_factory, {"archive_path": archive, "indices": [1, 4]})
        update_progress = AsyncMock()

        summary = await handler(job, update_progress)

        assert summary["total_requested"] == 2
        assert summary["success_count"] == 2
        assert summary["failed_count"] == 0
        assert [c.args[0] for c in update_progress.await_args_list] == [25, 75, 100]

        image_ids = [r["image_id"] for r in summary["results"]]
        red = db_session.get(Image, image_ids[0])
        assert red.title == "red"
        assert red.mime_type == "image/png"
        assert (red.width, red.height) == (40, 20)
        assert file_storage.file_exists(red.path)
        assert file_storage.file_exists(red.thumbnail_path)
        assert red.embedding is None

    @pytest.mark.asyncio
    async def test_per_entry_failures(self, handler, session_factory, db_session, file_storage, archive):
        job = leased_job(session_factory, {"archive_path": archive, "indices": [2, 3, 9, 4]})

        summary = await handler(job, AsyncMock())

        results = {r["index"]: r for r in summary["results"]}
        assert summary["success_count"] == 1
        assert summary["failed_count"] == 3
        assert results[2]["error"] == "Entry 2 not found in archive"
        assert results[9]["error"] == "Entry 9 not found in archive"
        assert results[3]["success"] is False
        assert results[3]["error"]
        assert results[4]["success"] is True
        assert db_session.query(Image).count() == 1
        # Nothing left behind by the corrupt entry
        assert len(list((file_storage.root / "originals").iterdir())) == 1
        assert len(list((file_storage.root / "thumbnails").iterdir())) == 1

    @pytest.mark.asyncio
    async def test_missing_archive(self, handler, session_factory):
        job = leased_job(session_factory, {"archive_path": "uploads/none.zip", "indices": [0, 1]})

        summary = await handler(job, AsyncMock())

        assert summary["success_count"] == 0
        assert summary["failed_count"] == 2
        assert {r["error"] for r in summary["results"]} == {"Archive not found"}

    @pytest.mark.asyncio
    async def test_archive_path_outside_storage(self, handler, session_factory):
        job = leased_job(session_factory, {"archive_path": "../elsewhere.zip", "indices": [0]})

        summary = await handler(job, AsyncMock())

        assert summary["results"][0]["error"] == "Archive not found"

    @pytest.mark.asyncio
    async def test_empty_selection(self, handler, session_factory, archive):
        job = leased_job(session_factory, {"archive_path": archive, "indices": []})

        summary = await handler(job, AsyncMock())

        assert summary == {"total_requested": 0, "success_count": 0, "failed_count": 0, "results": []}

    @pytest.mark.asyncio
    async def test_entries_imported_off_the_event_loop_thread(self, handler, session_factory, archive):
        job = leased_job(session_factory, {"archive_path": archive, "indices": [1, 4]})
        import_threads = []

        def recording_import(*args, **kwargs):
            import_threads.append(threading.get_ident())
            return import_entry(*args, **kwargs)

        with patch("picstash.workers.archive_import_worker.import_entry", side_effect=recording_import):
            summary = await handler(job, AsyncMock())

        assert summary["success_count"] == 2
        assert len(import_threads) == 2
        assert threading.get_ident() not in import_threads
