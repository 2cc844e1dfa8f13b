"""Job handlers run by the JobWorker"""
import logging

from picstash.container import Container
from picstash.workers.archive_import_worker import (
    ARCHIVE_IMPORT_JOB_TYPE,
    create_archive_import_job_handler,
)
from picstash.workers.caption_worker import CAPTION_JOB_TYPE, create_caption_job_handler
from picstash.workers.embedding_worker import EMBEDDING_JOB_TYPE, create_embedding_job_handler

logger = logging.getLogger(__name__)

__all__ = [
    "ARCHIVE_IMPORT_JOB_TYPE",
    "CAPTION_JOB_TYPE",
    "EMBEDDING_JOB_TYPE",
    "register_default_handlers",
]


def register_default_handlers(container: Container) -> list[str]:
    """Register every handler the container has collaborators for."""
    worker = container.job_worker
    worker.register_handler(
        EMBEDDING_JOB_TYPE,
        create_embedding_job_handler(
            container.session_factory,
            container.embedding_service,
            container.file_storage,
            container.vector_store,
        ),
    )
    if container.caption_service is not None:
        worker.register_handler(
            CAPTION_JOB_TYPE,
            create_caption_job_handler(
                container.session_factory,
                container.file_storage,
                container.caption_service,
                container.vector_store,
                container.ocr_service,
            ),
        )
    else:
        logger.info(
            "No caption service configured; caption jobs disabled",
            extra={"event_type": "caption_jobs_disabled"}
        )
    worker.register_handler(
        ARCHIVE_IMPORT_JOB_TYPE,
        create_archive_import_job_handler(container.session_factory, container.file_storage),
    )
    return worker.get_registered_types()
