"""
Application container

Builds every long-lived component once at process start and tears them down
at shutdown. Nothing in picstash keeps module-level service singletons; code
that needs a component receives it from here.

Lifecycle:
    container = build_container(settings)
    container.initialize()      create tables, settle interrupted jobs, load model
    ... serve ...
    await container.job_worker.stop()
    container.close()
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from picstash.core.config import Settings
from picstash.core.database import create_db_engine, create_session_factory, init_db
from picstash.services.caption_service import CaptionService, OcrService
from picstash.services.embedding_service import ClipEmbeddingService, EmbeddingService
from picstash.services.file_storage import LocalFileStorage
from picstash.services.job_queue import JobQueue
from picstash.services.job_worker import JobWorker
from picstash.services.similarity_service import SimilarityService
from picstash.services.vector_store import VectorStore

logger = logging.getLogger(__name__)


@dataclass
class Container:
    settings: Settings
    engine: Engine
    session_factory: Callable[[], Session]
    vector_store: VectorStore
    similarity_service: SimilarityService
    job_queue: JobQueue
    job_worker: JobWorker
    file_storage: LocalFileStorage
    embedding_service: EmbeddingService
    caption_service: Optional[CaptionService] = None
    ocr_service: Optional[OcrService] = None
    _closed: bool = field(default=False, repr=False)

    def initialize(self, load_models: bool = True) -> None:
        """Create tables, settle jobs left active by a crash, load models."""
        init_db(self.engine)
        self.job_queue.requeue_interrupted_jobs()
        initialize = getattr(self.embedding_service, "initialize", None)
        if load_models and initialize is not None:
            initialize()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.vector_store.close()
        close_model = getattr(self.embedding_service, "close", None)
        if close_model is not None:
            close_model()
        self.engine.dispose()
        logger.info("Container closed", extra={"event_type": "container_closed"})


def build_container(
    settings: Settings,
    embedding_service: Optional[EmbeddingService] = None,
    caption_service: Optional[CaptionService] = None,
    ocr_service: Optional[OcrService] = None,
) -> Container:
    """
    Construct all components for one process.

    Args:
        settings: Application settings
        embedding_service: Override for the CLIP service (tests, scripts)
        caption_service: Caption model adapter; caption jobs are not
            registered without one
        ocr_service: Optional OCR adapter used by caption jobs
    """
    engine = create_db_engine(settings.DATABASE_URL, echo=settings.DEBUG)
    session_factory = create_session_factory(engine)

    vector_store = VectorStore(session_factory, dimension=settings.EMBEDDING_DIMENSION)
    job_queue = JobQueue(session_factory, default_max_attempts=settings.JOB_DEFAULT_MAX_ATTEMPTS)
    job_worker = JobWorker(
        job_queue,
        polling_interval_ms=settings.JOB_POLLING_INTERVAL_MS,
        job_timeout_ms=settings.JOB_TIMEOUT_MS,
        graceful_shutdown_timeout_ms=settings.JOB_GRACEFUL_SHUTDOWN_TIMEOUT_MS,
    )

    container = Container(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        vector_store=vector_store,
        similarity_service=SimilarityService(vector_store),
        job_queue=job_queue,
        job_worker=job_worker,
        file_storage=LocalFileStorage(settings.storage_root),
        embedding_service=embedding_service or ClipEmbeddingService(settings.EMBEDDING_MODEL),
        caption_service=caption_service,
        ocr_service=ocr_service,
    )
    logger.info(
        "Container built",
        extra={"event_type": "container_built", "database_url": engine.url.render_as_string(hide_password=True)}
    )
    return container
