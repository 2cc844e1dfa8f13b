"""Pytest fixtures and configuration for test suite

This module provides:
1. Database fixtures (temp-file SQLite, one per test)
2. Factory functions for creating test objects with sensible defaults
3. Vector helpers producing unit vectors at known distances
4. A deterministic fake embedding service

Factory Functions:
    - make_image(**overrides) -> Image
    - make_label(**overrides) -> Label
    - make_attribute(**overrides) -> ImageAttribute
    - make_view(**overrides) -> ViewHistory
    - index_image(db_session, vector_store, vector, **overrides) -> Image

Each factory accepts an optional db_session parameter to persist objects.
"""
import io
import math
import uuid
import zlib
from datetime import datetime, timedelta, timezone

import numpy as np
import pytest
from PIL import Image as PILImage

from picstash.core.database import create_db_engine, create_session_factory, init_db
from picstash.models.image import Image
from picstash.models.label import ImageAttribute, Label
from picstash.models.view_history import ViewHistory
from picstash.services.embedding_service import EmbeddingResult
from picstash.services.file_storage import LocalFileStorage
from picstash.services.vector_store import EMBEDDING_DIMENSION, VectorStore, l2_normalize, vector_to_bytes

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Vector Helpers
# =============================================================================

def basis_vector(index: int, dimension: int = EMBEDDING_DIMENSION) -> np.ndarray:
    """Unit vector along one axis."""
    vec = np.zeros(dimension, dtype=np.float32)
    vec[index] = 1.0
    return vec


def rotated_vector(angle: float, dimension: int = EMBEDDING_DIMENSION) -> np.ndarray:
    """
    Unit vector at `angle` radians from axis 0 in the plane of axes 0 and 1.

    Two such vectors at angles a and b are 2 * sin(|a - b| / 2) apart.
    """
    vec = np.zeros(dimension, dtype=np.float32)
    vec[0] = math.cos(angle)
    vec[1] = math.sin(angle)
    return vec


def chord(angle: float) -> float:
    """L2 distance between unit vectors `angle` radians apart."""
    return 2 * math.sin(angle / 2)


def make_png_bytes(color=(200, 30, 30), size=(16, 16)) -> bytes:
    buffer = io.BytesIO()
    PILImage.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


# =============================================================================
# Fake Embedding Service
# =============================================================================

class FakeEmbeddingService:
    """
    Deterministic stand-in for ClipEmbeddingService.

    Image bytes and texts registered in the lookup tables get those vectors;
    anything else gets a pseudo-random unit vector seeded from its content.
    Inputs listed in `fail_on` raise RuntimeError.
    """

    MODEL_NAME = "fake-clip"

    def __init__(self, dimension: int = EMBEDDING_DIMENSION):
        self.dimension = dimension
        self.image_vectors: dict[bytes, np.ndarray] = {}
        self.text_vectors: dict[str, np.ndarray] = {}
        self.fail_on: set = set()
        self.calls: list = []

    def _seeded(self, data: bytes) -> np.ndarray:
        rng = np.random.default_rng(zlib.crc32(data))
        return l2_normalize(rng.standard_normal(self.dimension))

    def _result(self, vector: np.ndarray) -> EmbeddingResult:
        return EmbeddingResult(
            embedding=[float(x) for x in vector],
            dimension=len(vector),
            model=self.MODEL_NAME,
        )

    async def generate_from_buffer(self, image_bytes: bytes) -> EmbeddingResult:
        self.calls.append(image_bytes)
        if image_bytes in self.fail_on:
            raise RuntimeError("fake model failure")
        vector = self.image_vectors.get(image_bytes)
        return self._result(vector if vector is not None else self._seeded(image_bytes))

    async def generate_from_text(self, text: str) -> EmbeddingResult:
        self.calls.append(text)
        if text in self.fail_on:
            raise RuntimeError("fake model failure")
        vector = self.text_vectors.get(text)
        return self._result(vector if vector is not None else self._seeded(text.encode()))


# =============================================================================
# Factory Functions for Test Objects
# =============================================================================

def make_image(
    db_session=None,
    id: str = None,
    title: str = "Test image",
    path: str = None,
    thumbnail_path: str = None,
    created_at: datetime = None,
    embedding=None,
    description: str = None,
    **overrides
) -> Image:
    """
    Factory function to create Image instances for testing.

    Args:
        db_session: Optional SQLAlchemy session. If provided, adds and commits the image.
        id: UUID string. If None, generates a new UUID.
        title: Image title.
        path: Storage-relative path. Defaults to originals/<id>.png.
        thumbnail_path: Storage-relative thumbnail path.
        created_at: Creation time. If None, uses current UTC time.
        embedding: Vector (list or ndarray) stored as the backup copy, or raw bytes.
        description: Caption text.
        **overrides: Any additional Image model fields.

    Returns:
        Image instance (persisted if db_session provided).

    Example:
        image = make_image(title="Beach")
        image = make_image(db_session=session, embedding=basis_vector(0))
    """
    if id is None:
        id = str(uuid.uuid4())
    if path is None:
        path = f"originals/{id}.png"
    if created_at is None:
        created_at = datetime.now(timezone.utc)
    if embedding is not None and not isinstance(embedding, bytes):
        embedding = vector_to_bytes(embedding)

    image = Image(
        id=id,
        path=path,
        thumbnail_path=thumbnail_path,
        filename=path.rsplit("/", 1)[-1],
        mime_type=overrides.pop("mime_type", "image/png"),
        size=overrides.pop("size", 0),
        title=title,
        description=description,
        embedding=embedding,
        embedded_at=created_at if embedding is not None else None,
        created_at=created_at,
        updated_at=created_at,
        **overrides
    )

    if db_session:
        db_session.add(image)
        db_session.commit()

    return image


def make_label(
    db_session=None,
    id: str = None,
    name: str = None,
    embedding=None,
    **overrides
) -> Label:
    """
    Factory function to create Label instances for testing.

    Args:
        db_session: Optional SQLAlchemy session. If provided, adds and commits the label.
        id: UUID string. If None, generates a new UUID.
        name: Label name. If None, a unique name is generated.
        embedding: Text embedding vector or raw bytes.
        **overrides: Any additional Label model fields.
    """
    if id is None:
        id = str(uuid.uuid4())
    if name is None:
        name = f"label-{id[:8]}"
    if embedding is not None and not isinstance(embedding, bytes):
        embedding = vector_to_bytes(embedding)

    label = Label(id=id, name=name, embedding=embedding, **overrides)

    if db_session:
        db_session.add(label)
        db_session.commit()

    return label


def make_attribute(
    db_session=None,
    image_id: str = None,
    label_id: str = None,
    keywords: str = None,
    **overrides
) -> ImageAttribute:
    """Factory function to create ImageAttribute instances for testing."""
    attribute = ImageAttribute(
        id=str(uuid.uuid4()),
        image_id=image_id,
        label_id=label_id,
        keywords=keywords,
        **overrides
    )

    if db_session:
        db_session.add(attribute)
        db_session.commit()

    return attribute


def make_view(
    db_session=None,
    image_id: str = None,
    viewed_at: datetime = None,
    duration: int = None,
    **overrides
) -> ViewHistory:
    """
    Factory function to create ViewHistory instances for testing.

    Args:
        db_session: Optional SQLAlchemy session. If provided, adds and commits the view.
        image_id: Viewed image.
        viewed_at: View time. If None, uses one minute ago.
        duration: View duration in milliseconds (None = unknown).
    """
    if viewed_at is None:
        viewed_at = datetime.now(timezone.utc) - timedelta(minutes=1)

    view = ViewHistory(
        id=str(uuid.uuid4()),
        image_id=image_id,
        viewed_at=viewed_at,
        duration=duration,
        **overrides
    )

    if db_session:
        db_session.add(view)
        db_session.commit()

    return view


def index_image(db_session, vector_store, vector, **overrides) -> Image:
    """Create an image whose embedding is stored on the record and in the vector store."""
    image = make_image(db_session=db_session, embedding=vector, **overrides)
    vector_store.upsert(image.id, vector)
    return image


# =============================================================================
# Database and Component Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def engine(tmp_path):
    """
    Temp-file SQLite engine with all tables created.

    A file database (not :memory:) lets every session get its own connection,
    the same way the application runs.
    """
    db_engine = create_db_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    """Database session for one test."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def vector_store(session_factory):
    store = VectorStore(session_factory)
    yield store
    store.close()


@pytest.fixture
def file_storage(tmp_path):
    return LocalFileStorage(tmp_path / "storage")


@pytest.fixture
def embedding_service():
    return FakeEmbeddingService()
