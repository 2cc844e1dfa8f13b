"""
Vector Store for image embeddings

Fixed-dimension embedding index with exact k-NN search. One vector per image,
stored as raw float32 bytes in the image_vectors table and scanned with numpy
on every query (no approximate index).

Architecture:
    - upsert is delete-then-insert in one transaction
    - find_similar computes Euclidean (L2) distance against every stored vector
    - Results ordered by ascending distance, ties broken by image id
    - Callers pass unit-length vectors; the store does not normalize

For unit vectors:
    distance² = 2 * (1 - cosine_similarity), distance in [0, 2]
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence

import numpy as np
from sqlalchemy.orm import Session

from picstash.core.errors import DimensionMismatchError
from picstash.core.metrics import record_vector_search
from picstash.models.image_vector import ImageVector

logger = logging.getLogger(__name__)

# CLIP ViT-B/32 embedding dimension
EMBEDDING_DIMENSION = 512

# Embeddings are persisted as little-endian float32
EMBEDDING_DTYPE = np.dtype("<f4")


@dataclass(frozen=True)
class SimilarityResult:
    """A single k-NN hit."""
    image_id: str
    distance: float


def vector_to_bytes(vector: Sequence[float] | np.ndarray) -> bytes:
    """Serialize a vector to raw float32 bytes."""
    return np.asarray(vector, dtype=EMBEDDING_DTYPE).tobytes()


def bytes_to_vector(
    data: Optional[bytes],
    dimension: int = EMBEDDING_DIMENSION,
) -> Optional[np.ndarray]:
    """
    Deserialize raw float32 bytes.

    Returns None when data is missing or its size does not match
    `dimension` float32 values, so callers can treat a corrupt blob the same
    way as a missing one.
    """
    if data is None:
        return None
    if len(data) != dimension * EMBEDDING_DTYPE.itemsize:
        return None
    return np.frombuffer(data, dtype=EMBEDDING_DTYPE).astype(np.float32)


def l2_normalize(vector: Sequence[float] | np.ndarray) -> np.ndarray:
    """Scale a vector to unit length (zero vectors are returned unchanged)."""
    arr = np.asarray(vector, dtype=np.float64)
    norm = np.linalg.norm(arr)
    if norm == 0:
        return arr.astype(np.float32)
    return (arr / norm).astype(np.float32)


class VectorStore:
    """
    Exact k-NN index over image embeddings.

    Constructed once at process start with a session factory and closed at
    shutdown; every operation opens and closes its own session.

    Attributes:
        dimension: Fixed vector length accepted by upsert and find_similar
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        dimension: int = EMBEDDING_DIMENSION,
    ):
        self._session_factory = session_factory
        self.dimension = dimension
        self._closed = False
        logger.info(
            "VectorStore initialized",
            extra={"event_type": "vector_store_init", "dimension": dimension}
        )

    def _check_dimension(self, vector: Sequence[float] | np.ndarray) -> np.ndarray:
        arr = np.asarray(vector, dtype=np.float32).reshape(-1)
        if arr.shape[0] != self.dimension:
            raise DimensionMismatchError(self.dimension, int(arr.shape[0]))
        return arr

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("VectorStore is closed")

    def upsert(self, image_id: str, vector: Sequence[float] | np.ndarray) -> None:
        """
        Insert or replace the vector for an image.

        Raises:
            DimensionMismatchError: If len(vector) != dimension
        """
        self._check_open()
        arr = self._check_dimension(vector)

        with self._session_factory() as db:
            db.query(ImageVector).filter(ImageVector.image_id == image_id).delete(
                synchronize_session=False
            )
            db.add(ImageVector(image_id=image_id, embedding=vector_to_bytes(arr)))
            db.commit()

        logger.debug(
            f"Upserted vector for image {image_id}",
            extra={"event_type": "vector_upsert", "image_id": image_id}
        )

    def remove(self, image_id: str) -> None:
        """Remove the vector for an image. Missing ids are ignored."""
        self._check_open()
        with self._session_factory() as db:
            deleted = db.query(ImageVector).filter(
                ImageVector.image_id == image_id
            ).delete(synchronize_session=False)
            db.commit()

        if deleted:
            logger.debug(
                f"Removed vector for image {image_id}",
                extra={"event_type": "vector_remove", "image_id": image_id}
            )

    def clear(self) -> int:
        """Remove every vector. Returns the number of rows deleted."""
        self._check_open()
        with self._session_factory() as db:
            deleted = db.query(ImageVector).delete(synchronize_session=False)
            db.commit()
        logger.info(
            f"Cleared {deleted} vectors",
            extra={"event_type": "vector_store_cleared", "count": deleted}
        )
        return deleted

    def find_similar(
        self,
        query_vector: Sequence[float] | np.ndarray,
        limit: int = 10,
        exclude_ids: Iterable[str] = (),
    ) -> list[SimilarityResult]:
        """
        Find the stored vectors nearest to query_vector.

        `limit + len(exclude_ids)` candidates are taken before the excluded
        ids are filtered out, so `limit` results come back whenever enough
        vectors exist.

        Args:
            query_vector: Unit-length query of the store's dimension
            limit: Maximum number of results
            exclude_ids: Image ids to leave out (e.g. the query image itself)

        Returns:
            Up to `limit` SimilarityResult ordered by ascending distance

        Raises:
            DimensionMismatchError: If len(query_vector) != dimension
        """
        self._check_open()
        query = self._check_dimension(query_vector)
        excluded = list(exclude_ids)
        if limit <= 0:
            return []

        start_time = time.time()
        ids, matrix = self._load_matrix()
        if not ids:
            return []

        diffs = matrix.astype(np.float64) - query.astype(np.float64)
        distances = np.sqrt(np.einsum("ij,ij->i", diffs, diffs))

        # ids are sorted, so a stable sort breaks distance ties by id
        order = np.argsort(distances, kind="stable")
        fetch_limit = limit + len(excluded)
        candidates = order[:fetch_limit]

        exclude_set = set(excluded)
        results = [
            SimilarityResult(image_id=ids[i], distance=float(distances[i]))
            for i in candidates
            if ids[i] not in exclude_set
        ][:limit]

        elapsed = time.time() - start_time
        record_vector_search(elapsed)
        logger.debug(
            "k-NN search completed",
            extra={
                "event_type": "vector_search_complete",
                "candidates_checked": len(ids),
                "results_found": len(results),
                "excluded": len(excluded),
                "query_time_ms": round(elapsed * 1000, 2),
            }
        )
        return results

    def _load_matrix(self) -> tuple[list[str], np.ndarray]:
        """Load every well-formed vector as (ids sorted ascending, matrix)."""
        with self._session_factory() as db:
            rows = db.query(ImageVector.image_id, ImageVector.embedding).order_by(
                ImageVector.image_id
            ).all()

        ids: list[str] = []
        vectors: list[np.ndarray] = []
        for image_id, blob in rows:
            vec = bytes_to_vector(blob, self.dimension)
            if vec is None:
                logger.warning(
                    f"Skipping malformed vector for image {image_id}",
                    extra={"event_type": "vector_malformed", "image_id": image_id}
                )
                continue
            ids.append(image_id)
            vectors.append(vec)

        if not vectors:
            return [], np.empty((0, self.dimension), dtype=np.float32)
        return ids, np.vstack(vectors)

    def get_all_image_ids(self) -> list[str]:
        """Ids of every indexed image, sorted ascending."""
        self._check_open()
        with self._session_factory() as db:
            rows = db.query(ImageVector.image_id).order_by(ImageVector.image_id).all()
        return [row[0] for row in rows]

    def count(self) -> int:
        """Number of indexed vectors."""
        self._check_open()
        with self._session_factory() as db:
            return db.query(ImageVector).count()

    def has_embedding(self, image_id: str) -> bool:
        """Whether an image has an indexed vector."""
        self._check_open()
        with self._session_factory() as db:
            return db.query(ImageVector.image_id).filter(
                ImageVector.image_id == image_id
            ).first() is not None

    def close(self) -> None:
        """Release the store. Further calls raise RuntimeError."""
        if not self._closed:
            self._closed = True
            logger.info("VectorStore closed", extra={"event_type": "vector_store_closed"})
