"""
Similarity Service

Cosine-similarity semantics on top of the VectorStore's L2 k-NN search.

Relationships for unit vectors (what the rest of the code relies on):
    distance² = 2 * (1 - cosine)          distance in [0, 2]
    percent similarity = max(0, 1 - distance / 2)
    ranking score = 1 / (1 + distance)    strictly decreasing, in (0, 1]

Flow:
    Image → ImageRepository.find_by_id_with_embedding()
          → VectorStore.find_similar(self excluded)
          → join with Image rows → SimilarImage list
"""
import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

import numpy as np
from sqlalchemy.orm import Session

from picstash.repositories.image_repository import ImageRepository
from picstash.services.vector_store import SimilarityResult, VectorStore, bytes_to_vector

logger = logging.getLogger(__name__)


@dataclass
class SimilarImage:
    """An image close to a query image."""
    image_id: str
    distance: float
    similarity: float
    title: str
    thumbnail_path: Optional[str]

    def to_dict(self) -> dict:
        return {
            "image_id": self.image_id,
            "distance": self.distance,
            "similarity": self.similarity,
            "title": self.title,
            "thumbnail_path": self.thumbnail_path,
        }


def batch_cosine_similarity(
    query: Sequence[float],
    candidates: Sequence[Sequence[float]],
) -> list[float]:
    """
    Cosine similarity of query against every candidate, in candidate order.

    Zero-norm candidates (and a zero query) score 0.0.

    Raises:
        ValueError: If query is empty or dimensions differ
    """
    if len(candidates) == 0:
        return []
    if len(query) == 0:
        raise ValueError("Query vector cannot be empty")

    query_vec = np.asarray(query, dtype=np.float64)
    matrix = np.asarray(candidates, dtype=np.float64)
    if matrix.ndim != 2:
        raise ValueError("Candidates must be a 2D array")
    if matrix.shape[1] != query_vec.shape[0]:
        raise ValueError(
            f"Dimension mismatch: query={query_vec.shape[0]}, candidates={matrix.shape[1]}"
        )

    query_norm = np.linalg.norm(query_vec)
    if query_norm == 0:
        return [0.0] * matrix.shape[0]

    norms = np.linalg.norm(matrix, axis=1)
    safe_norms = np.where(norms == 0, 1.0, norms)
    similarities = (matrix @ query_vec) / (safe_norms * query_norm)
    similarities = np.where(norms == 0, 0.0, similarities)
    return similarities.tolist()


def distance_to_similarity(distance: float) -> float:
    """Percent-style similarity in [0, 1] for an L2 distance between unit vectors."""
    return max(0.0, 1.0 - distance / 2.0)


def distance_to_score(distance: float) -> float:
    """Ranking score 1 / (1 + distance)."""
    return 1.0 / (1.0 + distance)


class SimilarityService:
    """
    k-NN queries with cosine semantics.

    Attributes:
        DEFAULT_LIMIT: Default number of results to return (10)
    """

    DEFAULT_LIMIT = 10

    def __init__(self, vector_store: VectorStore):
        self._vector_store = vector_store

    def find_similar(
        self,
        query_vector: Sequence[float] | np.ndarray,
        limit: int = DEFAULT_LIMIT,
        exclude_ids: Iterable[str] = (),
    ) -> list[SimilarityResult]:
        """Nearest stored vectors to query_vector, excluded ids removed."""
        return self._vector_store.find_similar(query_vector, limit, exclude_ids)

    def find_similar_to_image(
        self,
        db: Session,
        image_id: str,
        limit: int = DEFAULT_LIMIT,
    ) -> Optional[list[SimilarImage]]:
        """
        Images most similar to a stored image, the image itself excluded.

        Returns:
            None if the image does not exist, an empty list if it has no
            usable embedding, otherwise SimilarImage list by ascending distance
        """
        repo = ImageRepository(db)
        source = repo.find_by_id_with_embedding(image_id)
        if source is None:
            return None

        vector = bytes_to_vector(source.embedding, self._vector_store.dimension)
        if vector is None:
            logger.debug(
                f"Image {image_id} has no usable embedding",
                extra={"event_type": "similar_images_no_embedding", "image_id": image_id}
            )
            return []

        hits = self._vector_store.find_similar(vector, limit, [image_id])
        images = repo.find_by_ids([hit.image_id for hit in hits])

        results = []
        for hit in hits:
            image = images.get(hit.image_id)
            if image is None:
                continue
            results.append(
                SimilarImage(
                    image_id=hit.image_id,
                    distance=hit.distance,
                    similarity=distance_to_similarity(hit.distance),
                    title=image.title,
                    thumbnail_path=image.thumbnail_path,
                )
            )

        logger.info(
            f"Found {len(results)} images similar to {image_id}",
            extra={
                "event_type": "similar_images_found",
                "image_id": image_id,
                "results_count": len(results),
            }
        )
        return results
