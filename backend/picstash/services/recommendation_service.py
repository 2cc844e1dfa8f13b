"""
Recommendation Service

Suggests images resembling what the user has been looking at recently.

Flow:
    recent views (last `history_limit`, within `history_days`)
        → weight per image = sum of max(duration_ms, 1000) over its views
        → weighted mean of the viewed images' embeddings, re-normalized
          (the "preference vector")
        → VectorStore.find_similar(limit + viewed, viewed excluded)
        → score = 1 / (1 + distance)

An empty result always carries a reason (no_history, no_embeddings,
no_similar) so callers can tell "nothing matched" from an error.
"""
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Optional

import numpy as np
from sqlalchemy.orm import Session

from picstash.core.database import as_utc, utc_now
from picstash.repositories.image_repository import ImageRepository
from picstash.repositories.view_history_repository import ViewHistoryRepository
from picstash.services.similarity_service import distance_to_score
from picstash.services.vector_store import VectorStore, bytes_to_vector, l2_normalize

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10
DEFAULT_HISTORY_DAYS = 30
DEFAULT_HISTORY_LIMIT = 100

# Views shorter than this (or without a duration) count as this long
MIN_VIEW_WEIGHT_MS = 1000


class RecommendationReason(str, Enum):
    """Why a recommendation list is empty."""
    NO_HISTORY = "no_history"
    NO_EMBEDDINGS = "no_embeddings"
    NO_SIMILAR = "no_similar"


@dataclass
class RecommendedImage:
    id: str
    title: str
    thumbnail_path: Optional[str]
    score: float

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "thumbnail_path": self.thumbnail_path,
            "score": self.score,
        }


@dataclass
class RecommendationsResult:
    recommendations: list[RecommendedImage] = field(default_factory=list)
    reason: Optional[RecommendationReason] = None
    based_on_views: int = 0

    def to_dict(self) -> dict:
        return {
            "recommendations": [r.to_dict() for r in self.recommendations],
            "reason": self.reason.value if self.reason else None,
            "based_on_views": self.based_on_views,
        }


def view_weight(duration_ms: Optional[int]) -> int:
    """Weight of a single view."""
    if duration_ms is None:
        return MIN_VIEW_WEIGHT_MS
    return max(duration_ms, MIN_VIEW_WEIGHT_MS)


def build_preference_vector(
    weighted_embeddings: list[tuple[np.ndarray, float]],
) -> Optional[np.ndarray]:
    """
    Weighted mean of embeddings, scaled to unit length.

    Returns None for an empty input.
    """
    if not weighted_embeddings:
        return None
    vectors = np.vstack([vec.astype(np.float64) for vec, _ in weighted_embeddings])
    weights = np.asarray([w for _, w in weighted_embeddings], dtype=np.float64)
    mean = (weights[:, None] * vectors).sum(axis=0) / weights.sum()
    return l2_normalize(mean)


def generate_recommendations(
    db: Session,
    vector_store: VectorStore,
    limit: int = DEFAULT_LIMIT,
    history_days: int = DEFAULT_HISTORY_DAYS,
    history_limit: int = DEFAULT_HISTORY_LIMIT,
) -> RecommendationsResult:
    """
    Recommend images based on recent view history.

    Args:
        db: SQLAlchemy database session
        vector_store: Vector index to query
        limit: Maximum number of recommendations
        history_days: Only views newer than this many days count
        history_limit: Maximum number of views considered

    Returns:
        RecommendationsResult, ordered by descending score
    """
    cutoff = utc_now() - timedelta(days=history_days)
    views = [
        view
        for view in ViewHistoryRepository(db).find_recent_with_images(limit=history_limit)
        if as_utc(view.viewed_at) >= cutoff
    ]
    if not views:
        return RecommendationsResult(reason=RecommendationReason.NO_HISTORY)

    weights: dict[str, int] = {}
    for view in views:
        weights[view.image_id] = weights.get(view.image_id, 0) + view_weight(view.duration)

    repo = ImageRepository(db)
    weighted_embeddings = []
    for image_id, weight in weights.items():
        image = repo.find_by_id_with_embedding(image_id)
        vector = bytes_to_vector(image.embedding, vector_store.dimension) if image else None
        if vector is not None:
            weighted_embeddings.append((vector, float(weight)))

    preference = build_preference_vector(weighted_embeddings)
    if preference is None:
        return RecommendationsResult(
            reason=RecommendationReason.NO_EMBEDDINGS,
            based_on_views=len(views),
        )

    viewed_ids = list(weights)
    hits = vector_store.find_similar(preference, limit + len(viewed_ids), viewed_ids)
    if not hits:
        return RecommendationsResult(
            reason=RecommendationReason.NO_SIMILAR,
            based_on_views=len(views),
        )

    top_hits = hits[:limit]
    images = repo.find_by_ids([hit.image_id for hit in top_hits])
    recommendations = []
    for hit in top_hits:
        image = images.get(hit.image_id)
        if image is None:
            continue
        recommendations.append(
            RecommendedImage(
                id=image.id,
                title=image.title,
                thumbnail_path=image.thumbnail_path,
                score=distance_to_score(hit.distance),
            )
        )

    logger.info(
        f"Generated {len(recommendations)} recommendations",
        extra={
            "event_type": "recommendations_generated",
            "views": len(views),
            "viewed_images": len(viewed_ids),
            "results_count": len(recommendations),
        }
    )
    return RecommendationsResult(
        recommendations=recommendations,
        based_on_views=len(views),
    )
