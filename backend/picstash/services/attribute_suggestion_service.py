"""
Attribute Suggestion Service

Ranks labels for an image by how close each label's text embedding is to the
image embedding, and attaches keyword hints taken from the attributes of the
image's nearest neighbours. Each hint carries the number of times it was
seen across those neighbours.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from sqlalchemy.orm import Session

from picstash.repositories.attribute_repository import ImageAttributeRepository
from picstash.repositories.image_repository import ImageRepository
from picstash.repositories.label_repository import LabelRepository
from picstash.services.similarity_service import batch_cosine_similarity
from picstash.services.vector_store import VectorStore, bytes_to_vector

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.2
DEFAULT_LIMIT = 10
SIMILAR_IMAGES_LIMIT = 10
MAX_KEYWORDS_PER_LABEL = 5


class SuggestAttributesError(str, Enum):
    IMAGE_NOT_FOUND = "IMAGE_NOT_FOUND"
    IMAGE_NOT_EMBEDDED = "IMAGE_NOT_EMBEDDED"
    NO_LABELS_WITH_EMBEDDING = "NO_LABELS_WITH_EMBEDDING"


@dataclass
class SuggestedKeyword:
    keyword: str
    count: int

    def to_dict(self) -> dict:
        return {"keyword": self.keyword, "count": self.count}


@dataclass
class AttributeSuggestion:
    label_id: str
    label_name: str
    score: float
    suggested_keywords: list[SuggestedKeyword] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "label_id": self.label_id,
            "label_name": self.label_name,
            "score": self.score,
            "suggested_keywords": [k.to_dict() for k in self.suggested_keywords],
        }


@dataclass
class SuggestAttributesResult:
    image_id: str
    suggestions: list[AttributeSuggestion]

    def to_dict(self) -> dict:
        return {
            "image_id": self.image_id,
            "suggestions": [s.to_dict() for s in self.suggestions],
        }


def split_keywords(keywords: str | None) -> list[str]:
    """Split a comma-separated keyword string, dropping blanks."""
    if not keywords:
        return []
    return [k.strip() for k in keywords.split(",") if k.strip()]


def collect_keywords_by_label(
    db: Session,
    image_ids: list[str],
) -> dict[str, dict[str, int]]:
    """
    Keyword occurrence counts per label across the given images.

    Images are visited in the order given (nearest first) and inner dicts
    keep first-seen order, so equal counts stay in that order after a
    stable sort.
    """
    by_image: dict[str, list] = {}
    for attribute in ImageAttributeRepository(db).find_by_image_ids(image_ids):
        by_image.setdefault(attribute.image_id, []).append(attribute)

    counts: dict[str, dict[str, int]] = {}
    for image_id in image_ids:
        for attribute in by_image.get(image_id, []):
            label_counts = counts.setdefault(attribute.label_id, {})
            for keyword in split_keywords(attribute.keywords):
                label_counts[keyword] = label_counts.get(keyword, 0) + 1
    return counts


def top_keywords(counts: dict[str, int], limit: int = MAX_KEYWORDS_PER_LABEL) -> list[SuggestedKeyword]:
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [SuggestedKeyword(keyword=keyword, count=count) for keyword, count in ranked[:limit]]

def suggest_attributes(
    db: Session,
    vector_store: VectorStore,
    image_id: str,
    threshold: float = DEFAULT_THRESHOLD,
    limit: int = DEFAULT_LIMIT,
) -> Union[SuggestAttributesResult, SuggestAttributesError]:
    """
    Suggest labels for an image.

    Args:
        db: SQLAlchemy database session
        vector_store: Vector index used to find neighbouring images
        image_id: Image to suggest labels for
        threshold: Minimum cosine similarity for a label to be kept
        limit: Maximum number of suggestions

    Returns:
        SuggestAttributesResult ordered by descending score, or a
        SuggestAttributesError when a precondition is not met
    """
    image = ImageRepository(db).find_by_id_with_embedding(image_id)
    if image is None:
        return SuggestAttributesError.IMAGE_NOT_FOUND

    image_vector = bytes_to_vector(image.embedding, vector_store.dimension)
    if image_vector is None:
        return SuggestAttributesError.IMAGE_NOT_EMBEDDED

    labels = LabelRepository(db).find_all_with_embedding()
    if not labels:
        return SuggestAttributesError.NO_LABELS_WITH_EMBEDDING

    neighbours = vector_store.find_similar(image_vector, SIMILAR_IMAGES_LIMIT, [image_id])
    keywords_by_label = collect_keywords_by_label(db, [n.image_id for n in neighbours])

    scored_labels = []
    label_vectors = []
    for label in labels:
        label_vector = bytes_to_vector(label.embedding, vector_store.dimension)
        if label_vector is not None:
            scored_labels.append(label)
            label_vectors.append(label_vector)

    scores = batch_cosine_similarity(image_vector, label_vectors)

    suggestions = []
    for label, score in zip(scored_labels, scores):
        if score < threshold:
            continue
        suggestions.append(
            AttributeSuggestion(
                label_id=label.id,
                label_name=label.name,
                score=score,
                suggested_keywords=top_keywords(keywords_by_label.get(label.id, {})),
            )
        )

    suggestions.sort(key=lambda s: s.score, reverse=True)
    suggestions = suggestions[:limit]

    logger.debug(
        f"Suggested {len(suggestions)} labels for image {image_id}",
        extra={
            "event_type": "attributes_suggested",
            "image_id": image_id,
            "labels_checked": len(labels),
            "neighbours": len(neighbours),
            "results_count": len(suggestions),
        }
    )
    return SuggestAttributesResult(image_id=image_id, suggestions=suggestions)
