"""
Image similarity API endpoints

- Duplicate groups across the whole library
- Images similar to one image
- Label suggestions for one image
- On-demand embedding generation for one image
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from picstash.api.deps import get_container, get_db, get_similarity_service, get_vector_store
from picstash.container import Container
from picstash.schemas.images import (
    DuplicatesResponse,
    GenerateEmbeddingResponse,
    SimilarImagesResponse,
    SuggestedAttributesResponse,
)
from picstash.services.attribute_suggestion_service import SuggestAttributesError, suggest_attributes
from picstash.services.duplicate_service import find_duplicates
from picstash.services.image_embedding_service import GenerateEmbeddingError, generate_embedding
from picstash.services.similarity_service import SimilarityService
from picstash.services.vector_store import VectorStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/images", tags=["images"])

SUGGESTION_ERROR_STATUS = {
    SuggestAttributesError.IMAGE_NOT_FOUND: (404, "Image not found"),
    SuggestAttributesError.IMAGE_NOT_EMBEDDED: (400, "Image has no embedding. Generate it first"),
    SuggestAttributesError.NO_LABELS_WITH_EMBEDDING: (400, "No labels have embeddings yet"),
}


@router.get("/duplicates", response_model=DuplicatesResponse)
def get_duplicates(
    threshold: Optional[float] = Query(
        default=None,
        ge=0.0,
        le=2.0,
        description="Maximum L2 distance between duplicates (default DUPLICATE_THRESHOLD)"
    ),
    db: Session = Depends(get_db),
    container: Container = Depends(get_container),
):
    """Group near-identical images; the earliest image of each group is the original."""
    effective = threshold if threshold is not None else container.settings.DUPLICATE_THRESHOLD
    return find_duplicates(db, container.vector_store, effective).to_dict()


@router.get("/{image_id}/similar", response_model=SimilarImagesResponse)
def get_similar_images(
    image_id: str,
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db),
    similarity_service: SimilarityService = Depends(get_similarity_service),
):
    """
    Images most similar to the given image.

    Raises:
        404: If the image does not exist
    """
    similar = similarity_service.find_similar_to_image(db, image_id, limit)
    if similar is None:
        raise HTTPException(status_code=404, detail="Image not found")
    return {"image_id": image_id, "similar": [s.to_dict() for s in similar]}


@router.get("/{image_id}/suggested-attributes", response_model=SuggestedAttributesResponse)
def get_suggested_attributes(
    image_id: str,
    threshold: float = Query(default=0.2, ge=-1.0, le=1.0),
    limit: int = Query(default=10, ge=1, le=50),
    db: Session = Depends(get_db),
    vector_store: VectorStore = Depends(get_vector_store),
):
    """Labels ranked by similarity to the image, with keyword hints."""
    result = suggest_attributes(db, vector_store, image_id, threshold=threshold, limit=limit)
    if isinstance(result, SuggestAttributesError):
        status_code, detail = SUGGESTION_ERROR_STATUS[result]
        raise HTTPException(status_code=status_code, detail=detail)
    return result.to_dict()


@router.post("/{image_id}/embedding", response_model=GenerateEmbeddingResponse)
async def create_image_embedding(
    image_id: str,
    db: Session = Depends(get_db),
    container: Container = Depends(get_container),
):
    """
    Generate (or regenerate) the embedding of one image synchronously.

    Raises:
        404: If the image does not exist
        500: If the file could not be read or embedded
    """
    result = await generate_embedding(
        db,
        image_id,
        container.embedding_service,
        container.file_storage,
        container.vector_store,
    )
    if result is GenerateEmbeddingError.IMAGE_NOT_FOUND:
        raise HTTPException(status_code=404, detail="Image not found")
    if result is GenerateEmbeddingError.EMBEDDING_FAILED:
        raise HTTPException(status_code=500, detail="Embedding generation failed")
    return result.to_dict()
