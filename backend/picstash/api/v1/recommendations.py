"""Recommendation endpoint"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from picstash.api.deps import get_db, get_vector_store
from picstash.schemas.images import RecommendationsResponse
from picstash.services.recommendation_service import generate_recommendations
from picstash.services.vector_store import VectorStore

router = APIRouter(prefix="/recommendations", tags=["recommendations"])


@router.get("", response_model=RecommendationsResponse)
def get_recommendations(
    limit: int = Query(default=10, ge=1, le=100),
    history_days: int = Query(default=30, ge=1, le=365),
    db: Session = Depends(get_db),
    vector_store: VectorStore = Depends(get_vector_store),
):
    """
    Images resembling recently viewed ones.

    An empty list comes with a reason: no_history, no_embeddings or no_similar.
    """
    return generate_recommendations(db, vector_store, limit=limit, history_days=history_days).to_dict()
