"""Embedding maintenance endpoints"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from picstash.api.deps import get_db, get_vector_store
from picstash.schemas.images import EmbeddingStatusResponse, EmbeddingSyncResponse
from picstash.services.image_embedding_service import (
    get_embedding_status,
    sync_embeddings_to_vector_store,
)
from picstash.services.vector_store import VectorStore

router = APIRouter(prefix="/embeddings", tags=["embeddings"])


@router.post("/sync", response_model=EmbeddingSyncResponse)
def sync_embeddings(
    db: Session = Depends(get_db),
    vector_store: VectorStore = Depends(get_vector_store),
):
    """Rebuild the vector index from the embeddings stored on image records."""
    return sync_embeddings_to_vector_store(db, vector_store).to_dict()


@router.get("/status", response_model=EmbeddingStatusResponse)
def embedding_status(
    db: Session = Depends(get_db),
    vector_store: VectorStore = Depends(get_vector_store),
):
    return get_embedding_status(db, vector_store).to_dict()
