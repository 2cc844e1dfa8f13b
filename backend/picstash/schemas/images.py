"""Pydantic schemas for similarity, duplicate, suggestion and recommendation responses"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class SimilarImageResponse(BaseModel):
    image_id: str
    distance: float = Field(..., ge=0)
    similarity: float = Field(..., ge=0, le=1, description="max(0, 1 - distance / 2)")
    title: str
    thumbnail_path: Optional[str] = None


class SimilarImagesResponse(BaseModel):
    image_id: str
    similar: List[SimilarImageResponse]


class DuplicateImageResponse(BaseModel):
    id: str
    title: str
    thumbnail_path: Optional[str] = None
    created_at: datetime
    distance: Optional[float] = Field(
        None,
        description="Distance to the group's original; null when only linked through another image"
    )


class DuplicateGroupResponse(BaseModel):
    original: DuplicateImageResponse
    duplicates: List[DuplicateImageResponse]


class DuplicatesResponse(BaseModel):
    groups: List[DuplicateGroupResponse]
    total_groups: int
    total_duplicates: int


class SuggestedKeywordResponse(BaseModel):
    keyword: str
    count: int = Field(..., ge=1)


class AttributeSuggestionResponse(BaseModel):
    label_id: str
    label_name: str
    score: float
    suggested_keywords: List[SuggestedKeywordResponse]


class SuggestedAttributesResponse(BaseModel):
    image_id: str
    suggestions: List[AttributeSuggestionResponse]


class RecommendedImageResponse(BaseModel):
    id: str
    title: str
    thumbnail_path: Optional[str] = None
    score: float = Field(..., gt=0, le=1)


class RecommendationsResponse(BaseModel):
    recommendations: List[RecommendedImageResponse]
    reason: Optional[str] = Field(None, description="no_history | no_embeddings | no_similar")
    based_on_views: int


class GenerateEmbeddingResponse(BaseModel):
    image_id: str
    dimension: int
    model: str
    generated_at: datetime


class EmbeddingSyncResponse(BaseModel):
    synced: int
    skipped: int


class EmbeddingStatusResponse(BaseModel):
    total_images: int
    with_embedding: int
    without_embedding: int
    in_vector_store: int
    in_sync: bool
