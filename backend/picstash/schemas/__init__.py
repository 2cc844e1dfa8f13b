"""Pydantic schemas for request/response validation"""
from picstash.schemas.jobs import (
    JobCreate,
    JobResponse,
    JobListResponse,
    EmbeddingJobPayload,
    CaptionJobPayload,
    ArchiveImportJobPayload,
)
from picstash.schemas.images import (
    SimilarImageResponse,
    SimilarImagesResponse,
    DuplicateImageResponse,
    DuplicateGroupResponse,
    DuplicatesResponse,
    AttributeSuggestionResponse,
    SuggestedAttributesResponse,
    RecommendedImageResponse,
    RecommendationsResponse,
    GenerateEmbeddingResponse,
    EmbeddingSyncResponse,
    EmbeddingStatusResponse,
)

__all__ = [
    "JobCreate",
    "JobResponse",
    "JobListResponse",
    "EmbeddingJobPayload",
    "CaptionJobPayload",
    "ArchiveImportJobPayload",
    "SimilarImageResponse",
    "SimilarImagesResponse",
    "DuplicateImageResponse",
    "DuplicateGroupResponse",
    "DuplicatesResponse",
    "AttributeSuggestionResponse",
    "SuggestedAttributesResponse",
    "RecommendedImageResponse",
    "RecommendationsResponse",
    "GenerateEmbeddingResponse",
    "EmbeddingSyncResponse",
    "EmbeddingStatusResponse",
]
