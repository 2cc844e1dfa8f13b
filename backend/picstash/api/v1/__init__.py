"""Version 1 API routers"""
from fastapi import APIRouter

from picstash.api.v1 import embeddings, images, jobs, recommendations

api_router = APIRouter()
api_router.include_router(jobs.router)
api_router.include_router(images.router)
api_router.include_router(embeddings.router)
api_router.include_router(recommendations.router)
