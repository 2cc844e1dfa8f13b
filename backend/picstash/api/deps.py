"""FastAPI dependencies resolving components from the application container"""
from typing import Generator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from picstash.container import Container
from picstash.services.job_queue import JobQueue
from picstash.services.similarity_service import SimilarityService
from picstash.services.vector_store import VectorStore


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_db(container: Container = Depends(get_container)) -> Generator[Session, None, None]:
    """Dependency for FastAPI routes to get database session"""
    db = container.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_vector_store(container: Container = Depends(get_container)) -> VectorStore:
    return container.vector_store


def get_job_queue(container: Container = Depends(get_container)) -> JobQueue:
    return container.job_queue


def get_similarity_service(container: Container = Depends(get_container)) -> SimilarityService:
    return container.similarity_service
