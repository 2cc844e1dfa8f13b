"""
Unit tests for label text embeddings
"""
import numpy as np
import pytest

from picstash.models.label import Label
from picstash.services.label_embedding_service import (
    GenerateLabelEmbeddingError,
    generate_label_embedding,
    generate_missing_label_embeddings,
    regenerate_all_label_embeddings,
)
from picstash.services.vector_store import bytes_to_vector
from tests.conftest import FakeEmbeddingService, make_label, rotated_vector


class TestGenerateLabelEmbedding:
    """Tests for generate_label_embedding()."""

    @pytest.mark.asyncio
    async def test_success(self, db_session, embedding_service):
        label = make_label(db_session=db_session, name="sunset")
        embedding_service.text_vectors["sunset"] = rotated_vector(0.7)

        result = await generate_label_embedding(db_session, label.id, embedding_service)

        assert result.label_name == "sunset"
        assert result.dimension == 512
        db_session.expire_all()
        stored = db_session.get(Label, label.id)
        np.testing.assert_allclose(bytes_to_vector(stored.embedding), rotated_vector(0.7), atol=1e-6)
        assert stored.embedded_at is not None
        assert embedding_service.calls == ["sunset"]

    @pytest.mark.asyncio
    async def test_missing_label(self, db_session, embedding_service):
        result = await generate_label_embedding(db_session, "missing", embedding_service)
        assert result is GenerateLabelEmbeddingError.LABEL_NOT_FOUND

    @pytest.mark.asyncio
    async def test_model_failure(self, db_session, embedding_service):
        label = make_label(db_session=db_session, name="broken")
        embedding_service.fail_on.add("broken")

        result = await generate_label_embedding(db_session, label.id, embedding_service)

        assert result is GenerateLabelEmbeddingError.EMBEDDING_FAILED

    @pytest.mark.asyncio
    async def test_dimension_mismatch(self, db_session):
        label = make_label(db_session=db_session, name="cat")

        result = await generate_label_embedding(db_session, label.id, FakeEmbeddingService(dimension=8))

        assert result is GenerateLabelEmbeddingError.EMBEDDING_FAILED


class TestBatchLabelEmbeddings:
    """Tests for batch label embedding."""

    @pytest.mark.asyncio
    async def test_generates_missing_with_progress(self, db_session, embedding_service):
        make_label(db_session=db_session, name="beach", embedding=rotated_vector(0.0))
        make_label(db_session=db_session, name="cat")
        make_label(db_session=db_session, name="dog")
        embedding_service.fail_on.add("dog")
        progress = []

        result = await generate_missing_label_embeddings(
            db_session,
            embedding_service,
            on_progress=lambda current, total, name: progress.append((current, total, name)),
        )

        assert result.total == 2
        assert result.success == 1
        assert result.failed == 1
        assert result.errors[0].label_name == "dog"
        assert progress == [(1, 2, "cat"), (2, 2, "dog")]
        assert result.to_dict()["errors"][0]["error"] == "EMBEDDING_FAILED"

    @pytest.mark.asyncio
    async def test_regenerate_all(self, db_session, embedding_service):
        make_label(db_session=db_session, name="beach", embedding=rotated_vector(0.0))
        make_label(db_session=db_session, name="cat", embedding=rotated_vector(0.1))

        result = await regenerate_all_label_embeddings(db_session, embedding_service)

        assert result.total == 2
        assert result.success == 2
        assert sorted(embedding_service.calls) == ["beach", "cat"]
