"""
Unit tests for image embedding generation and vector store sync

Tests:
- Single-image generation: success, missing record, missing file, bad model output
- Batch generation and regeneration with progress
- Rebuilding the vector store from stored embeddings
- Status counts
"""
import numpy as np
import pytest

from picstash.models.image import Image
from picstash.services.image_embedding_service import (
    GenerateEmbeddingError,
    generate_embedding,
    generate_missing_embeddings,
    get_embedding_status,
    regenerate_all_embeddings,
    remove_embedding,
    sync_embeddings_to_vector_store,
)
from picstash.services.vector_store import bytes_to_vector
from tests.conftest import FakeEmbeddingService, make_image, make_png_bytes, rotated_vector


def stored_image(db_session, file_storage, color=(10, 20, 30), **overrides):
    """Image record whose original exists in file storage."""
    data = make_png_bytes(color)
    path = file_storage.save_original(data, "png")
    return make_image(db_session=db_session, path=path, **overrides), data


class TestGenerateEmbedding:
    """Tests for generate_embedding()."""

    @pytest.mark.asyncio
    async def test_success_writes_both_copies(self, db_session, vector_store, file_storage, embedding_service):
        image, data = stored_image(db_session, file_storage)
        embedding_service.image_vectors[data] = rotated_vector(0.4)

        result = await generate_embedding(db_session, image.id, embedding_service, file_storage, vector_store)

        assert result.image_id == image.id
        assert result.dimension == 512
        assert result.model == "fake-clip"
        assert result.generated_at.tzinfo is not None

        db_session.expire_all()
        stored = db_session.get(Image, image.id)
        np.testing.assert_allclose(bytes_to_vector(stored.embedding), rotated_vector(0.4), atol=1e-6)
        assert stored.embedded_at is not None
        assert vector_store.has_embedding(image.id)

    @pytest.mark.asyncio
    async def test_missing_image(self, db_session, vector_store, file_storage, embedding_service):
        result = await generate_embedding(db_session, "missing", embedding_service, file_storage, vector_store)

        assert result is GenerateEmbeddingError.IMAGE_NOT_FOUND
        assert embedding_service.calls == []

    @pytest.mark.asyncio
    async def test_missing_file(self, db_session, vector_store, file_storage, embedding_service):
        image = make_image(db_session=db_session, path="originals/gone.png")

        result = await generate_embedding(db_session, image.id, embedding_service, file_storage, vector_store)

        assert result is GenerateEmbeddingError.EMBEDDING_FAILED
        assert not vector_store.has_embedding(image.id)

    @pytest.mark.asyncio
    async def test_model_failure(self, db_session, vector_store, file_storage, embedding_service):
        image, data = stored_image(db_session, file_storage)
        embedding_service.fail_on.add(data)

        result = await generate_embedding(db_session, image.id, embedding_service, file_storage, vector_store)

        assert result is GenerateEmbeddingError.EMBEDDING_FAILED

    @pytest.mark.asyncio
    async def test_wrong_dimension_rejected(self, db_session, vector_store, file_storage):
        image, _ = stored_image(db_session, file_storage)
        small_model = FakeEmbeddingService(dimension=16)

        result = await generate_embedding(db_session, image.id, small_model, file_storage, vector_store)

        assert result is GenerateEmbeddingError.EMBEDDING_FAILED
        db_session.expire_all()
        assert db_session.get(Image, image.id).embedding is None
        assert vector_store.count() == 0

    @pytest.mark.asyncio
    async def test_to_dict(self, db_session, vector_store, file_storage, embedding_service):
        image, _ = stored_image(db_session, file_storage)

        result = await generate_embedding(db_session, image.id, embedding_service, file_storage, vector_store)

        data = result.to_dict()
        assert data["image_id"] == image.id
        assert isinstance(data["generated_at"], str)


class TestBatchGeneration:
    """Tests for generate_missing_embeddings() and regenerate_all_embeddings()."""

    @pytest.mark.asyncio
    async def test_generates_only_missing(self, db_session, vector_store, file_storage, embedding_service):
        done, _ = stored_image(db_session, file_storage, color=(1, 1, 1), embedding=rotated_vector(0.0))
        pending, _ = stored_image(db_session, file_storage, color=(2, 2, 2))
        broken = make_image(db_session=db_session, path="originals/gone.png")
        progress = []

        result = await generate_missing_embeddings(
            db_session, embedding_service, file_storage, vector_store,
            on_progress=lambda current, total: progress.append((current, total)),
        )

        assert result.total == 2
        assert result.success == 1
        assert result.failed == 1
        assert result.errors[0].image_id == broken.id
        assert result.errors[0].error == "EMBEDDING_FAILED"
        assert progress == [(1, 2), (2, 2)]
        assert vector_store.has_embedding(pending.id)
        assert not vector_store.has_embedding(done.id)

    @pytest.mark.asyncio
    async def test_nothing_missing(self, db_session, vector_store, file_storage, embedding_service):
        result = await generate_missing_embeddings(db_session, embedding_service, file_storage, vector_store)

        assert result.to_dict() == {"total": 0, "success": 0, "failed": 0, "errors": []}

    @pytest.mark.asyncio
    async def test_regenerate_all(self, db_session, vector_store, file_storage, embedding_service):
        image, data = stored_image(db_session, file_storage, embedding=rotated_vector(0.0))
        vector_store.upsert(image.id, rotated_vector(0.0))
        vector_store.upsert("stale-entry", rotated_vector(1.0))
        embedding_service.image_vectors[data] = rotated_vector(0.9)

        result = await regenerate_all_embeddings(db_session, embedding_service, file_storage, vector_store)

        assert result.total == 1
        assert result.success == 1
        assert vector_store.get_all_image_ids() == [image.id]
        hit = vector_store.find_similar(rotated_vector(0.9), limit=1)[0]
        assert hit.distance == pytest.approx(0.0, abs=1e-5)


class TestSyncAndStatus:
    """Tests for sync_embeddings_to_vector_store(), remove_embedding() and status."""

    def test_sync_restores_index(self, db_session, vector_store):
        first = make_image(db_session=db_session, embedding=rotated_vector(0.0))
        second = make_image(db_session=db_session, embedding=rotated_vector(0.5))
        make_image(db_session=db_session)

        result = sync_embeddings_to_vector_store(db_session, vector_store)

        assert result.synced == 2
        assert result.skipped == 0
        assert sorted(vector_store.get_all_image_ids()) == sorted([first.id, second.id])

    def test_sync_skips_malformed_blob(self, db_session, vector_store):
        make_image(db_session=db_session, embedding=b"\x00" * 10)
        good = make_image(db_session=db_session, embedding=rotated_vector(0.0))

        result = sync_embeddings_to_vector_store(db_session, vector_store)

        assert result.to_dict() == {"synced": 1, "skipped": 1}
        assert vector_store.get_all_image_ids() == [good.id]

    def test_status(self, db_session, vector_store):
        embedded = make_image(db_session=db_session, embedding=rotated_vector(0.0))
        make_image(db_session=db_session)

        status = get_embedding_status(db_session, vector_store)
        assert status.total_images == 2
        assert status.with_embedding == 1
        assert status.without_embedding == 1
        assert status.in_vector_store == 0
        assert status.in_sync is False

        vector_store.upsert(embedded.id, rotated_vector(0.0))
        assert get_embedding_status(db_session, vector_store).to_dict()["in_sync"] is True

    def test_remove_embedding(self, db_session, vector_store):
        image = make_image(db_session=db_session, embedding=rotated_vector(0.0))
        vector_store.upsert(image.id, rotated_vector(0.0))

        remove_embedding(db_session, vector_store, image.id)

        db_session.expire_all()
        assert db_session.get(Image, image.id).embedding is None
        assert not vector_store.has_embedding(image.id)
