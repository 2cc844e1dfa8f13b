"""
Unit tests for ClipEmbeddingService

The sentence-transformers model is replaced by a mock; only the service's
own input checks and output handling are exercised.
"""
from unittest.mock import MagicMock

import numpy as np
import pytest

from picstash.services.embedding_service import ClipEmbeddingService
from tests.conftest import make_png_bytes


@pytest.fixture
def service():
    svc = ClipEmbeddingService()
    svc._model = MagicMock()
    svc._model.encode.return_value = np.full(512, 2.0, dtype=np.float32)
    return svc


class TestLifecycle:
    """Tests for initialization state."""

    def test_defaults(self):
        svc = ClipEmbeddingService()
        assert svc.model_name == "clip-ViT-B-32"
        assert svc.is_initialized is False

    def test_custom_model_name(self):
        assert ClipEmbeddingService("clip-ViT-L-14").model_name == "clip-ViT-L-14"

    @pytest.mark.asyncio
    async def test_use_before_initialize_raises(self):
        svc = ClipEmbeddingService()
        with pytest.raises(RuntimeError, match="not initialized"):
            await svc.generate_from_text("cat")

    def test_close_releases_model(self, service):
        service.close()
        assert service.is_initialized is False

    def test_initialize_skips_when_loaded(self, service):
        model = service._model
        service.initialize()
        assert service._model is model


class TestGenerate:
    """Tests for embedding generation."""

    @pytest.mark.asyncio
    async def test_image_embedding_normalized(self, service):
        result = await service.generate_from_buffer(make_png_bytes())

        assert result.dimension == 512
        assert result.model == "clip-ViT-B-32"
        assert len(result.embedding) == 512
        assert np.linalg.norm(result.embedding) == pytest.approx(1.0, abs=1e-5)

        encoded_image = service._model.encode.call_args[0][0]
        assert encoded_image.mode == "RGB"

    @pytest.mark.asyncio
    async def test_text_embedding_strips_input(self, service):
        await service.generate_from_text("  sunset  ")

        assert service._model.encode.call_args[0][0] == "sunset"

    @pytest.mark.asyncio
    async def test_empty_inputs_rejected(self, service):
        with pytest.raises(ValueError, match="image_bytes cannot be empty"):
            await service.generate_from_buffer(b"")
        with pytest.raises(ValueError, match="text cannot be empty"):
            await service.generate_from_text("   ")

    @pytest.mark.asyncio
    async def test_wrong_model_dimension(self, service):
        service._model.encode.return_value = np.ones(256, dtype=np.float32)

        with pytest.raises(ValueError, match="256 dimensions"):
            await service.generate_from_text("cat")
