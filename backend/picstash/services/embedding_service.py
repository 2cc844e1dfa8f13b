"""
Embedding Service

Turns image bytes or label text into unit-length CLIP embeddings.

The rest of the code depends only on the EmbeddingService protocol;
ClipEmbeddingService is the production implementation backed by
sentence-transformers' CLIP ViT-B/32 (512 dimensions). The model is loaded by
initialize() at startup and released by close(); nothing is loaded lazily.
"""
import asyncio
import io
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import numpy as np
from PIL import Image as PILImage

from picstash.services.vector_store import EMBEDDING_DIMENSION, l2_normalize

logger = logging.getLogger(__name__)


@dataclass
class EmbeddingResult:
    """A generated embedding."""
    embedding: list[float]
    dimension: int
    model: str


class EmbeddingService(Protocol):
    """Produces fixed-length unit vectors for images and text."""

    async def generate_from_buffer(self, image_bytes: bytes) -> EmbeddingResult:
        ...

    async def generate_from_text(self, text: str) -> EmbeddingResult:
        ...


class ClipEmbeddingService:
    """
    CLIP embeddings via sentence-transformers.

    Attributes:
        MODEL_NAME: sentence-transformers model id
        EMBEDDING_DIM: Output dimension (512)
    """

    MODEL_NAME = "clip-ViT-B-32"
    EMBEDDING_DIM = EMBEDDING_DIMENSION

    def __init__(self, model_name: Optional[str] = None):
        self.model_name = model_name or self.MODEL_NAME
        self._model = None

    @property
    def is_initialized(self) -> bool:
        return self._model is not None

    def initialize(self) -> None:
        """Load the CLIP model. Safe to call more than once."""
        if self._model is not None:
            return
        from sentence_transformers import SentenceTransformer

        logger.info(
            f"Loading embedding model {self.model_name}",
            extra={"event_type": "embedding_model_loading", "model": self.model_name}
        )
        self._model = SentenceTransformer(self.model_name)
        logger.info(
            "Embedding model loaded",
            extra={"event_type": "embedding_model_loaded", "model": self.model_name}
        )

    def close(self) -> None:
        """Release the model."""
        if self._model is not None:
            self._model = None
            logger.info("Embedding model released", extra={"event_type": "embedding_model_closed"})

    def _require_model(self):
        if self._model is None:
            raise RuntimeError("ClipEmbeddingService is not initialized")
        return self._model

    def _to_result(self, raw) -> EmbeddingResult:
        vector = l2_normalize(np.asarray(raw, dtype=np.float32).reshape(-1))
        if vector.shape[0] != self.EMBEDDING_DIM:
            raise ValueError(
                f"Model returned {vector.shape[0]} dimensions, expected {self.EMBEDDING_DIM}"
            )
        return EmbeddingResult(
            embedding=vector.tolist(),
            dimension=self.EMBEDDING_DIM,
            model=self.model_name,
        )

    async def generate_from_buffer(self, image_bytes: bytes) -> EmbeddingResult:
        """
        Embed an encoded image (JPEG, PNG, WebP, ...).

        Raises:
            ValueError: If image_bytes is empty
            PIL.UnidentifiedImageError: If the bytes are not an image
            RuntimeError: If initialize() has not been called
        """
        if not image_bytes:
            raise ValueError("image_bytes cannot be empty")
        model = self._require_model()

        image = PILImage.open(io.BytesIO(image_bytes))
        if image.mode != "RGB":
            image = image.convert("RGB")

        loop = asyncio.get_running_loop()
        raw = await loop.run_in_executor(None, lambda: model.encode(image, convert_to_numpy=True))
        return self._to_result(raw)

    async def generate_from_text(self, text: str) -> EmbeddingResult:
        """
        Embed a short text such as a label name.

        Raises:
            ValueError: If text is blank
            RuntimeError: If initialize() has not been called
        """
        if not text or not text.strip():
            raise ValueError("text cannot be empty")
        model = self._require_model()

        loop = asyncio.get_running_loop()
        raw = await loop.run_in_executor(None, lambda: model.encode(text.strip(), convert_to_numpy=True))
        return self._to_result(raw)
