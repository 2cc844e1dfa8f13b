"""
Caption and OCR service interfaces.

The caption worker depends only on these protocols; model-backed
implementations are supplied by the deployment and injected through the
container.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Protocol


@dataclass
class SimilarImageDescription:
    """Description of a similar image with its 1 / (1 + distance) score."""
    description: str
    similarity: float


@dataclass
class CaptionContext:
    similar_descriptions: list[SimilarImageDescription] = field(default_factory=list)
    ocr_text: Optional[str] = None


@dataclass
class CaptionResult:
    caption: str
    model: str


@dataclass
class OcrResult:
    text: str
    confidence: float = 0.0


class CaptionService(Protocol):
    async def generate_with_context(self, image_path: Path, context: CaptionContext) -> CaptionResult:
        ...


class OcrService(Protocol):
    async def extract_text(self, image_path: Path) -> OcrResult:
        ...
