"""
Pytest configuration and shared fixtures.

Provides common fixtures for:
    - Configuration with test values
    - A deterministic in-process embedding provider
    - Sample documents
    - A fully wired RetrievalService backed by the fake provider
"""

import asyncio
import hashlib
from pathlib import Path
from typing import Optional
from unittest.mock import patch

import numpy as np
import pytest

from ragcore.exceptions import ProviderFailure
from ragcore.retrieval.embedding_models import get_dimensions
from ragcore.retrieval.preprocessing import tokenize


def bag_of_words(text: str, dimensions: int) -> list[float]:
    """Hash each token into a bucket so texts sharing words point the same way."""
    vector = np.zeros(dimensions, dtype=np.float32)
    for token in tokenize(text):
        bucket = int(hashlib.md5(token.encode("utf-8")).hexdigest(), 16) % dimensions
        vector[bucket] += 1.0
    return vector.tolist()


class FakeEmbeddingProvider:
    """
    Deterministic embedding provider for tests.

    Records every call. Fails with ProviderFailure when any text contains
    fail_on, and never answers when any text contains hang_on.
    """

    def __init__(self, fail_on: Optional[str] = None, hang_on: Optional[str] = None, delay: float = 0.0) -> None:
        self.calls: list[tuple[list[str], str]] = []
        self.fail_on = fail_on
        self.hang_on = hang_on
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0

    async def embed(self, texts: list[str], model_id: str) -> list[list[float]]:
        self.calls.append((list(texts), model_id))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.hang_on and any(self.hang_on in text for text in texts):
                await asyncio.Event().wait()
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail_on and any(self.fail_on in text for text in texts):
                raise ProviderFailure("Simulated provider outage", provider="fake", status_code=503)
            dimensions = get_dimensions(model_id)
            return [bag_of_words(text, dimensions) for text in texts]
        finally:
            self.in_flight -= 1

    @property
    def embedded_texts(self) -> list[str]:
        return [text for texts, _ in self.calls for text in texts]


# =============================================================================
# Configuration Fixtures
# =============================================================================

@pytest.fixture
def mock_settings(tmp_path: Path):
    """Provide test settings without requiring .env file."""
    with patch.dict(
        "os.environ",
        {
            "EMBEDDING_PROVIDER": "huggingface",
            "EMBEDDING_API_KEY": "test-api-key",
            "EMBEDDING_MODEL": "BAAI/bge-small-en-v1.5",
            "CHUNK_SIZE": "500",
            "CHUNK_OVERLAP": "50",
            "SIMILARITY_THRESHOLD": "10",
            "TOP_K": "3",
            "INDEX_DIR": str(tmp_path / "index"),
        },
    ):
        from ragcore.config import Settings
        yield Settings(_env_file=None)


# =============================================================================
# Provider and Service Fixtures
# =============================================================================

@pytest.fixture
def fake_provider() -> FakeEmbeddingProvider:
    """Provide a deterministic bag-of-words embedding provider."""
    return FakeEmbeddingProvider()


@pytest.fixture
def make_provider():
    """Build fake providers that fail or hang on chosen texts."""
    return FakeEmbeddingProvider


@pytest.fixture
def embed():
    """Embed a text the same way the fake provider does (384 dimensions)."""
    def _embed(text: str, dimensions: int = 384) -> list[float]:
        return bag_of_words(text, dimensions)
    return _embed


@pytest.fixture
def service(mock_settings, fake_provider):
    """Provide a RetrievalService wired to the fake provider."""
    from ragcore.service import create_service

    return create_service(mock_settings, provider=fake_provider)


# =============================================================================
# Sample Data Fixtures
# =============================================================================

@pytest.fixture
def sample_documents():
    """Provide a small mixed-topic document set."""
    from ragcore.retrieval.models import Document

    return [
        Document(
            title="Paris Weather",
            content=(
                "The weather in Paris is mild in spring.\n\n"
                "Summer temperature in Paris often reaches thirty degrees.\n\n"
                "The forecast for Paris predicts rain in autumn."
            ),
            type="txt",
            metadata={"source": "weather/paris.txt", "lang": "en"},
        ),
        Document(
            title="Python Code Style",
            content=(
                "# Code Style\n\n"
                "Readable code uses descriptive names.\n\n"
                "## Testing\n\n"
                "Programming teams test software before every release."
            ),
            type="md",
            metadata={"source": "code/style.md", "lang": "en"},
        ),
        Document(
            title="Cooking Basics",
            content="A good recipe lists every ingredient. Cooking rice needs water and salt.",
            type="txt",
            metadata={"source": "food/basics.txt", "lang": "fr"},
        ),
    ]


@pytest.fixture
def unit_vector():
    """Build a unit vector with a single hot dimension."""
    def _unit_vector(index: int, dimensions: int = 384) -> list[float]:
        vector = [0.0] * dimensions
        vector[index] = 1.0
        return vector
    return _unit_vector
