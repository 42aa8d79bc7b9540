"""
Cache-aware embedding generation.

Wraps an EmbeddingProvider and an EmbeddingCache so that each (text, model)
pair is sent to the provider at most once while it stays cached.
"""

import logging
from typing import Optional

from ragcore.exceptions import DimensionMismatch, ProviderFailure
from ragcore.retrieval.cache import EmbeddingCache
from ragcore.retrieval.embedding_models import get_model
from ragcore.retrieval.models import EmbeddingVector
from ragcore.retrieval.providers import EmbeddingProvider

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "BAAI/bge-small-en-v1.5"


class EmbeddingGenerator:
    """
    Generate embeddings for the current model, consulting the cache first.

    Example:
        >>> generator = EmbeddingGenerator(provider, EmbeddingCache())
        >>> vectors = await generator.generate_batch_embeddings(["What is RAG?"])
        >>> vectors[0].dimensions
        384
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        cache: Optional[EmbeddingCache] = None,
        model_id: str = DEFAULT_MODEL,
        use_cache: bool = True,
    ) -> None:
        """
        Initialize the generator.

        Args:
            provider: Client used for texts missing from the cache
            cache: Shared embedding cache (a private one is created if omitted)
            model_id: Registered embedding model id
            use_cache: Set False to always call the provider

        Raises:
            InvalidConfiguration: If model_id is not registered
        """
        self.provider = provider
        self.cache = cache if cache is not None else EmbeddingCache()
        self.use_cache = use_cache
        self.set_model(model_id)

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def set_model(self, model_id: str) -> None:
        """Switch the embedding model. Raises InvalidConfiguration if unknown."""
        model = get_model(model_id)
        self.model_id = model.id
        self._dimensions = model.dimensions

    async def generate_embedding(self, text: str) -> EmbeddingVector:
        """Embed a single text."""
        vectors = await self.generate_batch_embeddings([text])
        return vectors[0]

    async def generate_batch_embeddings(self, texts: list[str]) -> list[EmbeddingVector]:
        """
        Embed texts, returning vectors in input order.

        Cached texts are served from the cache; every other distinct text goes
        to the provider in a single call. The provider response is validated
        in full before anything is written to the cache, so a failed or
        cancelled call leaves the cache untouched.

        Raises:
            ProviderFailure: If the provider call fails or returns the wrong
                number of vectors
            DimensionMismatch: If a returned vector does not match the model
        """
        if not texts:
            return []

        model_id = self.model_id
        dimensions = self._dimensions
        results: list[Optional[EmbeddingVector]] = [None] * len(texts)
        pending: dict[str, list[int]] = {}

        for index, text in enumerate(texts):
            cached = self.cache.get(text, model_id) if self.use_cache else None
            if cached is not None:
                results[index] = cached
            else:
                pending.setdefault(text, []).append(index)

        if pending:
            uncached = list(pending)
            logger.debug(
                f"Embedding {len(uncached)} texts with {model_id} "
                f"({len(texts) - sum(len(v) for v in pending.values())} cache hits)"
            )
            raw_vectors = await self.provider.embed(uncached, model_id)

            if len(raw_vectors) != len(uncached):
                raise ProviderFailure(
                    f"Provider returned {len(raw_vectors)} embeddings for {len(uncached)} texts"
                )

            vectors = []
            for raw in raw_vectors:
                vector = EmbeddingVector(raw)
                if vector.dimensions != dimensions:
                    raise DimensionMismatch(dimensions, vector.dimensions, model_id)
                vectors.append(vector)

            for text, vector in zip(uncached, vectors):
                if self.use_cache:
                    self.cache.set(text, model_id, vector)
                for index in pending[text]:
                    results[index] = vector

        return results  # type: ignore[return-value]
