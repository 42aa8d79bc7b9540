"""
Registry of supported embedding models and their declared dimensionality.
"""

from dataclasses import dataclass

from ragcore.exceptions import InvalidConfiguration


@dataclass(frozen=True)
class EmbeddingModel:
    """An embedding model the pipeline knows how to store vectors for."""

    id: str
    dimensions: int
    description: str = ""


EMBEDDING_MODELS: dict[str, EmbeddingModel] = {
    model.id: model
    for model in (
        EmbeddingModel("BAAI/bge-small-en-v1.5", 384, "Fast and efficient English embeddings"),
        EmbeddingModel("BAAI/bge-base-en-v1.5", 768, "Balanced English embeddings"),
        EmbeddingModel("BAAI/bge-large-en-v1.5", 1024, "High quality English embeddings"),
        EmbeddingModel("sentence-transformers/all-MiniLM-L6-v2", 384, "Lightweight general-purpose embeddings"),
        EmbeddingModel("sentence-transformers/all-mpnet-base-v2", 768, "General-purpose sentence embeddings"),
        EmbeddingModel("thenlper/gte-large", 1024, "General text embeddings"),
        EmbeddingModel("intfloat/e5-large-v2", 1024, "E5 large embeddings"),
        EmbeddingModel("jinaai/jina-embeddings-v2-base-en", 768, "Long-context English embeddings"),
        EmbeddingModel("text-embedding-3-small", 1536, "OpenAI small embeddings"),
        EmbeddingModel("text-embedding-3-large", 3072, "OpenAI large embeddings"),
        EmbeddingModel("mistral-embed", 1024, "Mistral embeddings"),
        EmbeddingModel("nomic-embed-text", 768, "Nomic embeddings served by Ollama"),
    )
}


def get_model(model_id: str) -> EmbeddingModel:
    """
    Look up a model by id.

    Raises:
        InvalidConfiguration: If the model id is not registered
    """
    try:
        return EMBEDDING_MODELS[model_id]
    except KeyError:
        raise InvalidConfiguration(f"Unknown embedding model: {model_id}") from None


def get_dimensions(model_id: str) -> int:
    """Return the declared dimensionality of a registered model."""
    return get_model(model_id).dimensions
