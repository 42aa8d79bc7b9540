"""
Configuration management using Pydantic Settings.

All configuration is loaded from environment variables with sensible defaults.
Use a .env file for local development.

Environment Variables:
    EMBEDDING_PROVIDER: Provider kind (huggingface, openai, mistral, ollama, openrouter)
    EMBEDDING_API_KEY: API key for the embedding provider (optional for ollama)
    EMBEDDING_MODEL: Embedding model id (must be in the model registry)
    CHUNK_SIZE: Soft maximum chunk size in characters
    CHUNK_OVERLAP: Characters of continuity carried into the next chunk
    TOP_K: Number of results returned by retrieval
    SIMILARITY_THRESHOLD: Minimum score (0-100) for retrieved results
    INDEX_DIR: Directory for persisted workspace stores
    LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ChunkingStrategyName = Literal["fixed", "paragraph", "sentence", "hybrid"]
RetrieverStrategyName = Literal["mmr", "semantic", "hybrid", "reranking"]


class RetrievalSettings(BaseModel):
    """
    The knobs an external caller may set on the retrieval pipeline.

    Every field can be hot-swapped between calls via
    RetrievalOrchestrator.update_settings().
    """

    chunking_strategy: ChunkingStrategyName = "hybrid"
    chunk_size: int = Field(default=1000, gt=0)
    chunk_overlap: int = Field(default=200, ge=0)
    embedding_model: str = "BAAI/bge-small-en-v1.5"
    retriever_strategy: RetrieverStrategyName = "semantic"
    top_k: int = Field(default=3, ge=1, le=100)
    similarity_threshold: float = Field(default=70.0, ge=0.0, le=100.0)
    use_query_expansion: bool = True
    use_reranking: bool = False
    include_metadata: bool = True

    @model_validator(mode="after")
    def validate_overlap(self) -> "RetrievalSettings":
        """Ensure overlap is less than chunk size."""
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be less than chunk_size ({self.chunk_size})"
            )
        return self


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Embedding Provider
    # ==========================================================================
    embedding_provider: Literal["huggingface", "openai", "mistral", "ollama", "openrouter"] = Field(
        default="huggingface",
        description="Which embedding provider to call",
    )
    embedding_api_key: Optional[SecretStr] = Field(
        default=None,
        description="API key for the embedding provider",
    )
    embedding_base_url: Optional[str] = Field(
        default=None,
        description="Override the provider's default base URL",
    )
    embedding_model: str = Field(
        default="BAAI/bge-small-en-v1.5",
        description="Embedding model id (see ragcore.retrieval.embedding_models)",
    )
    embedding_timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="HTTP timeout in seconds for provider calls",
    )
    embedding_max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per provider call when rate limited",
    )

    # ==========================================================================
    # Embedding Cache
    # ==========================================================================
    cache_max_size: int = Field(
        default=1000,
        ge=1,
        description="Maximum number of cached embeddings (LRU eviction)",
    )
    cache_ttl_seconds: Optional[float] = Field(
        default=None,
        gt=0.0,
        description="Expire cached embeddings after this many seconds (None = never)",
    )

    # ==========================================================================
    # Chunking Configuration
    # ==========================================================================
    chunking_strategy: ChunkingStrategyName = Field(
        default="hybrid",
        description="Default chunking strategy",
    )
    chunk_size: int = Field(
        default=1000,
        ge=50,
        le=8000,
        description="Soft maximum chunk size in characters",
    )
    chunk_overlap: int = Field(
        default=200,
        ge=0,
        le=2000,
        description="Overlap between consecutive chunks",
    )
    strip_html: Optional[bool] = Field(
        default=None,
        description="Strip markup before chunking (None = only html documents)",
    )
    expand_contractions: bool = Field(
        default=False,
        description="Expand English contractions before chunking",
    )
    remove_boilerplate: bool = Field(
        default=False,
        description="Drop signatures, disclaimers, headers and footers before chunking",
    )

    # ==========================================================================
    # Retrieval Configuration
    # ==========================================================================
    retriever_strategy: RetrieverStrategyName = Field(
        default="semantic",
        description="Candidate retrieval strategy",
    )
    top_k: int = Field(
        default=3,
        ge=1,
        le=100,
        description="Number of results to return",
    )
    similarity_threshold: float = Field(
        default=70.0,
        ge=0.0,
        le=100.0,
        description="Minimum similarity score (0-100) for retrieved results",
    )
    use_query_expansion: bool = Field(
        default=True,
        description="Append curated related terms to queries before embedding",
    )
    use_reranking: bool = Field(
        default=False,
        description="Rerank candidates with the secondary scorer",
    )
    include_metadata: bool = Field(
        default=True,
        description="Include result metadata in assembled context",
    )
    keyword_weight: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Keyword score weight for hybrid search and reranking",
    )
    mmr_lambda: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Relevance/diversity trade-off for MMR retrieval",
    )
    max_context_length: Optional[int] = Field(
        default=None,
        ge=1,
        description="Maximum characters of assembled context (None = unbounded)",
    )
    default_workspace: str = Field(
        default="default",
        description="Workspace searched when a request names none",
    )

    # ==========================================================================
    # Indexing Configuration
    # ==========================================================================
    batch_size: int = Field(
        default=10,
        ge=1,
        le=256,
        description="Chunks embedded and stored per batch",
    )
    max_concurrent_batches: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Worker pool size, sized to the provider's rate limit",
    )
    hnsw_threshold: int = Field(
        default=5000,
        ge=1,
        description="Store size at which search switches from flat scan to HNSW",
    )
    index_dir: Path = Field(
        default=Path("data/index"),
        description="Directory for persisted workspace stores",
    )

    # ==========================================================================
    # API Configuration
    # ==========================================================================
    api_host: str = Field(
        default="0.0.0.0",
        description="Host to bind API server",
    )
    api_port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Port for API server",
    )

    # ==========================================================================
    # Observability Configuration
    # ==========================================================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    # ==========================================================================
    # Validators
    # ==========================================================================
    @field_validator("chunk_overlap")
    @classmethod
    def validate_chunk_overlap(cls, v: int, info) -> int:
        """Ensure overlap is less than chunk size."""
        chunk_size = info.data.get("chunk_size", 1000)
        if v >= chunk_size:
            raise ValueError(f"chunk_overlap ({v}) must be less than chunk_size ({chunk_size})")
        return v

    @field_validator("index_dir")
    @classmethod
    def resolve_path(cls, v: Path) -> Path:
        """Resolve paths to absolute paths."""
        return v.resolve()

    # ==========================================================================
    # Computed Properties
    # ==========================================================================
    @property
    def embedding_api_key_value(self) -> Optional[str]:
        """Get the actual API key value (use sparingly)."""
        if self.embedding_api_key:
            return self.embedding_api_key.get_secret_value()
        return None

    def retrieval_settings(self) -> RetrievalSettings:
        """Build the caller-facing retrieval knobs from these settings."""
        return RetrievalSettings(
            chunking_strategy=self.chunking_strategy,
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
            embedding_model=self.embedding_model,
            retriever_strategy=self.retriever_strategy,
            top_k=self.top_k,
            similarity_threshold=self.similarity_threshold,
            use_query_expansion=self.use_query_expansion,
            use_reranking=self.use_reranking,
            include_metadata=self.include_metadata,
        )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to ensure settings are only loaded once.
    Call `get_settings.cache_clear()` to reload settings.

    Returns:
        Settings: Application settings instance
    """
    return Settings()


# Convenience alias
settings = get_settings()
