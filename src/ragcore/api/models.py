"""
Pydantic models for API request and response schemas.

These models provide automatic validation and OpenAPI documentation.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from ragcore.config import ChunkingStrategyName, RetrieverStrategyName


class DocumentSchema(BaseModel):
    """A document submitted for indexing."""

    title: str = Field(
        ...,
        min_length=1,
        description="Document title, shown in context labels and citations",
        examples=["Paris travel guide"],
    )
    content: str = Field(
        ...,
        description="Raw document text",
    )
    type: str = Field(
        default="txt",
        description="File-format tag",
        examples=["txt", "md", "pdf"],
    )
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Free-form metadata copied onto every chunk",
    )


class IndexRequest(BaseModel):
    """Request schema for POST /workspaces/{workspace_id}/documents."""

    documents: list[DocumentSchema] = Field(
        ...,
        min_length=1,
        description="Documents to index",
    )
    chunking_strategy: Optional[ChunkingStrategyName] = Field(
        default=None,
        description="Override the configured chunking strategy",
    )
    chunk_size: Optional[int] = Field(
        default=None,
        gt=0,
        description="Override the configured chunk size",
    )
    chunk_overlap: Optional[int] = Field(
        default=None,
        ge=0,
        description="Override the configured chunk overlap",
    )
    timeout: Optional[float] = Field(
        default=None,
        gt=0.0,
        description="Seconds before unfinished documents are cancelled",
    )


class IndexedDocument(BaseModel):
    """Outcome for one submitted document."""

    document_id: str
    title: str
    chunk_count: int
    success: bool
    error: Optional[str] = None


class IndexResponse(BaseModel):
    """Response schema for document indexing."""

    workspace_id: str
    succeeded: list[IndexedDocument]
    errors: list[IndexedDocument]
    store_size: int = Field(description="Vectors held by the workspace after indexing")


class DeleteResponse(BaseModel):
    """Response schema for deletions."""

    deleted: int = Field(description="Number of records removed")


class RetrieveRequest(BaseModel):
    """Request schema for POST /workspaces/{workspace_id}/retrieve."""

    query: str = Field(
        ...,
        min_length=1,
        max_length=2000,
        description="Natural language query",
        examples=["weather in Paris"],
    )
    top_k: Optional[int] = Field(default=None, ge=1, le=100)
    similarity_threshold: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    filters: Optional[dict[str, Any]] = Field(
        default=None,
        description="Exact-match metadata filters; dotted keys reach nested values",
    )
    use_query_expansion: Optional[bool] = None
    use_reranking: Optional[bool] = None
    retriever_strategy: Optional[RetrieverStrategyName] = None
    additional_workspaces: list[str] = Field(
        default_factory=list,
        description="Other workspaces to search alongside the path workspace",
    )


class SearchResultSchema(BaseModel):
    """A retrieved chunk."""

    id: str
    text: str
    score: float = Field(ge=0.0, le=100.0)
    metadata: dict[str, Any]


class CitationSchema(BaseModel):
    """Schema for a source citation."""

    index: int
    result_id: str
    title: str
    source: str
    score: float
    text: str = Field(description="Rendered citation line")


class RetrieveResponse(BaseModel):
    """Response schema for retrieval."""

    query: str
    query_used: str
    expanded_query: Optional[str] = None
    results: list[SearchResultSchema]
    context: str
    citations: list[CitationSchema]
    execution_time_ms: float


class SettingsUpdate(BaseModel):
    """Request schema for PATCH /settings. Unset fields are left unchanged."""

    chunking_strategy: Optional[ChunkingStrategyName] = None
    chunk_size: Optional[int] = None
    chunk_overlap: Optional[int] = None
    embedding_model: Optional[str] = None
    retriever_strategy: Optional[RetrieverStrategyName] = None
    top_k: Optional[int] = None
    similarity_threshold: Optional[float] = None
    use_query_expansion: Optional[bool] = None
    use_reranking: Optional[bool] = None
    include_metadata: Optional[bool] = None


class CacheStatsResponse(BaseModel):
    """Response schema for GET /cache/stats."""

    size: int
    model_distribution: dict[str, int]
    hits: int
    misses: int
    hit_rate: float


class HealthResponse(BaseModel):
    """Response schema for the /health endpoint."""

    status: Literal["healthy"] = Field(description="Health status")
    version: str = Field(description="API version")
    embedding_model: str
    workspaces: list[str] = Field(description="Workspaces currently loaded")


class ErrorResponse(BaseModel):
    """Schema for error responses."""

    error: str = Field(
        description="Error code",
        examples=["dimension_mismatch", "invalid_configuration", "provider_failure", "not_found"],
    )
    message: str = Field(description="Human-readable error message")
