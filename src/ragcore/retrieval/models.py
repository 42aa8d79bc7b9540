"""
Core data types that flow through the retrieval pipeline.

Document -> Chunk -> EmbeddingVector -> (VectorStore) -> SearchResult
-> RetrievalResponse (+ Citation).
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from ragcore.exceptions import DimensionMismatch


def new_id() -> str:
    """Generate a fresh unique identifier."""
    return uuid.uuid4().hex


@dataclass
class Document:
    """A raw document submitted for ingestion."""

    title: str
    """Human-readable title, used in context labels and citations."""

    content: str
    """Raw text content."""

    type: str = "txt"
    """File-format tag (txt, md, pdf, ...)."""

    id: str = field(default_factory=new_id)
    """Document identifier."""

    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    """Creation timestamp."""

    metadata: dict[str, Any] = field(default_factory=dict)
    """Free-form metadata inherited by every chunk."""


@dataclass
class Chunk:
    """A bounded excerpt of a document, the unit of embedding and retrieval."""

    document_id: str
    """Id of the parent document."""

    content: str
    """The text content of the chunk."""

    metadata: dict[str, Any] = field(default_factory=dict)
    """chunk_index, start_offset, end_offset, strategy and inherited metadata."""

    id: str = field(default_factory=new_id)
    """Chunk identifier."""


@dataclass(frozen=True, eq=False)
class EmbeddingVector:
    """
    An embedding for exactly one (text, model_id) pair.

    Values are stored as a read-only float32 array so a cached vector
    can be handed out repeatedly without risk of mutation.
    """

    values: NDArray[np.float32]
    dimensions: int = 0

    def __post_init__(self) -> None:
        array = np.array(self.values, dtype=np.float32).reshape(-1)
        array.setflags(write=False)
        object.__setattr__(self, "values", array)
        if self.dimensions == 0:
            object.__setattr__(self, "dimensions", int(array.shape[0]))
        elif self.dimensions != array.shape[0]:
            raise DimensionMismatch(self.dimensions, int(array.shape[0]), "embedding vector")

    def __len__(self) -> int:
        return self.dimensions

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EmbeddingVector):
            return NotImplemented
        return self.dimensions == other.dimensions and np.array_equal(self.values, other.values)

    def tolist(self) -> list[float]:
        """Return the values as plain Python floats."""
        return self.values.tolist()


@dataclass
class SearchResult:
    """A scored hit produced by a vector store search."""

    id: str
    text: str
    metadata: dict[str, Any]
    score: float
    """Similarity on a 0-100 scale, higher is more similar."""

    @property
    def title(self) -> str:
        return str(self.metadata.get("title") or self.metadata.get("document_title") or "Untitled")

    @property
    def source(self) -> str:
        return str(
            self.metadata.get("source")
            or self.metadata.get("file_name")
            or self.metadata.get("document_id")
            or "Unknown source"
        )


@dataclass
class Citation:
    """A numbered reference to a retrieved result."""

    index: int
    result_id: str
    title: str
    source: str
    score: float

    def __str__(self) -> str:
        return f"[{self.index}] {self.title}. {self.source} ({self.score:.1f}% match)"


@dataclass
class RetrievalRequest:
    """A query against one or more workspaces. Unset knobs fall back to settings."""

    query: str
    top_k: Optional[int] = None
    similarity_threshold: Optional[float] = None
    filters: Optional[dict[str, Any]] = None
    use_query_expansion: Optional[bool] = None
    use_reranking: Optional[bool] = None
    retriever_strategy: Optional[str] = None
    workspace_ids: Optional[Sequence[str]] = None


@dataclass
class RetrievalResponse:
    """Ranked results plus the context and citations assembled from them."""

    query: str
    """The query as submitted."""

    query_used: str
    """The query actually embedded: cleaned, then expanded when expansion applied."""

    results: list[SearchResult]
    execution_time_ms: float
    context: str = ""
    citations: list[Citation] = field(default_factory=list)
    expanded_query: Optional[str] = None
    """Set only when query expansion changed the query."""
