"""
Document retrieval components for the RAG pipeline.

Components:
    - preprocessing: Document and query text cleanup
    - metadata: Content statistics and keywords for ingested documents
    - chunker: Split documents into overlapping chunks with provenance metadata
    - cache: LRU cache of embeddings keyed by (text, model)
    - providers: HTTP clients for embedding providers
    - embeddings: Cache-aware batch embedding generation
    - vector_store: Per-workspace similarity search (flat scan / FAISS HNSW)
    - orchestrator: Query expansion, search, reranking, context and citations
    - ingestion: Batched, failure-isolated document indexing
"""

from ragcore.retrieval.cache import CacheStats, EmbeddingCache
from ragcore.retrieval.chunker import ChunkingOptions, chunk_document
from ragcore.retrieval.embeddings import EmbeddingGenerator
from ragcore.retrieval.ingestion import BatchIngestionResult, DocumentIndexer, IndexingResult
from ragcore.retrieval.models import (
    Chunk,
    Citation,
    Document,
    EmbeddingVector,
    RetrievalRequest,
    RetrievalResponse,
    SearchResult,
)
from ragcore.retrieval.orchestrator import RetrievalOrchestrator
from ragcore.retrieval.preprocessing import PreprocessingOptions
from ragcore.retrieval.providers import ProviderKind, create_provider
from ragcore.retrieval.vector_store import VectorStore, VectorStoreRegistry

__all__ = [
    "BatchIngestionResult",
    "CacheStats",
    "Chunk",
    "ChunkingOptions",
    "chunk_document",
    "Citation",
    "create_provider",
    "Document",
    "DocumentIndexer",
    "EmbeddingCache",
    "EmbeddingGenerator",
    "EmbeddingVector",
    "IndexingResult",
    "PreprocessingOptions",
    "ProviderKind",
    "RetrievalOrchestrator",
    "RetrievalRequest",
    "RetrievalResponse",
    "SearchResult",
    "VectorStore",
    "VectorStoreRegistry",
]
