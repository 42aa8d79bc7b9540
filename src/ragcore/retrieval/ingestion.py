"""
Document ingestion: clean, describe, chunk, embed and store.

Chunks are embedded in fixed-size batches, one provider call per batch.
Batches from all documents in a job share a bounded worker pool so the
provider sees at most max_workers concurrent requests. Failures are isolated
per document: one bad document is reported and the rest of the job continues.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from ragcore.exceptions import RagCoreError
from ragcore.retrieval.chunker import ChunkingOptions, DEFAULT_CHUNKING_OPTIONS, chunk_document
from ragcore.retrieval.embeddings import EmbeddingGenerator
from ragcore.retrieval.metadata import extract_content_metadata
from ragcore.retrieval.models import Chunk, Document
from ragcore.retrieval.preprocessing import (
    DEFAULT_PREPROCESSING_OPTIONS,
    PreprocessingOptions,
    preprocess_document_text,
)
from ragcore.retrieval.vector_store import VectorStore, VectorStoreRegistry

logger = logging.getLogger(__name__)


@dataclass
class IndexingResult:
    """Outcome of indexing one document."""

    document_id: str
    chunk_count: int
    """Chunks embedded and stored (before any failure)."""

    success: bool
    error: Optional[str] = None
    chunk_ids: list[str] = field(default_factory=list)
    """Store ids of the chunks that remain stored."""


@dataclass
class BatchIngestionResult:
    """Outcome of a multi-document ingestion job."""

    succeeded: list[IndexingResult] = field(default_factory=list)
    errors: list[IndexingResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.errors)

    @property
    def chunk_count(self) -> int:
        return sum(result.chunk_count for result in self.succeeded)


class DocumentIndexer:
    """
    Index documents into workspace vector stores.

    Example:
        >>> indexer = DocumentIndexer(generator, registry, batch_size=10, max_workers=4)
        >>> job = await indexer.process_documents(documents, "default", timeout=60)
        >>> [e.error for e in job.errors]
    """

    def __init__(
        self,
        generator: EmbeddingGenerator,
        registry: VectorStoreRegistry,
        batch_size: int = 10,
        max_workers: int = 4,
        preprocessing: Optional[PreprocessingOptions] = None,
    ) -> None:
        """
        Initialize the indexer.

        Args:
            generator: Embedding generator for chunk texts
            registry: Workspace vector stores
            batch_size: Chunks per provider call
            max_workers: Maximum concurrent provider calls
            preprocessing: Cleanup steps applied to document text before chunking
        """
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        if max_workers <= 0:
            raise ValueError(f"max_workers must be positive, got {max_workers}")
        self.generator = generator
        self.registry = registry
        self.batch_size = batch_size
        self.max_workers = max_workers
        self.preprocessing = preprocessing or DEFAULT_PREPROCESSING_OPTIONS
        self._workers = asyncio.Semaphore(max_workers)

    async def process_document_chunks(
        self,
        chunks: list[Chunk],
        workspace_id: str,
        atomic: bool = False,
    ) -> IndexingResult:
        """
        Embed and store a document's chunks batch by batch.

        A failing batch stops the document. The result reports how many
        chunks were indexed before the failure.

        Args:
            chunks: Chunks of a single document
            workspace_id: Target workspace
            atomic: Remove already stored chunks if a batch fails or the call
                is cancelled

        Returns:
            IndexingResult for the document
        """
        document_id = chunks[0].document_id if chunks else ""
        store = self.registry.get_or_create(workspace_id)
        stored_ids: list[str] = []

        try:
            for start in range(0, len(chunks), self.batch_size):
                batch = chunks[start : start + self.batch_size]
                async with self._workers:
                    vectors = await self.generator.generate_batch_embeddings([chunk.content for chunk in batch])
                stored_ids.extend(
                    store.add_documents(
                        (
                            chunk.content,
                            vector,
                            {**chunk.metadata, "document_id": chunk.document_id, "chunk_id": chunk.id},
                        )
                        for chunk, vector in zip(batch, vectors)
                    )
                )
        except RagCoreError as e:
            logger.warning(
                f"Indexing document {document_id} failed after {len(stored_ids)}/{len(chunks)} chunks: {e}"
            )
            indexed = len(stored_ids)
            if atomic:
                self._rollback(store, stored_ids)
            return IndexingResult(document_id, indexed, False, str(e), stored_ids)
        except BaseException:
            # Cancellation or an unexpected error
            if atomic:
                self._rollback(store, stored_ids)
            raise

        logger.debug(f"Indexed {len(stored_ids)} chunks of document {document_id} into {workspace_id}")
        return IndexingResult(document_id, len(stored_ids), True, None, stored_ids)

    def _rollback(self, store: VectorStore, stored_ids: list[str]) -> None:
        for stored_id in stored_ids:
            store.delete_document(stored_id)
        if stored_ids:
            logger.info(f"Removed {len(stored_ids)} partially indexed chunks from {store.workspace_id}")
        stored_ids.clear()

    async def index_document(
        self,
        document: Document,
        workspace_id: str,
        options: Optional[ChunkingOptions] = None,
    ) -> IndexingResult:
        """
        Clean, chunk and index one document.

        Content statistics and keywords are added to every chunk's metadata;
        the document's own metadata wins on conflicting keys. Indexing is all
        or nothing: a document that fails or is cancelled part way leaves no
        chunks behind.
        """
        content = preprocess_document_text(document.content, self.preprocessing, document.type)
        content_metadata = extract_content_metadata(content, document.type)
        metadata = {
            **content_metadata,
            **document.metadata,
            "title": document.title or content_metadata.get("extracted_title") or "Untitled",
            "type": document.type,
            "created_at": document.created_at.isoformat(),
        }
        chunks = chunk_document(document.id, content, options or DEFAULT_CHUNKING_OPTIONS, metadata)
        if not chunks:
            logger.info(f"Document {document.title!r} has no content to index")
            return IndexingResult(document.id, 0, True)

        return await self.process_document_chunks(chunks, workspace_id, atomic=True)

    async def process_documents(
        self,
        documents: list[Document],
        workspace_id: str,
        options: Optional[ChunkingOptions] = None,
        timeout: Optional[float] = None,
    ) -> BatchIngestionResult:
        """
        Index many documents concurrently, isolating failures.

        Args:
            documents: Documents to index
            workspace_id: Target workspace
            options: Chunking options (defaults if omitted)
            timeout: Seconds to wait before cancelling unfinished documents

        Returns:
            Succeeded and failed documents, each in input order. Documents
            cancelled by the timeout are reported as failed.
        """
        job = BatchIngestionResult()
        if not documents:
            return job

        tasks = [
            asyncio.create_task(self.index_document(document, workspace_id, options))
            for document in documents
        ]
        try:
            _, pending = await asyncio.wait(tasks, timeout=timeout)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

        for document, task in zip(documents, tasks):
            if task.cancelled():
                job.errors.append(IndexingResult(document.id, 0, False, f"Timed out after {timeout}s"))
            elif task.exception() is not None:
                error = task.exception()
                logger.error(f"Failed to index {document.title!r}: {error}")
                job.errors.append(IndexingResult(document.id, 0, False, str(error)))
            else:
                result = task.result()
                (job.succeeded if result.success else job.errors).append(result)

        logger.info(
            f"Ingested {len(job.succeeded)}/{job.total} documents "
            f"({job.chunk_count} chunks) into {workspace_id}"
        )
        return job

    def delete_document(self, document_id: str, workspace_id: str) -> int:
        """Remove every chunk of a document from a workspace. Returns the count."""
        store = self.registry.get(workspace_id)
        if store is None:
            return 0
        return store.delete_document_chunks(document_id)
