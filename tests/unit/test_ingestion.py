"""Unit tests for retrieval.ingestion module."""

import asyncio

import pytest

from ragcore.retrieval.chunker import ChunkingOptions
from ragcore.retrieval.embeddings import EmbeddingGenerator
from ragcore.retrieval.ingestion import DocumentIndexer
from ragcore.retrieval.models import Chunk, Document
from ragcore.retrieval.preprocessing import PreprocessingOptions
from ragcore.retrieval.vector_store import VectorStoreRegistry


def make_indexer(provider, batch_size: int = 10, max_workers: int = 4, preprocessing=None) -> DocumentIndexer:
    return DocumentIndexer(
        EmbeddingGenerator(provider),
        VectorStoreRegistry(embedding_dimensions=384),
        batch_size=batch_size,
        max_workers=max_workers,
        preprocessing=preprocessing,
    )


def make_chunks(count: int, document_id: str = "doc-1", marker: dict[int, str] | None = None) -> list[Chunk]:
    marker = marker or {}
    return [
        Chunk(document_id=document_id, content=f"chunk number {i} {marker.get(i, '')}".strip(), metadata={"chunk_index": i})
        for i in range(count)
    ]


@pytest.mark.unit
class TestDocumentIndexerInit:
    """Tests for DocumentIndexer construction."""

    @pytest.mark.parametrize("batch_size,max_workers", [(0, 4), (10, 0), (-1, 1)])
    def test_invalid_sizes(self, fake_provider, batch_size, max_workers):
        """batch_size and max_workers must be positive."""
        with pytest.raises(ValueError):
            make_indexer(fake_provider, batch_size, max_workers)


@pytest.mark.unit
class TestProcessDocumentChunks:
    """Tests for batch embedding and storage of one document's chunks."""

    @pytest.mark.asyncio
    async def test_batches_of_batch_size(self, fake_provider):
        """Chunks are embedded batch_size at a time."""
        indexer = make_indexer(fake_provider, batch_size=10)

        result = await indexer.process_document_chunks(make_chunks(25), "default")

        assert [len(texts) for texts, _ in fake_provider.calls] == [10, 10, 5]
        assert result.success is True
        assert result.chunk_count == 25
        assert len(result.chunk_ids) == 25
        assert indexer.registry.get("default").size == 25

    @pytest.mark.asyncio
    async def test_stored_metadata(self, fake_provider):
        """Stored records carry chunk metadata plus document and chunk ids."""
        indexer = make_indexer(fake_provider)
        chunks = make_chunks(2)

        result = await indexer.process_document_chunks(chunks, "default")

        record = indexer.registry.get("default").get(result.chunk_ids[1])
        assert record.text == chunks[1].content
        assert record.metadata == {"chunk_index": 1, "document_id": "doc-1", "chunk_id": chunks[1].id}

    @pytest.mark.asyncio
    async def test_failure_reports_progress(self, make_provider):
        """A failing batch stops the document and reports chunks already stored."""
        provider = make_provider(fail_on="boom")
        indexer = make_indexer(provider, batch_size=10)

        result = await indexer.process_document_chunks(make_chunks(25, marker={15: "boom"}), "default")

        assert result.success is False
        assert result.chunk_count == 10
        assert "Simulated provider outage" in result.error
        assert indexer.registry.get("default").size == 10

    @pytest.mark.asyncio
    async def test_atomic_failure_rolls_back(self, make_provider):
        """Atomic indexing removes stored chunks after a failure."""
        indexer = make_indexer(make_provider(fail_on="boom"), batch_size=10)

        result = await indexer.process_document_chunks(
            make_chunks(25, marker={15: "boom"}), "default", atomic=True
        )

        assert result.success is False
        assert result.chunk_count == 10
        assert result.chunk_ids == []
        assert indexer.registry.get("default").size == 0

    @pytest.mark.asyncio
    async def test_atomic_cancel_rolls_back(self, make_provider):
        """Atomic indexing removes stored chunks when cancelled."""
        indexer = make_indexer(make_provider(hang_on="slow"), batch_size=1)
        chunks = make_chunks(3, marker={1: "slow"})

        task = asyncio.create_task(indexer.process_document_chunks(chunks, "default", atomic=True))
        for _ in range(20):
            await asyncio.sleep(0.01)
            if indexer.registry.get("default").size == 1:
                break
        assert indexer.registry.get("default").size == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert indexer.registry.get("default").size == 0

    @pytest.mark.asyncio
    async def test_other_documents_untouched_by_rollback(self, make_provider, embed):
        """Rollback removes only the failed document's chunks."""
        indexer = make_indexer(make_provider(fail_on="boom"), batch_size=1)
        store = indexer.registry.get_or_create("default")
        existing = store.add_document("existing", embed("existing"), {"document_id": "other"})

        await indexer.process_document_chunks(make_chunks(3, marker={2: "boom"}), "default", atomic=True)

        assert store.size == 1
        assert store.get(existing) is not None


@pytest.mark.unit
class TestIndexDocument:
    """Tests for DocumentIndexer.index_document."""

    @pytest.mark.asyncio
    async def test_chunks_carry_document_metadata(self, fake_provider):
        """Title, type, creation time and caller metadata reach every chunk."""
        indexer = make_indexer(fake_provider)
        document = Document(title="Guide", content="First part.\n\nSecond part.", type="md", metadata={"lang": "en"})
        options = ChunkingOptions(strategy="paragraph", chunk_size=12, chunk_overlap=0)

        result = await indexer.index_document(document, "default", options)

        assert result.success is True
        assert result.chunk_count == 2
        store = indexer.registry.get("default")
        record = store.get(result.chunk_ids[0])
        assert record.metadata["title"] == "Guide"
        assert record.metadata["type"] == "md"
        assert record.metadata["lang"] == "en"
        assert record.metadata["document_id"] == document.id
        assert record.metadata["created_at"] == document.created_at.isoformat()
        assert record.metadata["strategy"] == "paragraph"

    @pytest.mark.asyncio
    async def test_content_normalized_before_chunking(self, fake_provider):
        """Whitespace is normalized before chunking."""
        indexer = make_indexer(fake_provider)
        document = Document(title="Messy", content="Hello\r\n\r\n\r\n\r\nworld\t\t again  ")

        await indexer.index_document(document, "default", ChunkingOptions(chunk_size=100, chunk_overlap=0))

        assert fake_provider.embedded_texts == ["Hello\n\nworld again"]

    @pytest.mark.asyncio
    async def test_html_documents_stripped(self, fake_provider):
        """Markup is removed from html documents before embedding."""
        indexer = make_indexer(fake_provider)
        document = Document(title="Page", content="<p>Hello <b>world</b></p>", type="html")

        await indexer.index_document(document, "default", ChunkingOptions(chunk_size=100, chunk_overlap=0))

        assert fake_provider.embedded_texts == ["Hello world"]

    @pytest.mark.asyncio
    async def test_configured_cleanup_applied(self, fake_provider):
        """Cleanup steps enabled on the indexer run on every document."""
        indexer = make_indexer(fake_provider, preprocessing=PreprocessingOptions(expand_contractions=True))
        document = Document(title="Note", content="It's here.")

        await indexer.index_document(document, "default", ChunkingOptions(chunk_size=100, chunk_overlap=0))

        assert fake_provider.embedded_texts == ["It is here."]

    @pytest.mark.asyncio
    async def test_content_metadata_on_chunks(self, fake_provider):
        """Counts, keywords and an extracted title reach every chunk."""
        indexer = make_indexer(fake_provider)
        document = Document(title="", content="# Setup Guide\n\nInstall the package.", type="md")

        result = await indexer.index_document(document, "default", ChunkingOptions(chunk_size=100, chunk_overlap=0))

        record = indexer.registry.get("default").get(result.chunk_ids[0])
        assert record.metadata["char_count"] == 35
        assert record.metadata["word_count"] == 6
        assert record.metadata["line_count"] == 3
        assert record.metadata["keywords"] == ["setup", "guide", "install", "package"]
        assert record.metadata["title"] == "Setup Guide"

    @pytest.mark.asyncio
    async def test_document_metadata_wins_over_extracted(self, fake_provider):
        """Caller-supplied metadata and title override extracted values."""
        indexer = make_indexer(fake_provider)
        document = Document(
            title="Manual", content="# Setup Guide\n\nInstall the package.", type="md", metadata={"keywords": ["custom"]}
        )

        result = await indexer.index_document(document, "default", ChunkingOptions(chunk_size=100, chunk_overlap=0))

        record = indexer.registry.get("default").get(result.chunk_ids[0])
        assert record.metadata["keywords"] == ["custom"]
        assert record.metadata["title"] == "Manual"
        assert record.metadata["extracted_title"] == "Setup Guide"

    @pytest.mark.asyncio
    async def test_empty_document(self, fake_provider):
        """A document without content succeeds with no chunks."""
        indexer = make_indexer(fake_provider)

        result = await indexer.index_document(Document(title="Empty", content="  \n "), "default")

        assert result.success is True
        assert result.chunk_count == 0
        assert fake_provider.calls == []


@pytest.mark.unit
class TestProcessDocuments:
    """Tests for concurrent multi-document ingestion."""

    @pytest.mark.asyncio
    async def test_all_succeed_in_input_order(self, fake_provider):
        """Succeeded documents are listed in input order."""
        indexer = make_indexer(fake_provider)
        documents = [Document(title=f"Doc {i}", content=f"Document body number {i}.") for i in range(5)]

        job = await indexer.process_documents(documents, "default")

        assert job.total == 5
        assert job.errors == []
        assert [r.document_id for r in job.succeeded] == [d.id for d in documents]
        assert job.chunk_count == 5

    @pytest.mark.asyncio
    async def test_empty_job(self, fake_provider):
        """An empty job does nothing."""
        job = await make_indexer(fake_provider).process_documents([], "default")
        assert job.total == 0

    @pytest.mark.asyncio
    async def test_failure_isolated(self, make_provider):
        """One failing document does not stop the others."""
        indexer = make_indexer(make_provider(fail_on="boom"))
        documents = [
            Document(title="Good 1", content="All fine here."),
            Document(title="Bad", content="This one goes boom."),
            Document(title="Good 2", content="Also fine."),
        ]

        job = await indexer.process_documents(documents, "default")

        assert [r.document_id for r in job.succeeded] == [documents[0].id, documents[2].id]
        assert len(job.errors) == 1
        assert job.errors[0].document_id == documents[1].id
        assert "Simulated provider outage" in job.errors[0].error
        assert indexer.registry.get("default").size == 2

    @pytest.mark.asyncio
    async def test_timeout_cancels_unfinished(self, make_provider):
        """Unfinished documents are cancelled and reported at the timeout."""
        indexer = make_indexer(make_provider(hang_on="slow"))
        documents = [
            Document(title="Quick", content="Quick document."),
            Document(title="Stuck", content="A slow document."),
        ]

        job = await indexer.process_documents(documents, "default", timeout=0.2)

        assert [r.document_id for r in job.succeeded] == [documents[0].id]
        assert job.errors[0].document_id == documents[1].id
        assert job.errors[0].error == "Timed out after 0.2s"
        assert indexer.registry.get("default").size == 1

    @pytest.mark.asyncio
    async def test_worker_pool_bounds_concurrency(self, make_provider):
        """Provider calls never exceed max_workers at once."""
        provider = make_provider(delay=0.02)
        indexer = make_indexer(provider, batch_size=1, max_workers=2)
        documents = [Document(title=f"Doc {i}", content=f"Body {i}.\n\nMore {i}.") for i in range(6)]

        job = await indexer.process_documents(
            documents, "default", ChunkingOptions(strategy="paragraph", chunk_size=8, chunk_overlap=0)
        )

        assert job.errors == []
        assert len(provider.calls) == 12
        assert provider.max_in_flight <= 2


@pytest.mark.unit
class TestDeleteDocument:
    """Tests for DocumentIndexer.delete_document."""

    @pytest.mark.asyncio
    async def test_delete_removes_all_chunks(self, fake_provider):
        """delete_document removes every chunk of a document."""
        indexer = make_indexer(fake_provider)
        document = Document(title="Guide", content="First part.\n\nSecond part.")
        keep = Document(title="Keep", content="Keep me.")
        options = ChunkingOptions(strategy="paragraph", chunk_size=12, chunk_overlap=0)
        await indexer.index_document(document, "default", options)
        await indexer.index_document(keep, "default", options)

        assert indexer.delete_document(document.id, "default") == 2
        assert indexer.delete_document(document.id, "default") == 0
        assert indexer.registry.get("default").size == 1

    def test_unknown_workspace(self, fake_provider):
        """Deleting from an unknown workspace removes nothing."""
        assert make_indexer(fake_provider).delete_document("doc", "missing") == 0
