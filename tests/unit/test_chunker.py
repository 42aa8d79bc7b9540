"""Unit tests for retrieval.chunker module."""

import pytest

from ragcore.retrieval.chunker import (
    ChunkingOptions,
    _extract_section_headers,
    _nearest_header,
    chunk_document,
)
from ragcore.retrieval.models import Chunk


@pytest.mark.unit
class TestChunkingValidation:
    """Tests for option validation and empty input."""

    def test_empty_content_returns_no_chunks(self):
        """Empty content yields no chunks."""
        assert chunk_document("doc", "", ChunkingOptions()) == []

    def test_whitespace_content_returns_no_chunks(self):
        """Whitespace-only content yields no chunks."""
        assert chunk_document("doc", "  \n\n \t ", ChunkingOptions()) == []

    @pytest.mark.parametrize(
        "chunk_size,overlap",
        [(0, 0), (-10, 0), (100, -1), (100, 100), (100, 150)],
    )
    def test_invalid_sizes_raise(self, chunk_size, overlap):
        """Non-positive sizes and overlap not below size raise ValueError."""
        options = ChunkingOptions(strategy="paragraph", chunk_size=chunk_size, chunk_overlap=overlap)
        with pytest.raises(ValueError):
            chunk_document("doc", "some text", options)

    def test_unknown_strategy_raises(self):
        """Unknown strategies raise ValueError."""
        options = ChunkingOptions(strategy="semantic", chunk_size=100, chunk_overlap=0)  # type: ignore[arg-type]
        with pytest.raises(ValueError, match="Unknown chunking strategy"):
            chunk_document("doc", "some text", options)


@pytest.mark.unit
class TestParagraphStrategy:
    """Tests for paragraph chunking."""

    def test_small_paragraphs_form_one_chunk(self):
        """Three short paragraphs under chunk_size stay together, joined by blank lines."""
        options = ChunkingOptions(strategy="paragraph", chunk_size=100, chunk_overlap=0)
        chunks = chunk_document("doc", "A.\n\nB.\n\nC.", options)

        assert len(chunks) == 1
        assert chunks[0].content == "A.\n\nB.\n\nC."
        assert chunks[0].document_id == "doc"

    def test_buffer_emitted_before_overflow(self):
        """The buffer is emitted before a paragraph would overflow it."""
        p = "alpha beta gamma delta."
        content = "\n\n".join([p, p, p])
        options = ChunkingOptions(strategy="paragraph", chunk_size=50, chunk_overlap=0)
        chunks = chunk_document("doc", content, options)

        assert [c.content for c in chunks] == [f"{p}\n\n{p}", p]

    def test_overlap_seeds_next_chunk_with_trailing_words(self):
        """chunk_overlap // 5 words of the previous chunk start the next one."""
        content = "one two three four.\n\nfive six seven eight."
        options = ChunkingOptions(strategy="paragraph", chunk_size=25, chunk_overlap=10)
        chunks = chunk_document("doc", content, options)

        assert len(chunks) == 2
        assert chunks[0].content == "one two three four."
        assert chunks[1].content.startswith("three four.")
        assert chunks[1].content.endswith("five six seven eight.")
        assert chunks[1].metadata["start_offset"] == content.index("three")

    def test_overlap_below_one_word_adds_nothing(self):
        """Overlap under five characters carries no words."""
        content = "one two three four.\n\nfive six seven eight."
        options = ChunkingOptions(strategy="paragraph", chunk_size=25, chunk_overlap=4)
        chunks = chunk_document("doc", content, options)

        assert [c.content for c in chunks] == ["one two three four.", "five six seven eight."]

    def test_offsets_locate_chunk_in_content(self):
        """start_offset and end_offset slice the chunk out of the content."""
        paragraphs = [f"Paragraph number {i} has a few words." for i in range(8)]
        content = "\n\n".join(paragraphs)
        options = ChunkingOptions(strategy="paragraph", chunk_size=90, chunk_overlap=0)

        for chunk in chunk_document("doc", content, options):
            start, end = chunk.metadata["start_offset"], chunk.metadata["end_offset"]
            assert content[start:end] == chunk.content

    def test_custom_separator(self):
        """A custom separator replaces blank-line splitting."""
        options = ChunkingOptions(strategy="paragraph", chunk_size=12, chunk_overlap=0, separator="|")
        chunks = chunk_document("doc", "first part|second part", options)

        assert [c.content for c in chunks] == ["first part", "second part"]


@pytest.mark.unit
class TestSentenceStrategy:
    """Tests for sentence chunking."""

    def test_sentences_accumulate_and_keep_trailing_text(self):
        """Sentences pack up to chunk_size and unterminated text is kept."""
        content = "First one. Second one! Third one? trailing words"
        options = ChunkingOptions(strategy="sentence", chunk_size=25, chunk_overlap=0)
        chunks = chunk_document("doc", content, options)

        assert [c.content for c in chunks] == [
            "First one. Second one!",
            "Third one? trailing words",
        ]
        assert all(c.metadata["strategy"] == "sentence" for c in chunks)


@pytest.mark.unit
class TestFixedStrategy:
    """Tests for fixed-size chunking."""

    def test_windows_advance_by_size_minus_overlap(self):
        """Each window starts chunk_size - overlap after the previous one."""
        content = "abcdefghij" * 5 + "kl"  # 52 chars
        options = ChunkingOptions(strategy="fixed", chunk_size=20, chunk_overlap=5)
        chunks = chunk_document("doc", content, options)

        assert [c.content for c in chunks] == [content[0:20], content[15:35], content[30:50], content[45:52]]
        assert [c.metadata["start_offset"] for c in chunks] == [0, 15, 30, 45]
        assert chunks[-1].metadata["end_offset"] == 52

    def test_tail_window_emitted_after_reaching_end(self):
        """Sliding continues past the first window that touches the end of the content."""
        options = ChunkingOptions(strategy="fixed", chunk_size=4, chunk_overlap=2)
        chunks = chunk_document("doc", "abcdefghij", options)

        assert [c.metadata["start_offset"] for c in chunks] == [0, 2, 4, 6, 8]
        assert [c.content for c in chunks] == ["abcd", "cdef", "efgh", "ghij", "ij"]

    def test_whitespace_windows_dropped(self):
        """Windows of only whitespace are skipped."""
        content = "a" + " " * 30 + "b"
        options = ChunkingOptions(strategy="fixed", chunk_size=10, chunk_overlap=0)
        chunks = chunk_document("doc", content, options)

        assert len(chunks) == 2
        assert [c.metadata["chunk_index"] for c in chunks] == [0, 1]
        assert chunks[1].content.strip() == "b"


@pytest.mark.unit
class TestHybridStrategy:
    """Tests for hybrid chunking."""

    def test_short_paragraphs_grouped(self):
        """Short paragraphs form one hybrid-paragraph chunk."""
        content = "Short one.\n\nShort two.\n\nShort three."
        options = ChunkingOptions(strategy="hybrid", chunk_size=100, chunk_overlap=0)
        chunks = chunk_document("doc", content, options)

        assert len(chunks) == 1
        assert chunks[0].content == content
        assert chunks[0].metadata["strategy"] == "hybrid"
        assert chunks[0].metadata["chunking_method"] == "hybrid-paragraph"

    def test_oversized_paragraph_split_by_sentence(self):
        """Oversized paragraph groups fall back to sentences."""
        long_paragraph = " ".join(f"Sentence number {i} is here." for i in range(10))
        content = f"Intro paragraph.\n\n{long_paragraph}"
        options = ChunkingOptions(strategy="hybrid", chunk_size=80, chunk_overlap=0)
        chunks = chunk_document("doc", content, options)

        methods = {c.metadata["chunking_method"] for c in chunks}
        assert methods == {"hybrid-paragraph", "hybrid-sentence"}
        assert all(len(c.content) <= 80 for c in chunks)

    def test_oversized_sentence_hard_split(self):
        """A sentence longer than chunk_size is hard-split."""
        content = "word " * 100
        options = ChunkingOptions(strategy="hybrid", chunk_size=50, chunk_overlap=10)
        chunks = chunk_document("doc", content.strip(), options)

        assert len(chunks) > 1
        assert all(len(c.content) <= 50 for c in chunks)
        assert all(c.metadata["chunking_method"] == "hybrid-split" for c in chunks)

    def test_hard_split_offsets_match_source(self):
        """Hard-split parts map back to the document even when sentences were separated by extra spaces."""
        content = "Short intro line.   " + " ".join(["word"] * 40)
        options = ChunkingOptions(strategy="hybrid", chunk_size=50, chunk_overlap=10)
        chunks = chunk_document("doc", content, options)

        split = [c for c in chunks if c.metadata.get("chunking_method") == "hybrid-split"]
        assert split
        for chunk in split:
            start, end = chunk.metadata["start_offset"], chunk.metadata["end_offset"]
            assert content[start:end] == chunk.content
            assert len(chunk.content) <= 50


@pytest.mark.unit
class TestChunkMetadata:
    """Tests for metadata carried by every chunk."""

    def test_indices_contiguous_and_metadata_inherited(self):
        """chunk_index counts from zero and caller metadata is copied."""
        content = "\n\n".join(f"Paragraph {i} with some text in it." for i in range(10))
        options = ChunkingOptions(strategy="paragraph", chunk_size=80, chunk_overlap=0)
        chunks = chunk_document("doc", content, options, metadata={"title": "Doc", "lang": "en"})

        assert all(isinstance(c, Chunk) for c in chunks)
        assert [c.metadata["chunk_index"] for c in chunks] == list(range(len(chunks)))
        assert all(c.metadata["title"] == "Doc" and c.metadata["lang"] == "en" for c in chunks)
        assert len({c.id for c in chunks}) == len(chunks)

    def test_chunk_fields_override_caller_metadata(self):
        """Chunk fields win over caller metadata with the same key."""
        chunks = chunk_document("doc", "Hello.", ChunkingOptions(), metadata={"chunk_index": 99})
        assert chunks[0].metadata["chunk_index"] == 0

    @pytest.mark.parametrize("strategy", ["fixed", "paragraph", "sentence", "hybrid"])
    def test_no_content_lost_and_no_empty_chunks(self, strategy):
        """Every word of the document lands in some chunk; no chunk is blank."""
        paragraphs = [" ".join(f"w{p}x{i}." for i in range(12)) for p in range(6)]
        content = "\n\n".join(paragraphs)
        options = ChunkingOptions(strategy=strategy, chunk_size=60, chunk_overlap=10)
        chunks = chunk_document("doc", content, options)

        assert all(c.content.strip() for c in chunks)
        joined = " ".join(c.content for c in chunks)
        for word in content.split():
            assert word.rstrip(".") in joined

    def test_section_header_attached_for_markdown(self):
        """Chunks carry the nearest preceding markdown header."""
        content = "# Intro\n\nWelcome text.\n\n## Details\n\nDetail text here."
        options = ChunkingOptions(strategy="paragraph", chunk_size=12, chunk_overlap=0)
        chunks = chunk_document("doc", content, options)

        by_content = {c.content: c for c in chunks}
        assert by_content["Welcome text."].metadata["section_header"] == "Intro"
        assert by_content["Detail text here."].metadata["section_header"] == "Details"


@pytest.mark.unit
class TestSectionHeaders:
    """Tests for markdown header helpers."""

    def test_extract_section_headers(self):
        """Headers of every level are found in order."""
        text = "# Title\n\nBody\n\n### Sub section\n"
        headers = _extract_section_headers(text)
        assert list(headers.values()) == ["Title", "Sub section"]

    def test_nearest_header(self):
        """The last header at or before a position is chosen."""
        headers = {0: "Title", 20: "Second"}
        assert _nearest_header(10, headers) == "Title"
        assert _nearest_header(25, headers) == "Second"
        assert _nearest_header(0, {5: "Later"}) == ""
