"""
Context assembly and citation generation for retrieved results.

Each result becomes a block:

    [Source: <title> (<tier>, <score>% match)]
    <text>

and blocks are joined with a horizontal-rule separator. Citations number the
results scoring above 60.
"""

from typing import Optional

from ragcore.retrieval.models import Citation, SearchResult

CONTEXT_SEPARATOR = "\n\n---\n\n"
NO_CONTEXT = "No relevant context found."
CITATION_MIN_SCORE = 60.0

# (minimum score, label), checked top down
RELEVANCE_TIERS: tuple[tuple[float, str], ...] = (
    (90.0, "Highly Relevant"),
    (75.0, "Relevant"),
    (60.0, "Somewhat Relevant"),
)
LOW_RELEVANCE = "Low Relevance"

METADATA_FIELDS = ("source", "section_header", "type", "created_at")


def relevance_tier(score: float) -> str:
    """Map a 0-100 score to its fixed relevance label."""
    for minimum, label in RELEVANCE_TIERS:
        if score >= minimum:
            return label
    return LOW_RELEVANCE


def format_result(result: SearchResult, include_metadata: bool = False) -> str:
    """Render one result as a labelled context block."""
    header = f"[Source: {result.title} ({relevance_tier(result.score)}, {result.score:.1f}% match)]"
    if include_metadata:
        details = [
            f"{key}: {result.metadata[key]}"
            for key in METADATA_FIELDS
            if result.metadata.get(key) not in (None, "")
        ]
        if details:
            header = f"{header}\n({' | '.join(details)})"
    return f"{header}\n{result.text}"


def build_context(
    results: list[SearchResult],
    max_length: Optional[int] = None,
    include_metadata: bool = False,
) -> str:
    """
    Join result blocks in ranked order.

    With max_length set, a block that would push the context past the limit
    is skipped and later, shorter blocks may still fit. If even the first
    block is too long, it is truncated to max_length.
    """
    if not results:
        return NO_CONTEXT

    blocks = [format_result(result, include_metadata) for result in results]
    if max_length is None:
        return CONTEXT_SEPARATOR.join(blocks)

    parts: list[str] = []
    length = 0
    for block in blocks:
        added = len(block) + (len(CONTEXT_SEPARATOR) if parts else 0)
        if length + added > max_length:
            if not parts:
                parts.append(block[:max_length])
                length = max_length
            continue
        parts.append(block)
        length += added

    return CONTEXT_SEPARATOR.join(parts)


def generate_citations(results: list[SearchResult]) -> list[Citation]:
    """Number the results scoring above 60, starting from 1."""
    cited = [result for result in results if result.score > CITATION_MIN_SCORE]
    return [
        Citation(
            index=number,
            result_id=result.id,
            title=result.title,
            source=result.source,
            score=result.score,
        )
        for number, result in enumerate(cited, start=1)
    ]


def format_citations(citations: list[Citation]) -> str:
    """Render a Sources block, or an empty string when nothing is cited."""
    if not citations:
        return ""
    return "Sources:\n" + "\n".join(str(citation) for citation in citations)
