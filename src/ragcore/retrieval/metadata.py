"""
Content statistics and keywords extracted from a document's text.

The result is merged into every chunk's metadata at ingestion time so
callers can filter or display results by them.
"""

from collections import Counter
from typing import Any, Optional

from ragcore.retrieval.chunker import HEADER
from ragcore.retrieval.preprocessing import tokenize

KEYWORD_STOP_WORDS = frozenset(
    """
    a an the and or but is are was were in on at to for with by about as of
    from this that these those it its they them their we us our you your he
    him his she her hers i me my mine be been being have has had do does did
    will would shall should can could may might must ought
    """.split()
)
MAX_KEYWORDS = 10
MIN_KEYWORD_LENGTH = 3
# A plain-text first line longer than this is not treated as a title
MAX_TITLE_LENGTH = 100


def extract_keywords(text: str, max_keywords: int = MAX_KEYWORDS) -> list[str]:
    """Most frequent non-stop-word tokens, ties broken by first appearance."""
    counts = Counter(
        token
        for token in tokenize(text)
        if len(token) >= MIN_KEYWORD_LENGTH and token not in KEYWORD_STOP_WORDS
    )
    return [word for word, _ in counts.most_common(max_keywords)]


def extract_title(text: str, document_type: Optional[str] = None) -> Optional[str]:
    """First markdown heading, or for plain text a short first line."""
    if document_type in ("md", "markdown"):
        match = HEADER.search(text)
        return match.group(2).strip() if match else None
    if document_type == "txt":
        first_line = text.split("\n", 1)[0].strip()
        if 0 < len(first_line) <= MAX_TITLE_LENGTH:
            return first_line
    return None


def extract_content_metadata(text: str, document_type: Optional[str] = None) -> dict[str, Any]:
    """
    Describe a document's content.

    Returns:
        char_count, word_count, line_count and keywords, plus
        extracted_title when one can be found
    """
    metadata: dict[str, Any] = {
        "char_count": len(text),
        "word_count": len(text.split()),
        "line_count": len(text.split("\n")) if text else 0,
        "keywords": extract_keywords(text),
    }
    title = extract_title(text, document_type)
    if title:
        metadata["extracted_title"] = title
    return metadata
