"""
Text cleanup applied before chunking, keyword scoring and query embedding.

Document side:
    - normalize_text: whitespace and control-character cleanup
    - strip_html, remove_boilerplate, expand_contractions: optional steps
      combined by preprocess_document_text

Query side:
    - preprocess_query: punctuation and whitespace cleanup, stop word removal
"""

import re
from dataclasses import dataclass
from typing import Optional

from bs4 import BeautifulSoup

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_HORIZONTAL_WS = re.compile(r"[ \t\u00a0]+")
_TRAILING_WS = re.compile(r" +\n")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_PUNCTUATION = re.compile(r"[.,/#!$%^&*;:{}=\-_`~()\[\]\"'?<>|\\+@]")
_WORD = re.compile(r"\w+")
_REPEATED_PUNCTUATION = re.compile(r"[?!.,;:]{2,}")

# Each pattern removes the first matching block, up to the next blank line
_BOILERPLATE = [
    re.compile(r"--+[\s\S]*?(?=\n\n|$)"),
    re.compile(r"disclaimer[\s\S]*?(?=\n\n|$)", re.IGNORECASE),
    re.compile(r"confidential[\s\S]*?(?=\n\n|$)", re.IGNORECASE),
    re.compile(r"copyright[\s\S]*?(?=\n\n|$)", re.IGNORECASE),
]
# Documents longer than this many lines lose their first and last two lines
HEADER_FOOTER_MIN_LINES = 10

CONTRACTIONS = {
    "ain't": "am not",
    "aren't": "are not",
    "can't": "cannot",
    "couldn't": "could not",
    "didn't": "did not",
    "doesn't": "does not",
    "don't": "do not",
    "hadn't": "had not",
    "hasn't": "has not",
    "haven't": "have not",
    "he'd": "he would",
    "he'll": "he will",
    "he's": "he is",
    "i'd": "I would",
    "i'll": "I will",
    "i'm": "I am",
    "i've": "I have",
    "isn't": "is not",
    "it's": "it is",
    "let's": "let us",
    "mightn't": "might not",
    "mustn't": "must not",
    "shan't": "shall not",
    "she'd": "she would",
    "she'll": "she will",
    "she's": "she is",
    "shouldn't": "should not",
    "that's": "that is",
    "there's": "there is",
    "they'd": "they would",
    "they'll": "they will",
    "they're": "they are",
    "they've": "they have",
    "we'd": "we would",
    "we're": "we are",
    "we've": "we have",
    "weren't": "were not",
    "what'll": "what will",
    "what're": "what are",
    "what's": "what is",
    "what've": "what have",
    "where's": "where is",
    "who'd": "who would",
    "who'll": "who will",
    "who're": "who are",
    "who's": "who is",
    "who've": "who have",
    "won't": "will not",
    "wouldn't": "would not",
    "you'd": "you would",
    "you'll": "you will",
    "you're": "you are",
    "you've": "you have",
}
_CONTRACTION = re.compile(
    r"\b(" + "|".join(re.escape(key) for key in sorted(CONTRACTIONS, key=len, reverse=True)) + r")\b",
    re.IGNORECASE,
)

QUERY_STOP_WORDS = frozenset(
    """
    a an the and or but is are was were be been being in on at to for with
    about against between into through during before after above below from
    up down of off over under again further then once here there when where
    why how all any both each few more most other some such no nor not only
    own same so than too very can will just should now
    """.split()
)
# Queries with more words than this have their stop words removed
STOP_WORD_MIN_QUERY_WORDS = 3


@dataclass
class PreprocessingOptions:
    """Optional cleanup steps applied to document text before chunking."""

    strip_html: Optional[bool] = None
    """Remove markup. None strips only documents whose type is html."""

    expand_contractions: bool = False
    remove_boilerplate: bool = False


DEFAULT_PREPROCESSING_OPTIONS = PreprocessingOptions()


def normalize_text(text: str) -> str:
    """
    Clean document text while keeping paragraph structure.

    Normalizes line endings, removes control characters, collapses runs of
    spaces and tabs, and reduces three or more newlines to a single blank
    line. Blank-line paragraph breaks survive so the paragraph and hybrid
    chunking strategies still see them.
    """
    if not text:
        return ""
    cleaned = text.replace("\r\n", "\n").replace("\r", "\n")
    cleaned = _CONTROL_CHARS.sub("", cleaned)
    cleaned = _HORIZONTAL_WS.sub(" ", cleaned)
    cleaned = _TRAILING_WS.sub("\n", cleaned)
    cleaned = _EXCESS_NEWLINES.sub("\n\n", cleaned)
    return cleaned.strip()


def normalize_for_search(text: str) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    normalized = _PUNCTUATION.sub(" ", text.lower())
    return " ".join(normalized.split())


def tokenize(text: str) -> list[str]:
    """Split text into lowercase word tokens."""
    return _WORD.findall(text.lower())


def strip_html(text: str) -> str:
    """Return the visible text of an HTML fragment, dropping scripts and styles."""
    soup = BeautifulSoup(text, "html.parser")
    for element in soup(["script", "style"]):
        element.decompose()
    return soup.get_text()


def remove_boilerplate(text: str) -> str:
    """
    Drop signature, disclaimer, confidentiality and copyright blocks.

    Long documents also lose their first and last two lines, which are
    usually running headers and footers.
    """
    cleaned = text
    for pattern in _BOILERPLATE:
        cleaned = pattern.sub("", cleaned, count=1)

    lines = cleaned.split("\n")
    if len(lines) > HEADER_FOOTER_MIN_LINES:
        cleaned = "\n".join(lines[2:-2])

    return cleaned.strip()


def expand_contractions(text: str) -> str:
    """Replace English contractions with their expanded form."""
    return _CONTRACTION.sub(lambda match: CONTRACTIONS[match.group(0).lower()], text)


def preprocess_document_text(
    text: str,
    options: PreprocessingOptions = DEFAULT_PREPROCESSING_OPTIONS,
    document_type: Optional[str] = None,
) -> str:
    """Apply the enabled cleanup steps, then normalize_text."""
    processed = text
    strip = options.strip_html if options.strip_html is not None else document_type in ("html", "htm")
    if strip:
        processed = strip_html(processed)
    if options.expand_contractions:
        processed = expand_contractions(processed)
    if options.remove_boilerplate:
        processed = remove_boilerplate(normalize_text(processed))
    return normalize_text(processed)


def preprocess_query(query: str) -> str:
    """
    Clean a query before expansion and embedding.

    Repeated punctuation collapses to its first character and whitespace to
    single spaces. Queries longer than three words lose their stop words,
    unless that would leave fewer than two words.
    """
    processed = _REPEATED_PUNCTUATION.sub(lambda match: match.group(0)[0], query.strip())
    processed = " ".join(processed.split())

    words = processed.split(" ")
    if len(words) <= STOP_WORD_MIN_QUERY_WORDS:
        return processed

    kept = [word for word in words if word.lower() not in QUERY_STOP_WORDS]
    if len(kept) < 2:
        return processed
    return " ".join(kept)
