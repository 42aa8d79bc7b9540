"""
Secondary relevance signals layered on top of vector similarity.

    - Scorer: pluggable interface, score(query, text) -> 0-100
    - KeywordScorer: share of query terms present in the text
    - hybrid_rescore: blend vector and keyword scores
    - rerank: reorder candidates with any Scorer without adding or dropping any
    - mmr_select: maximal marginal relevance diversification
"""

from dataclasses import replace
from typing import Protocol

import numpy as np
from numpy.typing import NDArray

from ragcore.retrieval.models import SearchResult
from ragcore.retrieval.preprocessing import normalize_for_search

MIN_TERM_LENGTH = 3


class Scorer(Protocol):
    """A relevance signal for a (query, candidate text) pair on a 0-100 scale."""

    def score(self, query: str, text: str) -> float: ...


def keyword_score(query: str, text: str) -> float:
    """
    Fraction (0-1) of the query's terms that occur in text.

    Terms shorter than three characters are ignored. Matching is substring
    based on lowercased, punctuation-free text.
    """
    terms = [term for term in normalize_for_search(query).split() if len(term) >= MIN_TERM_LENGTH]
    if not terms:
        return 0.0
    haystack = normalize_for_search(text)
    matches = sum(1 for term in terms if term in haystack)
    return matches / len(terms)


class KeywordScorer:
    """Keyword overlap scorer, the default reranking signal."""

    def score(self, query: str, text: str) -> float:
        return keyword_score(query, text) * 100.0


def hybrid_rescore(query: str, results: list[SearchResult], keyword_weight: float) -> list[SearchResult]:
    """
    Blend vector similarity with keyword overlap.

    combined = (1 - w) * vector_score + w * keyword_fraction * 100

    Returns:
        New results sorted by combined score, ties in input order
    """
    rescored = [
        replace(
            result,
            score=(1 - keyword_weight) * result.score + keyword_weight * keyword_score(query, result.text) * 100.0,
        )
        for result in results
    ]
    return sorted(rescored, key=lambda r: r.score, reverse=True)


def rerank(
    query: str,
    results: list[SearchResult],
    scorer: Scorer,
    weight: float,
    score_threshold: float,
) -> list[SearchResult]:
    """
    Reorder results using a secondary scorer.

    The new score is (1 - weight) * vector_score + weight * scorer_score,
    floored at score_threshold so no result falls below the cut it already
    passed. The output holds exactly the input results, reordered.
    """
    rescored = []
    for result in results:
        secondary = min(max(float(scorer.score(query, result.text)), 0.0), 100.0)
        combined = (1 - weight) * result.score + weight * secondary
        rescored.append(replace(result, score=max(score_threshold, combined)))
    return sorted(rescored, key=lambda r: r.score, reverse=True)


def mmr_select(
    candidates: list[SearchResult],
    embeddings: dict[str, NDArray[np.float32]],
    limit: int,
    lambda_mult: float = 0.7,
) -> list[SearchResult]:
    """
    Pick up to limit candidates balancing relevance against redundancy.

    Args:
        candidates: Results sorted by relevance
        embeddings: Unit-normalized vectors keyed by result id
        limit: Number of results to select
        lambda_mult: 1.0 is pure relevance, 0.0 pure diversity

    Returns:
        Selected results in selection order
    """
    selected: list[SearchResult] = []
    remaining = list(candidates)

    while remaining and len(selected) < limit:
        best_index = 0
        best_value = -np.inf
        for i, candidate in enumerate(remaining):
            vector = embeddings.get(candidate.id)
            redundancy = 0.0
            if vector is not None:
                redundancy = max(
                    (float(vector @ embeddings[s.id]) for s in selected if s.id in embeddings),
                    default=0.0,
                )
            value = lambda_mult * (candidate.score / 100.0) - (1 - lambda_mult) * redundancy
            if value > best_value:
                best_index, best_value = i, value
        selected.append(remaining.pop(best_index))

    return selected
