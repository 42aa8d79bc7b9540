"""
Deterministic query expansion from a curated table of related terms.
"""

MAX_EXPANSION_TERMS = 2

QUERY_EXPANSIONS: dict[str, list[str]] = {
    "weather": ["forecast", "temperature", "humidity", "precipitation"],
    "stock": ["market", "price", "trading", "shares", "investment"],
    "code": ["programming", "development", "software", "algorithm"],
    "book": ["novel", "author", "reading", "publication"],
    "movie": ["film", "director", "actor", "cinema"],
    "food": ["recipe", "cooking", "ingredient", "meal"],
}


def expand_query(query: str, expansions: dict[str, list[str]] = QUERY_EXPANSIONS) -> str:
    """
    Append related terms for the first matching table entry.

    The lowercased query is checked for each table key in order. For the
    first key found, up to two of its terms are considered and any already
    in the query are skipped. A query with no match comes back unchanged.

    Example:
        >>> expand_query("weather in Paris")
        'weather in Paris forecast temperature'
    """
    lowered = query.lower()
    for key, terms in expansions.items():
        if key not in lowered:
            continue
        extra = [term for term in terms[:MAX_EXPANSION_TERMS] if term not in lowered]
        if not extra:
            return query
        return f"{query} {' '.join(extra)}"
    return query
