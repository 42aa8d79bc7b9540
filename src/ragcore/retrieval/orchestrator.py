"""
Query-time retrieval pipeline.

Pipeline for one request:
    1. Query cleanup and expansion (curated table lookup)
    2. Embed the (possibly expanded) query
    3. Search every requested workspace, merge, deduplicate, rank
    4. Strategy step: plain semantic, hybrid keyword blend, or MMR
    5. Optional reranking with a pluggable Scorer
    6. Context assembly and citations

The orchestrator keeps no state between calls other than its settings,
which can be swapped at any time with update_settings().
"""

import logging
import threading
import time
from typing import Any, Optional

from pydantic import ValidationError

from ragcore.config import RetrievalSettings
from ragcore.exceptions import InvalidConfiguration
from ragcore.retrieval.chunker import ChunkingOptions
from ragcore.retrieval.context import build_context, generate_citations
from ragcore.retrieval.embedding_models import get_model
from ragcore.retrieval.embeddings import EmbeddingGenerator
from ragcore.retrieval.models import EmbeddingVector, RetrievalRequest, RetrievalResponse, SearchResult
from ragcore.retrieval.preprocessing import preprocess_query
from ragcore.retrieval.query_expansion import expand_query
from ragcore.retrieval.scoring import KeywordScorer, Scorer, hybrid_rescore, mmr_select, rerank
from ragcore.retrieval.vector_store import VectorStore, VectorStoreRegistry

logger = logging.getLogger(__name__)

RETRIEVER_STRATEGIES = ("semantic", "hybrid", "mmr", "reranking")
MIN_CANDIDATES = 20
CANDIDATE_MULTIPLIER = 3
HYBRID_THRESHOLD_SLACK = 10.0


class RetrievalOrchestrator:
    """
    Run retrieval requests against a set of workspace vector stores.

    Example:
        >>> orchestrator = RetrievalOrchestrator(generator, registry)
        >>> response = await orchestrator.retrieve_documents(RetrievalRequest(query="weather in Paris"))
        >>> print(response.context)
    """

    def __init__(
        self,
        generator: EmbeddingGenerator,
        registry: VectorStoreRegistry,
        settings: Optional[RetrievalSettings] = None,
        scorer: Optional[Scorer] = None,
        keyword_weight: float = 0.3,
        mmr_lambda: float = 0.7,
        max_context_length: Optional[int] = None,
        default_workspace: str = "default",
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            generator: Embedding generator for queries
            registry: Workspace vector stores
            settings: Initial retrieval knobs (defaults if omitted)
            scorer: Secondary scorer used for reranking
            keyword_weight: Weight of keyword/scorer signal in hybrid and rerank scores
            mmr_lambda: Relevance/diversity trade-off for MMR
            max_context_length: Character budget for assembled context
            default_workspace: Workspace searched when a request names none
        """
        self.generator = generator
        self.registry = registry
        self.scorer: Scorer = scorer or KeywordScorer()
        self.keyword_weight = keyword_weight
        self.mmr_lambda = mmr_lambda
        self.max_context_length = max_context_length
        self.default_workspace = default_workspace
        self._settings_lock = threading.Lock()
        self._settings = settings or RetrievalSettings(embedding_model=generator.model_id)
        if self._settings.embedding_model != generator.model_id:
            self._apply_model(self._settings.embedding_model)

    @property
    def settings(self) -> RetrievalSettings:
        """Current retrieval knobs."""
        return self._settings

    def update_settings(self, **changes: Any) -> RetrievalSettings:
        """
        Hot-swap retrieval knobs between calls.

        All changes are validated together and applied only if every one is
        valid. Switching embedding_model retargets the generator and the
        dimensionality of newly created workspace stores.

        Raises:
            InvalidConfiguration: On unknown keys, invalid values or an
                unknown embedding model
        """
        unknown = set(changes) - set(RetrievalSettings.model_fields)
        if unknown:
            raise InvalidConfiguration(f"Unknown retrieval settings: {', '.join(sorted(unknown))}")

        with self._settings_lock:
            try:
                updated = RetrievalSettings.model_validate({**self._settings.model_dump(), **changes})
            except ValidationError as e:
                raise InvalidConfiguration(str(e)) from e

            if updated.embedding_model != self._settings.embedding_model:
                self._apply_model(updated.embedding_model)
            self._settings = updated

        logger.info(f"Retrieval settings updated: {', '.join(sorted(changes))}")
        return updated

    def _apply_model(self, model_id: str) -> None:
        model = get_model(model_id)
        self.generator.set_model(model.id)
        self.registry.embedding_dimensions = model.dimensions

    def chunking_options(self) -> ChunkingOptions:
        """Chunking options derived from the current settings."""
        current = self._settings
        return ChunkingOptions(
            strategy=current.chunking_strategy,
            chunk_size=current.chunk_size,
            chunk_overlap=current.chunk_overlap,
        )

    async def retrieve_documents(self, request: RetrievalRequest) -> RetrievalResponse:
        """
        Retrieve ranked results, context and citations for a query.

        Request fields left as None fall back to the current settings.
        Workspaces that do not exist contribute no results.

        Raises:
            ValueError: If the query is empty
            InvalidConfiguration: If the retriever strategy is unknown
            ProviderFailure: If the query cannot be embedded
            DimensionMismatch: If a workspace holds vectors of another model
        """
        start_time = time.perf_counter()
        current = self._settings

        query = preprocess_query(request.query)
        if not query:
            raise ValueError("Query must not be empty")

        top_k = request.top_k if request.top_k is not None else current.top_k
        if top_k < 1:
            raise ValueError(f"top_k must be at least 1, got {top_k}")
        threshold = (
            request.similarity_threshold
            if request.similarity_threshold is not None
            else current.similarity_threshold
        )
        strategy = request.retriever_strategy or current.retriever_strategy
        if strategy not in RETRIEVER_STRATEGIES:
            raise InvalidConfiguration(f"Unknown retriever strategy: {strategy}")
        use_expansion = (
            request.use_query_expansion if request.use_query_expansion is not None else current.use_query_expansion
        )
        use_reranking = request.use_reranking if request.use_reranking is not None else current.use_reranking

        # Step 1: query expansion on the cleaned query
        if query != request.query:
            logger.debug(f"Preprocessed query: {request.query!r} -> {query!r}")
        query_used = expand_query(query) if use_expansion else query
        if query_used != query:
            logger.debug(f"Expanded query: {query!r} -> {query_used!r}")

        # Step 2: embed
        embedding = await self.generator.generate_embedding(query_used)

        # Step 3: candidate retrieval
        stores = self._resolve_stores(request.workspace_ids)
        fetch_limit = top_k
        fetch_threshold = threshold
        if strategy in ("hybrid", "mmr"):
            fetch_limit = max(top_k * CANDIDATE_MULTIPLIER, MIN_CANDIDATES)
        if strategy == "hybrid":
            fetch_threshold = max(threshold - HYBRID_THRESHOLD_SLACK, 0.0)

        candidates = self._search_all(stores, embedding, fetch_limit, fetch_threshold, request.filters)

        # Step 4: strategy
        if strategy == "hybrid":
            blended = hybrid_rescore(query, candidates, self.keyword_weight)
            candidates = [result for result in blended if result.score >= threshold]
        elif strategy == "mmr":
            embeddings = {}
            for store in stores:
                embeddings.update(store.get_embeddings(result.id for result in candidates))
            candidates = mmr_select(candidates, embeddings, top_k, self.mmr_lambda)

        results = candidates[:top_k]

        # Step 5: reranking
        if use_reranking or strategy == "reranking":
            results = rerank(query, results, self.scorer, self.keyword_weight, threshold)

        # Step 6: context and citations
        context = build_context(results, self.max_context_length, current.include_metadata)
        citations = generate_citations(results)

        execution_time_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"Retrieved {len(results)} results from {len(stores)} workspace(s) "
            f"with {strategy} strategy in {execution_time_ms:.1f}ms"
        )

        return RetrievalResponse(
            query=request.query,
            query_used=query_used,
            results=results,
            execution_time_ms=execution_time_ms,
            context=context,
            citations=citations,
            expanded_query=query_used if query_used != query else None,
        )

    def _resolve_stores(self, workspace_ids: Optional[list[str]]) -> list[VectorStore]:
        stores = []
        for workspace_id in dict.fromkeys(workspace_ids or [self.default_workspace]):
            store = self.registry.get(workspace_id)
            if store is None:
                logger.debug(f"Workspace {workspace_id} has no documents, skipping")
                continue
            stores.append(store)
        return stores

    def _search_all(
        self,
        stores: list[VectorStore],
        embedding: EmbeddingVector,
        limit: int,
        threshold: float,
        filters: Optional[dict[str, Any]],
    ) -> list[SearchResult]:
        """Search each store and merge into one ranked, duplicate-free list."""
        merged: list[SearchResult] = []
        seen: set[str] = set()
        for store in stores:
            for result in store.search(embedding, limit=limit, score_threshold=threshold, filters=filters):
                if result.id in seen:
                    continue
                seen.add(result.id)
                result.metadata.setdefault("workspace_id", store.workspace_id)
                merged.append(result)
        merged.sort(key=lambda r: r.score, reverse=True)
        return merged[:limit]
