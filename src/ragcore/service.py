"""
RetrievalService: the explicit owner of every pipeline resource.

One service holds the embedding cache, the provider client, the embedding
generator, the workspace store registry, the orchestrator and the indexer.
Callers (CLI, API, tests) build a service and pass it around; nothing is
kept in module-level globals, so separate services never share state.

Usage:
    service = create_service()
    await service.indexer.process_documents(documents, "default")
    response = await service.orchestrator.retrieve_documents(RetrievalRequest(query="..."))
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ragcore.config import Settings, get_settings
from ragcore.exceptions import InvalidConfiguration
from ragcore.retrieval.cache import EmbeddingCache
from ragcore.retrieval.embeddings import EmbeddingGenerator
from ragcore.retrieval.ingestion import DocumentIndexer
from ragcore.retrieval.orchestrator import RetrievalOrchestrator
from ragcore.retrieval.preprocessing import PreprocessingOptions
from ragcore.retrieval.providers import EmbeddingProvider, provider_from_settings
from ragcore.retrieval.scoring import Scorer
from ragcore.retrieval.vector_store import VectorStore, VectorStoreRegistry

logger = logging.getLogger(__name__)

WORKSPACE_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


@dataclass
class RetrievalService:
    """Every long-lived component of the retrieval pipeline."""

    settings: Settings
    cache: EmbeddingCache
    provider: EmbeddingProvider
    generator: EmbeddingGenerator
    registry: VectorStoreRegistry
    orchestrator: RetrievalOrchestrator
    indexer: DocumentIndexer

    def workspace_path(self, workspace_id: str) -> Path:
        """Base path of a workspace's persisted store under index_dir."""
        if not WORKSPACE_ID.match(workspace_id):
            raise InvalidConfiguration(f"Invalid workspace id: {workspace_id!r}")
        return self.settings.index_dir / workspace_id

    def save_workspace(self, workspace_id: str) -> Optional[Path]:
        """Persist a workspace store. Returns None if the workspace does not exist."""
        store = self.registry.get(workspace_id)
        if store is None:
            return None
        path = self.workspace_path(workspace_id)
        store.save(path)
        return path

    def load_workspace(self, workspace_id: str) -> Optional[VectorStore]:
        """Load a persisted workspace into the registry. Returns None if nothing is saved."""
        path = self.workspace_path(workspace_id)
        if not path.with_suffix(".json").exists():
            return None
        store = VectorStore.from_disk(path, hnsw_threshold=self.settings.hnsw_threshold)
        store.workspace_id = workspace_id
        self.registry.register(workspace_id, store)
        logger.info(f"Loaded workspace {workspace_id} ({store.size} vectors)")
        return store

    def load_all_workspaces(self) -> list[str]:
        """Load every persisted workspace found in index_dir."""
        index_dir = self.settings.index_dir
        if not index_dir.exists():
            return []
        loaded = []
        for records_file in sorted(index_dir.glob("*.json")):
            if records_file.with_suffix(".npy").exists() and self.load_workspace(records_file.stem):
                loaded.append(records_file.stem)
        return loaded

    def drop_workspace(self, workspace_id: str) -> bool:
        """Forget a workspace and delete its persisted files."""
        dropped = self.registry.drop(workspace_id)
        if WORKSPACE_ID.match(workspace_id):
            path = self.workspace_path(workspace_id)
            for suffix in (".npy", ".json"):
                persisted = path.with_suffix(suffix)
                if persisted.exists():
                    persisted.unlink()
                    dropped = True
        return dropped


def create_service(
    settings: Optional[Settings] = None,
    provider: Optional[EmbeddingProvider] = None,
    scorer: Optional[Scorer] = None,
) -> RetrievalService:
    """
    Build a fully wired RetrievalService.

    Args:
        settings: Application settings (loaded from the environment if omitted)
        provider: Embedding provider (built from settings if omitted)
        scorer: Reranking scorer (keyword overlap if omitted)

    Raises:
        InvalidConfiguration: If the embedding model or provider is unknown
    """
    settings = settings or get_settings()
    provider = provider or provider_from_settings(settings)

    cache = EmbeddingCache(max_size=settings.cache_max_size, ttl_seconds=settings.cache_ttl_seconds)
    generator = EmbeddingGenerator(provider, cache, model_id=settings.embedding_model)
    registry = VectorStoreRegistry(
        embedding_dimensions=generator.dimensions,
        hnsw_threshold=settings.hnsw_threshold,
    )
    orchestrator = RetrievalOrchestrator(
        generator,
        registry,
        settings=settings.retrieval_settings(),
        scorer=scorer,
        keyword_weight=settings.keyword_weight,
        mmr_lambda=settings.mmr_lambda,
        max_context_length=settings.max_context_length,
        default_workspace=settings.default_workspace,
    )
    indexer = DocumentIndexer(
        generator,
        registry,
        batch_size=settings.batch_size,
        max_workers=settings.max_concurrent_batches,
        preprocessing=PreprocessingOptions(
            strip_html=settings.strip_html,
            expand_contractions=settings.expand_contractions,
            remove_boilerplate=settings.remove_boilerplate,
        ),
    )

    logger.info(
        f"Retrieval service ready: provider={settings.embedding_provider}, "
        f"model={generator.model_id} ({generator.dimensions}d)"
    )

    return RetrievalService(
        settings=settings,
        cache=cache,
        provider=provider,
        generator=generator,
        registry=registry,
        orchestrator=orchestrator,
        indexer=indexer,
    )
