"""
ragcore: document retrieval pipeline for retrieval-augmented generation.

Splits documents into chunks, embeds them through a pluggable provider with
a shared LRU cache, stores vectors per workspace and assembles ranked context
with citations for a downstream generation step.

Key Components:
    - retrieval: chunking, embeddings, vector stores, orchestration, ingestion
    - service: RetrievalService wiring every component together
    - api: FastAPI REST endpoints
    - cli: Typer command-line interface

Example:
    >>> from ragcore.service import create_service
    >>> from ragcore.retrieval import RetrievalRequest
    >>> service = create_service()
    >>> response = await service.orchestrator.retrieve_documents(RetrievalRequest(query="weather in Paris"))
    >>> print(response.context)
"""

__version__ = "0.1.0"

from ragcore.config import settings

__all__ = [
    "__version__",
    "settings",
]
