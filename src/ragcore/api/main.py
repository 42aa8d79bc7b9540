"""
FastAPI application for the ragcore REST API.

Run with:
    uvicorn ragcore.api.main:app --reload

Or use the CLI:
    ragcore serve
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ragcore import __version__
from ragcore.api.models import (
    CacheStatsResponse,
    CitationSchema,
    DeleteResponse,
    ErrorResponse,
    HealthResponse,
    IndexedDocument,
    IndexRequest,
    IndexResponse,
    RetrieveRequest,
    RetrieveResponse,
    SearchResultSchema,
    SettingsUpdate,
)
from ragcore.config import RetrievalSettings
from ragcore.exceptions import DimensionMismatch, InvalidConfiguration, ProviderFailure
from ragcore.logging_config import setup_logging
from ragcore.retrieval.chunker import ChunkingOptions
from ragcore.retrieval.models import Document, RetrievalRequest
from ragcore.service import RetrievalService, create_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
        - Build the RetrievalService unless one was injected
        - Load persisted workspaces from index_dir

    Shutdown:
        - Workspaces are persisted as they change, nothing to flush
    """
    if app.state.service is None:
        setup_logging()
        logger.info("Initializing ragcore service...")
        try:
            service = create_service()
            loaded = service.load_all_workspaces()
        except Exception as e:
            logger.error(f"Failed to initialize service: {e}")
            raise RuntimeError(f"Startup failed: {e}") from e
        logger.info(f"Loaded {len(loaded)} workspace(s): {', '.join(loaded) or 'none'}")
        app.state.service = service

    yield

    logger.info("Shutting down ragcore...")


def _error(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=error, message=message).model_dump())


async def _dimension_mismatch(request: Request, exc: DimensionMismatch) -> JSONResponse:
    return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, "dimension_mismatch", str(exc))


async def _invalid_configuration(request: Request, exc: InvalidConfiguration) -> JSONResponse:
    return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, "invalid_configuration", str(exc))


async def _provider_failure(request: Request, exc: ProviderFailure) -> JSONResponse:
    logger.error(f"Embedding provider failure: {exc}")
    return _error(status.HTTP_502_BAD_GATEWAY, "provider_failure", str(exc))


async def _value_error(request: Request, exc: ValueError) -> JSONResponse:
    return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, "invalid_request", str(exc))


def create_app(service: Optional[RetrievalService] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        service: Pre-built service (built from settings at startup if omitted)

    Returns:
        Configured FastAPI app instance
    """
    app = FastAPI(
        title="ragcore",
        description="Document retrieval pipeline: chunking, cached embeddings, vector search and context assembly",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.service = service

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(DimensionMismatch, _dimension_mismatch)
    app.add_exception_handler(InvalidConfiguration, _invalid_configuration)
    app.add_exception_handler(ProviderFailure, _provider_failure)
    app.add_exception_handler(ValueError, _value_error)

    # Register routes
    app.include_router(router)

    return app


def get_service(request: Request) -> RetrievalService:
    """Dependency returning the application's RetrievalService."""
    return request.app.state.service


def _not_found(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"error": "not_found", "message": message},
    )


router = APIRouter()

ERROR_RESPONSES = {
    422: {"model": ErrorResponse, "description": "Invalid request or configuration"},
    502: {"model": ErrorResponse, "description": "Embedding provider failure"},
}


@router.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check(service: RetrievalService = Depends(get_service)) -> HealthResponse:
    """Liveness check with the active model and loaded workspaces."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        embedding_model=service.generator.model_id,
        workspaces=service.registry.workspace_ids,
    )


@router.post(
    "/workspaces/{workspace_id}/documents",
    response_model=IndexResponse,
    responses=ERROR_RESPONSES,
    tags=["Documents"],
)
async def index_documents(
    workspace_id: str,
    request: IndexRequest,
    service: RetrievalService = Depends(get_service),
) -> IndexResponse:
    """
    Chunk, embed and store documents in a workspace.

    Each document succeeds or fails on its own; failures are listed in
    `errors` and never abort the rest of the request.
    """
    service.workspace_path(workspace_id)
    defaults = service.orchestrator.chunking_options()
    options = ChunkingOptions(
        strategy=request.chunking_strategy or defaults.strategy,
        chunk_size=request.chunk_size or defaults.chunk_size,
        chunk_overlap=request.chunk_overlap if request.chunk_overlap is not None else defaults.chunk_overlap,
    )
    if options.chunk_overlap >= options.chunk_size:
        raise ValueError(
            f"chunk_overlap ({options.chunk_overlap}) must be less than chunk_size ({options.chunk_size})"
        )

    documents = [
        Document(title=doc.title, content=doc.content, type=doc.type, metadata=doc.metadata)
        for doc in request.documents
    ]
    titles = {document.id: document.title for document in documents}

    job = await service.indexer.process_documents(documents, workspace_id, options, timeout=request.timeout)
    service.save_workspace(workspace_id)

    def describe(result) -> IndexedDocument:
        return IndexedDocument(
            document_id=result.document_id,
            title=titles.get(result.document_id, ""),
            chunk_count=result.chunk_count,
            success=result.success,
            error=result.error,
        )

    store = service.registry.get(workspace_id)
    return IndexResponse(
        workspace_id=workspace_id,
        succeeded=[describe(result) for result in job.succeeded],
        errors=[describe(result) for result in job.errors],
        store_size=store.size if store else 0,
    )


@router.delete(
    "/workspaces/{workspace_id}/documents/{document_id}",
    response_model=DeleteResponse,
    tags=["Documents"],
)
async def delete_document(
    workspace_id: str,
    document_id: str,
    service: RetrievalService = Depends(get_service),
) -> DeleteResponse:
    """Remove every chunk of a document from a workspace."""
    if service.registry.get(workspace_id) is None:
        raise _not_found(f"Workspace not found: {workspace_id}")
    deleted = service.indexer.delete_document(document_id, workspace_id)
    if deleted == 0:
        raise _not_found(f"Document not found: {document_id}")
    service.save_workspace(workspace_id)
    return DeleteResponse(deleted=deleted)


@router.post(
    "/workspaces/{workspace_id}/retrieve",
    response_model=RetrieveResponse,
    responses=ERROR_RESPONSES,
    tags=["Retrieval"],
)
async def retrieve(
    workspace_id: str,
    request: RetrieveRequest,
    service: RetrievalService = Depends(get_service),
) -> RetrieveResponse:
    """
    Retrieve ranked chunks, assembled context and citations for a query.

    The pipeline runs query expansion, embedding, search across the path
    workspace plus any `additional_workspaces`, optional reranking, then
    context assembly.
    """
    if service.registry.get(workspace_id) is None:
        raise _not_found(f"Workspace not found: {workspace_id}")

    response = await service.orchestrator.retrieve_documents(
        RetrievalRequest(
            query=request.query,
            top_k=request.top_k,
            similarity_threshold=request.similarity_threshold,
            filters=request.filters,
            use_query_expansion=request.use_query_expansion,
            use_reranking=request.use_reranking,
            retriever_strategy=request.retriever_strategy,
            workspace_ids=[workspace_id, *request.additional_workspaces],
        )
    )

    return RetrieveResponse(
        query=response.query,
        query_used=response.query_used,
        expanded_query=response.expanded_query,
        results=[
            SearchResultSchema(id=r.id, text=r.text, score=r.score, metadata=r.metadata)
            for r in response.results
        ],
        context=response.context,
        citations=[
            CitationSchema(
                index=c.index,
                result_id=c.result_id,
                title=c.title,
                source=c.source,
                score=c.score,
                text=str(c),
            )
            for c in response.citations
        ],
        execution_time_ms=response.execution_time_ms,
    )


@router.delete("/workspaces/{workspace_id}", response_model=DeleteResponse, tags=["Documents"])
async def delete_workspace(
    workspace_id: str,
    service: RetrievalService = Depends(get_service),
) -> DeleteResponse:
    """Drop a workspace and its persisted store."""
    store = service.registry.get(workspace_id)
    if store is None:
        raise _not_found(f"Workspace not found: {workspace_id}")
    size = store.size
    service.drop_workspace(workspace_id)
    return DeleteResponse(deleted=size)


@router.get("/settings", response_model=RetrievalSettings, tags=["Settings"])
async def get_retrieval_settings(service: RetrievalService = Depends(get_service)) -> RetrievalSettings:
    """Current retrieval knobs."""
    return service.orchestrator.settings


@router.patch("/settings", response_model=RetrievalSettings, responses=ERROR_RESPONSES, tags=["Settings"])
async def update_retrieval_settings(
    update: SettingsUpdate,
    service: RetrievalService = Depends(get_service),
) -> RetrievalSettings:
    """Hot-swap retrieval knobs; takes effect on the next request."""
    changes = update.model_dump(exclude_none=True)
    if not changes:
        return service.orchestrator.settings
    return service.orchestrator.update_settings(**changes)


@router.get("/cache/stats", response_model=CacheStatsResponse, tags=["Cache"])
async def cache_stats(service: RetrievalService = Depends(get_service)) -> CacheStatsResponse:
    """Embedding cache occupancy and hit rate."""
    stats = service.cache.get_stats()
    return CacheStatsResponse(
        size=stats.size,
        model_distribution=stats.model_distribution,
        hits=stats.hits,
        misses=stats.misses,
        hit_rate=stats.hit_rate,
    )


@router.delete("/cache", response_model=CacheStatsResponse, tags=["Cache"])
async def clear_cache(
    model_id: Optional[str] = None,
    service: RetrievalService = Depends(get_service),
) -> CacheStatsResponse:
    """Clear the embedding cache, or only one model's entries when model_id is given."""
    if model_id:
        service.cache.clear_model(model_id)
    else:
        service.cache.clear()
    return await cache_stats(service)


# Create app instance
app = create_app()
