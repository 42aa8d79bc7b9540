"""
FastAPI REST API for ragcore.

Endpoints:
    GET /health - Health check
    POST /workspaces/{workspace_id}/documents - Index documents
    DELETE /workspaces/{workspace_id}/documents/{document_id} - Remove a document
    POST /workspaces/{workspace_id}/retrieve - Retrieve context and citations
    DELETE /workspaces/{workspace_id} - Drop a workspace
    GET, PATCH /settings - Read or hot-swap retrieval settings
    GET /cache/stats, DELETE /cache - Inspect or clear the embedding cache
"""

from ragcore.api.main import app, create_app

__all__ = ["app", "create_app"]
