# api/services/enrichment.py
"""
Enrichment service dependencies.

The service and the connection registry are built once per application and
kept on ``app.state``; routes receive them through these providers.
"""

from fastapi import HTTPException, Request, WebSocket, status

from api.websocket.registry import WebSocketConnectionRegistry
from src.email_processing.service import EnrichmentService


def get_enrichment_service(request: Request) -> EnrichmentService:
    """Provide the enrichment service for dependency injection."""
    service = getattr(request.app.state, "enrichment_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Enrichment service is not initialized"
        )
    return service


def get_ws_enrichment_service(websocket: WebSocket) -> EnrichmentService:
    return websocket.app.state.enrichment_service


def get_connection_registry(websocket: WebSocket) -> WebSocketConnectionRegistry:
    return websocket.app.state.connection_registry
