# api/services/__init__.py
"""
API Services Package

Dependency providers that hand route handlers the shared enrichment
components.
"""

from api.services.enrichment import get_connection_registry, get_enrichment_service, get_ws_enrichment_service

__all__ = ["get_connection_registry", "get_enrichment_service", "get_ws_enrichment_service"]
