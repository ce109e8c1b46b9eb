"""
API Application Entry Point

Builds the FastAPI application hosting the enrichment pipeline: routes,
WebSocket channel, exception handlers and component lifecycle.

Design Considerations:
- Application factory; components can be injected for tests
- Storage, registry and enrichment service are wired once at startup
- The background drain is awaited on shutdown so queued work finishes
"""

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.config import APISettings, get_settings, EnvironmentType
from api.routes import enrichment, websocket
from api.utils.error_handlers import add_exception_handlers
from api.websocket.registry import WebSocketConnectionRegistry
from src.email_processing.service import EnrichmentService, create_enrichment_service
from src.storage.database import create_db_engine, create_session_factory, init_db
from src.storage.email_repository import SQLEmailRepository

logger = logging.getLogger("api")


def create_application(
    enrichment_service: Optional[EnrichmentService] = None,
    registry: Optional[WebSocketConnectionRegistry] = None,
    settings: Optional[APISettings] = None,
) -> FastAPI:
    """
    Create and configure FastAPI application instance.

    Args:
        enrichment_service: Pre-built service; built from settings at startup when omitted
        registry: Connection registry shared with the service
        settings: API settings; loaded from the environment when omitted

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.API_TITLE,
        description=settings.API_DESCRIPTION,
        version=settings.API_VERSION,
        docs_url="/docs" if settings.ENVIRONMENT != EnvironmentType.PRODUCTION else None,
        redoc_url="/redoc" if settings.ENVIRONMENT != EnvironmentType.PRODUCTION else None,
        debug=settings.DEBUG
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=settings.CORS_METHODS,
        allow_headers=["*"],
    )

    add_exception_handlers(app)

    app.include_router(enrichment.router)
    app.include_router(websocket.router)

    app.state.connection_registry = registry or WebSocketConnectionRegistry()
    app.state.enrichment_service = enrichment_service

    @app.on_event("startup")
    async def startup_event():
        """Wire storage and the enrichment pipeline unless injected."""
        logger.info("API service starting up")
        if app.state.enrichment_service is None:
            engine = create_db_engine(settings.DATABASE_URL)
            init_db(engine)
            store = SQLEmailRepository(create_session_factory(engine))
            app.state.enrichment_service = create_enrichment_service(
                store,
                app.state.connection_registry,
                settings.enrichment_config(),
            )

    @app.on_event("shutdown")
    async def shutdown_event():
        """Let the enrichment queue finish its current work."""
        logger.info("API service shutting down")
        service = app.state.enrichment_service
        if service is not None and service.queue.is_processing():
            logger.info(f"Waiting for enrichment queue ({service.queue.length()} queued)")
            await service.queue.join()

    @app.get("/health", tags=["Monitoring"])
    async def health_check():
        """API health check endpoint."""
        service = app.state.enrichment_service
        return {
            "status": "healthy",
            "enrichment": service.status() if service is not None else None,
            "connections": app.state.connection_registry.get_connection_stats(),
        }

    logger.info(f"Application initialized in {settings.ENVIRONMENT.value} environment")
    return app
