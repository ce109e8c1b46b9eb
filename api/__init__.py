"""
API Package Initialization

FastAPI surface of the enrichment backend: enrichment routes, the per-user
WebSocket channel and the global exception handlers.
"""
