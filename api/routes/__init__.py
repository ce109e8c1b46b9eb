"""
API Routes Package

Centralizes route management with proper module organization
and clean import structure.
"""

from api.routes import enrichment
from api.routes import websocket

__all__ = ["enrichment", "websocket"]
