"""
Status Broadcaster

Pushes per-item enrichment lifecycle events to the owning user's live
connections. Delivery is best effort: no listener is a no-op and a failing
connection never fails enrichment.
"""

import logging
from typing import Any, Dict, Optional, Protocol, Sequence

from src.email_processing.models import EnrichmentResult, EnrichmentStatus

logger = logging.getLogger(__name__)

ENRICHMENT_STATUS_EVENT = "mail:enrichmentStatus"


class Connection(Protocol):
    """A live client connection able to receive named events."""

    async def emit(self, event_name: str, payload: Dict[str, Any]) -> None:
        ...


class ConnectionRegistry(Protocol):
    """Lookup of live connections by owning user."""

    def find_connections_for_user(self, owner_user_id: str) -> Sequence[Connection]:
        ...


class StatusBroadcaster:
    """Emits enrichment status events through an injected connection registry."""

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    async def notify(self, owner_user_id: str, event_name: str, payload: Dict[str, Any]) -> int:
        """
        Emit an event to every live connection of a user.

        Args:
            owner_user_id: User whose connections receive the event
            event_name: Event name
            payload: JSON-safe event body

        Returns:
            Number of connections the event was delivered to
        """
        try:
            connections = list(self.registry.find_connections_for_user(owner_user_id))
        except Exception as e:
            logger.error(f"Connection lookup failed for user {owner_user_id}: {e}", exc_info=True)
            return 0

        if not connections:
            logger.debug(f"No live connections for user {owner_user_id}, dropping {event_name}")
            return 0

        delivered = 0
        for connection in connections:
            try:
                await connection.emit(event_name, payload)
                delivered += 1
            except Exception as e:
                logger.warning(f"Failed to emit {event_name} to a connection of user {owner_user_id}: {e}")
        return delivered

    async def item_status(
        self,
        owner_user_id: str,
        message_id: str,
        status: EnrichmentStatus,
        message: str,
        ai_meta: Optional[EnrichmentResult] = None,
    ) -> int:
        """Emit a ``mail:enrichmentStatus`` event for one email."""
        payload: Dict[str, Any] = {
            "messageId": message_id,
            "status": EnrichmentStatus(status).value,
            "message": message,
        }
        if ai_meta is not None:
            payload["aiMeta"] = ai_meta.to_wire()
        return await self.notify(owner_user_id, ENRICHMENT_STATUS_EVENT, payload)
