"""
WebSocket Connection Registry

Tracks live WebSocket connections per user so status events reach only the
owning user's tabs and devices. Implements the registry contract consumed by
the enrichment StatusBroadcaster.

Design Considerations:
- One user may hold several connections; events are never broadcast globally
- A connection whose send fails is removed from the registry
"""

import logging
from typing import Any, Dict, List

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class WebSocketConnection:
    """A registered WebSocket able to receive named events."""

    def __init__(self, user_id: str, websocket: WebSocket, registry: "WebSocketConnectionRegistry"):
        self.user_id = user_id
        self.websocket = websocket
        self._registry = registry

    async def emit(self, event_name: str, payload: Dict[str, Any]) -> None:
        """
        Send ``{"event": event_name, "data": payload}`` to the client.

        Raises:
            Exception: If the send failed; the connection is unregistered first
        """
        try:
            await self.websocket.send_json({"event": event_name, "data": payload})
        except Exception:
            logger.warning(f"Failed to send {event_name} to user {self.user_id}, removing dead connection")
            self._registry.disconnect(self)
            raise


class WebSocketConnectionRegistry:
    """Live connections keyed by user id."""

    def __init__(self):
        self._connections: Dict[str, List[WebSocketConnection]] = {}

    def connect(self, user_id: str, websocket: WebSocket) -> WebSocketConnection:
        """Register an accepted WebSocket for a user."""
        connection = WebSocketConnection(user_id, websocket, self)
        self._connections.setdefault(user_id, []).append(connection)
        logger.info(
            f"WebSocket connected for user {user_id} "
            f"({len(self._connections[user_id])} active)"
        )
        return connection

    def disconnect(self, connection: WebSocketConnection) -> None:
        """Unregister a connection; unknown connections are ignored."""
        connections = self._connections.get(connection.user_id)
        if not connections or connection not in connections:
            return
        connections.remove(connection)
        if not connections:
            del self._connections[connection.user_id]
        logger.info(f"WebSocket disconnected for user {connection.user_id}")

    def find_connections_for_user(self, owner_user_id: str) -> List[WebSocketConnection]:
        # Copy so senders can unregister while iterating
        return list(self._connections.get(owner_user_id, []))

    def is_connected(self, user_id: str) -> bool:
        return bool(self._connections.get(user_id))

    def get_connection_stats(self) -> Dict[str, int]:
        """Connection counts for health checks."""
        return {
            "total_users": len(self._connections),
            "total_connections": sum(len(c) for c in self._connections.values()),
        }
