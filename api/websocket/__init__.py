from api.websocket.registry import WebSocketConnection, WebSocketConnectionRegistry

__all__ = ["WebSocketConnection", "WebSocketConnectionRegistry"]
