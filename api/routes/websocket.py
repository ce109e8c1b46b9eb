"""
WebSocket Route

Live channel per user. The server pushes ``mail:enrichmentStatus`` events;
clients may send ``mail:enrichEmails`` and ``mail:retryEnrichment`` messages
of the form ``{"event": ..., "data": {...}}``.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from api.services.enrichment import get_connection_registry, get_ws_enrichment_service
from api.websocket.registry import WebSocketConnection, WebSocketConnectionRegistry
from src.email_processing.errors import EmailNotFoundError
from src.email_processing.models import EnrichmentStatus
from src.email_processing.broadcaster import ENRICHMENT_STATUS_EVENT
from src.email_processing.service import EnrichmentService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["WebSocket"])

ERROR_EVENT = "mail:error"
NOTHING_QUEUED_MESSAGE = "No messages needed enrichment or all were already queued"


async def handle_enrich_emails(
    connection: WebSocketConnection,
    service: EnrichmentService,
    data: Dict[str, Any],
) -> None:
    mailbox_address = data.get("email") or data.get("mailboxAddress")
    message_ids = data.get("messageIds") or []
    if not mailbox_address or not isinstance(message_ids, list):
        await connection.emit(ERROR_EVENT, "Invalid enrichment request")
        return

    queued = await service.enrich_by_ids(connection.user_id, mailbox_address, message_ids)
    if queued == 0:
        await connection.emit(ENRICHMENT_STATUS_EVENT, {
            "status": EnrichmentStatus.COMPLETED.value,
            "message": NOTHING_QUEUED_MESSAGE,
        })


async def handle_retry_enrichment(
    connection: WebSocketConnection,
    service: EnrichmentService,
    data: Dict[str, Any],
) -> None:
    mailbox_address = data.get("email") or data.get("mailboxAddress")
    message_id = data.get("messageId")
    if not mailbox_address or not message_id:
        await connection.emit(ERROR_EVENT, "Invalid retry request")
        return

    try:
        await service.retry_enrichment(mailbox_address, message_id)
    except EmailNotFoundError:
        await connection.emit(ERROR_EVENT, "Message not found")


HANDLERS = {
    "mail:enrichEmails": handle_enrich_emails,
    "mail:retryEnrichment": handle_retry_enrichment,
}


@router.websocket("/ws/{user_id}")
async def enrichment_socket(
    websocket: WebSocket,
    user_id: str,
    service: EnrichmentService = Depends(get_ws_enrichment_service),
    registry: WebSocketConnectionRegistry = Depends(get_connection_registry),
):
    """Register the socket for the user's status events and serve client requests."""
    await websocket.accept()
    connection = registry.connect(user_id, websocket)
    try:
        while True:
            message = await websocket.receive_json()
            event = message.get("event") if isinstance(message, dict) else None
            handler = HANDLERS.get(event)
            if handler is None:
                await connection.emit(ERROR_EVENT, f"Unknown event: {event}")
                continue

            data = message.get("data")
            try:
                await handler(connection, service, data if isinstance(data, dict) else {})
            except Exception as e:
                logger.error(f"Error handling {event} for user {user_id}: {e}", exc_info=True)
                await connection.emit(ERROR_EVENT, f"Failed to process {event}")
    except WebSocketDisconnect:
        logger.debug(f"WebSocket closed by client for user {user_id}")
    finally:
        registry.disconnect(connection)
