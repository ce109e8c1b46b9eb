"""
Enrichment API Routes

Endpoints for queueing emails for AI enrichment, retrying failed analyses
and inspecting the queue and token budget.

Design Considerations:
- Routes only validate input and delegate to the enrichment service
- Enrichment failures are reported through status events, not responses
- Domain errors are translated by the global exception handlers
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Path, status

from api.models.enrichment import (
    EnrichEmailsRequest,
    EnrichmentAcceptedResponse,
    EnrichmentStatusResponse,
)
from api.services.enrichment import get_enrichment_service
from src.email_processing.service import EnrichmentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/enrichment", tags=["Enrichment"])


@router.post(
    "/emails",
    response_model=EnrichmentAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue emails for AI enrichment"
)
async def enrich_emails(
    request: EnrichEmailsRequest,
    enrichment_service: EnrichmentService = Depends(get_enrichment_service)
):
    """
    Queue raw email records, or stored emails by id, for enrichment.

    Already-enriched emails are skipped unless ``forceReprocess`` is set.
    Progress is pushed to the owner's WebSocket connections.
    """
    if request.emails:
        queued = await enrichment_service.add_to_queue(request.emails, request.force_reprocess)
    elif request.message_ids:
        if not request.mailbox_address:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="mailboxAddress is required when enriching by message id"
            )
        if request.force_reprocess:
            queued = await enrichment_service.force_reenrich(request.mailbox_address, request.message_ids)
        else:
            if not request.owner_user_id:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="ownerUserId is required when enriching by message id"
                )
            queued = await enrichment_service.enrich_by_ids(
                request.owner_user_id, request.mailbox_address, request.message_ids
            )
    else:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Either emails or messageIds must be provided"
        )

    logger.info(f"Enrichment request accepted: {queued} emails queued")
    return EnrichmentAcceptedResponse(
        queued=queued,
        queue_length=enrichment_service.status()["queue_length"]
    )


@router.post(
    "/emails/{mailbox_address}/{message_id}/retry",
    response_model=EnrichmentAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Retry enrichment of one email"
)
async def retry_enrichment(
    mailbox_address: str = Path(..., description="Mailbox the email belongs to"),
    message_id: str = Path(..., description="Provider message id"),
    enrichment_service: EnrichmentService = Depends(get_enrichment_service)
):
    """
    Clear the stored analysis of an email and queue it again.

    Raises:
        EmailNotFoundError: Translated to 404 when the email is unknown
    """
    queued = await enrichment_service.retry_enrichment(mailbox_address, message_id)
    return EnrichmentAcceptedResponse(
        queued=queued,
        queue_length=enrichment_service.status()["queue_length"]
    )


@router.get(
    "/status",
    response_model=EnrichmentStatusResponse,
    summary="Enrichment queue and rate limit status"
)
async def get_enrichment_status(
    enrichment_service: EnrichmentService = Depends(get_enrichment_service)
):
    """Current queue length, drain state and token budget usage."""
    return EnrichmentStatusResponse.model_validate(enrichment_service.status())
