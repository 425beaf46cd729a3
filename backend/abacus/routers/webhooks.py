"""Inbound webhook endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response, status

from abacus.routers.deps import AppSettings, get_webhook_processor
from abacus.schemas.sync import WebhookResponse
from abacus.services.errors import AuthConfigurationError, PayloadValidationError
from abacus.services.webhooks import WebhookDelivery, WebhookProcessor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/github", response_model=WebhookResponse)
async def github_webhook(
    request: Request,
    response: Response,
    processor: Annotated[WebhookProcessor, Depends(get_webhook_processor)],
    settings: AppSettings,
    x_hub_signature_256: Annotated[str | None, Header()] = None,
    x_github_event: Annotated[str | None, Header()] = None,
    x_github_delivery: Annotated[str | None, Header()] = None,
) -> WebhookResponse:
    """
    Receive a GitHub push webhook.

    The signature is checked over the raw body before it is parsed.
    A failed write returns 500 so GitHub redelivers.
    """
    delivery = WebhookDelivery(
        body=await request.body(),
        signature=x_hub_signature_256,
        event=x_github_event,
        delivery_id=x_github_delivery,
    )

    try:
        result = await processor.process_delivery(delivery)
    except AuthConfigurationError as e:
        logger.error(f"GitHub webhook rejected: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e)) from None
    except PayloadValidationError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from None

    if not result.success:
        response.status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return WebhookResponse.from_result(result, settings.max_errors_reported)
