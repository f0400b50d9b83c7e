from fastapi import APIRouter, Query, Request

from eventrelay.api.v1.controllers.integration_controller import IntegrationController
from typing import Optional

router = APIRouter(prefix="/integrations", tags=["Integrations"])


@router.post(
    "/{provider}/webhook",
    summary="Receive Provider Webhook",
    description="Signed inbound webhook. Authenticated by the provider signature, not the API key."
)
async def receive_webhook(provider: str, request: Request):
    return await IntegrationController.receive_webhook(provider, request)


@router.post("/{provider}/reprocess", summary="Reprocess Failed Provider Events")
async def reprocess_events(provider: str, limit: Optional[int] = Query(None, ge=1, le=500)):
    return await IntegrationController.reprocess_events(provider, limit)


@router.get("/{provider}/stats", summary="Provider Event Statistics")
async def get_stats(provider: str):
    return await IntegrationController.get_stats(provider)
