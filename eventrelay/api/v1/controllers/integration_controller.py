from fastapi import Request
from typing import Optional

from eventrelay.core.logger import get_logger
from eventrelay.services.inbound_webhook_service import inbound_webhook_service

logger = get_logger("integration_controller")


class IntegrationController:
    """Controller for signed inbound provider webhooks."""

    @staticmethod
    async def receive_webhook(provider: str, request: Request) -> dict:
        """Signature verification runs over the exact raw request body."""
        header = inbound_webhook_service.get_provider(provider).signature_header
        payload = await request.body()
        return await inbound_webhook_service.receive(provider, payload, request.headers.get(header))

    @staticmethod
    async def reprocess_events(provider: str, limit: Optional[int] = None) -> dict:
        result = await inbound_webhook_service.reprocess_unprocessed(provider, limit)
        logger.info(
            f"Reprocessed {result['count']} {provider} events",
            extra={"successCount": result["successCount"], "failureCount": result["failureCount"]},
        )
        return {"success": True, **result}

    @staticmethod
    async def get_stats(provider: str) -> dict:
        return {"success": True, "data": await inbound_webhook_service.get_stats(provider)}
