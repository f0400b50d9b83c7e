"""
Signed inbound provider webhooks: verify, dedupe, store, dispatch.

The provider is acknowledged once the event row is committed, even when its
handler fails; such rows stay ``processed=False`` until reprocessed.
"""

import traceback
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from eventrelay.core.config import settings
from eventrelay.core.logger import get_logger
from eventrelay.database import AsyncSessionLocal
from eventrelay.exceptions.errors import (
    NotFoundException,
    SignatureVerificationException,
    StorageException,
)
from eventrelay.models import InboundProviderEvent
from eventrelay.services.stripe_provider import StripeProvider, stripe_provider
from eventrelay.utils.serialization import to_iso

logger = get_logger("inbound_webhook_service")


def _error_record(error: Exception) -> dict:
    return {
        "message": str(error),
        "stack": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
        "timestamp": to_iso(datetime.utcnow()),
    }


class InboundWebhookService:
    def __init__(self, providers: Dict[str, StripeProvider], session_factory=None):
        self.providers = providers
        self.session_factory = session_factory or AsyncSessionLocal

    def get_provider(self, name: str) -> StripeProvider:
        provider = self.providers.get(name)
        if provider is None:
            raise NotFoundException(f"Unknown integration provider: {name}")
        return provider

    async def _dispatch(self, provider: StripeProvider, event: dict, session) -> None:
        handler = provider.handlers.get(event.get("type"))
        if handler is None:
            logger.info(
                f"Received unhandled {provider.name} event: {event.get('type')}",
                extra={"providerEventId": event.get("id")},
            )
            return
        await handler(event, session)

    async def receive(self, provider_name: str, payload: bytes, signature: Optional[str]) -> dict:
        """Handle one signed delivery. Returns the acknowledgement body."""
        provider = self.get_provider(provider_name)
        event = provider.verify(payload, signature)
        if not isinstance(event, dict) or not event.get("id") or not event.get("type"):
            raise SignatureVerificationException("Webhook Error: invalid payload")

        provider_event_id = event["id"]

        try:
            async with self.session_factory() as session:
                existing = await session.execute(
                    select(InboundProviderEvent.id).where(
                        InboundProviderEvent.provider_event_id == provider_event_id
                    )
                )
                if existing.scalar_one_or_none() is not None:
                    logger.info(f"Duplicate {provider.name} event received: {provider_event_id}")
                    return {"received": True, "duplicate": True}

                # Row insert, handler and outcome share one transaction
                processing_error = None
                record = InboundProviderEvent(
                    provider_type=provider.name,
                    data=event,
                    processed=False,
                    **provider.describe(event),
                )
                session.add(record)
                await session.flush()

                try:
                    await self._dispatch(provider, event, session)
                    record.processed = True
                    record.processed_at = datetime.utcnow()
                except SQLAlchemyError:
                    raise
                except Exception as e:
                    processing_error = e
                    logger.error(
                        f"Error processing {provider.name} event {provider_event_id}: {e}",
                        extra={"eventType": event.get("type")},
                    )
                    record.processed = False
                    record.processing_errors = _error_record(e)

                await session.commit()
        except IntegrityError:
            # Lost a race with a concurrent delivery of the same event
            logger.info(f"Duplicate {provider.name} event received concurrently: {provider_event_id}")
            return {"received": True, "duplicate": True}
        except SQLAlchemyError as e:
            logger.error(f"Failed to store {provider.name} event {provider_event_id}: {e}")
            raise StorageException("Failed to store webhook event") from e

        if processing_error is not None:
            logger.warning(f"{provider.name} event {provider_event_id} stored but had processing errors")
        else:
            logger.info(f"{provider.name} event {provider_event_id} processed successfully")
        return {"received": True}

    async def reprocess_unprocessed(self, provider_name: str, limit: Optional[int] = None) -> dict:
        """Re-run handlers for stored events that are still unprocessed, oldest first."""
        provider = self.get_provider(provider_name)
        limit = limit or settings.INBOUND_REPROCESS_BATCH

        async with self.session_factory() as session:
            result = await session.execute(
                select(InboundProviderEvent.id)
                .where(
                    InboundProviderEvent.provider_type == provider.name,
                    InboundProviderEvent.processed.is_(False),
                )
                .order_by(InboundProviderEvent.provider_event_timestamp.asc())
                .limit(limit)
            )
            pending_ids = list(result.scalars().all())

        if not pending_ids:
            return {"message": "No failed events to reprocess", "count": 0, "successCount": 0, "failureCount": 0, "results": []}

        results: List[dict] = []
        for record_id in pending_ids:
            results.append(await self._reprocess_one(provider, record_id))

        success_count = sum(1 for item in results if item["success"])
        return {
            "message": f"Processed {len(results)} events",
            "count": len(results),
            "successCount": success_count,
            "failureCount": len(results) - success_count,
            "results": results,
        }

    async def _reprocess_one(self, provider: StripeProvider, record_id: str) -> dict:
        provider_event_id = None
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    record = await session.get(InboundProviderEvent, record_id)
                    provider_event_id = record.provider_event_id
                    await self._dispatch(provider, record.data or {}, session)
                    record.processed = True
                    record.processed_at = datetime.utcnow()
                    record.processing_errors = None
            return {"id": record_id, "providerEventId": provider_event_id, "success": True}
        except Exception as e:
            logger.error(
                f"Error reprocessing {provider.name} event {provider_event_id}: {e}",
                extra={"eventId": record_id},
            )
            await self._record_failure(record_id, e)
            return {"id": record_id, "providerEventId": provider_event_id, "success": False, "error": str(e)}

    async def _record_failure(self, record_id: str, error: Exception) -> None:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    record = await session.get(InboundProviderEvent, record_id)
                    if record is not None:
                        record.processing_errors = _error_record(error)
        except SQLAlchemyError as e:
            logger.error(f"Failed to record reprocessing error for {record_id}: {e}")

    async def get_stats(self, provider_name: str) -> dict:
        provider = self.get_provider(provider_name)
        processed_flag = case((InboundProviderEvent.processed.is_(True), 1), else_=0)
        unprocessed_flag = case((InboundProviderEvent.processed.is_(False), 1), else_=0)

        async with self.session_factory() as session:
            rows = (await session.execute(
                select(
                    InboundProviderEvent.event_type,
                    func.count(InboundProviderEvent.id).label("total"),
                    func.sum(processed_flag).label("processed"),
                    func.sum(unprocessed_flag).label("unprocessed"),
                    func.min(InboundProviderEvent.provider_event_timestamp).label("oldest"),
                    func.max(InboundProviderEvent.provider_event_timestamp).label("newest"),
                )
                .where(InboundProviderEvent.provider_type == provider.name)
                .group_by(InboundProviderEvent.event_type)
                .order_by(func.count(InboundProviderEvent.id).desc())
            )).all()

        total = sum(row.total for row in rows)
        unprocessed = sum(int(row.unprocessed or 0) for row in rows)
        return {
            "totalEvents": total,
            "unprocessedEvents": unprocessed,
            "processingRate": ((total - unprocessed) / total) * 100 if total else 100,
            "eventTypeStats": [
                {
                    "eventType": row.event_type,
                    "total": row.total,
                    "processed": int(row.processed or 0),
                    "unprocessed": int(row.unprocessed or 0),
                    "oldestEvent": to_iso(row.oldest),
                    "newestEvent": to_iso(row.newest),
                }
                for row in rows
            ],
        }


inbound_webhook_service = InboundWebhookService({stripe_provider.name: stripe_provider})
