import asyncio
import math
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import func, select, desc
from sqlalchemy.ext.asyncio import AsyncSession

from eventrelay.core.logger import get_logger
from eventrelay.exceptions.errors import NotFoundException, ValidationException
from eventrelay.models import Event
from eventrelay.schemas.event_schemas import EventCreate
from eventrelay.services.cache_service import cache_service
from eventrelay.services.event_router import event_router
from eventrelay.services.webhook_forwarder import webhook_forwarder
from eventrelay.utils.serialization import parse_datetime

logger = get_logger("event_service")

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def _property(key: str):
    """JSON accessor for ``properties.<key>``; dotted keys walk nested objects."""
    parts = key.split(".")
    return Event.properties[parts[0] if len(parts) == 1 else tuple(parts)].as_string()


def summarize(results: List[dict]) -> dict:
    success_count = sum(1 for result in results if result.get("success"))
    return {
        "total": len(results),
        "successCount": success_count,
        "failureCount": len(results) - success_count,
    }


async def dispatch_event(payload: dict, destinations: Optional[Iterable[str]] = None) -> List[dict]:
    """
    Run an event through both delivery paths: matching routes and directly
    subscribed destinations. Each result is tagged with the path it came from.

    A destination referenced by any route only receives what its routes
    deliver; it is never a direct subscriber as well.
    """
    names = list(destinations) if destinations is not None else None
    if not await event_router.ensure_initialized():
        logger.warning("Route store unavailable; skipping direct delivery to avoid bypassing route conditions")
        return []

    route_results, destination_results = await asyncio.gather(
        event_router.route_event(payload, names),
        webhook_forwarder.process_event(payload, names, exclude=set(event_router.bound_destinations)),
    )
    return (
        [{"source": "route", **result} for result in route_results]
        + [{"source": "destination", **result} for result in destination_results]
    )


class EventService:
    """Event ingestion, retrieval and re-forwarding."""

    @staticmethod
    async def _paginate(db: AsyncSession, query, count_query, page: int, limit: int) -> dict:
        if page < 1:
            raise ValidationException("page must be a positive integer")
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationException(f"limit must be between 1 and {MAX_PAGE_SIZE}")

        total = (await db.execute(count_query)).scalar_one()
        result = await db.execute(
            query.order_by(desc(Event.timestamp)).limit(limit).offset((page - 1) * limit)
        )
        return {
            "count": total,
            "totalPages": math.ceil(total / limit),
            "currentPage": page,
            "events": list(result.scalars().all()),
        }

    @staticmethod
    async def log_event(db: AsyncSession, data: EventCreate) -> dict:
        """
        Store an event, then deliver it. Delivery happens after commit and its
        failures never undo or fail the ingestion.
        """
        try:
            event = Event(
                event_name=data.event_name,
                timestamp=parse_datetime(data.timestamp) if data.timestamp else datetime.utcnow(),
                properties=data.properties or {},
            )
            db.add(event)
            await db.commit()
            await db.refresh(event)
        except Exception as e:
            await db.rollback()
            logger.error(f"Error logging event: {e}", extra={"eventName": data.event_name})
            raise

        logger.info(f"Logged new event: {event.event_name}, ID: {event.id}")

        results: List[dict] = []
        try:
            results = await dispatch_event(event.to_payload())
            if results:
                summary = summarize(results)
                logger.debug(
                    f"Event forwarded to {summary['total']} destinations",
                    extra={"eventId": event.id, "eventName": event.event_name, **summary},
                )
        except Exception as e:
            logger.error(f"Error forwarding event: {e}", extra={"eventId": event.id, "eventName": event.event_name})

        await cache_service.invalidate_resource("/api/events")
        return {"event": event, "routing": summarize(results)}

    @staticmethod
    async def get_events(
        db: AsyncSession,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        event_name: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> dict:
        conditions = []
        if event_name:
            conditions.append(Event.event_name == event_name)
        if user_id:
            conditions.append(_property("userId") == user_id)

        query = select(Event).where(*conditions)
        count_query = select(func.count(Event.id)).where(*conditions)
        return await EventService._paginate(db, query, count_query, page, limit)

    @staticmethod
    async def get_events_by_user(db: AsyncSession, user_id: str, page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> dict:
        condition = _property("userId") == user_id
        query = select(Event).where(condition)
        count_query = select(func.count(Event.id)).where(condition)
        return await EventService._paginate(db, query, count_query, page, limit)

    @staticmethod
    async def search_events(
        db: AsyncSession,
        key: Optional[str],
        value: Optional[str],
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> dict:
        if not key or value is None:
            raise ValidationException("Search key and value are required")

        condition = _property(key) == value
        query = select(Event).where(condition)
        count_query = select(func.count(Event.id)).where(condition)
        return await EventService._paginate(db, query, count_query, page, limit)

    @staticmethod
    async def get_event(db: AsyncSession, event_id: str) -> Event:
        event = await db.get(Event, event_id)
        if event is None:
            raise NotFoundException("Event not found")
        return event

    @staticmethod
    async def forward_event(db: AsyncSession, event_id: str, destinations: Optional[List[str]] = None) -> dict:
        """Re-run delivery for a stored event, optionally only to the named destinations."""
        event = await EventService.get_event(db, event_id)
        results = await dispatch_event(event.to_payload(), destinations)
        summary = summarize(results)

        logger.info(
            f"Manually forwarded event: {event.event_name}",
            extra={"eventId": event.id, "destinationsCount": summary["total"]},
        )
        return {
            "message": f"Event forwarded to {summary['total']} destinations",
            "successCount": summary["successCount"],
            "failureCount": summary["failureCount"],
            "results": results,
        }
