from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional, List

from eventrelay.schemas.event_schemas import EventCreate
from eventrelay.services.cache_service import cache_service
from eventrelay.services.event_service import EventService
from eventrelay.core.logger import get_logger

logger = get_logger("event_controller")

EVENTS_PATH = "/api/events"


def _page_body(page: dict) -> dict:
    return {
        "success": True,
        "count": page["count"],
        "totalPages": page["totalPages"],
        "currentPage": page["currentPage"],
        "data": [event.to_dict() for event in page["events"]],
    }


class EventController:
    """Controller for event ingestion and retrieval."""

    @staticmethod
    async def log_event(db: AsyncSession, event_data: EventCreate) -> dict:
        result = await EventService.log_event(db, event_data)
        return {
            "success": True,
            "data": result["event"].to_dict(),
            "routing": result["routing"],
        }

    @staticmethod
    async def get_events(
        db: AsyncSession,
        request: Request,
        page: int,
        limit: int,
        event_name: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> dict:
        async def load():
            return _page_body(await EventService.get_events(db, page, limit, event_name, user_id))

        return await cache_service.cached_response(request, load, ttl=60)

    @staticmethod
    async def get_events_by_user(db: AsyncSession, user_id: str, page: int, limit: int) -> dict:
        return _page_body(await EventService.get_events_by_user(db, user_id, page, limit))

    @staticmethod
    async def search_events(
        db: AsyncSession, key: Optional[str], value: Optional[str], page: int, limit: int
    ) -> dict:
        return _page_body(await EventService.search_events(db, key, value, page, limit))

    @staticmethod
    async def get_event(db: AsyncSession, request: Request, event_id: str) -> dict:
        async def load():
            event = await EventService.get_event(db, event_id)
            return {"success": True, "data": event.to_dict()}

        return await cache_service.cached_response(request, load, ttl=300)

    @staticmethod
    async def forward_event(db: AsyncSession, event_id: str, destinations: Optional[List[str]] = None) -> dict:
        result = await EventService.forward_event(db, event_id, destinations)
        return {"success": True, **result}
