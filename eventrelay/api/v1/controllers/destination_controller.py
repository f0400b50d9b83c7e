from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from eventrelay.schemas.destination_schemas import DestinationCreate, DestinationUpdate
from eventrelay.services.cache_service import cache_service
from eventrelay.services.destination_service import DestinationService

DESTINATIONS_PATH = "/api/destinations"


class DestinationController:
    """Controller for destination management."""

    @staticmethod
    async def create_destination(db: AsyncSession, destination_data: DestinationCreate) -> dict:
        destination = await DestinationService.create_destination(db, destination_data)
        await cache_service.invalidate_resource(DESTINATIONS_PATH)
        return {"success": True, "data": destination.to_dict()}

    @staticmethod
    async def get_destinations(
        db: AsyncSession,
        request: Request,
        destination_type: Optional[str] = None,
        enabled: Optional[bool] = None,
    ) -> dict:
        async def load():
            destinations = await DestinationService.list_destinations(db, destination_type, enabled)
            return {
                "success": True,
                "count": len(destinations),
                "data": [destination.to_dict() for destination in destinations],
            }

        return await cache_service.cached_response(request, load, ttl=30)

    @staticmethod
    async def get_destination(db: AsyncSession, request: Request, destination_id: str) -> dict:
        async def load():
            destination = await DestinationService.get_destination(db, destination_id)
            return {"success": True, "data": destination.to_dict()}

        return await cache_service.cached_response(request, load, ttl=30)

    @staticmethod
    async def update_destination(db: AsyncSession, destination_id: str, destination_data: DestinationUpdate) -> dict:
        destination = await DestinationService.update_destination(db, destination_id, destination_data)
        await cache_service.invalidate_resource(DESTINATIONS_PATH, destination_id)
        return {"success": True, "data": destination.to_dict()}

    @staticmethod
    async def delete_destination(db: AsyncSession, destination_id: str) -> dict:
        await DestinationService.delete_destination(db, destination_id)
        await cache_service.invalidate_resource(DESTINATIONS_PATH, destination_id)
        return {"success": True, "message": "Destination deleted successfully"}

    @staticmethod
    async def toggle_destination(db: AsyncSession, destination_id: str) -> dict:
        destination = await DestinationService.toggle_destination(db, destination_id)
        await cache_service.invalidate_resource(DESTINATIONS_PATH, destination_id)
        state = "enabled" if destination.enabled else "disabled"
        return {"success": True, "message": f"Destination {state} successfully", "data": destination.to_dict()}

    @staticmethod
    async def test_destination(db: AsyncSession, destination_id: str, body: Optional[dict] = None) -> dict:
        result = await DestinationService.test_destination(db, destination_id, body)
        await cache_service.invalidate_resource(DESTINATIONS_PATH, destination_id)
        return {
            "success": result["success"],
            "message": "Test event sent successfully" if result["success"] else "Test event failed",
            "data": result,
        }

    @staticmethod
    async def get_stats(db: AsyncSession, request: Request) -> dict:
        async def load():
            return {"success": True, "data": await DestinationService.get_stats(db)}

        return await cache_service.cached_response(request, load, ttl=60)
