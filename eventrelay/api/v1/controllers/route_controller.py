from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from eventrelay.schemas.route_schemas import RouteCreate, RouteUpdate
from eventrelay.services.cache_service import cache_service
from eventrelay.services.route_service import RouteService

ROUTES_PATH = "/api/routes"


class RouteController:
    """Controller for route management."""

    @staticmethod
    async def create_route(db: AsyncSession, route_data: RouteCreate) -> dict:
        route = await RouteService.create_route(db, route_data)
        await cache_service.invalidate_resource(ROUTES_PATH)
        return {"success": True, "data": route.to_dict(include_relations=True)}

    @staticmethod
    async def get_routes(db: AsyncSession, request: Request, enabled: Optional[bool] = None) -> dict:
        async def load():
            routes = await RouteService.list_routes(db, enabled)
            return {
                "success": True,
                "count": len(routes),
                "data": [route.to_dict(include_relations=True) for route in routes],
            }

        return await cache_service.cached_response(request, load, ttl=30)

    @staticmethod
    async def get_route(db: AsyncSession, request: Request, route_id: str) -> dict:
        async def load():
            route = await RouteService.get_route(db, route_id)
            return {"success": True, "data": route.to_dict(include_relations=True)}

        return await cache_service.cached_response(request, load, ttl=30)

    @staticmethod
    async def update_route(db: AsyncSession, route_id: str, route_data: RouteUpdate) -> dict:
        route = await RouteService.update_route(db, route_id, route_data)
        await cache_service.invalidate_resource(ROUTES_PATH, route_id)
        return {"success": True, "data": route.to_dict(include_relations=True)}

    @staticmethod
    async def delete_route(db: AsyncSession, route_id: str) -> dict:
        await RouteService.delete_route(db, route_id)
        await cache_service.invalidate_resource(ROUTES_PATH, route_id)
        return {"success": True, "message": "Route deleted successfully"}

    @staticmethod
    async def toggle_route(db: AsyncSession, route_id: str) -> dict:
        route = await RouteService.toggle_route(db, route_id)
        await cache_service.invalidate_resource(ROUTES_PATH, route_id)
        return {"success": True, "data": route.to_dict(include_relations=True)}

    @staticmethod
    async def test_route(
        db: AsyncSession,
        route_id: str,
        body: Optional[dict] = None,
        event_name: Optional[str] = None,
    ) -> dict:
        result = await RouteService.test_route(db, route_id, body, event_name)
        return {"success": True, **result}
