from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy import select, desc
from typing import Optional, List

from eventrelay.core.logger import get_logger
from eventrelay.exceptions.errors import ConflictException, NotFoundException, ValidationException
from eventrelay.models import Destination, Route, Transformation
from eventrelay.schemas.route_schemas import RouteCreate, RouteUpdate
from eventrelay.services.destination_registry import is_valid_url
from eventrelay.services.destination_service import build_test_event
from eventrelay.services.event_router import event_router, event_type_matches
from eventrelay.services.condition_evaluator import evaluate_condition
from eventrelay.services.transformer_service import transformer_service

logger = get_logger("route_service")


class RouteService:
    """CRUD for routes plus a dry-run tester."""

    @staticmethod
    async def _check_references(
        db: AsyncSession,
        transformation_id: Optional[str] = None,
        destination_id: Optional[str] = None,
    ) -> None:
        """Referenced transformation and destination must exist and be enabled."""
        if transformation_id is not None:
            transformation = await db.get(Transformation, transformation_id)
            if transformation is None:
                raise ValidationException(f'Transformation with ID "{transformation_id}" not found')
            if not transformation.enabled:
                raise ValidationException(f'Transformation "{transformation.name}" is currently disabled')

        if destination_id is not None:
            destination = await db.get(Destination, destination_id)
            if destination is None:
                raise ValidationException(f'Destination with ID "{destination_id}" not found')
            if not destination.enabled:
                raise ValidationException(f'Destination "{destination.name}" is currently disabled')

    @staticmethod
    async def _name_taken(db: AsyncSession, name: str, exclude_id: Optional[str] = None) -> bool:
        query = select(Route.id).where(Route.name == name)
        if exclude_id:
            query = query.where(Route.id != exclude_id)
        return (await db.execute(query)).scalar_one_or_none() is not None

    @staticmethod
    async def get_route(db: AsyncSession, route_id: str, with_relations: bool = True) -> Route:
        query = select(Route).where(Route.id == route_id)
        if with_relations:
            query = query.options(
                selectinload(Route.transformation), selectinload(Route.destination)
            ).execution_options(populate_existing=True)
        route = (await db.execute(query)).scalar_one_or_none()
        if route is None:
            raise NotFoundException("Route not found")
        return route

    @staticmethod
    async def list_routes(db: AsyncSession, enabled: Optional[bool] = None) -> List[Route]:
        query = select(Route).options(selectinload(Route.transformation), selectinload(Route.destination))
        if enabled is not None:
            query = query.where(Route.enabled.is_(enabled))
        result = await db.execute(query.order_by(Route.priority.asc(), desc(Route.created_at)))
        return list(result.scalars().all())

    @staticmethod
    async def create_route(db: AsyncSession, data: RouteCreate) -> Route:
        try:
            if await RouteService._name_taken(db, data.name):
                raise ConflictException(f'Route with name "{data.name}" already exists')
            await RouteService._check_references(db, data.transformation_id, data.destination_id)

            route = Route(**data.to_values())
            db.add(route)
            await db.commit()
        except Exception as e:
            await db.rollback()
            logger.error(
                f"Error creating route: {e}",
                extra={
                    "routeName": data.name,
                    "transformationId": data.transformation_id,
                    "destinationId": data.destination_id,
                },
            )
            raise

        logger.info(f"Created new route: {route.name}", extra={"routeId": route.id})
        await event_router.refresh_after_mutation()
        return await RouteService.get_route(db, route.id)

    @staticmethod
    async def update_route(db: AsyncSession, route_id: str, data: RouteUpdate) -> Route:
        route = await RouteService.get_route(db, route_id, with_relations=False)
        updates = data.to_values()

        try:
            new_name = updates.get("name")
            if new_name and new_name != route.name and await RouteService._name_taken(db, new_name, route.id):
                raise ConflictException(f'Route with name "{new_name}" already exists')

            new_transformation = updates.get("transformation_id")
            new_destination = updates.get("destination_id")
            await RouteService._check_references(
                db,
                new_transformation if new_transformation and new_transformation != route.transformation_id else None,
                new_destination if new_destination and new_destination != route.destination_id else None,
            )

            for field, value in updates.items():
                if value is None and field != "condition" and field != "description":
                    continue
                setattr(route, field, value)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(f"Updated route: {route.name}", extra={"routeId": route.id})
        await event_router.refresh_after_mutation()
        return await RouteService.get_route(db, route_id)

    @staticmethod
    async def delete_route(db: AsyncSession, route_id: str) -> None:
        route = await RouteService.get_route(db, route_id, with_relations=False)
        name = route.name
        await db.delete(route)
        await db.commit()

        logger.info(f"Deleted route: {name}", extra={"routeId": route_id})
        await event_router.refresh_after_mutation()

    @staticmethod
    async def toggle_route(db: AsyncSession, route_id: str) -> Route:
        route = await RouteService.get_route(db, route_id, with_relations=False)
        route.enabled = not route.enabled
        await db.commit()

        logger.info(f"{'Enabled' if route.enabled else 'Disabled'} route: {route.name}", extra={"routeId": route_id})
        await event_router.refresh_after_mutation()
        return await RouteService.get_route(db, route_id)

    @staticmethod
    async def test_route(
        db: AsyncSession,
        route_id: str,
        properties: Optional[dict] = None,
        event_name: Optional[str] = None,
    ) -> dict:
        """
        Dry run: match a synthetic event against the route, transform it and
        check the destination URL. Nothing is sent.
        """
        route = await RouteService.get_route(db, route_id)
        event = build_test_event(properties or None, event_name)

        matches = False
        try:
            matches = event_type_matches(event["eventName"], route.event_types or ["*"]) and evaluate_condition(
                event, route.condition
            )
        except Exception as e:
            logger.error(f"Error checking if route matches event: {e}", extra={"routeId": route.id})

        if not matches:
            return {
                "matches": False,
                "message": "Route does not match this event",
                "reason": "Event type or condition does not match",
            }

        try:
            transform_fn = transformer_service.create_transformer(route.transformation.to_spec())
        except ValueError as e:
            logger.error(f"Error testing route: {e}", extra={"routeId": route.id})
            raise ValidationException(f"Error testing route: {e}")

        transformed = await transformer_service.safe_transform(
            transform_fn, event, f"test:route:{route.id}"
        )

        destination = route.destination
        url_ok = is_valid_url(destination.url)
        return {
            "matches": True,
            "originalEvent": event,
            "transformedData": transformed,
            "destination": {
                "name": destination.name,
                "url": destination.url,
                "would_succeed": url_ok,
                "details": f"Connection would be attempted to: {destination.url}" if url_ok else "Invalid destination URL",
            },
        }
