"""
Route-level delivery: match routes, apply their transformation, deliver
through the route's destination and keep usage counters.
"""

import re
from datetime import datetime
from typing import Any, Iterable, List, Optional, Set

from sqlalchemy import select, update
from sqlalchemy.orm import selectinload

from eventrelay.core.logger import get_logger
from eventrelay.database import AsyncSessionLocal
from eventrelay.models import Destination, Route, Transformation
from eventrelay.services.condition_evaluator import evaluate_condition
from eventrelay.services.transformer_service import transformer_service
from eventrelay.services.webhook_forwarder import WebhookForwarder, webhook_forwarder

logger = get_logger("event_router")


def event_type_matches(event_name: Optional[str], event_types: Any) -> bool:
    """``*``, exact name, or a glob where ``*`` matches any run of characters."""
    types = event_types if isinstance(event_types, list) else [event_types]

    if "*" in types:
        return True
    if event_name in types:
        return True
    if not isinstance(event_name, str):
        return False

    for pattern in types:
        if not isinstance(pattern, str) or "*" not in pattern:
            continue
        regex = pattern.replace(".", r"\.").replace("*", ".*")
        try:
            if re.match(f"^{regex}$", event_name):
                return True
        except re.error:
            logger.warning(f"Ignoring invalid event type pattern: {pattern}")
    return False


def _compile_route(route: Route) -> dict:
    """Detach a loaded route into the plain dict the delivery path works from."""
    transformation = route.transformation
    destination = route.destination

    transform_fn = None
    transform_error = None
    try:
        transform_fn = transformer_service.create_transformer(transformation.to_spec())
    except Exception as e:
        transform_error = str(e)
        logger.error(
            f"Transformation {transformation.id} for route {route.name} cannot be compiled: {e}",
            extra={"routeId": route.id, "transformationId": transformation.id},
        )

    return {
        "id": route.id,
        "name": route.name,
        "eventTypes": route.event_types or ["*"],
        "condition": route.condition,
        "priority": route.priority,
        "transformationId": transformation.id,
        "transform": transform_fn,
        "transformError": transform_error,
        "destinationId": destination.id,
        "destination": destination.to_delivery_config(),
    }


class EventRouter:
    def __init__(self, forwarder: WebhookForwarder, session_factory=None):
        self.forwarder = forwarder
        self.session_factory = session_factory or AsyncSessionLocal
        self.routes: List[dict] = []
        self.bound_destinations: Set[str] = set()
        self.initialized = False

    async def initialize(self) -> None:
        try:
            await self.refresh_routes()
            self.initialized = True
            logger.info("Event Router initialized successfully")
        except Exception as e:
            self.initialized = False
            logger.error(f"Failed to initialize EventRouter: {e}")
            raise

    async def refresh_routes(self) -> int:
        """Reload enabled routes whose transformation and destination are enabled."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Route)
                .join(Transformation, Route.transformation_id == Transformation.id)
                .join(Destination, Route.destination_id == Destination.id)
                .where(
                    Route.enabled.is_(True),
                    Transformation.enabled.is_(True),
                    Destination.enabled.is_(True),
                )
                .options(selectinload(Route.transformation), selectinload(Route.destination))
                .order_by(Route.priority.asc(), Route.created_at.desc())
            )
            routes = [_compile_route(route) for route in result.scalars().all()]

            bound = await session.execute(
                select(Destination.name).join(Route, Route.destination_id == Destination.id).distinct()
            )
            bound_destinations = set(bound.scalars().all())

        self.routes = routes
        self.bound_destinations = bound_destinations
        logger.info(f"Loaded {len(routes)} active routes")
        return len(routes)

    async def ensure_initialized(self) -> bool:
        """Load routes on first use. Returns False when the route store is unavailable."""
        if self.initialized:
            return True
        try:
            await self.initialize()
            return True
        except Exception as e:
            logger.error(f"Failed to initialize EventRouter on demand: {e}")
            return False

    async def refresh_after_mutation(self) -> None:
        """Reload routes after a committed change; a failed reload leaves the old list in place."""
        try:
            await self.refresh_routes()
            self.initialized = True
        except Exception as e:
            logger.error(f"Error refreshing routes after mutation: {e}")

    def matches(self, event: dict, route: dict) -> bool:
        try:
            if not event_type_matches(event.get("eventName"), route["eventTypes"]):
                return False
            return evaluate_condition(event, route.get("condition"))
        except Exception as e:
            logger.error(f"Error matching route {route.get('name')}: {e}", extra={"eventId": event.get("id")})
            return False

    async def route_event(self, event: dict, destinations: Optional[Iterable[str]] = None) -> List[dict]:
        """
        Deliver ``event`` through every matching route, in priority order.

        ``destinations`` optionally restricts delivery to routes whose
        destination name is listed. Never raises.
        """
        if not await self.ensure_initialized():
            return []

        if not event or not event.get("eventName"):
            logger.warning("Attempted to route invalid event")
            return []

        allowed = set(destinations) if destinations is not None else None
        routes = list(self.routes)
        logger.debug(f"Routing event: {event['eventName']}", extra={"eventId": event.get("id"), "routesCount": len(routes)})

        results = []
        for route in routes:
            if allowed is not None and route["destination"]["name"] not in allowed:
                continue
            if not self.matches(event, route):
                continue

            logger.debug(f"Event {event['eventName']} matches route {route['name']}")
            try:
                results.append(await self._process_matching_route(event, route))
            except Exception as e:
                logger.error(
                    f"Error processing route {route['name']} for event {event['eventName']}: {e}",
                    extra={"eventId": event.get("id"), "routeId": route["id"]},
                )
                results.append({
                    "routeId": route["id"],
                    "routeName": route["name"],
                    "destination": route["destination"]["name"],
                    "success": False,
                    "error": str(e),
                })

        success_count = sum(1 for result in results if result["success"])
        logger.info(f"Routed event {event['eventName']} to {success_count}/{len(results)} destinations")
        return results

    async def _process_matching_route(self, event: dict, route: dict) -> dict:
        if route["transform"] is None:
            raise ValueError(f"Transformation failed: {route['transformError']}")

        payload = await transformer_service.safe_transform(
            route["transform"], event, f"route:transformation:{route['transformationId']}"
        )
        delivery = await self.forwarder.send_payload(route["destination"], payload, event.get("id"))

        await self._update_route_stats(route["id"])
        await self._update_destination_stats(route["destinationId"], delivery)

        result = {
            "routeId": route["id"],
            "routeName": route["name"],
            "destination": route["destination"]["name"],
            "success": delivery["success"],
        }
        if delivery.get("statusCode") is not None:
            result["statusCode"] = delivery["statusCode"]
        if delivery.get("error"):
            result["error"] = delivery["error"]
        return result

    async def _update_route_stats(self, route_id: str) -> None:
        try:
            async with self.session_factory() as session:
                await session.execute(
                    update(Route)
                    .where(Route.id == route_id)
                    .values(last_used=datetime.utcnow(), use_count=Route.use_count + 1)
                )
                await session.commit()
        except Exception as e:
            logger.error(f"Error updating route stats: {e}", extra={"routeId": route_id})

    async def _update_destination_stats(self, destination_id: str, delivery: dict) -> None:
        try:
            async with self.session_factory() as session:
                await record_delivery(session, destination_id, delivery)
                await session.commit()
        except Exception as e:
            logger.error(f"Error updating destination stats: {e}", extra={"destinationId": destination_id})


async def record_delivery(session, destination_id: str, delivery: dict) -> None:
    """Bump a destination's success or failure counters for one delivery result."""
    if delivery.get("success"):
        values = {
            "success_count": Destination.success_count + 1,
            "last_sent": datetime.utcnow(),
            "last_error": None,
        }
    else:
        values = {
            "failure_count": Destination.failure_count + 1,
            "last_error": delivery.get("error"),
        }
    await session.execute(update(Destination).where(Destination.id == destination_id).values(**values))


event_router = EventRouter(webhook_forwarder)
