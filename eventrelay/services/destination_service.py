from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, desc
from typing import Optional, List
from datetime import datetime

from eventrelay.core.logger import get_logger
from eventrelay.database import AsyncSessionLocal
from eventrelay.exceptions.errors import ConflictException, NotFoundException, ValidationException
from eventrelay.models import Destination, Route
from eventrelay.schemas.destination_schemas import DestinationCreate, DestinationUpdate
from eventrelay.services.destination_registry import destination_registry
from eventrelay.services.event_router import event_router, record_delivery
from eventrelay.services.transformer_service import transformer_service
from eventrelay.services.webhook_forwarder import webhook_forwarder
from eventrelay.utils.serialization import to_iso, to_jsonable

logger = get_logger("destination_service")

TEST_EVENT_NAME = "test.event"


def register_destination(destination: Destination, force_enable: bool = False) -> Optional[dict]:
    """Mirror a stored destination into the live registry."""
    if not destination.enabled and not force_enable:
        return None
    config = destination.to_delivery_config()
    if force_enable:
        config["enabled"] = True
    return destination_registry.register(destination.name, config)


async def load_destinations_from_database(session_factory=None) -> dict:
    """Register every enabled destination at startup. Returns ``{success, failed}`` counts."""
    session_factory = session_factory or AsyncSessionLocal
    async with session_factory() as session:
        result = await session.execute(select(Destination).where(Destination.enabled.is_(True)))
        destinations = result.scalars().all()

    logger.info(f"Loading {len(destinations)} webhook destinations from database")
    results = {"success": 0, "failed": 0}
    for destination in destinations:
        try:
            register_destination(destination)
            results["success"] += 1
        except Exception as e:
            results["failed"] += 1
            logger.error(
                f"Failed to register destination {destination.id} during startup: {e}",
                extra={"destinationName": destination.name},
            )

    logger.info(f"Finished loading webhook destinations. Success: {results['success']}, Failed: {results['failed']}")
    return results


def build_test_event(properties: Optional[dict] = None, event_name: Optional[str] = None) -> dict:
    now = datetime.utcnow()
    return {
        "id": f"test-{int(now.timestamp() * 1000)}",
        "eventName": event_name or TEST_EVENT_NAME,
        "timestamp": to_iso(now),
        "properties": properties if properties is not None else {"test": True, "message": "This is a test event"},
    }


class DestinationService:
    """CRUD for destinations, kept in step with the live registry and router."""

    @staticmethod
    async def _name_taken(db: AsyncSession, name: str, exclude_id: Optional[str] = None) -> bool:
        query = select(Destination.id).where(Destination.name == name)
        if exclude_id:
            query = query.where(Destination.id != exclude_id)
        return (await db.execute(query)).scalar_one_or_none() is not None

    @staticmethod
    async def get_destination(db: AsyncSession, destination_id: str) -> Destination:
        destination = await db.get(Destination, destination_id)
        if destination is None:
            raise NotFoundException("Destination not found")
        return destination

    @staticmethod
    async def list_destinations(
        db: AsyncSession,
        destination_type: Optional[str] = None,
        enabled: Optional[bool] = None,
    ) -> List[Destination]:
        query = select(Destination)
        if destination_type:
            query = query.where(Destination.type == destination_type)
        if enabled is not None:
            query = query.where(Destination.enabled.is_(enabled))
        result = await db.execute(query.order_by(desc(Destination.created_at)))
        return list(result.scalars().all())

    @staticmethod
    async def create_destination(db: AsyncSession, data: DestinationCreate) -> Destination:
        if await DestinationService._name_taken(db, data.name):
            raise ConflictException(f'Destination with name "{data.name}" already exists')

        values = to_jsonable(data.dict(exclude={"secret_key"}))
        destination = Destination(**values)
        destination.set_secret(data.secret_key)
        db.add(destination)
        await db.commit()
        await db.refresh(destination)

        try:
            register_destination(destination)
        except ValueError as e:
            logger.error(f"Created destination {destination.name} could not be registered: {e}")

        logger.info(f"Created new destination: {destination.name}", extra={"destinationId": destination.id})
        return destination

    @staticmethod
    async def update_destination(db: AsyncSession, destination_id: str, data: DestinationUpdate) -> Destination:
        destination = await DestinationService.get_destination(db, destination_id)
        updates = data.dict(exclude_unset=True)

        new_name = updates.get("name")
        if new_name and new_name != destination.name and await DestinationService._name_taken(db, new_name, destination.id):
            raise ConflictException(f'Destination with name "{new_name}" already exists')

        old_name = destination.name
        if "secret_key" in updates:
            destination.set_secret(updates.pop("secret_key"))
        for field, value in to_jsonable(updates).items():
            setattr(destination, field, value)

        await db.commit()
        await db.refresh(destination)

        destination_registry.remove(old_name)
        try:
            register_destination(destination)
        except ValueError as e:
            logger.error(f"Updated destination {destination.name} could not be registered: {e}")

        await event_router.refresh_after_mutation()
        logger.info(f"Updated destination: {destination.name}", extra={"destinationId": destination.id})
        return destination

    @staticmethod
    async def delete_destination(db: AsyncSession, destination_id: str) -> Destination:
        destination = await DestinationService.get_destination(db, destination_id)

        route_count = (await db.execute(
            select(func.count(Route.id)).where(Route.destination_id == destination.id)
        )).scalar_one()
        if route_count:
            raise ConflictException(
                f"Cannot delete destination that is used by {route_count} route(s). Delete or update those routes first."
            )

        destination_registry.remove(destination.name)
        await db.delete(destination)
        await db.commit()

        await event_router.refresh_after_mutation()
        logger.info(f"Deleted destination: {destination.name}", extra={"destinationId": destination_id})
        return destination

    @staticmethod
    async def toggle_destination(db: AsyncSession, destination_id: str) -> Destination:
        destination = await DestinationService.get_destination(db, destination_id)
        destination.enabled = not destination.enabled
        await db.commit()
        await db.refresh(destination)

        if destination.enabled:
            if not destination_registry.set_status(destination.name, True):
                try:
                    register_destination(destination)
                except ValueError as e:
                    logger.error(f"Destination {destination.name} could not be registered: {e}")
        else:
            destination_registry.set_status(destination.name, False)

        await event_router.refresh_after_mutation()
        logger.info(f"Destination {destination.name} {'enabled' if destination.enabled else 'disabled'}")
        return destination

    @staticmethod
    async def test_destination(db: AsyncSession, destination_id: str, body: Optional[dict] = None) -> dict:
        """Send a synthetic ``test.event`` to the destination, even when it is disabled."""
        destination = await DestinationService.get_destination(db, destination_id)
        event = build_test_event({"test": True, "message": "This is a test event", **(body or {})})

        config = destination.to_delivery_config()
        config["enabled"] = True
        try:
            transform_fn = transformer_service.create_transformer(destination.transform)
        except ValueError as e:
            raise ValidationException(f"Destination transform is invalid: {e}")

        payload = await transformer_service.safe_transform(transform_fn, event, f"destination:{destination.name}")
        result = await webhook_forwarder.send_payload(config, payload, event["id"])

        try:
            await record_delivery(db, destination.id, result)
            await db.commit()
        except Exception as e:
            await db.rollback()
            logger.error(f"Error updating destination stats: {e}", extra={"destinationId": destination.id})

        return result

    @staticmethod
    async def get_stats(db: AsyncSession) -> dict:
        by_type = (await db.execute(
            select(Destination.type, func.count(Destination.id)).group_by(Destination.type)
        )).all()
        by_status = (await db.execute(
            select(Destination.enabled, func.count(Destination.id)).group_by(Destination.enabled)
        )).all()
        totals = (await db.execute(
            select(func.sum(Destination.success_count), func.sum(Destination.failure_count))
        )).one()
        recent_failures = (await db.execute(
            select(Destination)
            .where(Destination.last_error.isnot(None))
            .order_by(desc(Destination.updated_at))
            .limit(5)
        )).scalars().all()
        most_active = (await db.execute(
            select(Destination).order_by(desc(Destination.success_count)).limit(5)
        )).scalars().all()

        return {
            "byType": [{"type": destination_type, "count": count} for destination_type, count in by_type],
            "byStatus": [{"enabled": bool(enabled), "count": count} for enabled, count in by_status],
            "totalSuccesses": int(totals[0] or 0),
            "totalFailures": int(totals[1] or 0),
            "recentFailures": [destination.to_dict() for destination in recent_failures],
            "mostActive": [destination.to_dict() for destination in most_active],
        }
