from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, desc
from typing import Optional, List

from eventrelay.core.logger import get_logger
from eventrelay.exceptions.errors import ConflictException, NotFoundException, ValidationException
from eventrelay.models import Route, Transformation
from eventrelay.schemas.transformation_schemas import (
    TransformationCreate,
    TransformationUpdate,
    validate_transformation_config,
)
from eventrelay.services.destination_service import build_test_event
from eventrelay.services.event_router import event_router
from eventrelay.services.transformer_service import transformer_service

logger = get_logger("transformation_service")


class TransformationService:
    """CRUD for reusable transformations referenced by routes."""

    @staticmethod
    async def _name_taken(db: AsyncSession, name: str, exclude_id: Optional[str] = None) -> bool:
        query = select(Transformation.id).where(Transformation.name == name)
        if exclude_id:
            query = query.where(Transformation.id != exclude_id)
        return (await db.execute(query)).scalar_one_or_none() is not None

    @staticmethod
    async def get_transformation(db: AsyncSession, transformation_id: str) -> Transformation:
        transformation = await db.get(Transformation, transformation_id)
        if transformation is None:
            raise NotFoundException("Transformation not found")
        return transformation

    @staticmethod
    async def list_transformations(
        db: AsyncSession,
        transformation_type: Optional[str] = None,
        enabled: Optional[bool] = None,
    ) -> List[Transformation]:
        query = select(Transformation)
        if transformation_type:
            query = query.where(Transformation.type == transformation_type)
        if enabled is not None:
            query = query.where(Transformation.enabled.is_(enabled))
        result = await db.execute(query.order_by(desc(Transformation.created_at)))
        return list(result.scalars().all())

    @staticmethod
    async def create_transformation(db: AsyncSession, data: TransformationCreate) -> Transformation:
        if await TransformationService._name_taken(db, data.name):
            raise ConflictException(f'Transformation with name "{data.name}" already exists')

        transformation = Transformation(
            name=data.name,
            description=data.description,
            type=data.type.value,
            config=data.config,
            enabled=data.enabled,
        )
        db.add(transformation)
        await db.commit()
        await db.refresh(transformation)

        logger.info(
            f"Created new transformation: {transformation.name}",
            extra={"transformationId": transformation.id, "type": transformation.type},
        )
        return transformation

    @staticmethod
    async def update_transformation(
        db: AsyncSession, transformation_id: str, data: TransformationUpdate
    ) -> Transformation:
        transformation = await TransformationService.get_transformation(db, transformation_id)
        updates = data.dict(exclude_unset=True)

        new_name = updates.get("name")
        if new_name and new_name != transformation.name:
            if await TransformationService._name_taken(db, new_name, transformation.id):
                raise ConflictException(f'Transformation with name "{new_name}" already exists')

        if updates.get("type") is not None:
            updates["type"] = updates["type"].value
        if "type" in updates or "config" in updates:
            effective_type = updates.get("type") or transformation.type
            effective_config = updates["config"] if updates.get("config") is not None else transformation.config
            try:
                updates["config"] = validate_transformation_config(effective_type, effective_config)
            except ValueError as e:
                raise ValidationException(str(e))

        for field, value in updates.items():
            if value is None and field in ("type", "config", "enabled", "name"):
                continue
            setattr(transformation, field, value)

        await db.commit()
        await db.refresh(transformation)

        logger.info(f"Updated transformation: {transformation.name}", extra={"transformationId": transformation.id})
        await event_router.refresh_after_mutation()
        return transformation

    @staticmethod
    async def delete_transformation(db: AsyncSession, transformation_id: str) -> None:
        try:
            transformation = await TransformationService.get_transformation(db, transformation_id)

            route_count = (await db.execute(
                select(func.count(Route.id)).where(Route.transformation_id == transformation.id)
            )).scalar_one()
            if route_count:
                raise ConflictException(
                    f'Cannot delete transformation "{transformation.name}" because it is used by {route_count} routes'
                )

            name = transformation.name
            await db.delete(transformation)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(f"Deleted transformation: {name}", extra={"transformationId": transformation_id})
        await event_router.refresh_after_mutation()

    @staticmethod
    async def toggle_transformation(db: AsyncSession, transformation_id: str) -> Transformation:
        transformation = await TransformationService.get_transformation(db, transformation_id)
        transformation.enabled = not transformation.enabled
        await db.commit()
        await db.refresh(transformation)

        logger.info(
            f"{'Enabled' if transformation.enabled else 'Disabled'} transformation: {transformation.name}",
            extra={"transformationId": transformation.id},
        )
        await event_router.refresh_after_mutation()
        return transformation

    @staticmethod
    async def test_transformation(
        db: AsyncSession,
        transformation_id: str,
        properties: Optional[dict] = None,
        event_name: Optional[str] = None,
    ) -> dict:
        """Apply the transformation to a synthetic event without sending anything."""
        transformation = await TransformationService.get_transformation(db, transformation_id)
        event = build_test_event(properties or None, event_name)

        try:
            transform_fn = transformer_service.create_transformer(transformation.to_spec())
        except ValueError as e:
            logger.error(
                f"Error testing transformation: {e}",
                extra={"transformationId": transformation.id},
            )
            raise ValidationException(f"Error testing transformation: {e}")

        transformed = await transformer_service.safe_transform(
            transform_fn, event, f"test:transformation:{transformation.id}"
        )
        return {"originalEvent": event, "transformedData": transformed}
