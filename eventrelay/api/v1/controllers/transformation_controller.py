from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from eventrelay.schemas.transformation_schemas import TransformationCreate, TransformationUpdate
from eventrelay.services.cache_service import cache_service
from eventrelay.services.transformation_service import TransformationService

TRANSFORMATIONS_PATH = "/api/transformations"


class TransformationController:
    """Controller for transformation management."""

    @staticmethod
    async def create_transformation(db: AsyncSession, transformation_data: TransformationCreate) -> dict:
        transformation = await TransformationService.create_transformation(db, transformation_data)
        await cache_service.invalidate_resource(TRANSFORMATIONS_PATH)
        return {"success": True, "data": transformation.to_dict()}

    @staticmethod
    async def get_transformations(
        db: AsyncSession,
        request: Request,
        transformation_type: Optional[str] = None,
        enabled: Optional[bool] = None,
    ) -> dict:
        async def load():
            transformations = await TransformationService.list_transformations(db, transformation_type, enabled)
            return {
                "success": True,
                "count": len(transformations),
                "data": [transformation.to_dict() for transformation in transformations],
            }

        return await cache_service.cached_response(request, load, ttl=30)

    @staticmethod
    async def get_transformation(db: AsyncSession, request: Request, transformation_id: str) -> dict:
        async def load():
            transformation = await TransformationService.get_transformation(db, transformation_id)
            return {"success": True, "data": transformation.to_dict()}

        return await cache_service.cached_response(request, load, ttl=30)

    @staticmethod
    async def update_transformation(
        db: AsyncSession, transformation_id: str, transformation_data: TransformationUpdate
    ) -> dict:
        transformation = await TransformationService.update_transformation(db, transformation_id, transformation_data)
        await cache_service.invalidate_resource(TRANSFORMATIONS_PATH, transformation_id)
        return {"success": True, "data": transformation.to_dict()}

    @staticmethod
    async def delete_transformation(db: AsyncSession, transformation_id: str) -> dict:
        await TransformationService.delete_transformation(db, transformation_id)
        await cache_service.invalidate_resource(TRANSFORMATIONS_PATH, transformation_id)
        return {"success": True, "message": "Transformation deleted successfully"}

    @staticmethod
    async def toggle_transformation(db: AsyncSession, transformation_id: str) -> dict:
        transformation = await TransformationService.toggle_transformation(db, transformation_id)
        await cache_service.invalidate_resource(TRANSFORMATIONS_PATH, transformation_id)
        return {"success": True, "data": transformation.to_dict()}

    @staticmethod
    async def test_transformation(
        db: AsyncSession,
        transformation_id: str,
        body: Optional[dict] = None,
        event_name: Optional[str] = None,
    ) -> dict:
        result = await TransformationService.test_transformation(db, transformation_id, body, event_name)
        return {"success": True, **result}
