from fastapi import APIRouter, Body, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional, Dict, Any

from eventrelay.database.connection import get_db
from eventrelay.api.v1.controllers.transformation_controller import TransformationController
from eventrelay.schemas.transformation_schemas import TransformationCreate, TransformationUpdate

router = APIRouter(prefix="/transformations", tags=["Transformations"])


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create Transformation")
async def create_transformation(transformation_data: TransformationCreate, db: AsyncSession = Depends(get_db)):
    return await TransformationController.create_transformation(db, transformation_data)


@router.get("", summary="List Transformations")
async def get_transformations(
    request: Request,
    type: Optional[str] = Query(None),
    enabled: Optional[bool] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    return await TransformationController.get_transformations(db, request, type, enabled)


@router.get("/{transformation_id}", summary="Get Transformation")
async def get_transformation(transformation_id: str, request: Request, db: AsyncSession = Depends(get_db)):
    return await TransformationController.get_transformation(db, request, transformation_id)


@router.put("/{transformation_id}", summary="Update Transformation")
async def update_transformation(
    transformation_id: str,
    transformation_data: TransformationUpdate,
    db: AsyncSession = Depends(get_db)
):
    return await TransformationController.update_transformation(db, transformation_id, transformation_data)


@router.delete("/{transformation_id}", summary="Delete Transformation")
async def delete_transformation(transformation_id: str, db: AsyncSession = Depends(get_db)):
    return await TransformationController.delete_transformation(db, transformation_id)


@router.patch("/{transformation_id}/toggle", summary="Enable Or Disable Transformation")
async def toggle_transformation(transformation_id: str, db: AsyncSession = Depends(get_db)):
    return await TransformationController.toggle_transformation(db, transformation_id)


@router.post(
    "/{transformation_id}/test",
    summary="Test Transformation",
    description="Apply the transformation to a synthetic event built from the request body. Nothing is sent."
)
async def test_transformation(
    transformation_id: str,
    body: Optional[Dict[str, Any]] = Body(None),
    eventName: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    return await TransformationController.test_transformation(db, transformation_id, body, eventName)
