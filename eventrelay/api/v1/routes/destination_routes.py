from fastapi import APIRouter, Body, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional, Dict, Any

from eventrelay.database.connection import get_db
from eventrelay.api.v1.controllers.destination_controller import DestinationController
from eventrelay.schemas.destination_schemas import DestinationCreate, DestinationUpdate

router = APIRouter(prefix="/destinations", tags=["Destinations"])


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create Destination")
async def create_destination(destination_data: DestinationCreate, db: AsyncSession = Depends(get_db)):
    return await DestinationController.create_destination(db, destination_data)


@router.get("", summary="List Destinations")
async def get_destinations(
    request: Request,
    type: Optional[str] = Query(None),
    enabled: Optional[bool] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    return await DestinationController.get_destinations(db, request, type, enabled)


@router.get("/stats", summary="Destination Statistics")
async def get_destination_stats(request: Request, db: AsyncSession = Depends(get_db)):
    return await DestinationController.get_stats(db, request)


@router.get("/{destination_id}", summary="Get Destination")
async def get_destination(destination_id: str, request: Request, db: AsyncSession = Depends(get_db)):
    return await DestinationController.get_destination(db, request, destination_id)


@router.put("/{destination_id}", summary="Update Destination")
async def update_destination(
    destination_id: str,
    destination_data: DestinationUpdate,
    db: AsyncSession = Depends(get_db)
):
    return await DestinationController.update_destination(db, destination_id, destination_data)


@router.delete("/{destination_id}", summary="Delete Destination")
async def delete_destination(destination_id: str, db: AsyncSession = Depends(get_db)):
    return await DestinationController.delete_destination(db, destination_id)


@router.patch("/{destination_id}/toggle", summary="Enable Or Disable Destination")
async def toggle_destination(destination_id: str, db: AsyncSession = Depends(get_db)):
    return await DestinationController.toggle_destination(db, destination_id)


@router.post(
    "/{destination_id}/test",
    summary="Send Test Event",
    description="Send a synthetic test.event; body fields are merged into its properties."
)
async def test_destination(
    destination_id: str,
    body: Optional[Dict[str, Any]] = Body(None),
    db: AsyncSession = Depends(get_db)
):
    return await DestinationController.test_destination(db, destination_id, body)
