from fastapi import APIRouter, Body, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional, Dict, Any

from eventrelay.database.connection import get_db
from eventrelay.api.v1.controllers.route_controller import RouteController
from eventrelay.schemas.route_schemas import RouteCreate, RouteUpdate

router = APIRouter(prefix="/routes", tags=["Routes"])


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create Route")
async def create_route(route_data: RouteCreate, db: AsyncSession = Depends(get_db)):
    return await RouteController.create_route(db, route_data)


@router.get("", summary="List Routes")
async def get_routes(
    request: Request,
    enabled: Optional[bool] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    return await RouteController.get_routes(db, request, enabled)


@router.get("/{route_id}", summary="Get Route")
async def get_route(route_id: str, request: Request, db: AsyncSession = Depends(get_db)):
    return await RouteController.get_route(db, request, route_id)


@router.put("/{route_id}", summary="Update Route")
async def update_route(route_id: str, route_data: RouteUpdate, db: AsyncSession = Depends(get_db)):
    return await RouteController.update_route(db, route_id, route_data)


@router.delete("/{route_id}", summary="Delete Route")
async def delete_route(route_id: str, db: AsyncSession = Depends(get_db)):
    return await RouteController.delete_route(db, route_id)


@router.patch("/{route_id}/toggle", summary="Enable Or Disable Route")
async def toggle_route(route_id: str, db: AsyncSession = Depends(get_db)):
    return await RouteController.toggle_route(db, route_id)


@router.post(
    "/{route_id}/test",
    summary="Dry-Run Route",
    description="Match, transform and check the destination URL for a synthetic event. Nothing is sent."
)
async def test_route(
    route_id: str,
    body: Optional[Dict[str, Any]] = Body(None),
    eventName: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    return await RouteController.test_route(db, route_id, body, eventName)
