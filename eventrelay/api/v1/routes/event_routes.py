from fastapi import APIRouter, Body, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from eventrelay.database.connection import get_db
from eventrelay.api.v1.controllers.event_controller import EventController
from eventrelay.schemas.event_schemas import EventCreate, EventForward

router = APIRouter(prefix="/events", tags=["Events"])


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Log Event",
    description="Store an event, then deliver it through matching routes and subscribed destinations."
)
async def log_event(event_data: EventCreate, db: AsyncSession = Depends(get_db)):
    return await EventController.log_event(db, event_data)


@router.get("", summary="List Events")
async def get_events(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    eventName: Optional[str] = Query(None),
    userId: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    return await EventController.get_events(db, request, page, limit, eventName, userId)


@router.get("/user/{user_id}", summary="List Events For User")
async def get_events_by_user(
    user_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    return await EventController.get_events_by_user(db, user_id, page, limit)


@router.get("/search", summary="Search Events By Property")
async def search_events(
    key: Optional[str] = Query(None),
    value: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    return await EventController.search_events(db, key, value, page, limit)


@router.get("/{event_id}", summary="Get Event")
async def get_event(event_id: str, request: Request, db: AsyncSession = Depends(get_db)):
    return await EventController.get_event(db, request, event_id)


@router.post(
    "/{event_id}/forward",
    summary="Forward Event",
    description="Re-run delivery for a stored event, optionally limited to named destinations."
)
async def forward_event(
    event_id: str,
    forward_data: Optional[EventForward] = Body(None),
    db: AsyncSession = Depends(get_db)
):
    destinations = forward_data.destinations if forward_data else None
    return await EventController.forward_event(db, event_id, destinations)
