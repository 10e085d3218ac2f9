from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import async_sessionmaker

from tripcoin.auth.deps import admin_required
from tripcoin.db.session import get_session_factory, transactional
from tripcoin.modules.deps import get_schedules, get_workflow
from tripcoin.schemas.trip import (
    AssignDriverRequest,
    BookedSeatsResponse,
    TripCreate,
    TripResponse,
    TripUpdate,
)
from tripcoin.services import seat_inventory
from tripcoin.services.actors import Actor
from tripcoin.services.booking_workflow import BookingWorkflow
from tripcoin.services.schedules import ScheduleAvailabilityManager

router = APIRouter()


@router.post("/", response_model=TripResponse, status_code=status.HTTP_201_CREATED)
async def create_trip(
    req: TripCreate,
    actor: Actor = Depends(admin_required),
    schedules: ScheduleAvailabilityManager = Depends(get_schedules),
):
    return await schedules.create_trip(
        route_id=req.route_id,
        vehicle_id=req.vehicle_id,
        driver_id=req.driver_id,
        departure_time=req.departure_time,
        arrival_time=req.arrival_time,
        seat_count=req.available_seats,
        unit_price=req.unit_price,
        actor_id=actor.user_id,
    )


@router.get("/{trip_id}", response_model=TripResponse)
async def get_trip(trip_id: int, schedules: ScheduleAvailabilityManager = Depends(get_schedules)):
    return await schedules.get_trip(trip_id)


@router.patch("/{trip_id}", response_model=TripResponse)
async def update_trip(
    trip_id: int,
    req: TripUpdate,
    actor: Actor = Depends(admin_required),
    schedules: ScheduleAvailabilityManager = Depends(get_schedules),
):
    return await schedules.update_trip(trip_id, req.model_dump(exclude_unset=True), actor_id=actor.user_id)


@router.post("/{trip_id}/driver", response_model=TripResponse)
async def assign_driver(
    trip_id: int,
    req: AssignDriverRequest,
    actor: Actor = Depends(admin_required),
    schedules: ScheduleAvailabilityManager = Depends(get_schedules),
):
    return await schedules.assign_driver(trip_id, req.driver_id, actor_id=actor.user_id)


@router.post("/{trip_id}/cancel", response_model=TripResponse)
async def cancel_trip(
    trip_id: int,
    actor: Actor = Depends(admin_required),
    schedules: ScheduleAvailabilityManager = Depends(get_schedules),
):
    return await schedules.cancel_trip(trip_id, actor_id=actor.user_id)


@router.post("/{trip_id}/depart", response_model=TripResponse)
async def depart_trip(
    trip_id: int,
    actor: Actor = Depends(admin_required),
    schedules: ScheduleAvailabilityManager = Depends(get_schedules),
):
    return await schedules.depart_trip(trip_id, actor_id=actor.user_id)


@router.post("/{trip_id}/complete", response_model=TripResponse)
async def complete_trip(
    trip_id: int,
    actor: Actor = Depends(admin_required),
    workflow: BookingWorkflow = Depends(get_workflow),
):
    return await workflow.complete_trip(trip_id, actor=actor)


@router.delete("/{trip_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_trip(
    trip_id: int,
    actor: Actor = Depends(admin_required),
    schedules: ScheduleAvailabilityManager = Depends(get_schedules),
):
    await schedules.remove_trip(trip_id, actor_id=actor.user_id)


@router.get("/{trip_id}/seats", response_model=BookedSeatsResponse)
async def booked_seats(trip_id: int, session_factory: async_sessionmaker = Depends(get_session_factory)):
    async with transactional(session_factory) as db:
        seats = await seat_inventory.booked_seats(db, trip_id)
    return BookedSeatsResponse(trip_id=trip_id, seat_numbers=seats)
