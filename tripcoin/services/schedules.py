import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Mapping, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tripcoin.db.session import async_session, transactional
from tripcoin.errors import (
    CapacityExceeded,
    HasActiveBookings,
    InvalidState,
    InvariantViolation,
    ResourceConflict,
    TemporalViolation,
)
from tripcoin.metrics import SCHEDULE_CONFLICTS
from tripcoin.models.models import BookingRequest, RequestStatus, Ticket, TicketStatus, Trip, TripStatus
from tripcoin.services import references
from tripcoin.services.audit import log_audit
from tripcoin.services.conflicts import DRIVER, VEHICLE, Interval, find_conflicts
from tripcoin.timeutil import to_naive_utc, utcnow

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "route_id",
    "vehicle_id",
    "driver_id",
    "departure_time",
    "arrival_time",
    "unit_price",
    "available_seats",
)

# no edits once the trip is underway or closed
FROZEN_STATUSES = (TripStatus.DEPARTED, TripStatus.ARRIVED, TripStatus.CANCELLED)


def _describe(trip: Trip) -> str:
    arrival = trip.arrival_time.isoformat() if trip.arrival_time else "TBD"
    return f"({trip.route.code}) from {trip.departure_time.isoformat()} to {arrival}"


class ScheduleAvailabilityManager:
    def __init__(self, session_factory: async_sessionmaker = None, clock: Callable[[], datetime] = utcnow):
        self.session_factory = session_factory or async_session
        self.clock = clock

    async def _assert_resource_free(
        self,
        session: AsyncSession,
        resource: str,
        resource_id: int,
        window: Interval,
        exclude_trip_id: Optional[int] = None,
    ):
        conflicts = await find_conflicts(session, resource, resource_id, window, exclude_trip_id=exclude_trip_id)
        if conflicts:
            SCHEDULE_CONFLICTS.labels(resource=resource).inc()
            clash = conflicts[0]
            if resource == VEHICLE:
                message = f"Vehicle is already scheduled for another trip {_describe(clash)}"
            else:
                message = f"Driver is already assigned to another trip {_describe(clash)}"
            raise ResourceConflict(
                message,
                resource=resource,
                resource_id=resource_id,
                conflicting_trip_id=clash.id,
            )

    def _check_times(self, departure: datetime, arrival: Optional[datetime], require_future: bool):
        if require_future and departure <= self.clock():
            raise TemporalViolation("Departure time must be in the future", departure_time=departure.isoformat())
        if arrival is not None and arrival <= departure:
            raise TemporalViolation(
                "Arrival time must be after departure time",
                departure_time=departure.isoformat(),
                arrival_time=arrival.isoformat(),
            )

    @staticmethod
    def _check_capacity(seats: int, capacity: int, held: int = 0):
        if seats < 0:
            raise InvariantViolation("Available seats cannot be negative", available_seats=seats)
        if seats + held > capacity:
            raise CapacityExceeded(
                f"Available seats ({seats}) plus booked seats ({held}) cannot exceed vehicle capacity ({capacity})",
                available_seats=seats,
                held=held,
                capacity=capacity,
            )

    @staticmethod
    async def held_seats(session: AsyncSession, trip_id: int) -> int:
        """Seats taken by live tickets; they come back to the counter on cancel."""
        res = await session.execute(
            select(func.coalesce(func.sum(Ticket.total_passengers), 0)).where(
                Ticket.trip_id == trip_id, Ticket.status.in_(TicketStatus.ACTIVE)
            )
        )
        return res.scalar_one()

    async def create_trip(
        self,
        route_id: int,
        vehicle_id: int,
        driver_id: Optional[int],
        departure_time: datetime,
        arrival_time: Optional[datetime],
        seat_count: int,
        unit_price: Decimal,
        actor_id: Optional[int] = None,
    ) -> Trip:
        departure_time = to_naive_utc(departure_time)
        arrival_time = to_naive_utc(arrival_time)
        async with transactional(self.session_factory) as db:
            await references.active_route(db, route_id)
            vehicle = await references.usable_vehicle(db, vehicle_id)
            if driver_id is not None:
                await references.active_driver(db, driver_id)
            self._check_times(departure_time, arrival_time, require_future=True)
            self._check_capacity(seat_count, vehicle.capacity)

            window = Interval.for_trip(departure_time, arrival_time)
            await self._assert_resource_free(db, VEHICLE, vehicle_id, window)
            if driver_id is not None:
                await self._assert_resource_free(db, DRIVER, driver_id, window)

            trip = Trip(
                route_id=route_id,
                vehicle_id=vehicle_id,
                driver_id=driver_id,
                departure_time=departure_time,
                arrival_time=arrival_time,
                unit_price=unit_price,
                available_seats=seat_count,
                status=TripStatus.SCHEDULED,
                created_at=self.clock(),
            )
            db.add(trip)
            await db.flush()
            await log_audit(
                db,
                actor_id=actor_id,
                action="create_trip",
                object_type="trip",
                object_id=trip.id,
                detail={"vehicle_id": vehicle_id, "driver_id": driver_id, "departure": departure_time.isoformat()},
            )
            await db.refresh(trip)
            logger.info("trip created", extra={"trip_id": trip.id, "vehicle_id": vehicle_id})
            return trip

    async def update_trip(self, trip_id: int, changes: Mapping[str, Any], actor_id: Optional[int] = None) -> Trip:
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise InvariantViolation("Unsupported trip fields", fields=sorted(unknown))
        changes = {k: to_naive_utc(v) if isinstance(v, datetime) else v for k, v in changes.items()}

        async with transactional(self.session_factory) as db:
            trip = await references.get_trip(db, trip_id, for_update=True)
            if trip.status in FROZEN_STATUSES:
                raise InvalidState(f"Cannot update trip with status: {trip.status}", trip_id=trip_id, status=trip.status)

            route_id = changes.get("route_id", trip.route_id)
            vehicle_id = changes.get("vehicle_id", trip.vehicle_id)
            driver_id = changes.get("driver_id", trip.driver_id)
            departure = changes.get("departure_time", trip.departure_time)
            arrival = changes.get("arrival_time", trip.arrival_time)
            seats = changes.get("available_seats", trip.available_seats)

            if route_id != trip.route_id:
                await references.active_route(db, route_id)
            vehicle = await references.usable_vehicle(db, vehicle_id)
            if driver_id is not None and driver_id != trip.driver_id:
                await references.active_driver(db, driver_id)

            self._check_times(departure, arrival, require_future="departure_time" in changes)
            self._check_capacity(seats, vehicle.capacity, held=await self.held_seats(db, trip_id))

            window = Interval.for_trip(departure, arrival)
            await self._assert_resource_free(db, VEHICLE, vehicle_id, window, exclude_trip_id=trip_id)
            if driver_id is not None:
                await self._assert_resource_free(db, DRIVER, driver_id, window, exclude_trip_id=trip_id)

            for field, value in changes.items():
                setattr(trip, field, value)
            await db.flush()
            await log_audit(
                db,
                actor_id=actor_id,
                action="update_trip",
                object_type="trip",
                object_id=trip_id,
                detail={k: (v.isoformat() if isinstance(v, datetime) else str(v)) for k, v in changes.items()},
            )
            await db.refresh(trip)
            return trip

    async def assign_driver(self, trip_id: int, driver_id: int, actor_id: Optional[int] = None) -> Trip:
        async with transactional(self.session_factory) as db:
            trip = await references.get_trip(db, trip_id, for_update=True)
            if trip.status in FROZEN_STATUSES:
                raise InvalidState(
                    f"Cannot assign driver to trip with status: {trip.status}", trip_id=trip_id, status=trip.status
                )
            await references.active_driver(db, driver_id)
            window = Interval.for_trip(trip.departure_time, trip.arrival_time)
            await self._assert_resource_free(db, DRIVER, driver_id, window, exclude_trip_id=trip_id)
            trip.driver_id = driver_id
            await db.flush()
            await log_audit(db, actor_id=actor_id, action="assign_driver", object_type="trip", object_id=trip_id, detail={"driver_id": driver_id})
            await db.refresh(trip)
            return trip

    @staticmethod
    async def count_active_bookings(session: AsyncSession, trip_id: int) -> int:
        tickets = await session.execute(
            select(func.count(Ticket.id)).where(Ticket.trip_id == trip_id, Ticket.status.in_(TicketStatus.ACTIVE))
        )
        requests = await session.execute(
            select(func.count(BookingRequest.id)).where(
                BookingRequest.trip_id == trip_id, BookingRequest.status == RequestStatus.PENDING
            )
        )
        return tickets.scalar_one() + requests.scalar_one()

    async def cancel_trip(self, trip_id: int, actor_id: Optional[int] = None) -> Trip:
        async with transactional(self.session_factory) as db:
            trip = await references.get_trip(db, trip_id, for_update=True)
            if trip.status in (TripStatus.ARRIVED, TripStatus.CANCELLED):
                raise InvalidState(f"Cannot cancel trip with status: {trip.status}", trip_id=trip_id, status=trip.status)
            active = await self.count_active_bookings(db, trip_id)
            if active:
                raise HasActiveBookings(trip_id, active)
            trip.status = TripStatus.CANCELLED
            await db.flush()
            await log_audit(db, actor_id=actor_id, action="cancel_trip", object_type="trip", object_id=trip_id)
            logger.info("trip cancelled", extra={"trip_id": trip_id})
            return trip

    async def depart_trip(self, trip_id: int, actor_id: Optional[int] = None) -> Trip:
        async with transactional(self.session_factory) as db:
            trip = await references.get_trip(db, trip_id, for_update=True)
            if trip.status != TripStatus.SCHEDULED:
                raise InvalidState(f"Cannot depart trip with status: {trip.status}", trip_id=trip_id, status=trip.status)
            trip.status = TripStatus.DEPARTED
            await db.flush()
            await log_audit(db, actor_id=actor_id, action="depart_trip", object_type="trip", object_id=trip_id)
            return trip

    async def remove_trip(self, trip_id: int, actor_id: Optional[int] = None):
        async with transactional(self.session_factory) as db:
            trip = await references.get_trip(db, trip_id, for_update=True)
            tickets = (await db.execute(select(func.count(Ticket.id)).where(Ticket.trip_id == trip_id))).scalar_one()
            requests = (
                await db.execute(select(func.count(BookingRequest.id)).where(BookingRequest.trip_id == trip_id))
            ).scalar_one()
            if tickets or requests:
                raise InvalidState(
                    "Cannot delete trip with associated bookings; cancel the trip instead",
                    trip_id=trip_id,
                    tickets=tickets,
                    requests=requests,
                )
            await db.delete(trip)
            await log_audit(db, actor_id=actor_id, action="remove_trip", object_type="trip", object_id=trip_id)

    async def get_trip(self, trip_id: int) -> Trip:
        async with transactional(self.session_factory) as db:
            return await references.get_trip(db, trip_id)
