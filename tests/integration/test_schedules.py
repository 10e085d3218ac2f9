from datetime import timedelta, timezone
from decimal import Decimal

import pytest

from tripcoin.errors import (
    CapacityExceeded,
    HasActiveBookings,
    InvalidState,
    NotFound,
    ResourceConflict,
    TemporalViolation,
)
from tripcoin.models.models import AuditLog, TicketStatus, Trip, TripStatus, Vehicle, VehicleStatus
from tripcoin.services.schedules import ScheduleAvailabilityManager
from tripcoin.timeutil import utcnow


@pytest.fixture
def schedules(session_factory):
    return ScheduleAvailabilityManager(session_factory)


def tomorrow_at(hour):
    return (utcnow() + timedelta(days=1)).replace(hour=hour, minute=0, second=0, microsecond=0)


async def create(schedules, world, start, end=None, vehicle=None, driver=None, seats=10):
    return await schedules.create_trip(
        world["route"],
        vehicle or world["bus"],
        driver,
        start,
        end,
        seats,
        Decimal("45000.00"),
        actor_id=world["admin"],
    )


async def test_create_trip_persists_scheduled_trip(schedules, world, session_factory):
    trip = await create(schedules, world, tomorrow_at(8), tomorrow_at(16), driver=world["driver"])
    assert trip.status == TripStatus.SCHEDULED
    assert trip.available_seats == 10
    async with session_factory() as db:
        audit = (await db.execute(AuditLog.__table__.select())).all()
    assert [row.action for row in audit] == ["create_trip"]


async def test_vehicle_overlap_is_refused_back_to_back_is_fine(schedules, world):
    first = await create(schedules, world, tomorrow_at(8), tomorrow_at(16))

    with pytest.raises(ResourceConflict) as excinfo:
        await create(schedules, world, tomorrow_at(14), tomorrow_at(20))
    assert excinfo.value.detail["conflicting_trip_id"] == first.id
    assert "KLA-GUL" in excinfo.value.message

    second = await create(schedules, world, tomorrow_at(16), tomorrow_at(20))
    assert second.id != first.id


async def test_driver_overlap_on_another_vehicle(schedules, world):
    await create(schedules, world, tomorrow_at(8), tomorrow_at(12), driver=world["driver"])
    with pytest.raises(ResourceConflict) as excinfo:
        await create(schedules, world, tomorrow_at(10), tomorrow_at(13), vehicle=world["van"], driver=world["driver"], seats=4)
    assert excinfo.value.detail["resource"] == "driver"


async def test_unknown_arrival_holds_vehicle_for_default_duration(schedules, world):
    await create(schedules, world, tomorrow_at(6))
    with pytest.raises(ResourceConflict):
        await create(schedules, world, tomorrow_at(13), tomorrow_at(15))
    await create(schedules, world, tomorrow_at(14), tomorrow_at(15))


async def test_cancelled_trips_release_their_vehicle(schedules, world):
    first = await create(schedules, world, tomorrow_at(8), tomorrow_at(16))
    await schedules.cancel_trip(first.id)
    await create(schedules, world, tomorrow_at(10), tomorrow_at(12))


async def test_temporal_checks(schedules, world):
    with pytest.raises(TemporalViolation):
        await create(schedules, world, utcnow() - timedelta(minutes=5))
    with pytest.raises(TemporalViolation):
        await create(schedules, world, tomorrow_at(10), tomorrow_at(9))
    with pytest.raises(TemporalViolation):
        await create(schedules, world, tomorrow_at(10), tomorrow_at(10))


async def test_seat_count_bounded_by_vehicle_capacity(schedules, world):
    with pytest.raises(CapacityExceeded):
        await create(schedules, world, tomorrow_at(8), vehicle=world["van"], seats=5)
    trip = await create(schedules, world, tomorrow_at(8), vehicle=world["van"], seats=4)
    assert trip.available_seats == 4


async def test_reference_checks(schedules, world, session_factory):
    with pytest.raises(NotFound):
        await create(schedules, world, tomorrow_at(8), vehicle=9999)
    async with session_factory() as db:
        async with db.begin():
            van = await db.get(Vehicle, world["van"])
            van.status = VehicleStatus.RETIRED
    with pytest.raises(InvalidState):
        await create(schedules, world, tomorrow_at(8), vehicle=world["van"], seats=2)


async def test_update_trip_rechecks_window_excluding_itself(schedules, world):
    first = await create(schedules, world, tomorrow_at(6), tomorrow_at(10))
    second = await create(schedules, world, tomorrow_at(12), tomorrow_at(16))

    # moving within its own window never conflicts with itself
    moved = await schedules.update_trip(second.id, {"departure_time": tomorrow_at(11)})
    assert moved.departure_time == tomorrow_at(11)

    with pytest.raises(ResourceConflict) as excinfo:
        await schedules.update_trip(second.id, {"departure_time": tomorrow_at(9)})
    assert excinfo.value.detail["conflicting_trip_id"] == first.id


async def test_update_trip_capacity_against_new_vehicle(schedules, world):
    trip = await create(schedules, world, tomorrow_at(8), tomorrow_at(12), seats=8)
    with pytest.raises(CapacityExceeded):
        await schedules.update_trip(trip.id, {"vehicle_id": world["van"]})
    updated = await schedules.update_trip(trip.id, {"vehicle_id": world["van"], "available_seats": 4})
    assert updated.vehicle_id == world["van"]


async def test_frozen_trips_cannot_change(schedules, world):
    trip = await create(schedules, world, tomorrow_at(8), tomorrow_at(12))
    await schedules.depart_trip(trip.id)
    with pytest.raises(InvalidState):
        await schedules.update_trip(trip.id, {"available_seats": 2})
    with pytest.raises(InvalidState):
        await schedules.assign_driver(trip.id, world["driver"])


async def test_assign_driver_conflict(schedules, world):
    await create(schedules, world, tomorrow_at(8), tomorrow_at(12), driver=world["driver"])
    other = await create(schedules, world, tomorrow_at(9), tomorrow_at(11), vehicle=world["van"], seats=4)
    with pytest.raises(ResourceConflict):
        await schedules.assign_driver(other.id, world["driver"])
    assigned = await schedules.assign_driver(other.id, world["spare_driver"])
    assert assigned.driver_id == world["spare_driver"]


async def test_cancel_trip_blocked_by_active_bookings(schedules, make_trip, workflow, actors, pax):
    trip_id = await make_trip()
    request = await workflow.submit(trip_id, pax("1"), actors["customer"])
    with pytest.raises(HasActiveBookings) as excinfo:
        await schedules.cancel_trip(trip_id)
    assert excinfo.value.detail["active"] == 1
    assert isinstance(excinfo.value, InvalidState)

    await workflow.reject(request.id, actors["admin"], "no proof")
    cancelled = await schedules.cancel_trip(trip_id)
    assert cancelled.status == TripStatus.CANCELLED
    with pytest.raises(InvalidState):
        await schedules.cancel_trip(trip_id)


async def test_remove_trip_only_without_bookings(schedules, make_trip, workflow, actors, pax, load):
    unused = await make_trip()
    await schedules.remove_trip(unused)
    assert await load(Trip, unused) is None

    booked = await make_trip(hours_ahead=72)
    await workflow.submit(booked, pax(None), actors["customer"])
    with pytest.raises(InvalidState):
        await schedules.remove_trip(booked)


async def test_aware_times_are_stored_as_naive_utc(schedules, world):
    kampala = timezone(timedelta(hours=3))
    departure = tomorrow_at(8).replace(tzinfo=timezone.utc)
    arrival = tomorrow_at(16).replace(tzinfo=timezone.utc).astimezone(kampala)

    trip = await create(schedules, world, departure, arrival)
    assert trip.departure_time == tomorrow_at(8)
    assert trip.arrival_time == tomorrow_at(16)
    assert trip.departure_time.tzinfo is None

    moved = await schedules.update_trip(trip.id, {"departure_time": tomorrow_at(9).replace(tzinfo=timezone.utc)})
    assert moved.departure_time == tomorrow_at(9)

    # 17:00+03:00 is 14:00 UTC, inside 09:00-16:00
    with pytest.raises(ResourceConflict):
        await create(schedules, world, tomorrow_at(14).replace(tzinfo=timezone.utc).astimezone(kampala))


async def test_aware_past_departure_is_a_temporal_violation(schedules, world):
    past = (utcnow() - timedelta(hours=1)).replace(tzinfo=timezone.utc)
    with pytest.raises(TemporalViolation):
        await create(schedules, world, past)


async def test_raising_seats_cannot_swallow_booked_seats(schedules, world, workflow, actors, make_trip, fund, pax, load):
    trip_id = await make_trip(seats=10)
    await fund(world["admin_account"], 30000)
    ticket = await workflow.book_direct(trip_id, pax("1", "2", "3"), actors["admin"])
    assert (await load(Trip, trip_id)).available_seats == 7

    with pytest.raises(CapacityExceeded) as excinfo:
        await schedules.update_trip(trip_id, {"available_seats": 10})
    assert excinfo.value.detail["held"] == 3
    assert (await load(Trip, trip_id)).available_seats == 7

    # the booked seats still fit back on the bus, so the refund goes through
    refunded = await workflow.cancel(ticket.id, actors["admin"])
    assert refunded.status == TicketStatus.REFUNDED
    assert (await load(Trip, trip_id)).available_seats == 10


async def test_smaller_vehicle_must_fit_booked_passengers(schedules, world, workflow, actors, make_trip, fund, pax, load):
    trip_id = await make_trip(seats=10)
    await fund(world["admin_account"], 30000)
    await workflow.book_direct(trip_id, pax("1", "2", "3"), actors["admin"])

    with pytest.raises(CapacityExceeded):
        await schedules.update_trip(trip_id, {"vehicle_id": world["van"]})
    with pytest.raises(CapacityExceeded):
        await schedules.update_trip(trip_id, {"vehicle_id": world["van"], "available_seats": 2})

    updated = await schedules.update_trip(trip_id, {"vehicle_id": world["van"], "available_seats": 1})
    assert updated.vehicle_id == world["van"]
    assert (await load(Trip, trip_id)).available_seats == 1
