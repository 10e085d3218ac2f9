import pytest

from tripcoin.errors import CapacityExceeded, InvariantViolation, NotFound, SeatConflict
from tripcoin.models.models import Trip
from tripcoin.services import seat_inventory


async def test_reserve_decrements_and_refuses_overdraw(session_factory, make_trip, load):
    trip_id = await make_trip(seats=3)
    async with session_factory() as db:
        async with db.begin():
            assert await seat_inventory.reserve(db, trip_id, 2) == 1

    with pytest.raises(CapacityExceeded) as excinfo:
        async with session_factory() as db:
            async with db.begin():
                await seat_inventory.reserve(db, trip_id, 2)
    assert excinfo.value.detail["available"] == 1
    assert excinfo.value.detail["requested"] == 2
    assert (await load(Trip, trip_id)).available_seats == 1


async def test_reserve_unknown_trip(session_factory, world):
    with pytest.raises(NotFound):
        async with session_factory() as db:
            async with db.begin():
                await seat_inventory.reserve(db, 9999, 1)


async def test_count_must_be_positive(session_factory, make_trip):
    trip_id = await make_trip()
    async with session_factory() as db:
        with pytest.raises(InvariantViolation):
            await seat_inventory.reserve(db, trip_id, 0)
        with pytest.raises(InvariantViolation):
            await seat_inventory.release(db, trip_id, -1)


async def test_release_never_exceeds_vehicle_capacity(session_factory, make_trip, world, load):
    # the van seats four
    trip_id = await make_trip(seats=3, vehicle=world["van"])
    async with session_factory() as db:
        async with db.begin():
            assert await seat_inventory.release(db, trip_id, 1) == 4

    with pytest.raises(InvariantViolation):
        async with session_factory() as db:
            async with db.begin():
                await seat_inventory.release(db, trip_id, 1)
    assert (await load(Trip, trip_id)).available_seats == 4


async def test_duplicate_seats_within_one_booking(session_factory, make_trip):
    trip_id = await make_trip()
    async with session_factory() as db:
        with pytest.raises(SeatConflict) as excinfo:
            await seat_inventory.assert_seat_numbers_free(db, trip_id, ["12", "12", "3"])
    assert excinfo.value.detail["seat_numbers"] == ["12"]


async def test_seats_held_by_pending_requests_and_tickets(session_factory, make_trip, workflow, actors, pax, fund, world):
    trip_id = await make_trip()
    await fund(world["admin_account"], 100000)
    await workflow.submit(trip_id, pax("1", "2"), actors["customer"])
    await workflow.book_direct(trip_id, pax("5"), actors["admin"])

    async with session_factory() as db:
        assert await seat_inventory.booked_seats(db, trip_id) == ["1", "2", "5"]
        with pytest.raises(SeatConflict) as excinfo:
            await seat_inventory.assert_seat_numbers_free(db, trip_id, ["2", "5", "7"])
        assert excinfo.value.detail["seat_numbers"] == ["2", "5"]
        # seats without numbers are never checked
        await seat_inventory.assert_seat_numbers_free(db, trip_id, [None, "7"])


async def test_seats_free_again_after_rejection(session_factory, make_trip, workflow, actors, pax):
    trip_id = await make_trip()
    request = await workflow.submit(trip_id, pax("9"), actors["customer"])
    await workflow.reject(request.id, actors["admin"], "blurry proof")
    async with session_factory() as db:
        assert await seat_inventory.booked_seats(db, trip_id) == []
