import logging
import time
from collections import Counter
from typing import Iterable, List, Optional

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tripcoin.errors import CapacityExceeded, InvariantViolation, NotFound, SeatConflict
from tripcoin.metrics import SEAT_OPERATION_LATENCY, SEAT_OPERATIONS
from tripcoin.models.models import (
    BookingRequest,
    Passenger,
    RequestStatus,
    Ticket,
    TicketStatus,
    Trip,
    Vehicle,
)

logger = logging.getLogger(__name__)


def _check_count(count: int):
    if count < 1:
        raise InvariantViolation("Seat count must be at least 1", count=count)


async def _trip_exists(session: AsyncSession, trip_id: int) -> bool:
    res = await session.execute(select(Trip.id).where(Trip.id == trip_id))
    return res.scalar_one_or_none() is not None


async def reserve(session: AsyncSession, trip_id: int, count: int) -> int:
    """Take ``count`` seats from the trip counter; returns the seats left.

    The sufficiency check and the decrement are one conditional UPDATE, so
    concurrent callers can never oversell the trip.
    """
    _check_count(count)
    start = time.perf_counter()
    stmt = (
        update(Trip)
        .where(Trip.id == trip_id)
        .where(Trip.available_seats >= count)
        .values(available_seats=Trip.available_seats - count)
        .returning(Trip.available_seats)
        .execution_options(synchronize_session=False)
    )
    remaining = (await session.execute(stmt)).scalar_one_or_none()
    SEAT_OPERATION_LATENCY.observe(time.perf_counter() - start)
    if remaining is None:
        SEAT_OPERATIONS.labels(operation="reserve", result="refused").inc()
        if not await _trip_exists(session, trip_id):
            raise NotFound("Trip", trip_id)
        available = (await session.execute(select(Trip.available_seats).where(Trip.id == trip_id))).scalar_one()
        raise CapacityExceeded(
            f"Not enough seats available. Requested: {count}, Available: {available}",
            trip_id=trip_id,
            requested=count,
            available=available,
        )
    SEAT_OPERATIONS.labels(operation="reserve", result="ok").inc()
    logger.info("seats reserved", extra={"trip_id": trip_id, "count": count, "remaining": remaining})
    return remaining


async def release(session: AsyncSession, trip_id: int, count: int) -> int:
    """Give ``count`` seats back to the trip; returns the seats now available.

    The increment is refused, never clamped, when it would push the counter
    above the vehicle capacity.
    """
    _check_count(count)
    capacity = select(Vehicle.capacity).where(Vehicle.id == Trip.vehicle_id).scalar_subquery()
    start = time.perf_counter()
    stmt = (
        update(Trip)
        .where(Trip.id == trip_id)
        .where(Trip.available_seats + count <= capacity)
        .values(available_seats=Trip.available_seats + count)
        .returning(Trip.available_seats)
        .execution_options(synchronize_session=False)
    )
    available = (await session.execute(stmt)).scalar_one_or_none()
    SEAT_OPERATION_LATENCY.observe(time.perf_counter() - start)
    if available is None:
        SEAT_OPERATIONS.labels(operation="release", result="refused").inc()
        if not await _trip_exists(session, trip_id):
            raise NotFound("Trip", trip_id)
        raise InvariantViolation(
            "Releasing seats would exceed vehicle capacity",
            trip_id=trip_id,
            count=count,
        )
    SEAT_OPERATIONS.labels(operation="release", result="ok").inc()
    logger.info("seats released", extra={"trip_id": trip_id, "count": count, "available": available})
    return available


def duplicate_seats(seat_numbers: Iterable[Optional[str]]) -> List[str]:
    counts = Counter(s for s in seat_numbers if s)
    return sorted(s for s, n in counts.items() if n > 1)


async def held_seat_numbers(
    session: AsyncSession,
    trip_id: int,
    seat_numbers: Optional[Iterable[str]] = None,
    exclude_request_id: Optional[int] = None,
) -> List[str]:
    """Seat numbers held on the trip by pending requests or active tickets.

    One query covers both kinds of booking so every caller sees the same
    answer.
    """
    held_by_request = and_(
        BookingRequest.trip_id == trip_id,
        BookingRequest.status == RequestStatus.PENDING,
    )
    if exclude_request_id is not None:
        held_by_request = and_(held_by_request, BookingRequest.id != exclude_request_id)
    held_by_ticket = and_(
        Ticket.trip_id == trip_id,
        Ticket.status.in_(TicketStatus.ACTIVE),
    )
    stmt = (
        select(Passenger.seat_number)
        .outerjoin(BookingRequest, Passenger.request_id == BookingRequest.id)
        .outerjoin(Ticket, Passenger.ticket_id == Ticket.id)
        .where(Passenger.seat_number.is_not(None))
        .where(or_(held_by_request, held_by_ticket))
    )
    if seat_numbers is not None:
        stmt = stmt.where(Passenger.seat_number.in_(list(seat_numbers)))
    res = await session.execute(stmt)
    return sorted(set(res.scalars().all()))


async def assert_seat_numbers_free(
    session: AsyncSession,
    trip_id: int,
    seat_numbers: Iterable[Optional[str]],
    exclude_request_id: Optional[int] = None,
):
    requested = [s for s in seat_numbers if s]
    dupes = duplicate_seats(requested)
    if dupes:
        raise SeatConflict("Duplicate seat numbers within the same booking", dupes)
    if not requested:
        return
    taken = await held_seat_numbers(session, trip_id, requested, exclude_request_id=exclude_request_id)
    if taken:
        raise SeatConflict("The following seats are already taken", taken)


async def booked_seats(session: AsyncSession, trip_id: int) -> List[str]:
    if not await _trip_exists(session, trip_id):
        raise NotFound("Trip", trip_id)
    return await held_seat_numbers(session, trip_id)
