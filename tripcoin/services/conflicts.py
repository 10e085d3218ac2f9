from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tripcoin.config import settings
from tripcoin.models.models import Trip, TripStatus

VEHICLE = "vehicle"
DRIVER = "driver"


def default_duration() -> timedelta:
    return timedelta(hours=settings.DEFAULT_TRIP_DURATION_HOURS)


@dataclass(frozen=True)
class Interval:
    """Half-open time window ``[start, end)`` a resource is committed for."""

    start: datetime
    end: datetime

    @classmethod
    def for_trip(cls, departure: datetime, arrival: Optional[datetime] = None) -> "Interval":
        return cls(departure, arrival or departure + default_duration())


def overlaps(a: Interval, b: Interval) -> bool:
    return a.start < b.end and b.start < a.end


def trip_interval(trip: Trip) -> Interval:
    return Interval.for_trip(trip.departure_time, trip.arrival_time)


async def find_conflicts(
    session: AsyncSession,
    resource: str,
    resource_id: int,
    candidate: Interval,
    exclude_trip_id: Optional[int] = None,
) -> List[Trip]:
    """Trips holding ``resource_id`` whose window overlaps ``candidate``.

    Cancelled and arrived trips never conflict. The SQL filter is exact for
    both stored shapes (known arrival, or the default duration) and the
    result is checked again with :func:`overlaps`.
    """
    column = Trip.vehicle_id if resource == VEHICLE else Trip.driver_id
    stmt = (
        select(Trip)
        .where(column == resource_id)
        .where(Trip.status.in_(TripStatus.OCCUPYING))
        .where(Trip.departure_time < candidate.end)
        .where(
            or_(
                and_(Trip.arrival_time.is_not(None), Trip.arrival_time > candidate.start),
                and_(Trip.arrival_time.is_(None), Trip.departure_time > candidate.start - default_duration()),
            )
        )
        .order_by(Trip.departure_time)
    )
    if exclude_trip_id is not None:
        stmt = stmt.where(Trip.id != exclude_trip_id)
    res = await session.execute(stmt)
    return [t for t in res.scalars().unique().all() if overlaps(trip_interval(t), candidate)]
