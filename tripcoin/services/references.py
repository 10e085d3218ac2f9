"""Identity and reference checks, plus row loaders used inside transactions."""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tripcoin.errors import InvalidState, NotFound, PermissionDenied
from tripcoin.models.models import (
    Driver,
    DriverStatus,
    LedgerAccount,
    Role,
    Route,
    Trip,
    User,
    Vehicle,
    VehicleStatus,
)


async def _get(session: AsyncSession, model, entity_id: int, entity: str, for_update: bool = False):
    stmt = select(model).where(model.id == entity_id)
    if for_update:
        stmt = stmt.with_for_update(of=model)
    res = await session.execute(stmt)
    obj = res.scalars().first()
    if obj is None:
        raise NotFound(entity, entity_id)
    return obj


async def get_trip(session: AsyncSession, trip_id: int, for_update: bool = False) -> Trip:
    return await _get(session, Trip, trip_id, "Trip", for_update=for_update)


async def active_route(session: AsyncSession, route_id: int) -> Route:
    route = await _get(session, Route, route_id, "Route")
    if not route.is_active:
        raise InvalidState("Route is not active", route_id=route_id)
    return route


async def usable_vehicle(session: AsyncSession, vehicle_id: int) -> Vehicle:
    # the row lock serialises concurrent scheduling of the same vehicle
    vehicle = await _get(session, Vehicle, vehicle_id, "Vehicle", for_update=True)
    if vehicle.status == VehicleStatus.RETIRED:
        raise InvalidState("Vehicle is retired and cannot be used", vehicle_id=vehicle_id)
    return vehicle


async def active_driver(session: AsyncSession, driver_id: int) -> Driver:
    driver = await _get(session, Driver, driver_id, "Driver", for_update=True)
    if driver.status != DriverStatus.ACTIVE:
        raise InvalidState("Driver is not active", driver_id=driver_id)
    return driver


async def active_user(session: AsyncSession, user_id: int, role: Optional[str] = None) -> User:
    user = await _get(session, User, user_id, "User")
    if not user.is_active:
        raise PermissionDenied("User is not active", user_id=user_id)
    if role is not None and user.role != role:
        raise PermissionDenied(f"User must have role {role}", user_id=user_id, role=user.role)
    return user


async def admin_user(session: AsyncSession, user_id: int) -> User:
    user = await active_user(session, user_id)
    if user.role not in (Role.ADMIN, Role.SUPER_ADMIN):
        raise PermissionDenied("Only admins can perform paid operations", user_id=user_id)
    return user


async def account_of(session: AsyncSession, owner_id: int) -> LedgerAccount:
    res = await session.execute(select(LedgerAccount).where(LedgerAccount.owner_id == owner_id))
    account = res.scalars().first()
    if account is None:
        raise NotFound("LedgerAccount", f"owner:{owner_id}")
    return account
