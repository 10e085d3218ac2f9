import os
import tempfile

# point the module-level engine at a throwaway database before tripcoin is imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///" + os.path.join(tempfile.mkdtemp(), "tripcoin-import.db")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")

from datetime import timedelta
from decimal import Decimal
from typing import Dict, List, Tuple

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tripcoin.db.base import Base
from tripcoin.models.models import (
    Driver,
    EntryReason,
    LedgerAccount,
    Role,
    Route,
    Trip,
    TripStatus,
    User,
    Vehicle,
)
from tripcoin.services.actors import Actor
from tripcoin.services.booking_workflow import BookingWorkflow, PassengerData
from tripcoin.services.ledger import CoinLedger
from tripcoin.services.notification_providers import NotificationSink
from tripcoin.services.notification_service import NotificationService
from tripcoin.timeutil import utcnow


class RecordingSink(NotificationSink):
    def __init__(self):
        self.delivered: List[Tuple[int, Dict]] = []

    async def deliver(self, recipient_id, payload):
        self.delivered.append((recipient_id, payload))
        return {"status": "sent", "sink": "recording"}

    def events(self):
        return [payload["event"] for _, payload in self.delivered]


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tripcoin.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def world(session_factory):
    """Users, a route, two vehicles, two drivers and the admin's ledger account."""
    async with session_factory() as db:
        async with db.begin():
            admin = User(full_name="Agent Admin", phone="+100", role=Role.ADMIN)
            other_admin = User(full_name="Other Admin", phone="+101", role=Role.ADMIN)
            super_admin = User(full_name="Root", phone="+102", role=Role.SUPER_ADMIN)
            customer = User(full_name="Jane Rider", phone="+200", role=Role.CUSTOMER)
            other_customer = User(full_name="John Rider", phone="+201", role=Role.CUSTOMER)
            route = Route(code="KLA-GUL", origin="Kampala", destination="Gulu")
            bus = Vehicle(registration_number="UAA-001", capacity=10)
            van = Vehicle(registration_number="UAA-002", capacity=4)
            driver = Driver(name="Okello")
            spare_driver = Driver(name="Achan")
            db.add_all([admin, other_admin, super_admin, customer, other_customer, route, bus, van, driver, spare_driver])
            await db.flush()
            admin_account = LedgerAccount(owner_id=admin.id, balance=0)
            other_account = LedgerAccount(owner_id=other_admin.id, balance=0)
            super_account = LedgerAccount(owner_id=super_admin.id, balance=0)
            db.add_all([admin_account, other_account, super_account])
            await db.flush()
            ids = {
                "admin": admin.id,
                "other_admin": other_admin.id,
                "super_admin": super_admin.id,
                "customer": customer.id,
                "other_customer": other_customer.id,
                "route": route.id,
                "bus": bus.id,
                "van": van.id,
                "driver": driver.id,
                "spare_driver": spare_driver.id,
                "admin_account": admin_account.id,
                "other_account": other_account.id,
                "super_account": super_account.id,
            }
    return ids


@pytest.fixture
def actors(world):
    return {
        "admin": Actor(world["admin"], Role.ADMIN),
        "other_admin": Actor(world["other_admin"], Role.ADMIN),
        "super_admin": Actor(world["super_admin"], Role.SUPER_ADMIN),
        "customer": Actor(world["customer"], Role.CUSTOMER),
        "other_customer": Actor(world["other_customer"], Role.CUSTOMER),
    }


@pytest.fixture
def ledger(session_factory):
    return CoinLedger(session_factory)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def workflow(session_factory, ledger, sink):
    return BookingWorkflow(
        session_factory,
        ledger=ledger,
        notifier=NotificationService(sink=sink, enabled=True),
        coin_cost_per_passenger=10000,
    )


@pytest.fixture
def make_trip(session_factory, world):
    """Insert a SCHEDULED trip departing tomorrow on the bus (or the given vehicle)."""

    async def _make(seats=10, vehicle=None, driver=None, hours_ahead=24, price="50000.00", status=TripStatus.SCHEDULED):
        departure = utcnow().replace(microsecond=0) + timedelta(hours=hours_ahead)
        async with session_factory() as db:
            async with db.begin():
                trip = Trip(
                    route_id=world["route"],
                    vehicle_id=vehicle or world["bus"],
                    driver_id=driver,
                    departure_time=departure,
                    arrival_time=departure + timedelta(hours=6),
                    unit_price=Decimal(price),
                    available_seats=seats,
                    status=status,
                )
                db.add(trip)
                await db.flush()
                return trip.id

    return _make


@pytest.fixture
def fund(ledger):
    async def _fund(account_id, amount):
        await ledger.credit(account_id, amount, EntryReason.MANUAL_ADJUSTMENT, reference_type="test")

    return _fund


@pytest.fixture
def load(session_factory):
    """Fresh read of one row in its own session."""

    async def _load(model, entity_id):
        async with session_factory() as db:
            return await db.get(model, entity_id)

    return _load


@pytest.fixture
def pax():
    def _pax(*seats, prefix="Passenger"):
        return [PassengerData(name=f"{prefix} {i + 1}", seat_number=seat) for i, seat in enumerate(seats)]

    return _pax
