from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    event,
)
from sqlalchemy.orm import Session, relationship

from tripcoin.db.base import Base
from tripcoin.errors import InvariantViolation
from tripcoin.timeutil import utcnow


class Role:
    CUSTOMER = "customer"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class VehicleStatus:
    ACTIVE = "active"
    MAINTENANCE = "maintenance"
    RETIRED = "retired"


class DriverStatus:
    ACTIVE = "active"
    INACTIVE = "inactive"


class TripStatus:
    SCHEDULED = "SCHEDULED"
    DEPARTED = "DEPARTED"
    ARRIVED = "ARRIVED"
    CANCELLED = "CANCELLED"

    # trips in these states hold their vehicle and driver
    OCCUPYING = (SCHEDULED, DEPARTED)


class RequestStatus:
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class TicketStatus:
    PENDING_PAYMENT = "PENDING_PAYMENT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"

    ACTIVE = (PENDING_PAYMENT, PENDING_APPROVAL, CONFIRMED)
    TERMINAL = (COMPLETED, CANCELLED, REFUNDED)


class BookingOriginKind:
    DIRECT = "direct"
    REVIEWED_PROOF = "reviewed_proof"


class EntryType:
    TOP_UP = "TOP_UP"
    DEDUCTION = "DEDUCTION"
    REFUND = "REFUND"


class EntryReason:
    TICKET_BOOKING = "TICKET_BOOKING"
    TICKET_CANCELLATION = "TICKET_CANCELLATION"
    TRAVEL_DOCUMENT = "TRAVEL_DOCUMENT"
    TOP_UP_APPROVED = "TOP_UP_APPROVED"
    MANUAL_ADJUSTMENT = "MANUAL_ADJUSTMENT"


class CoinRequestStatus:
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class DocumentStatus:
    DRAFT = "DRAFT"
    ISSUED = "ISSUED"
    CANCELLED = "CANCELLED"


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    full_name = Column(String(255), nullable=True)
    phone = Column(String(32), nullable=True, unique=True)
    # customer | admin | super_admin
    role = Column(String(32), nullable=False, default=Role.CUSTOMER, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class Route(Base):
    __tablename__ = "routes"
    id = Column(Integer, primary_key=True)
    code = Column(String(32), nullable=False, unique=True, index=True)
    origin = Column(String(128), nullable=False)
    destination = Column(String(128), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class Vehicle(Base):
    __tablename__ = "vehicles"
    id = Column(Integer, primary_key=True)
    registration_number = Column(String(64), nullable=False, unique=True, index=True)
    capacity = Column(Integer, nullable=False)
    status = Column(String(32), nullable=False, default=VehicleStatus.ACTIVE)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (CheckConstraint("capacity >= 1", name="ck_vehicle_capacity_positive"),)


class Driver(Base):
    __tablename__ = "drivers"
    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(32), nullable=True)
    status = Column(String(32), nullable=False, default=DriverStatus.ACTIVE)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class Trip(Base):
    __tablename__ = "trips"
    id = Column(Integer, primary_key=True)
    route_id = Column(Integer, ForeignKey("routes.id", ondelete="RESTRICT"), nullable=False, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id", ondelete="RESTRICT"), nullable=False, index=True)
    driver_id = Column(Integer, ForeignKey("drivers.id", ondelete="SET NULL"), nullable=True, index=True)
    departure_time = Column(DateTime, nullable=False, index=True)
    arrival_time = Column(DateTime, nullable=True)
    unit_price = Column(Numeric(12, 2), nullable=False, default=0)
    available_seats = Column(Integer, nullable=False, default=0)
    status = Column(String(32), nullable=False, default=TripStatus.SCHEDULED, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    route = relationship("Route", lazy="joined", innerjoin=True)
    vehicle = relationship("Vehicle", lazy="joined", innerjoin=True)

    __table_args__ = (CheckConstraint("available_seats >= 0", name="ck_trip_available_seats_non_negative"),)


class BookingRequest(Base):
    """Customer-submitted payment proof awaiting review."""

    __tablename__ = "booking_requests"
    id = Column(Integer, primary_key=True)
    reference = Column(String(64), nullable=False, unique=True, index=True)
    trip_id = Column(Integer, ForeignKey("trips.id", ondelete="RESTRICT"), nullable=False, index=True)
    requester_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    proof_url = Column(String(1024), nullable=True)
    booker_phone = Column(String(32), nullable=True)
    pickup_address = Column(String(512), nullable=True)
    dropoff_address = Column(String(512), nullable=True)
    notes = Column(String(1024), nullable=True)
    total_passengers = Column(Integer, nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)
    status = Column(String(32), nullable=False, default=RequestStatus.PENDING, index=True)
    submitted_at = Column(DateTime, nullable=False, default=utcnow)
    reviewed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    rejection_reason = Column(String(1024), nullable=True)
    ticket_id = Column(Integer, ForeignKey("tickets.id", ondelete="SET NULL"), nullable=True)

    passengers = relationship(
        "Passenger",
        back_populates="request",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Passenger.id",
    )


class Ticket(Base):
    __tablename__ = "tickets"
    id = Column(Integer, primary_key=True)
    ticket_number = Column(String(64), nullable=False, unique=True, index=True)
    trip_id = Column(Integer, ForeignKey("trips.id", ondelete="RESTRICT"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    # direct | reviewed_proof
    origin = Column(String(32), nullable=False)
    request_id = Column(Integer, nullable=True)
    ledger_account_id = Column(Integer, ForeignKey("ledger_accounts.id", ondelete="RESTRICT"), nullable=True, index=True)
    coin_cost = Column(BigInteger, nullable=False, default=0)
    booker_phone = Column(String(32), nullable=True)
    pickup_address = Column(String(512), nullable=True)
    dropoff_address = Column(String(512), nullable=True)
    total_passengers = Column(Integer, nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)
    status = Column(String(32), nullable=False, index=True)
    booked_at = Column(DateTime, nullable=False, default=utcnow)
    payment_date = Column(DateTime, nullable=True)
    notes = Column(String(1024), nullable=True)

    passengers = relationship(
        "Passenger",
        back_populates="ticket",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Passenger.id",
    )


class Passenger(Base):
    __tablename__ = "passengers"
    id = Column(Integer, primary_key=True)
    request_id = Column(Integer, ForeignKey("booking_requests.id", ondelete="CASCADE"), nullable=True, index=True)
    ticket_id = Column(Integer, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    identity_number = Column(String(64), nullable=True)
    phone = Column(String(32), nullable=True)
    seat_number = Column(String(16), nullable=True)

    request = relationship("BookingRequest", back_populates="passengers")
    ticket = relationship("Ticket", back_populates="passengers")

    __table_args__ = (
        CheckConstraint(
            "(request_id IS NULL) <> (ticket_id IS NULL)",
            name="ck_passenger_single_parent",
        ),
        Index("ix_passengers_seat_number", "seat_number"),
    )


class LedgerAccount(Base):
    __tablename__ = "ledger_accounts"
    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, unique=True, index=True)
    balance = Column(BigInteger, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (CheckConstraint("balance >= 0", name="ck_ledger_balance_non_negative"),)


class LedgerEntry(Base):
    __tablename__ = "ledger_entries"
    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey("ledger_accounts.id", ondelete="RESTRICT"), nullable=False, index=True)
    entry_type = Column(String(32), nullable=False, index=True)
    reason = Column(String(64), nullable=False)
    amount = Column(BigInteger, nullable=False)
    balance_before = Column(BigInteger, nullable=False)
    balance_after = Column(BigInteger, nullable=False)
    reference_id = Column(String(128), nullable=True, index=True)
    reference_type = Column(String(64), nullable=True)
    notes = Column(String(1024), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    created_by = Column(Integer, nullable=True)

    __table_args__ = (
        CheckConstraint("balance_after = balance_before + amount", name="ck_ledger_entry_closed"),
        CheckConstraint("balance_after >= 0", name="ck_ledger_entry_non_negative"),
    )


class CoinRequest(Base):
    __tablename__ = "coin_requests"
    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey("ledger_accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)
    notes = Column(String(1024), nullable=True)
    status = Column(String(32), nullable=False, default=CoinRequestStatus.PENDING, index=True)
    approved_by = Column(Integer, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    rejected_reason = Column(String(1024), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (CheckConstraint("amount > 0", name="ck_coin_request_amount_positive"),)


class TravelDocument(Base):
    __tablename__ = "travel_documents"
    id = Column(Integer, primary_key=True)
    document_number = Column(String(64), nullable=False, unique=True, index=True)
    trip_id = Column(Integer, ForeignKey("trips.id", ondelete="RESTRICT"), nullable=False, index=True)
    ledger_account_id = Column(Integer, ForeignKey("ledger_accounts.id", ondelete="RESTRICT"), nullable=False, index=True)
    status = Column(String(32), nullable=False, default=DocumentStatus.DRAFT, index=True)
    coin_cost = Column(BigInteger, nullable=False, default=0)
    notes = Column(String(1024), nullable=True)
    issued_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(Integer, primary_key=True)
    actor_id = Column(Integer, nullable=True, index=True)
    action = Column(String(255), nullable=False)
    object_type = Column(String(128), nullable=True)
    object_id = Column(String(128), nullable=True)
    detail = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


@event.listens_for(Session, "before_flush")
def _ledger_entries_are_append_only(session, flush_context, instances):
    for obj in list(session.dirty) + list(session.deleted):
        if isinstance(obj, LedgerEntry):
            raise InvariantViolation("Ledger entries are append-only", entry_id=obj.id)
