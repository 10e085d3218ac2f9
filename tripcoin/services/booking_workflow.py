"""Booking workflow: review-path requests and tickets under one state machine.

A booking enters either through a reviewed payment proof (``submit`` then
``approve``) or directly (``book_direct``). Both paths issue tickets through
:meth:`BookingWorkflow._issue_ticket`, which reserves seats and debits the
funding ledger account inside the caller's transaction.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tripcoin.config import settings
from tripcoin.db.session import async_session, transactional
from tripcoin.errors import (
    CapacityExceeded,
    InvalidState,
    InvariantViolation,
    NotFound,
    PermissionDenied,
    SeatConflict,
    TemporalViolation,
)
from tripcoin.metrics import BOOKING_TRANSITIONS
from tripcoin.models.models import (
    BookingOriginKind,
    BookingRequest,
    EntryReason,
    LedgerAccount,
    Passenger,
    RequestStatus,
    Role,
    Ticket,
    TicketStatus,
    Trip,
    TripStatus,
)
from tripcoin.services import notification_service as events
from tripcoin.services import references, seat_inventory
from tripcoin.services.actors import Actor
from tripcoin.services.audit import log_audit
from tripcoin.services.ledger import CoinLedger
from tripcoin.services.notification_service import NotificationService, notification_service
from tripcoin.timeutil import utcnow

logger = logging.getLogger(__name__)

REQUEST = "request"
TICKET = "ticket"

# (entity, from status) -> statuses it may move to
TRANSITIONS: Dict[Tuple[str, str], Tuple[str, ...]] = {
    (REQUEST, RequestStatus.PENDING): (RequestStatus.APPROVED, RequestStatus.REJECTED),
    (TICKET, TicketStatus.PENDING_PAYMENT): (TicketStatus.CONFIRMED, TicketStatus.CANCELLED, TicketStatus.REFUNDED),
    (TICKET, TicketStatus.PENDING_APPROVAL): (TicketStatus.CONFIRMED, TicketStatus.CANCELLED, TicketStatus.REFUNDED),
    (TICKET, TicketStatus.CONFIRMED): (TicketStatus.COMPLETED, TicketStatus.CANCELLED, TicketStatus.REFUNDED),
}

# records may only be deleted from these states
REMOVABLE = {
    REQUEST: (RequestStatus.REJECTED,),
    TICKET: (TicketStatus.CANCELLED, TicketStatus.REFUNDED),
}


def can_transition(entity: str, current: str, target: str) -> bool:
    return target in TRANSITIONS.get((entity, current), ())


@dataclass(frozen=True)
class PassengerData:
    name: str
    identity_number: Optional[str] = None
    phone: Optional[str] = None
    seat_number: Optional[str] = None


@dataclass(frozen=True)
class DirectOrigin:
    """Ticket booked without review; funded when an admin account pays for it."""

    funding_account_id: Optional[int] = None
    kind = BookingOriginKind.DIRECT


@dataclass(frozen=True)
class ReviewedProofOrigin:
    """Ticket issued by approving a payment proof, funded by the reviewer."""

    request_id: int
    reviewer_account_id: int
    kind = BookingOriginKind.REVIEWED_PROOF

    @property
    def funding_account_id(self) -> int:
        return self.reviewer_account_id


BookingOrigin = Union[DirectOrigin, ReviewedProofOrigin]


def _reference(prefix: str, now: datetime) -> str:
    return f"{prefix}-{now:%Y%m%d}-{uuid.uuid4().hex[:8].upper()}"


class _Pending:
    """Side effects that only happen once the transaction has committed."""

    def __init__(self):
        self.transitions: List[Tuple[str, str]] = []
        self.notices: List[Tuple[Optional[int], str, Dict]] = []


class BookingWorkflow:
    def __init__(
        self,
        session_factory: async_sessionmaker = None,
        ledger: CoinLedger = None,
        notifier: NotificationService = None,
        coin_cost_per_passenger: int = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory or async_session
        self.ledger = ledger or CoinLedger(self.session_factory)
        self.notifier = notifier or notification_service
        if coin_cost_per_passenger is None:
            coin_cost_per_passenger = settings.COIN_COST_PER_PASSENGER
        if coin_cost_per_passenger < 0:
            raise InvariantViolation("Coin cost per passenger must not be negative", cost=coin_cost_per_passenger)
        self.coin_cost_per_passenger = coin_cost_per_passenger
        self.clock = clock

    # -- helpers -----------------------------------------------------------

    def _transition(self, pending: _Pending, entity: str, obj, target: str):
        if not can_transition(entity, obj.status, target):
            raise InvalidState(
                f"Cannot move {entity} from {obj.status} to {target}",
                entity=entity,
                id=obj.id,
                status=obj.status,
                target=target,
            )
        obj.status = target
        pending.transitions.append((entity, target))

    async def _commit_effects(self, pending: _Pending):
        for entity, status in pending.transitions:
            BOOKING_TRANSITIONS.labels(entity=entity, status=status).inc()
        for recipient_id, event, context in pending.notices:
            await self.notifier.publish(recipient_id, event, context)

    def _assert_bookable(self, trip: Trip):
        if trip.status != TripStatus.SCHEDULED:
            raise InvalidState(f"Cannot book trip with status: {trip.status}", trip_id=trip.id, status=trip.status)
        if trip.departure_time <= self.clock():
            raise TemporalViolation("Cannot book a trip that has already departed", trip_id=trip.id)

    @staticmethod
    def _check_passengers(passengers: Sequence[PassengerData]):
        if not passengers:
            raise InvariantViolation("At least one passenger is required")
        dupes = seat_inventory.duplicate_seats(p.seat_number for p in passengers)
        if dupes:
            # rejected before any database work
            raise SeatConflict("Duplicate seat numbers within the same booking", dupes)

    @staticmethod
    def _copy_passengers(passengers) -> List[Passenger]:
        return [
            Passenger(name=p.name, identity_number=p.identity_number, phone=p.phone, seat_number=p.seat_number)
            for p in passengers
        ]

    @staticmethod
    async def _load(session: AsyncSession, model, entity_id: int, entity: str):
        res = await session.execute(select(model).where(model.id == entity_id).with_for_update(of=model))
        obj = res.scalars().first()
        if obj is None:
            raise NotFound(entity, entity_id)
        return obj

    @staticmethod
    async def _funding_owner(session: AsyncSession, account_id: Optional[int]) -> Optional[int]:
        if account_id is None:
            return None
        res = await session.execute(select(LedgerAccount.owner_id).where(LedgerAccount.id == account_id))
        return res.scalar_one_or_none()

    def _ticket_context(self, ticket: Ticket, trip: Trip, **extra) -> Dict:
        ctx = {
            "ticket_number": ticket.ticket_number,
            "trip_id": trip.id,
            "departure": trip.departure_time.isoformat(),
            "total_passengers": ticket.total_passengers,
        }
        ctx.update(extra)
        return ctx

    async def _issue_ticket(
        self,
        session: AsyncSession,
        trip: Trip,
        passengers,
        origin: BookingOrigin,
        status: str,
        customer_id: Optional[int],
        actor_id: int,
        booker_phone: Optional[str] = None,
        pickup_address: Optional[str] = None,
        dropoff_address: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Ticket:
        """Create the ticket, take its seats and debit the funding account.

        Runs inside the caller's transaction; any failure rolls back all three.
        """
        now = self.clock()
        count = len(passengers)
        funding_account_id = origin.funding_account_id
        coin_cost = count * self.coin_cost_per_passenger if funding_account_id is not None else 0

        ticket = Ticket(
            ticket_number=_reference("TKT", now),
            trip_id=trip.id,
            customer_id=customer_id,
            origin=origin.kind,
            request_id=getattr(origin, "request_id", None),
            ledger_account_id=funding_account_id,
            coin_cost=coin_cost,
            booker_phone=booker_phone,
            pickup_address=pickup_address,
            dropoff_address=dropoff_address,
            total_passengers=count,
            total_price=trip.unit_price * count,
            status=status,
            booked_at=now,
            payment_date=now if status == TicketStatus.CONFIRMED else None,
            notes=notes,
            passengers=self._copy_passengers(passengers),
        )
        session.add(ticket)
        await session.flush()

        await seat_inventory.reserve(session, trip.id, count)
        if funding_account_id is not None:
            await self.ledger.debit(
                funding_account_id,
                coin_cost,
                EntryReason.TICKET_BOOKING,
                ticket.ticket_number,
                reference_type="ticket",
                notes=f"Ticket booking for {count} passenger(s)",
                created_by=actor_id,
                session=session,
            )
        return ticket

    # -- review path -------------------------------------------------------

    async def submit(
        self,
        trip_id: int,
        passengers: Sequence[PassengerData],
        requester: Actor,
        proof_url: Optional[str] = None,
        booker_phone: Optional[str] = None,
        pickup_address: Optional[str] = None,
        dropoff_address: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> BookingRequest:
        self._check_passengers(passengers)
        count = len(passengers)
        pending = _Pending()
        async with transactional(self.session_factory) as db:
            await references.active_user(db, requester.user_id)
            # serializes seat-number checks with other submits and approvals on the trip
            trip = await references.get_trip(db, trip_id, for_update=True)
            self._assert_bookable(trip)
            if count > trip.available_seats:
                raise CapacityExceeded(
                    f"Not enough seats available. Requested: {count}, Available: {trip.available_seats}",
                    trip_id=trip_id,
                    requested=count,
                    available=trip.available_seats,
                )
            await seat_inventory.assert_seat_numbers_free(db, trip_id, [p.seat_number for p in passengers])

            now = self.clock()
            request = BookingRequest(
                reference=_reference("PAY", now),
                trip_id=trip_id,
                requester_id=requester.user_id,
                proof_url=proof_url,
                booker_phone=booker_phone,
                pickup_address=pickup_address,
                dropoff_address=dropoff_address,
                notes=notes,
                total_passengers=count,
                total_price=trip.unit_price * count,
                status=RequestStatus.PENDING,
                submitted_at=now,
                passengers=self._copy_passengers(passengers),
            )
            db.add(request)
            await db.flush()
            pending.transitions.append((REQUEST, RequestStatus.PENDING))
            await log_audit(db, requester.user_id, "submit_request", "booking_request", request.id, {"trip_id": trip_id, "passengers": count})
        await self._commit_effects(pending)
        logger.info("booking request submitted", extra={"request_id": request.id, "trip_id": trip_id})
        return request

    async def approve(self, request_id: int, reviewer: Actor) -> Ticket:
        """Approve a pending request and issue its ticket in one transaction.

        The trip, seat numbers, seat count and reviewer balance are re-checked
        under row locks; if anything fails the request stays PENDING and no
        seats or coins move.
        """
        pending = _Pending()
        async with transactional(self.session_factory) as db:
            await references.admin_user(db, reviewer.user_id)
            request = await self._load(db, BookingRequest, request_id, "BookingRequest")
            if request.status != RequestStatus.PENDING:
                raise InvalidState(
                    f"Payment proof has already been {request.status.lower()}",
                    request_id=request_id,
                    status=request.status,
                )
            trip = await references.get_trip(db, request.trip_id, for_update=True)
            self._assert_bookable(trip)
            await seat_inventory.assert_seat_numbers_free(
                db, trip.id, [p.seat_number for p in request.passengers], exclude_request_id=request.id
            )
            account = await references.account_of(db, reviewer.user_id)

            ticket = await self._issue_ticket(
                db,
                trip,
                request.passengers,
                ReviewedProofOrigin(request_id=request.id, reviewer_account_id=account.id),
                status=TicketStatus.CONFIRMED,
                customer_id=request.requester_id,
                actor_id=reviewer.user_id,
                booker_phone=request.booker_phone,
                pickup_address=request.pickup_address,
                dropoff_address=request.dropoff_address,
                notes=request.notes,
            )
            pending.transitions.append((TICKET, TicketStatus.CONFIRMED))

            self._transition(pending, REQUEST, request, RequestStatus.APPROVED)
            request.reviewed_by = reviewer.user_id
            request.reviewed_at = self.clock()
            request.ticket_id = ticket.id
            await db.flush()
            await log_audit(
                db,
                reviewer.user_id,
                "approve_request",
                "booking_request",
                request.id,
                {"ticket_id": ticket.id, "coin_cost": ticket.coin_cost},
            )
            pending.notices.append(
                (request.requester_id, events.REQUEST_APPROVED, self._ticket_context(ticket, trip, reference=request.reference))
            )
        await self._commit_effects(pending)
        logger.info("booking request approved", extra={"request_id": request_id, "ticket_id": ticket.id})
        return ticket

    async def reject(self, request_id: int, reviewer: Actor, reason: str) -> BookingRequest:
        pending = _Pending()
        async with transactional(self.session_factory) as db:
            await references.admin_user(db, reviewer.user_id)
            request = await self._load(db, BookingRequest, request_id, "BookingRequest")
            self._transition(pending, REQUEST, request, RequestStatus.REJECTED)
            request.reviewed_by = reviewer.user_id
            request.reviewed_at = self.clock()
            request.rejection_reason = reason
            await db.flush()
            await log_audit(db, reviewer.user_id, "reject_request", "booking_request", request.id, {"reason": reason})
            pending.notices.append(
                (request.requester_id, events.REQUEST_REJECTED, {"reference": request.reference, "reason": reason})
            )
        await self._commit_effects(pending)
        return request

    # -- direct path -------------------------------------------------------

    async def book_direct(
        self,
        trip_id: int,
        passengers: Sequence[PassengerData],
        actor: Actor,
        customer_id: Optional[int] = None,
        booker_phone: Optional[str] = None,
        pickup_address: Optional[str] = None,
        dropoff_address: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Ticket:
        """Book without review.

        An admin's booking is confirmed at once and paid from the admin's
        ledger account. A customer's booking holds its seats as
        PENDING_PAYMENT until confirmed.
        """
        self._check_passengers(passengers)
        pending = _Pending()
        async with transactional(self.session_factory) as db:
            user = await references.active_user(db, actor.user_id)
            trip = await references.get_trip(db, trip_id, for_update=True)
            self._assert_bookable(trip)
            await seat_inventory.assert_seat_numbers_free(db, trip_id, [p.seat_number for p in passengers])

            if user.role in (Role.ADMIN, Role.SUPER_ADMIN):
                account = await references.account_of(db, user.id)
                origin = DirectOrigin(funding_account_id=account.id)
                status = TicketStatus.CONFIRMED
                if customer_id is not None:
                    await references.active_user(db, customer_id)
            else:
                origin = DirectOrigin()
                status = TicketStatus.PENDING_PAYMENT
                customer_id = user.id

            ticket = await self._issue_ticket(
                db,
                trip,
                passengers,
                origin,
                status=status,
                customer_id=customer_id,
                actor_id=user.id,
                booker_phone=booker_phone,
                pickup_address=pickup_address,
                dropoff_address=dropoff_address,
                notes=notes,
            )
            pending.transitions.append((TICKET, status))
            await log_audit(
                db,
                user.id,
                "book_direct",
                "ticket",
                ticket.id,
                {"trip_id": trip_id, "status": status, "coin_cost": ticket.coin_cost},
            )
            if status == TicketStatus.CONFIRMED:
                pending.notices.append((customer_id, events.TICKET_CONFIRMED, self._ticket_context(ticket, trip)))
        await self._commit_effects(pending)
        logger.info("direct booking created", extra={"ticket_id": ticket.id, "status": status})
        return ticket

    async def confirm(self, ticket_id: int, actor: Actor) -> Ticket:
        pending = _Pending()
        async with transactional(self.session_factory) as db:
            await references.admin_user(db, actor.user_id)
            ticket = await self._load(db, Ticket, ticket_id, "Ticket")
            if ticket.status not in (TicketStatus.PENDING_PAYMENT, TicketStatus.PENDING_APPROVAL):
                raise InvalidState(
                    f"Cannot confirm ticket with status: {ticket.status}", ticket_id=ticket_id, status=ticket.status
                )
            self._transition(pending, TICKET, ticket, TicketStatus.CONFIRMED)
            ticket.payment_date = self.clock()
            await db.flush()
            trip = await references.get_trip(db, ticket.trip_id)
            await log_audit(db, actor.user_id, "confirm_ticket", "ticket", ticket.id)
            pending.notices.append((ticket.customer_id, events.TICKET_CONFIRMED, self._ticket_context(ticket, trip)))
        await self._commit_effects(pending)
        return ticket

    # -- reversal ----------------------------------------------------------

    async def cancel(self, ticket_id: int, actor: Actor, reason: Optional[str] = None) -> Ticket:
        """Cancel a live ticket, returning its seats and any coins it cost.

        Admin-funded tickets end REFUNDED with a refund of the recorded
        ``coin_cost``; all others end CANCELLED.
        """
        pending = _Pending()
        async with transactional(self.session_factory) as db:
            user = await references.active_user(db, actor.user_id)
            ticket = await self._load(db, Ticket, ticket_id, "Ticket")
            if ticket.status in TicketStatus.TERMINAL:
                raise InvalidState(
                    f"Cannot cancel ticket with status: {ticket.status}", ticket_id=ticket_id, status=ticket.status
                )
            trip = await references.get_trip(db, ticket.trip_id, for_update=True)
            if trip.status in (TripStatus.DEPARTED, TripStatus.ARRIVED):
                raise InvalidState(
                    "Cannot cancel ticket after the trip has departed", ticket_id=ticket_id, trip_status=trip.status
                )

            funding_owner = await self._funding_owner(db, ticket.ledger_account_id)
            allowed = (
                user.role == Role.SUPER_ADMIN
                or (ticket.customer_id is not None and ticket.customer_id == user.id)
                or (funding_owner is not None and funding_owner == user.id)
            )
            if not allowed:
                raise PermissionDenied("You do not have permission to cancel this ticket", ticket_id=ticket_id)

            await seat_inventory.release(db, trip.id, ticket.total_passengers)
            funded = ticket.ledger_account_id is not None and ticket.coin_cost > 0
            if funded:
                await self.ledger.refund(
                    ticket.ledger_account_id,
                    ticket.coin_cost,
                    EntryReason.TICKET_CANCELLATION,
                    ticket.ticket_number,
                    reference_type="ticket",
                    notes=reason or f"Refund for cancelled ticket {ticket.ticket_number}",
                    created_by=user.id,
                    session=db,
                )
                self._transition(pending, TICKET, ticket, TicketStatus.REFUNDED)
                pending.notices.append(
                    (
                        ticket.customer_id,
                        events.TICKET_REFUNDED,
                        self._ticket_context(ticket, trip, refunded_coins=ticket.coin_cost),
                    )
                )
            else:
                self._transition(pending, TICKET, ticket, TicketStatus.CANCELLED)
                pending.notices.append(
                    (ticket.customer_id, events.TICKET_CANCELLED, self._ticket_context(ticket, trip, reason=reason))
                )
            if reason:
                ticket.notes = reason
            await db.flush()
            await log_audit(
                db,
                user.id,
                "cancel_ticket",
                "ticket",
                ticket.id,
                {"status": ticket.status, "refunded": ticket.coin_cost if funded else 0},
            )
        await self._commit_effects(pending)
        logger.info("ticket cancelled", extra={"ticket_id": ticket_id, "status": ticket.status})
        return ticket

    async def remove_request(self, request_id: int, actor: Actor):
        async with transactional(self.session_factory) as db:
            user = await references.active_user(db, actor.user_id)
            request = await self._load(db, BookingRequest, request_id, "BookingRequest")
            if user.role not in (Role.ADMIN, Role.SUPER_ADMIN) and request.requester_id != user.id:
                raise PermissionDenied("You do not have permission to delete this request", request_id=request_id)
            if request.status not in REMOVABLE[REQUEST]:
                raise InvalidState(
                    f"Cannot delete request with status: {request.status}", request_id=request_id, status=request.status
                )
            await db.delete(request)
            await log_audit(db, user.id, "remove_request", "booking_request", request_id)

    async def remove_ticket(self, ticket_id: int, actor: Actor):
        async with transactional(self.session_factory) as db:
            user = await references.active_user(db, actor.user_id)
            ticket = await self._load(db, Ticket, ticket_id, "Ticket")
            funding_owner = await self._funding_owner(db, ticket.ledger_account_id)
            allowed = user.role == Role.SUPER_ADMIN or user.id in (ticket.customer_id, funding_owner)
            if not allowed:
                raise PermissionDenied("You do not have permission to delete this ticket", ticket_id=ticket_id)
            if ticket.status not in REMOVABLE[TICKET]:
                raise InvalidState(
                    f"Cannot delete ticket with status: {ticket.status}. Cancel it first.",
                    ticket_id=ticket_id,
                    status=ticket.status,
                )
            await db.execute(
                update(BookingRequest)
                .where(BookingRequest.ticket_id == ticket_id)
                .values(ticket_id=None)
                .execution_options(synchronize_session=False)
            )
            await db.delete(ticket)
            await log_audit(db, user.id, "remove_ticket", "ticket", ticket_id)

    # -- trip progress -----------------------------------------------------

    async def complete_trip(self, trip_id: int, actor: Optional[Actor] = None) -> Trip:
        """Mark the trip ARRIVED and its confirmed tickets COMPLETED."""
        pending = _Pending()
        async with transactional(self.session_factory) as db:
            if actor is not None:
                await references.admin_user(db, actor.user_id)
            trip = await references.get_trip(db, trip_id, for_update=True)
            if trip.status not in TripStatus.OCCUPYING:
                raise InvalidState(f"Cannot complete trip with status: {trip.status}", trip_id=trip_id, status=trip.status)
            trip.status = TripStatus.ARRIVED
            if trip.arrival_time is None:
                trip.arrival_time = max(self.clock(), trip.departure_time)
            res = await db.execute(
                select(Ticket)
                .where(Ticket.trip_id == trip_id, Ticket.status == TicketStatus.CONFIRMED)
                .with_for_update(of=Ticket)
            )
            tickets = list(res.scalars().all())
            for ticket in tickets:
                self._transition(pending, TICKET, ticket, TicketStatus.COMPLETED)
            await db.flush()
            await log_audit(
                db,
                actor.user_id if actor else None,
                "complete_trip",
                "trip",
                trip_id,
                {"completed_tickets": len(tickets)},
            )
        await self._commit_effects(pending)
        return trip

    # -- reads -------------------------------------------------------------

    @staticmethod
    def _assert_can_read(user, owner_id: Optional[int], entity: str, entity_id: int):
        # passenger identity data: staff or the booking owner only
        if user.role in (Role.ADMIN, Role.SUPER_ADMIN) or (owner_id is not None and owner_id == user.id):
            return
        raise PermissionDenied(f"You do not have permission to view this {entity}", id=entity_id)

    async def get_ticket(self, ticket_id: int, actor: Actor) -> Ticket:
        async with transactional(self.session_factory) as db:
            user = await references.active_user(db, actor.user_id)
            ticket = await db.get(Ticket, ticket_id)
            if ticket is None:
                raise NotFound("Ticket", ticket_id)
            self._assert_can_read(user, ticket.customer_id, "ticket", ticket_id)
            return ticket

    async def get_request(self, request_id: int, actor: Actor) -> BookingRequest:
        async with transactional(self.session_factory) as db:
            user = await references.active_user(db, actor.user_id)
            request = await db.get(BookingRequest, request_id)
            if request is None:
                raise NotFound("BookingRequest", request_id)
            self._assert_can_read(user, request.requester_id, "request", request_id)
            return request
