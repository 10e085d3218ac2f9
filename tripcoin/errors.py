"""Typed failures raised by the booking and ledger core.

Every failure carries a stable ``kind`` so callers never have to parse the
message text. The request-handling layer maps kinds to status codes.
"""
from typing import Any, Dict, Iterable, Optional


class BookingCoreError(Exception):
    kind = "internal"

    def __init__(self, message: str, **detail: Any):
        super().__init__(message)
        self.message = message
        self.detail: Dict[str, Any] = detail

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "message": self.message, "detail": self.detail}


class NotFound(BookingCoreError):
    kind = "not_found"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} not found", entity=entity, id=entity_id)


class InvalidState(BookingCoreError):
    kind = "invalid_state"


class HasActiveBookings(InvalidState):
    kind = "has_active_bookings"

    def __init__(self, trip_id: int, active: int):
        super().__init__(
            f"Trip has {active} active booking(s); cancel or refund them first",
            trip_id=trip_id,
            active=active,
        )


class ResourceConflict(BookingCoreError):
    kind = "resource_conflict"


class CapacityExceeded(BookingCoreError):
    kind = "capacity_exceeded"


class SeatConflict(BookingCoreError):
    kind = "seat_conflict"

    def __init__(self, message: str, seat_numbers: Iterable[str]):
        seats = sorted(set(seat_numbers))
        super().__init__(f"{message}: {', '.join(seats)}", seat_numbers=seats)


class InsufficientBalance(BookingCoreError):
    kind = "insufficient_balance"

    def __init__(self, account_id: int, required: int, available: Optional[int]):
        super().__init__(
            f"Insufficient coin balance. Required: {required}, Available: {available}",
            account_id=account_id,
            required=required,
            available=available,
        )


class TemporalViolation(BookingCoreError):
    kind = "temporal_violation"


class PermissionDenied(BookingCoreError):
    kind = "permission_denied"


class InvariantViolation(BookingCoreError):
    kind = "invariant_violation"


class StorageError(BookingCoreError):
    kind = "storage_error"
