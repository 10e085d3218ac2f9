from .models import *

__all__ = [
    "Base",
    "Role",
    "VehicleStatus",
    "DriverStatus",
    "TripStatus",
    "RequestStatus",
    "TicketStatus",
    "BookingOriginKind",
    "EntryType",
    "EntryReason",
    "CoinRequestStatus",
    "DocumentStatus",
    "User",
    "Route",
    "Vehicle",
    "Driver",
    "Trip",
    "BookingRequest",
    "Ticket",
    "Passenger",
    "LedgerAccount",
    "LedgerEntry",
    "CoinRequest",
    "TravelDocument",
    "AuditLog",
]
