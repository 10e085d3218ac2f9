from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal


class PassengerIn(BaseModel):
    name: str = Field(..., min_length=1)
    identity_number: Optional[str] = None
    phone: Optional[str] = None
    seat_number: Optional[str] = None


class PassengerOut(PassengerIn):
    model_config = ConfigDict(from_attributes=True)

    id: int


class BookingDetails(BaseModel):
    trip_id: int
    passengers: List[PassengerIn] = Field(..., min_length=1)
    booker_phone: Optional[str] = None
    pickup_address: Optional[str] = None
    dropoff_address: Optional[str] = None
    notes: Optional[str] = None


class SubmitRequest(BookingDetails):
    proof_url: Optional[str] = None


class DirectBookingRequest(BookingDetails):
    customer_id: Optional[int] = None


class RejectRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class CancelTicketRequest(BaseModel):
    reason: Optional[str] = None


class BookingRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    reference: str
    trip_id: int
    requester_id: int
    status: str
    total_passengers: int
    total_price: Decimal
    submitted_at: datetime
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    ticket_id: Optional[int] = None
    passengers: List[PassengerOut] = []


class TicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    ticket_number: str
    trip_id: int
    customer_id: Optional[int] = None
    origin: str
    request_id: Optional[int] = None
    ledger_account_id: Optional[int] = None
    coin_cost: int
    total_passengers: int
    total_price: Decimal
    status: str
    booked_at: datetime
    payment_date: Optional[datetime] = None
    passengers: List[PassengerOut] = []
