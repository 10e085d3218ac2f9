from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal


class TripCreate(BaseModel):
    route_id: int
    vehicle_id: int
    driver_id: Optional[int] = None
    departure_time: datetime
    arrival_time: Optional[datetime] = None
    available_seats: int = Field(..., ge=0)
    unit_price: Decimal = Field(..., ge=0)


class TripUpdate(BaseModel):
    route_id: Optional[int] = None
    vehicle_id: Optional[int] = None
    driver_id: Optional[int] = None
    departure_time: Optional[datetime] = None
    arrival_time: Optional[datetime] = None
    available_seats: Optional[int] = Field(None, ge=0)
    unit_price: Optional[Decimal] = Field(None, ge=0)


class AssignDriverRequest(BaseModel):
    driver_id: int


class TripResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    route_id: int
    vehicle_id: int
    driver_id: Optional[int] = None
    departure_time: datetime
    arrival_time: Optional[datetime] = None
    unit_price: Decimal
    available_seats: int
    status: str


class BookedSeatsResponse(BaseModel):
    trip_id: int
    seat_numbers: List[str]
