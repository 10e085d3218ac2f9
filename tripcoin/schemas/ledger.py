from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime


class BalanceResponse(BaseModel):
    account_id: int
    owner_id: int
    balance: int


class LedgerEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    account_id: int
    entry_type: str
    reason: str
    amount: int
    balance_before: int
    balance_after: int
    reference_id: Optional[str] = None
    reference_type: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    created_by: Optional[int] = None


class CoinRequestCreate(BaseModel):
    amount: int = Field(..., gt=0)
    notes: Optional[str] = None


class CoinRequestDecision(BaseModel):
    notes: Optional[str] = None


class CoinRequestRejection(BaseModel):
    reason: str = Field(..., min_length=1)


class CoinRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    account_id: int
    amount: int
    notes: Optional[str] = None
    status: str
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    rejected_reason: Optional[str] = None
    created_at: datetime


class TravelDocumentCreate(BaseModel):
    trip_id: int
    notes: Optional[str] = None


class TravelDocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    document_number: str
    trip_id: int
    ledger_account_id: int
    status: str
    coin_cost: int
    notes: Optional[str] = None
    issued_at: Optional[datetime] = None
    created_at: datetime
