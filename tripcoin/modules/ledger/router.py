from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional

from tripcoin.auth.deps import admin_required, role_required
from tripcoin.errors import PermissionDenied
from tripcoin.models.models import Role
from tripcoin.modules.deps import get_coin_requests, get_ledger
from tripcoin.schemas.ledger import (
    BalanceResponse,
    CoinRequestCreate,
    CoinRequestDecision,
    CoinRequestRejection,
    CoinRequestResponse,
    LedgerEntryResponse,
)
from tripcoin.services.actors import Actor
from tripcoin.services.coin_requests import CoinRequestService
from tripcoin.services.ledger import CoinLedger

router = APIRouter()

super_admin_required = role_required([Role.SUPER_ADMIN])


async def _own_account_id(ledger: CoinLedger, actor: Actor, account_id: Optional[int]) -> int:
    own = await ledger.account_for_owner(actor.user_id)
    if account_id is None or account_id == own.id:
        return own.id
    if not actor.is_super_admin:
        raise PermissionDenied("You can only view your own ledger", account_id=account_id)
    return account_id


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(actor: Actor = Depends(admin_required), ledger: CoinLedger = Depends(get_ledger)):
    account = await ledger.account_for_owner(actor.user_id)
    return BalanceResponse(account_id=account.id, owner_id=account.owner_id, balance=account.balance)


@router.get("/entries", response_model=List[LedgerEntryResponse])
async def list_entries(
    account_id: Optional[int] = None,
    entry_type: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(admin_required),
    ledger: CoinLedger = Depends(get_ledger),
):
    target = await _own_account_id(ledger, actor, account_id)
    return await ledger.list_entries(target, limit=limit, offset=offset, entry_type=entry_type)


@router.post("/requests", response_model=CoinRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_coin_request(
    req: CoinRequestCreate,
    actor: Actor = Depends(admin_required),
    service: CoinRequestService = Depends(get_coin_requests),
):
    return await service.create(actor, req.amount, notes=req.notes)


@router.get("/requests", response_model=List[CoinRequestResponse])
async def list_coin_requests(
    status_filter: Optional[str] = Query(None, alias="status"),
    actor: Actor = Depends(admin_required),
    service: CoinRequestService = Depends(get_coin_requests),
):
    return await service.list_for(actor, status=status_filter)


@router.post("/requests/{request_id}/approve", response_model=CoinRequestResponse)
async def approve_coin_request(
    request_id: int,
    req: CoinRequestDecision = None,
    actor: Actor = Depends(super_admin_required),
    service: CoinRequestService = Depends(get_coin_requests),
):
    return await service.approve(request_id, actor, notes=req.notes if req else None)


@router.post("/requests/{request_id}/reject", response_model=CoinRequestResponse)
async def reject_coin_request(
    request_id: int,
    req: CoinRequestRejection,
    actor: Actor = Depends(super_admin_required),
    service: CoinRequestService = Depends(get_coin_requests),
):
    return await service.reject(request_id, actor, req.reason)
