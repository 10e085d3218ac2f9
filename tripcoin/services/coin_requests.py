"""Admin top-up requests, decided by a super admin."""
import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from tripcoin.db.session import async_session, transactional
from tripcoin.errors import InvalidState, InvariantViolation, NotFound
from tripcoin.models.models import CoinRequest, CoinRequestStatus, EntryReason, Role
from tripcoin.services import references
from tripcoin.services.actors import Actor
from tripcoin.services.audit import log_audit
from tripcoin.services.ledger import CoinLedger
from tripcoin.timeutil import utcnow

logger = logging.getLogger(__name__)


class CoinRequestService:
    def __init__(self, session_factory: async_sessionmaker = None, ledger: CoinLedger = None):
        self.session_factory = session_factory or async_session
        self.ledger = ledger or CoinLedger(self.session_factory)

    async def create(self, requester: Actor, amount: int, notes: Optional[str] = None) -> CoinRequest:
        if amount <= 0:
            raise InvariantViolation("Top-up amount must be positive", amount=amount)
        async with transactional(self.session_factory) as db:
            user = await references.admin_user(db, requester.user_id)
            account = await references.account_of(db, user.id)
            req = CoinRequest(
                account_id=account.id,
                amount=amount,
                notes=notes,
                status=CoinRequestStatus.PENDING,
                created_at=utcnow(),
            )
            db.add(req)
            await db.flush()
            await log_audit(db, user.id, "create_coin_request", "coin_request", req.id, {"amount": amount})
            return req

    async def _pending_for_decision(self, db, request_id: int, decider: Actor) -> CoinRequest:
        await references.active_user(db, decider.user_id, role=Role.SUPER_ADMIN)
        res = await db.execute(select(CoinRequest).where(CoinRequest.id == request_id).with_for_update(of=CoinRequest))
        req = res.scalars().first()
        if req is None:
            raise NotFound("CoinRequest", request_id)
        if req.status != CoinRequestStatus.PENDING:
            raise InvalidState(
                f"Coin request has already been {req.status.lower()}", request_id=request_id, status=req.status
            )
        return req

    async def approve(self, request_id: int, decider: Actor, notes: Optional[str] = None) -> CoinRequest:
        async with transactional(self.session_factory) as db:
            req = await self._pending_for_decision(db, request_id, decider)
            await self.ledger.credit(
                req.account_id,
                req.amount,
                EntryReason.TOP_UP_APPROVED,
                str(req.id),
                reference_type="coin_request",
                notes=notes or req.notes,
                created_by=decider.user_id,
                session=db,
            )
            req.status = CoinRequestStatus.APPROVED
            req.approved_by = decider.user_id
            req.approved_at = utcnow()
            await db.flush()
            await log_audit(db, decider.user_id, "approve_coin_request", "coin_request", req.id, {"amount": req.amount})
        logger.info("coin request approved", extra={"request_id": request_id, "amount": req.amount})
        return req

    async def reject(self, request_id: int, decider: Actor, reason: str) -> CoinRequest:
        async with transactional(self.session_factory) as db:
            req = await self._pending_for_decision(db, request_id, decider)
            req.status = CoinRequestStatus.REJECTED
            req.approved_by = decider.user_id
            req.approved_at = utcnow()
            req.rejected_reason = reason
            await db.flush()
            await log_audit(db, decider.user_id, "reject_coin_request", "coin_request", req.id, {"reason": reason})
        return req

    async def list_for(self, actor: Actor, status: Optional[str] = None) -> List[CoinRequest]:
        async with transactional(self.session_factory) as db:
            user = await references.admin_user(db, actor.user_id)
            stmt = select(CoinRequest)
            if user.role != Role.SUPER_ADMIN:
                account = await references.account_of(db, user.id)
                stmt = stmt.where(CoinRequest.account_id == account.id)
            if status:
                stmt = stmt.where(CoinRequest.status == status)
            res = await db.execute(stmt.order_by(CoinRequest.id.desc()))
            return list(res.scalars().all())
