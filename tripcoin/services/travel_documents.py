"""Travel documents: a fixed coin charge per issued document."""
import logging
import uuid
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tripcoin.config import settings
from tripcoin.db.session import async_session, transactional
from tripcoin.errors import InvalidState, InvariantViolation, NotFound, PermissionDenied
from tripcoin.models.models import DocumentStatus, EntryReason, LedgerAccount, Role, TravelDocument, TripStatus, User
from tripcoin.services import references
from tripcoin.services.actors import Actor
from tripcoin.services.audit import log_audit
from tripcoin.services.ledger import CoinLedger
from tripcoin.timeutil import utcnow

logger = logging.getLogger(__name__)


class TravelDocumentService:
    def __init__(self, session_factory: async_sessionmaker = None, ledger: CoinLedger = None, coin_cost: int = None):
        self.session_factory = session_factory or async_session
        self.ledger = ledger or CoinLedger(self.session_factory)
        self.coin_cost = settings.COIN_COST_PER_DOCUMENT if coin_cost is None else coin_cost
        if self.coin_cost < 0:
            raise InvariantViolation("Document coin cost must not be negative", cost=self.coin_cost)

    async def _owned(self, db: AsyncSession, document_id: int, actor: Actor) -> Tuple[TravelDocument, User]:
        user = await references.admin_user(db, actor.user_id)
        res = await db.execute(
            select(TravelDocument).where(TravelDocument.id == document_id).with_for_update(of=TravelDocument)
        )
        doc = res.scalars().first()
        if doc is None:
            raise NotFound("TravelDocument", document_id)
        if user.role != Role.SUPER_ADMIN:
            owner = (
                await db.execute(select(LedgerAccount.owner_id).where(LedgerAccount.id == doc.ledger_account_id))
            ).scalar_one()
            if owner != user.id:
                raise PermissionDenied("You do not have permission to access this document", document_id=document_id)
        return doc, user

    async def create(self, trip_id: int, actor: Actor, notes: Optional[str] = None) -> TravelDocument:
        async with transactional(self.session_factory) as db:
            user = await references.admin_user(db, actor.user_id)
            account = await references.account_of(db, user.id)
            trip = await references.get_trip(db, trip_id)
            if trip.status not in TripStatus.OCCUPYING:
                raise InvalidState(
                    f"Cannot create travel document for trip with status: {trip.status}",
                    trip_id=trip_id,
                    status=trip.status,
                )
            now = utcnow()
            doc = TravelDocument(
                document_number=f"SJ-{now:%Y%m%d}-{uuid.uuid4().hex[:8].upper()}",
                trip_id=trip_id,
                ledger_account_id=account.id,
                status=DocumentStatus.DRAFT,
                coin_cost=0,
                notes=notes,
                created_at=now,
            )
            db.add(doc)
            await db.flush()
            await log_audit(db, user.id, "create_travel_document", "travel_document", doc.id, {"trip_id": trip_id})
            return doc

    async def issue(self, document_id: int, actor: Actor) -> TravelDocument:
        async with transactional(self.session_factory) as db:
            doc, user = await self._owned(db, document_id, actor)
            if doc.status != DocumentStatus.DRAFT:
                raise InvalidState(
                    f"Cannot issue document with status: {doc.status}", document_id=document_id, status=doc.status
                )
            await self.ledger.debit(
                doc.ledger_account_id,
                self.coin_cost,
                EntryReason.TRAVEL_DOCUMENT,
                doc.document_number,
                reference_type="travel_document",
                notes=f"Travel document {doc.document_number}",
                created_by=user.id,
                session=db,
            )
            doc.status = DocumentStatus.ISSUED
            doc.coin_cost = self.coin_cost
            doc.issued_at = utcnow()
            await db.flush()
            await log_audit(db, user.id, "issue_travel_document", "travel_document", doc.id, {"coin_cost": self.coin_cost})
        logger.info("travel document issued", extra={"document_id": document_id})
        return doc

    async def cancel(self, document_id: int, actor: Actor) -> TravelDocument:
        # issued documents are final and never refunded
        async with transactional(self.session_factory) as db:
            doc, user = await self._owned(db, document_id, actor)
            if doc.status != DocumentStatus.DRAFT:
                raise InvalidState(
                    f"Cannot cancel document with status: {doc.status}", document_id=document_id, status=doc.status
                )
            doc.status = DocumentStatus.CANCELLED
            await db.flush()
            await log_audit(db, user.id, "cancel_travel_document", "travel_document", doc.id)
        return doc

    async def remove(self, document_id: int, actor: Actor):
        async with transactional(self.session_factory) as db:
            doc, user = await self._owned(db, document_id, actor)
            if doc.status not in (DocumentStatus.DRAFT, DocumentStatus.CANCELLED):
                raise InvalidState(
                    f"Cannot delete document with status: {doc.status}", document_id=document_id, status=doc.status
                )
            await db.delete(doc)
            await log_audit(db, user.id, "remove_travel_document", "travel_document", document_id)
