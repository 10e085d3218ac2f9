"""Coin ledger: admin wallet balances and their append-only history."""
import logging
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tripcoin.db.session import async_session, transactional
from tripcoin.errors import InsufficientBalance, InvariantViolation, NotFound
from tripcoin.metrics import LEDGER_ENTRIES, LEDGER_REJECTIONS
from tripcoin.models.models import EntryType, LedgerAccount, LedgerEntry
from tripcoin.timeutil import utcnow

logger = logging.getLogger(__name__)


class CoinLedger:
    def __init__(self, session_factory: async_sessionmaker = None):
        self.session_factory = session_factory or async_session

    async def _apply(
        self,
        session: AsyncSession,
        account_id: int,
        entry_type: str,
        amount: int,
        reason: str,
        reference_id: Optional[str],
        reference_type: Optional[str],
        notes: Optional[str],
        created_by: Optional[int],
    ) -> LedgerEntry:
        """Move the balance by signed ``amount`` and append the matching entry.

        The balance guard and the write are a single conditional UPDATE; the
        entry records the before/after pair derived from the returned balance.
        """
        stmt = (
            update(LedgerAccount)
            .where(LedgerAccount.id == account_id)
            .values(balance=LedgerAccount.balance + amount)
            .returning(LedgerAccount.balance)
            .execution_options(synchronize_session=False)
        )
        if amount < 0:
            stmt = stmt.where(LedgerAccount.balance >= -amount)
        balance_after = (await session.execute(stmt)).scalar_one_or_none()
        if balance_after is None:
            current = (
                await session.execute(select(LedgerAccount.balance).where(LedgerAccount.id == account_id))
            ).scalar_one_or_none()
            if current is None:
                raise NotFound("LedgerAccount", account_id)
            LEDGER_REJECTIONS.inc()
            raise InsufficientBalance(account_id, required=-amount, available=current)

        balance_before = balance_after - amount
        entry = LedgerEntry(
            account_id=account_id,
            entry_type=entry_type,
            reason=reason,
            amount=amount,
            balance_before=balance_before,
            balance_after=balance_after,
            reference_id=str(reference_id) if reference_id is not None else None,
            reference_type=reference_type,
            notes=notes,
            created_by=created_by,
            created_at=utcnow(),
        )
        if entry.balance_after != entry.balance_before + entry.amount or entry.balance_after < 0:
            raise InvariantViolation("Ledger entry does not close", account_id=account_id)
        session.add(entry)
        await session.flush()
        LEDGER_ENTRIES.labels(entry_type=entry_type, reason=reason).inc()
        logger.info(
            "ledger entry appended",
            extra={"account_id": account_id, "entry_type": entry_type, "amount": amount, "balance_after": balance_after},
        )
        return entry

    async def debit(
        self,
        account_id: int,
        amount: int,
        reason: str,
        reference_id: Optional[str] = None,
        *,
        reference_type: Optional[str] = None,
        notes: Optional[str] = None,
        created_by: Optional[int] = None,
        session: Optional[AsyncSession] = None,
    ) -> LedgerEntry:
        if amount < 0:
            raise InvariantViolation("Debit amount must not be negative", amount=amount)
        async with transactional(self.session_factory, session) as db:
            return await self._apply(
                db, account_id, EntryType.DEDUCTION, -amount, reason, reference_id, reference_type, notes, created_by
            )

    async def credit(
        self,
        account_id: int,
        amount: int,
        reason: str,
        reference_id: Optional[str] = None,
        *,
        reference_type: Optional[str] = None,
        notes: Optional[str] = None,
        created_by: Optional[int] = None,
        session: Optional[AsyncSession] = None,
    ) -> LedgerEntry:
        if amount < 0:
            raise InvariantViolation("Credit amount must not be negative", amount=amount)
        async with transactional(self.session_factory, session) as db:
            return await self._apply(
                db, account_id, EntryType.TOP_UP, amount, reason, reference_id, reference_type, notes, created_by
            )

    async def refund(
        self,
        account_id: int,
        amount: int,
        reason: str,
        reference_id: Optional[str] = None,
        *,
        reference_type: Optional[str] = None,
        notes: Optional[str] = None,
        created_by: Optional[int] = None,
        session: Optional[AsyncSession] = None,
    ) -> LedgerEntry:
        if amount < 0:
            raise InvariantViolation("Refund amount must not be negative", amount=amount)
        async with transactional(self.session_factory, session) as db:
            return await self._apply(
                db, account_id, EntryType.REFUND, amount, reason, reference_id, reference_type, notes, created_by
            )

    async def get_account(self, account_id: int, session: Optional[AsyncSession] = None) -> LedgerAccount:
        async with transactional(self.session_factory, session) as db:
            res = await db.execute(
                select(LedgerAccount).where(LedgerAccount.id == account_id).execution_options(populate_existing=True)
            )
            account = res.scalars().first()
            if account is None:
                raise NotFound("LedgerAccount", account_id)
            return account

    async def get_balance(self, account_id: int, session: Optional[AsyncSession] = None) -> int:
        account = await self.get_account(account_id, session=session)
        return account.balance

    async def account_for_owner(self, owner_id: int, session: Optional[AsyncSession] = None) -> LedgerAccount:
        async with transactional(self.session_factory, session) as db:
            res = await db.execute(select(LedgerAccount).where(LedgerAccount.owner_id == owner_id))
            account = res.scalars().first()
            if account is None:
                raise NotFound("LedgerAccount", f"owner:{owner_id}")
            return account

    async def list_entries(
        self,
        account_id: int,
        limit: int = 50,
        offset: int = 0,
        entry_type: Optional[str] = None,
    ) -> List[LedgerEntry]:
        async with transactional(self.session_factory) as db:
            await self.get_account(account_id, session=db)
            stmt = select(LedgerEntry).where(LedgerEntry.account_id == account_id)
            if entry_type:
                stmt = stmt.where(LedgerEntry.entry_type == entry_type)
            stmt = stmt.order_by(LedgerEntry.id.desc()).limit(limit).offset(offset)
            res = await db.execute(stmt)
            return list(res.scalars().all())
