"""Credit ledger: award, balance, deduct.

Each mutation is one conditional statement inside one transaction, so the
database rather than the application decides races:

- award inserts the CreditEvent with ON CONFLICT DO NOTHING and only
  increments the balance when that insert affected a row.
- deduct is ``UPDATE ... SET remaining = remaining - 1 WHERE remaining > 0``
  RETURNING the new balance, and succeeds iff a row changed.

"No credits" is a normal ``False`` result. Only an unreachable or failing
store raises, as LedgerUnavailable.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import DBAPIError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from app.database import Database
from app.models import CreditAccount, CreditEvent, CreditSource

logger = logging.getLogger(__name__)

accounts = CreditAccount.__table__
events = CreditEvent.__table__

# Dialects with INSERT ... ON CONFLICT support
_UPSERT_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": pg_insert,
}


class LedgerUnavailable(Exception):
    """The credit store could not be reached or failed mid-operation."""


class CreditLedger:
    """Durable, idempotent bookkeeping of purchased generation credits.

    Args:
        db: An opened Database handle.
        default_count: Credits awarded per payment when no count is given.
    """

    def __init__(self, db: Database, default_count: int = 5) -> None:
        if default_count < 1:
            raise ValueError("default_count must be a positive integer")
        self._db = db
        self.default_count = default_count

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except (DBAPIError, PoolTimeoutError, OSError) as e:
            logger.error(f"Credit ledger {operation} failed: {e}")
            raise LedgerUnavailable(f"Credit ledger unavailable during {operation}") from e

    def _insert(self, table):
        dialect = self._db.dialect_name
        try:
            return _UPSERT_INSERTS[dialect](table)
        except KeyError:
            raise RuntimeError(f"Unsupported ledger dialect: {dialect}") from None

    async def award(
        self,
        principal: str,
        payment_ref: str,
        count: int | None = None,
        source: CreditSource | str = CreditSource.VERIFY,
    ) -> bool:
        """Credit ``principal`` once for ``payment_ref``.

        Args:
            principal: Purchasing user.
            payment_ref: External payment reference (checkout session id).
            count: Credits to add. Defaults to ``default_count``.
            source: Where the award signal came from.

        Returns:
            True if this call credited the payment, False if it already was.

        Raises:
            ValueError: On an empty principal/reference or non-positive count.
            LedgerUnavailable: If the store fails.
        """
        if not principal or not payment_ref:
            raise ValueError("principal and payment_ref are required")
        count = self.default_count if count is None else count
        if count < 1:
            raise ValueError("count must be a positive integer")
        source = CreditSource(source)

        with self._guard("award"):
            async with self._db.begin() as conn:
                claim = (
                    self._insert(events)
                    .values(
                        payment_ref=payment_ref,
                        principal=principal,
                        count=count,
                        source=source.value,
                    )
                    .on_conflict_do_nothing(index_elements=[events.c.payment_ref])
                )
                claimed = await conn.execute(claim)
                if claimed.rowcount == 0:
                    logger.info(f"Payment {payment_ref} already credited, skipping")
                    return False

                credit = self._insert(accounts).values(principal=principal, remaining=count)
                credit = credit.on_conflict_do_update(
                    index_elements=[accounts.c.principal],
                    set_={
                        "remaining": accounts.c.remaining + credit.excluded.remaining,
                        "updated_at": func.now(),
                    },
                )
                await conn.execute(credit)

        logger.info(f"Awarded {count} credits to {principal} for {payment_ref} via {source.value}")
        return True

    async def get_balance(self, principal: str) -> int:
        """Return remaining credits, 0 for unknown principals."""
        with self._guard("get_balance"):
            async with self._db.engine.connect() as conn:
                result = await conn.execute(
                    select(accounts.c.remaining).where(accounts.c.principal == principal)
                )
                remaining = result.scalar_one_or_none()
        return remaining or 0

    async def consume(self, principal: str) -> int | None:
        """Consume one credit if the balance is positive.

        The new balance is read back by the same statement, so it is exactly
        what this call left even while other requests spend concurrently.

        Returns:
            Remaining credits after the deduct, None on zero balance.
        """
        with self._guard("deduct"):
            async with self._db.begin() as conn:
                result = await conn.execute(
                    update(accounts)
                    .where(accounts.c.principal == principal, accounts.c.remaining > 0)
                    .values(remaining=accounts.c.remaining - 1, updated_at=func.now())
                    .returning(accounts.c.remaining)
                )
                remaining = result.scalar_one_or_none()

        if remaining is not None:
            logger.debug(f"Deducted one credit from {principal}, {remaining} left")
        return remaining

    async def deduct(self, principal: str) -> bool:
        """Consume one credit if the balance is positive.

        Returns:
            True if a credit was consumed, False on zero balance.
        """
        return await self.consume(principal) is not None

    async def has_event(self, payment_ref: str) -> bool:
        """Check whether a payment reference has already been credited."""
        with self._guard("has_event"):
            async with self._db.engine.connect() as conn:
                result = await conn.execute(
                    select(events.c.payment_ref).where(events.c.payment_ref == payment_ref)
                )
                return result.first() is not None

    async def events_for(self, principal: str, limit: int = 20) -> list[CreditEvent]:
        """Return the most recent award events for a principal, newest first.

        Events stamped in the same second are ordered by payment reference.
        """
        with self._guard("events_for"):
            async with self._db.session() as session:
                result = await session.execute(
                    select(CreditEvent)
                    .where(CreditEvent.principal == principal)
                    .order_by(CreditEvent.awarded_at.desc(), CreditEvent.payment_ref)
                    .limit(limit)
                )
                return list(result.scalars().all())

    async def reset(self) -> None:
        """Clear every account and event. Test isolation only."""
        with self._guard("reset"):
            async with self._db.begin() as conn:
                await conn.execute(delete(events))
                await conn.execute(delete(accounts))
        logger.warning("Credit ledger reset")
