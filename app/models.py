"""SQLAlchemy models for the credit ledger.

CreditAccount holds the denormalized remaining balance per principal.
CreditEvent is the append-only idempotency log of processed payment
confirmations: one row per external payment reference, never updated.

Examples:
    >>> from app.models import CreditAccount, CreditEvent
    >>> CreditAccount(principal="alice", remaining=5)
    <CreditAccount(principal='alice', remaining=5)>

Tests:
    - tests/unit/test_database.py
    - tests/unit/test_ledger.py
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class."""

    pass


class CreditSource(str, Enum):
    """Where an award signal came from."""

    VERIFY = "verify"
    WEBHOOK = "webhook"
    ADMIN = "admin"


class CreditAccount(Base):
    """Remaining premium credits for one principal. Never negative."""

    __tablename__ = "credit_accounts"
    __table_args__ = (
        CheckConstraint("remaining >= 0", name="ck_credit_accounts_remaining_nonnegative"),
    )

    principal: Mapped[str] = mapped_column(String(255), primary_key=True)
    remaining: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<CreditAccount(principal={self.principal!r}, remaining={self.remaining})>"


class CreditEvent(Base):
    """Processed payment confirmation. Immutable once written."""

    __tablename__ = "credit_events"

    payment_ref: Mapped[str] = mapped_column(String(255), primary_key=True)
    principal: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    count: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(
        String(16), nullable=False, default=CreditSource.VERIFY.value
    )
    awarded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return (
            f"<CreditEvent(payment_ref={self.payment_ref!r}, "
            f"principal={self.principal!r}, count={self.count})>"
        )
