"""Imported statement transactions."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledgerlink.database import Base
from ledgerlink.models.base import Money, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from ledgerlink.models.account import BankAccount


class Transaction(Base, UUIDMixin, TimestampMixin):
    """
    One line of a bank or credit-card statement.

    ``amount`` is signed: debits (money leaving the account) are negative,
    credits are positive. ``linked_transaction_id`` points at the other half
    of a transfer. Links are one-to-one and symmetric: if A points at B then
    B points at A, and the unique index keeps any T from being the target of
    two links.
    """

    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_account_date", "account_id", "txn_date"),
        Index("uq_transactions_linked_transaction_id", "linked_transaction_id", unique=True),
    )

    account_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("bank_accounts.id", ondelete="CASCADE"),
        nullable=False,
    )
    txn_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="CAD")
    # Locked rows belong to a closed period and must not be relinked.
    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    linked_transaction_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("transactions.id", ondelete="SET NULL"),
        nullable=True,
    )

    account: Mapped[BankAccount] = relationship("BankAccount", back_populates="transactions")

    @property
    def is_debit(self) -> bool:
        return self.amount < 0

    @property
    def is_credit(self) -> bool:
        return self.amount > 0

    def __repr__(self) -> str:
        return f"<Transaction {self.txn_date} {self.amount} {self.description!r}>"
